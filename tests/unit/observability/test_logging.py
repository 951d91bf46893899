"""
modelrelay - unit tests for observability logging

File: tests/unit/observability/test_logging.py
Last updated: 2026-10-18

Purpose
- Validate structured JSON logging with redaction, correlation metadata, and queue-backed reliability.

What this test file should cover
- JSON line validity and redaction guarantees (API keys and conversation content).
- Correlation field propagation.
- Text format output.
- Queue drain/shutdown behavior.

Non-functional requirements
- Deterministic and non-flaky.
"""

from __future__ import annotations

import json
import logging
import logging.handlers
import threading
from typing import TYPE_CHECKING
from uuid import uuid4

import pytest

from modelrelay.observability import (
    LoggingConfig,
    correlation_scope,
    default_log_redactor,
    get_active_logging_handle,
    get_correlation_context,
    setup_logging,
    setup_structured_logging,
    shutdown_logging,
)

if TYPE_CHECKING:
    from collections.abc import Iterator
    from pathlib import Path


@pytest.fixture(autouse=True)
def _cleanup_logging() -> Iterator[None]:
    yield
    shutdown_logging()


def _logger_name() -> str:
    return f"modelrelay.tests.logging.{uuid4().hex}"


def _read_json_lines(path: Path) -> list[dict[str, object]]:
    lines = path.read_text(encoding="utf-8").splitlines()
    return [json.loads(line) for line in lines]


def test_json_logging_redacts_keys_and_preserves_correlation_fields(tmp_path: Path) -> None:
    logger_name = _logger_name()
    handle = setup_structured_logging(
        LoggingConfig(
            session_id="session-redaction",
            base_log_dir=tmp_path,
            logger_name=logger_name,
        )
    )
    logger = logging.getLogger(logger_name)

    with correlation_scope(request_id="req-123"):
        logger.info(
            "calling backend with api_key=sk-ant-FAKE123456789012345 and Bearer abc.def",
            extra={
                "provider": "vertex",
                "nested": {"password": "hunter2", "safe": "ok"},
                "system_prompt": "You are a pirate.",
                "messages": [{"role": "user", "content": "private question"}],
            },
        )

    shutdown_logging(handle)

    assert handle.log_path == tmp_path / "session-redaction" / "modelrelay.jsonl"
    parsed = _read_json_lines(handle.log_path)
    assert len(parsed) == 1
    first = parsed[0]
    assert first["session_id"] == "session-redaction"
    assert first["request_id"] == "req-123"
    assert first["level"] == "INFO"
    assert first["fields"]["provider"] == "vertex"  # type: ignore[index]
    assert first["fields"]["nested"]["safe"] == "ok"  # type: ignore[index]

    line = handle.log_path.read_text(encoding="utf-8")
    assert "sk-ant-FAKE" not in line
    assert "abc.def" not in line
    assert "hunter2" not in line
    assert "pirate" not in line
    assert "private question" not in line
    assert "***REDACTED***" in line


def test_setup_logging_wrapper_uses_observability_config(tmp_path: Path) -> None:
    logger_name = _logger_name()
    logger = setup_logging(
        {
            "log_level": "INFO",
            "log_format": "json",
            "log_dir": str(tmp_path),
            "redact_secrets": True,
            "console": False,
        },
        session_id="session-wrapper",
        logger_name=logger_name,
    )

    logger.debug("filtered out")
    logger.info("hello", extra={"api_key": "k-123"})
    shutdown_logging()

    files = list((tmp_path / "session-wrapper").glob("*.jsonl"))
    assert len(files) == 1
    content = files[0].read_text(encoding="utf-8")
    assert "k-123" not in content
    assert "filtered out" not in content
    assert "hello" in content


def test_disabling_redaction_keeps_raw_values(tmp_path: Path) -> None:
    logger_name = _logger_name()
    logger = setup_logging(
        {"log_dir": str(tmp_path), "redact_secrets": False},
        session_id="session-raw",
        logger_name=logger_name,
    )

    logger.info("plain", extra={"api_key": "visible-value"})
    handle = get_active_logging_handle()
    assert handle is not None
    shutdown_logging()

    assert "visible-value" in handle.log_path.read_text(encoding="utf-8")


def test_text_format_appends_sorted_redacted_extras(tmp_path: Path) -> None:
    logger_name = _logger_name()
    handle = setup_structured_logging(
        LoggingConfig(
            session_id="session-text",
            base_log_dir=tmp_path,
            logger_name=logger_name,
            log_format="text",
        )
    )
    logger = logging.getLogger(logger_name)

    logger.warning("retrying", extra={"provider": "openai", "attempt": 1, "api_key": "sk-x"})
    shutdown_logging(handle)

    line = handle.log_path.read_text(encoding="utf-8").strip()
    assert " WARNING " in line
    assert line.endswith("api_key=***REDACTED*** attempt=1 provider=openai")
    with pytest.raises(json.JSONDecodeError):
        json.loads(line)


def test_multithreaded_logging_produces_valid_json_lines(tmp_path: Path) -> None:
    logger_name = _logger_name()
    handle = setup_structured_logging(
        LoggingConfig(
            session_id="session-threaded",
            base_log_dir=tmp_path,
            logger_name=logger_name,
            queue_size=4096,
        )
    )
    logger = logging.getLogger(logger_name)

    total_threads = 8
    per_thread = 40

    def worker(thread_idx: int) -> None:
        with correlation_scope(request_id=f"req-{thread_idx}"):
            for i in range(per_thread):
                logger.info(
                    f"thread={thread_idx} index={i} token=tok-secret-{thread_idx}-{i}",
                    extra={"api_key": f"sk-FAKE-{thread_idx}-{i}"},
                )

    threads = [threading.Thread(target=worker, args=(idx,)) for idx in range(total_threads)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    shutdown_logging(handle)

    lines = handle.log_path.read_text(encoding="utf-8").splitlines()
    assert len(lines) == total_threads * per_thread
    for line in lines:
        parsed = json.loads(line)
        assert isinstance(parsed, dict)
        thread_idx = str(parsed["message"]).split()[0].removeprefix("thread=")
        assert parsed["request_id"] == f"req-{thread_idx}"
        assert "tok-secret" not in line
        assert "sk-FAKE" not in line


def test_queue_handler_non_blocking_and_shutdown_flushes(tmp_path: Path) -> None:
    logger_name = _logger_name()
    handle = setup_structured_logging(
        LoggingConfig(
            session_id="session-flush",
            base_log_dir=tmp_path,
            logger_name=logger_name,
            queue_size=10_000,
        )
    )
    logger = logging.getLogger(logger_name)

    queue_handlers = [h for h in logger.handlers if isinstance(h, logging.handlers.QueueHandler)]
    assert queue_handlers, "expected queue-backed non-blocking logging"

    expected = 300
    for i in range(expected):
        logger.info("message %s", i)

    shutdown_logging(handle)

    lines = handle.log_path.read_text(encoding="utf-8").splitlines()
    assert handle.dropped_records == 0
    assert len(lines) == expected
    assert handle.is_shutdown
    assert get_active_logging_handle() is None


def test_new_setup_replaces_previous_session(tmp_path: Path) -> None:
    first = setup_structured_logging(
        LoggingConfig(session_id="first", base_log_dir=tmp_path, logger_name=_logger_name())
    )
    second = setup_structured_logging(
        LoggingConfig(session_id="second", base_log_dir=tmp_path, logger_name=_logger_name())
    )

    assert first.is_shutdown
    assert get_active_logging_handle() is second


def test_correlation_scope_restores_previous_context() -> None:
    with correlation_scope(session_id="s-1", request_id="r-1"):
        with correlation_scope(request_id=None, trace_id="t-1"):
            assert get_correlation_context() == {"session_id": "s-1", "trace_id": "t-1"}
        assert get_correlation_context() == {"session_id": "s-1", "request_id": "r-1"}
    assert get_correlation_context() == {}


@pytest.mark.parametrize(
    ("kwargs", "message"),
    [
        ({"session_id": "  "}, "session_id"),
        ({"session_id": "s", "queue_size": 0}, "queue_size"),
        ({"session_id": "s", "log_filename": "nested/file.jsonl"}, "path separators"),
        ({"session_id": "s", "level": "LOUD"}, "unsupported logging level"),
    ],
)
def test_invalid_logging_config_is_rejected(
    tmp_path: Path,
    kwargs: dict[str, object],
    message: str,
) -> None:
    with pytest.raises(ValueError, match=message):
        setup_structured_logging(LoggingConfig(base_log_dir=tmp_path, **kwargs))  # type: ignore[arg-type]


def test_default_log_redactor_handles_nested_structures() -> None:
    redacted = default_log_redactor(
        {
            "headers": {"authorization": "Bearer secret-token-value"},
            "notes": ["key is sk-proj-ABCDEFGHIJKLMNOP", "fine"],
            "completion_text": "model output",
            "count": 3,
        }
    )

    assert redacted == {
        "headers": {"authorization": "***REDACTED***"},
        "notes": ["key is ***REDACTED***", "fine"],
        "completion_text": "***REDACTED***",
        "count": 3,
    }
