"""Session logging for hosts that drive provider handlers.

Library modules only create ``logging.getLogger(__name__)`` loggers. A host (the
CLI, an editor integration) calls :func:`setup_structured_logging` once per
session; records from every ``modelrelay.*`` logger then pass through a bounded
queue to ``<base_log_dir>/<session_id>/modelrelay.jsonl`` and, optionally, stderr.

Records never carry API keys or conversation text: the default redactor masks
secret-like keys, conversation keys (``system_prompt``, ``messages``) and key
patterns embedded in free text.
"""

from __future__ import annotations

import atexit
import contextvars
import json
import logging
import logging.handlers
import math
import queue
import re
import threading
import time
from collections.abc import Callable, Iterator, Mapping
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import Final, Literal

JSONScalar = str | int | float | bool | None
JSONValue = JSONScalar | list["JSONValue"] | dict[str, "JSONValue"]
LogRedactor = Callable[[JSONValue], JSONValue]
LogFormat = Literal["json", "text"]

REDACTED: Final[str] = "***REDACTED***"

_TEXT_LAYOUT: Final[str] = "%(asctime)s %(levelname)s %(name)s %(message)s"
_CORRELATION_FIELDS: Final[frozenset[str]] = frozenset(
    {"session_id", "request_id", "correlation_id", "trace_id"}
)

# Matched as substrings of lower-cased keys.
_MASKED_KEY_PARTS: Final[tuple[str, ...]] = (
    "secret",
    "password",
    "passphrase",
    "api_key",
    "apikey",
    "access_token",
    "authorization",
    "credential",
    "cookie",
    "private_key",
    # conversation content
    "system_prompt",
    "messages",
    "prompt_text",
    "completion_text",
)

_TEXT_SCRUBBERS: Final[tuple[tuple[re.Pattern[str], str], ...]] = (
    (
        re.compile(
            r"(?i)\b(api[_-]?key|x-api-key|token|password|secret|authorization)\b(\s*[:=]\s*)[^\s,;]+"
        ),
        rf"\1\2{REDACTED}",
    ),
    (re.compile(r"(?i)\bbearer\s+[A-Za-z0-9._~+/-]+=*"), f"Bearer {REDACTED}"),
    (re.compile(r"\bsk-(?:ant-|proj-)?[A-Za-z0-9_-]{12,}"), REDACTED),
)

# Attributes every LogRecord carries; anything else arrived through ``extra=``.
_RECORD_ATTRIBUTES: Final[frozenset[str]] = frozenset(
    vars(logging.LogRecord("", logging.INFO, "", 0, "", None, None))
) | {"message", "asctime", "taskName", "correlation"}

_correlation: contextvars.ContextVar[tuple[tuple[str, str], ...]] = contextvars.ContextVar(
    "modelrelay_log_correlation", default=()
)

_active_lock = threading.Lock()
_active: StructuredLoggingHandle | None = None
_atexit_hooked = False


@dataclass(frozen=True, slots=True)
class LoggingConfig:
    """Settings for one logging session."""

    session_id: str
    base_log_dir: Path | str = Path("logs")
    logger_name: str = "modelrelay"
    level: int | str = "INFO"
    log_format: LogFormat = "json"
    queue_size: int = 4096
    log_filename: str = "modelrelay.jsonl"
    log_to_console: bool = False
    redactor: LogRedactor | None = None


# --------------------------------------------------------------------------- redaction


def default_log_redactor(value: JSONValue) -> JSONValue:
    """Mask secrets and conversation content anywhere inside ``value``."""
    if isinstance(value, str):
        for pattern, replacement in _TEXT_SCRUBBERS:
            value = pattern.sub(replacement, value)
        return value
    if isinstance(value, list):
        return [default_log_redactor(item) for item in value]
    if isinstance(value, dict):
        return {
            key: REDACTED if _is_masked_key(key) else default_log_redactor(item)
            for key, item in value.items()
        }
    return value


def _is_masked_key(key: str) -> bool:
    lowered = key.lower()
    return any(part in lowered for part in _MASKED_KEY_PARTS)


def _no_redaction(value: JSONValue) -> JSONValue:
    return value


def _effective_redactor(custom: LogRedactor | None) -> LogRedactor:
    if custom is None:
        return default_log_redactor
    if custom is _no_redaction:
        return custom
    return lambda value: default_log_redactor(_to_json(custom(value)))


# --------------------------------------------------------------------------- correlation


def get_correlation_context() -> dict[str, str]:
    return dict(_correlation.get())


def set_correlation_fields(
    **fields: str | None,
) -> contextvars.Token[tuple[tuple[str, str], ...]]:
    """Bind correlation fields in the current context; ``None`` unbinds a field."""
    state = get_correlation_context()
    for key, value in fields.items():
        if value is None:
            state.pop(key, None)
        else:
            state[key] = _non_empty(value, "correlation value")
    return _correlation.set(tuple(state.items()))


def reset_correlation_fields(token: contextvars.Token[tuple[tuple[str, str], ...]]) -> None:
    _correlation.reset(token)


@contextmanager
def correlation_scope(**fields: str | None) -> Iterator[None]:
    token = set_correlation_fields(**fields)
    try:
        yield
    finally:
        reset_correlation_fields(token)


# --------------------------------------------------------------------------- formatting


def _to_json(value: object) -> JSONValue:
    if value is None or isinstance(value, (bool, int, str)):
        return value
    if isinstance(value, float):
        return value if math.isfinite(value) else str(value)
    if isinstance(value, Mapping):
        return {str(key): _to_json(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_to_json(item) for item in value]
    if isinstance(value, Path):
        return value.as_posix()
    return repr(value)


def _as_text(value: JSONValue) -> str:
    if isinstance(value, str):
        return value
    return json.dumps(value, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def _extras(record: logging.LogRecord) -> dict[str, JSONValue]:
    return {
        key: _to_json(value)
        for key, value in vars(record).items()
        if key not in _RECORD_ATTRIBUTES
        and key not in _CORRELATION_FIELDS
        and not key.startswith("_")
    }


class _JsonLinesFormatter(logging.Formatter):
    """One sorted JSON object per record; extras nest under ``fields``."""

    def __init__(self, redactor: LogRedactor, session_id: str) -> None:
        super().__init__()
        self._redact = redactor
        self._session_id = session_id

    def format(self, record: logging.LogRecord) -> str:
        created = datetime.fromtimestamp(record.created, tz=UTC)
        event: dict[str, JSONValue] = {
            "timestamp": created.isoformat(timespec="milliseconds").replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": _as_text(self._redact(record.getMessage())),
            "session_id": self._session_id,
        }
        event.update(getattr(record, "correlation", {}))
        for key in _CORRELATION_FIELDS:
            explicit = getattr(record, key, None)
            if isinstance(explicit, str) and explicit:
                event[key] = explicit

        extras = _extras(record)
        if extras:
            event["fields"] = self._redact(extras)
        if record.exc_info:
            event["exception"] = _as_text(self._redact(self.formatException(record.exc_info)))
        return json.dumps(event, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


class _TextFormatter(logging.Formatter):
    """Classic single-line layout followed by sorted ``key=value`` extras."""

    def __init__(self, redactor: LogRedactor) -> None:
        super().__init__(_TEXT_LAYOUT)
        self._redact = redactor

    def format(self, record: logging.LogRecord) -> str:
        line = _as_text(self._redact(super().format(record)))
        extras = self._redact(_extras(record))
        if isinstance(extras, dict) and extras:
            pairs = " ".join(f"{key}={_as_text(extras[key])}" for key in sorted(extras))
            line = f"{line} {pairs}"
        return line


# --------------------------------------------------------------------------- sinks


class _DroppingQueueHandler(logging.handlers.QueueHandler):
    """Never blocks the emitting thread: a full queue drops the record."""

    def __init__(self, log_queue: queue.Queue[logging.LogRecord]) -> None:
        super().__init__(log_queue)
        self.dropped = 0
        self._dropped_lock = threading.Lock()

    def prepare(self, record: logging.LogRecord) -> logging.LogRecord:
        # The listener thread cannot see this thread's contextvars.
        context = get_correlation_context()
        if context:
            record.correlation = context
        return super().prepare(record)

    def enqueue(self, record: logging.LogRecord) -> None:
        try:
            self.queue.put_nowait(record)
        except queue.Full:
            with self._dropped_lock:
                self.dropped += 1


@dataclass(slots=True)
class StructuredLoggingHandle:
    """An active logging session; :func:`shutdown_logging` drains and closes it."""

    logger: logging.Logger
    session_id: str
    log_path: Path
    _queue: queue.Queue[logging.LogRecord]
    _queue_handler: _DroppingQueueHandler
    _sinks: tuple[logging.Handler, ...]
    _listener: logging.handlers.QueueListener
    _closed: bool = False
    _close_lock: threading.Lock = field(default_factory=threading.Lock)

    @property
    def session_log_dir(self) -> Path:
        return self.log_path.parent

    @property
    def dropped_records(self) -> int:
        return self._queue_handler.dropped

    @property
    def is_shutdown(self) -> bool:
        return self._closed

    def flush(self, *, timeout_seconds: float = 2.0) -> None:
        deadline = time.monotonic() + max(timeout_seconds, 0.0)
        while self._queue.unfinished_tasks and time.monotonic() < deadline:
            time.sleep(0.01)
        for sink in self._sinks:
            sink.flush()

    def shutdown(self, *, timeout_seconds: float = 2.0) -> None:
        with self._close_lock:
            if self._closed:
                return
            self.flush(timeout_seconds=timeout_seconds)
            self._listener.stop()
            self.logger.removeHandler(self._queue_handler)
            self._queue_handler.close()
            for sink in self._sinks:
                sink.close()
            self._closed = True


def setup_structured_logging(config: LoggingConfig) -> StructuredLoggingHandle:
    """Start a logging session, replacing any session that is still active."""
    global _active, _atexit_hooked

    shutdown_logging()

    session_id = _non_empty(config.session_id, "session_id")
    logger_name = _non_empty(config.logger_name, "logger_name")
    filename = _non_empty(config.log_filename, "log_filename")
    if Path(filename).name != filename:
        raise ValueError("log_filename must not include path separators")
    if isinstance(config.queue_size, bool) or not isinstance(config.queue_size, int):
        raise ValueError("queue_size must be an integer")
    if config.queue_size <= 0:
        raise ValueError("queue_size must be > 0")
    level = _level_number(config.level)

    log_path = Path(config.base_log_dir) / session_id / filename
    log_path.parent.mkdir(parents=True, exist_ok=True)

    redactor = _effective_redactor(config.redactor)
    formatter: logging.Formatter = (
        _TextFormatter(redactor)
        if config.log_format == "text"
        else _JsonLinesFormatter(redactor, session_id)
    )
    sinks: list[logging.Handler] = [logging.FileHandler(log_path, encoding="utf-8")]
    if config.log_to_console:
        # stdout carries streamed model output.
        sinks.append(logging.StreamHandler())
    for sink in sinks:
        sink.setLevel(level)
        sink.setFormatter(formatter)

    logger = logging.getLogger(logger_name)
    for stale in list(logger.handlers):
        logger.removeHandler(stale)
        stale.close()
    logger.setLevel(level)
    logger.propagate = False

    log_queue: queue.Queue[logging.LogRecord] = queue.Queue(maxsize=config.queue_size)
    queue_handler = _DroppingQueueHandler(log_queue)
    listener = logging.handlers.QueueListener(log_queue, *sinks, respect_handler_level=True)
    listener.start()
    logger.addHandler(queue_handler)

    handle = StructuredLoggingHandle(
        logger=logger,
        session_id=session_id,
        log_path=log_path,
        _queue=log_queue,
        _queue_handler=queue_handler,
        _sinks=tuple(sinks),
        _listener=listener,
    )
    with _active_lock:
        _active = handle
    if not _atexit_hooked:
        atexit.register(shutdown_logging)
        _atexit_hooked = True
    return handle


def setup_logging(
    observability_config: Mapping[str, object] | None = None,
    *,
    session_id: str,
    log_dir: Path | str | None = None,
    logger_name: str = "modelrelay",
) -> logging.Logger:
    """Start a session from an ``[observability]`` config table and return its logger.

    ``log_dir`` overrides the table's ``log_dir``; ``redact_secrets = false``
    disables the default redactor.
    """

    cfg = dict(observability_config or {})
    level = cfg.get("log_level", "INFO")
    base_dir = log_dir if log_dir is not None else cfg.get("log_dir", "logs")
    handle = setup_structured_logging(
        LoggingConfig(
            session_id=session_id,
            base_log_dir=base_dir if isinstance(base_dir, (str, Path)) else "logs",
            logger_name=logger_name,
            level=level if isinstance(level, (int, str)) else "INFO",
            log_format="text" if cfg.get("log_format") == "text" else "json",
            log_to_console=bool(cfg.get("console", False)),
            redactor=None if cfg.get("redact_secrets", True) else _no_redaction,
        )
    )
    return handle.logger


def get_active_logging_handle() -> StructuredLoggingHandle | None:
    with _active_lock:
        return _active


def flush_logging(
    handle: StructuredLoggingHandle | None = None, *, timeout_seconds: float = 2.0
) -> None:
    target = handle or get_active_logging_handle()
    if target is not None:
        target.flush(timeout_seconds=timeout_seconds)


def shutdown_logging(
    handle: StructuredLoggingHandle | None = None, *, timeout_seconds: float = 2.0
) -> None:
    """Drain queued records and close every sink of ``handle`` (default: active session)."""
    global _active

    target = handle or get_active_logging_handle()
    if target is None:
        return
    target.shutdown(timeout_seconds=timeout_seconds)
    with _active_lock:
        if _active is target:
            _active = None


def _non_empty(value: object, name: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"{name} must be a non-empty string")
    return value.strip()


def _level_number(value: int | str) -> int:
    if isinstance(value, int):
        return value
    resolved = logging.getLevelName(str(value).strip().upper())
    if not isinstance(resolved, int):
        raise ValueError(f"unsupported logging level {value!r}")
    return resolved


__all__ = [
    "REDACTED",
    "JSONScalar",
    "JSONValue",
    "LogFormat",
    "LogRedactor",
    "LoggingConfig",
    "StructuredLoggingHandle",
    "correlation_scope",
    "default_log_redactor",
    "flush_logging",
    "get_active_logging_handle",
    "get_correlation_context",
    "reset_correlation_fields",
    "set_correlation_fields",
    "setup_logging",
    "setup_structured_logging",
    "shutdown_logging",
]
