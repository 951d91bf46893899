"""Unit tests for handler options, error classification, retry policy, and registry."""

from __future__ import annotations

import asyncio
from collections import deque
from dataclasses import dataclass, field
from types import SimpleNamespace

import pytest

from modelrelay.providers import (
    BUILTIN_PROVIDERS,
    AnthropicProvider,
    Message,
    OpenAIProvider,
    ProviderAuthenticationError,
    ProviderError,
    ProviderOptions,
    ProviderRateLimitError,
    ProviderRegistry,
    ProviderUnavailableError,
    RetryPolicy,
    VertexProvider,
    compute_backoff_delay,
    create_handler,
    default_registry,
    is_retryable_error,
    load_model_catalog,
    map_backend_exception,
    normalize_messages,
    run_with_retries,
)


@dataclass(slots=True)
class _SleepRecorder:
    calls: list[float] = field(default_factory=list)

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


@dataclass(slots=True)
class _ScriptedOperation:
    outcomes: deque[object | Exception]
    calls: int = 0

    async def __call__(self) -> object:
        self.calls += 1
        outcome = self.outcomes.popleft()
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


def _status_error(name: str, status: int | None, message: str = "failure") -> Exception:
    error_cls = type(name, (Exception,), {})
    error = error_cls(message)
    if status is not None:
        error.status_code = status  # type: ignore[attr-defined]
    return error


# ---------------------------------------------------------------------------
# Options and messages
# ---------------------------------------------------------------------------


def test_provider_options_from_mapping_accepts_camel_and_snake_case() -> None:
    options = ProviderOptions.from_mapping(
        {
            "apiModelId": "gpt-4o-mini",
            "openAiApiKey": None,
            "openai_api_key": "sk-test",
            "maxTokens": 512,
            "thinkingBudgetTokens": 0,
            "unrelated": "ignored",
        }
    )

    assert options.api_model_id == "gpt-4o-mini"
    assert options.openai_api_key == "sk-test"
    assert options.max_tokens == 512


def test_provider_options_normalize_blank_strings_to_absent() -> None:
    options = ProviderOptions(api_model_id="   ", vertex_region="")

    assert options.api_model_id is None
    assert options.vertex_region is None


@pytest.mark.parametrize(
    ("kwargs", "message"),
    [
        ({"max_tokens": 0}, "max_tokens"),
        ({"thinking_budget_tokens": -1}, "thinking_budget_tokens"),
        ({"request_timeout_seconds": 0}, "request_timeout_seconds"),
    ],
)
def test_provider_options_reject_invalid_numbers(kwargs: dict[str, object], message: str) -> None:
    with pytest.raises(ValueError, match=message):
        ProviderOptions(**kwargs)  # type: ignore[arg-type]


def test_provider_options_to_dict_redacts_keys() -> None:
    payload = ProviderOptions(api_key="sk-ant-secret", openai_api_key="sk-secret").to_dict()

    assert payload["api_key"] == "***REDACTED***"
    assert payload["openai_api_key"] == "***REDACTED***"
    assert "sk-ant-secret" not in repr(payload)


def test_normalize_messages_accepts_mappings_and_message_objects() -> None:
    conversation = normalize_messages(
        [
            {"role": "user", "content": "hi"},
            Message(role="assistant", content=[{"type": "text", "text": "hello"}]),
        ]
    )

    assert conversation[0] == Message(role="user", content="hi")
    assert conversation[1].text() == "hello"
    assert isinstance(conversation[1].content, tuple)


def test_normalize_messages_rejects_non_mapping_items() -> None:
    with pytest.raises(TypeError, match=r"messages\[0\]"):
        normalize_messages(["hello"])  # type: ignore[list-item]


def test_message_text_joins_text_blocks_and_skips_images() -> None:
    message = Message(
        role="user",
        content=[
            {"type": "text", "text": "first"},
            {"type": "image", "source": {"data": "..."}},
            {"type": "text", "text": "second"},
        ],
    )

    assert message.text() == "first\nsecond"


# ---------------------------------------------------------------------------
# Error classification
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    ("exc", "code", "retryable"),
    [
        (_status_error("AuthenticationError", 401), "auth", False),
        (_status_error("PermissionDeniedError", 403), "auth", False),
        (_status_error("RateLimitError", 429), "rate_limit", True),
        (_status_error("OverloadedError", 529), "overloaded", True),
        (_status_error("APITimeoutError", None), "timeout", False),
        (asyncio.TimeoutError(), "timeout", False),
        (
            _status_error("BadRequestError", 400, "prompt is too long: 210000 tokens"),
            "context_length",
            False,
        ),
        (_status_error("BadRequestError", 400, "invalid field"), "invalid_request", False),
        (_status_error("NotFoundError", 404, "model not found"), "invalid_request", False),
        (_status_error("InternalServerError", 500), "service", False),
        (_status_error("APIConnectionError", None), "service", False),
    ],
)
def test_map_backend_exception_classifies_native_errors(
    exc: Exception,
    code: str,
    retryable: bool,
) -> None:
    mapped = map_backend_exception(exc, provider="vertex")

    assert mapped.code == code
    assert mapped.retryable is retryable
    assert mapped.provider == "vertex"
    assert is_retryable_error(mapped) is retryable


def test_map_backend_exception_reads_retry_after_from_response_headers() -> None:
    exc = _status_error("RateLimitError", 429)
    exc.response = SimpleNamespace(status_code=429, headers={"retry-after": "2.5"})  # type: ignore[attr-defined]

    mapped = map_backend_exception(exc, provider="anthropic")

    assert mapped.retry_after_seconds == pytest.approx(2.5)


def test_map_backend_exception_reads_status_from_response_object() -> None:
    exc = Exception("denied")
    exc.response = SimpleNamespace(status_code=401, headers={})  # type: ignore[attr-defined]

    assert map_backend_exception(exc, provider="openai").code == "auth"


def test_map_backend_exception_passes_provider_errors_through() -> None:
    original = ProviderAuthenticationError("nope", provider="openai")

    assert map_backend_exception(original, provider="vertex") is original


def test_provider_error_message_is_machine_readable() -> None:
    error = ProviderRateLimitError("slow   down", provider="anthropic")

    assert str(error) == "provider=anthropic code=rate_limit retryable=true http_status=429 detail=slow down"


# ---------------------------------------------------------------------------
# Retry
# ---------------------------------------------------------------------------


def test_retry_policy_defaults_allow_one_retry() -> None:
    policy = RetryPolicy()

    assert policy.max_retries == 1
    assert policy.max_attempts == 2


def test_retry_policy_rejects_inconsistent_bounds() -> None:
    with pytest.raises(ValueError, match="initial_delay_seconds"):
        RetryPolicy(initial_delay_seconds=5.0, max_delay_seconds=1.0)


def test_compute_backoff_delay_is_exponential_and_bounded() -> None:
    policy = RetryPolicy(max_retries=5, initial_delay_seconds=1.0, multiplier=2.0, max_delay_seconds=5.0)

    delays = [compute_backoff_delay(retry_number=n, policy=policy) for n in range(1, 6)]

    assert delays == [1.0, 2.0, 4.0, 5.0, 5.0]


def test_compute_backoff_delay_prefers_clamped_retry_after() -> None:
    policy = RetryPolicy(max_delay_seconds=10.0)

    assert compute_backoff_delay(retry_number=1, policy=policy, retry_after_seconds=4.0) == 4.0
    assert compute_backoff_delay(retry_number=1, policy=policy, retry_after_seconds=60.0) == 10.0


def test_compute_backoff_delay_ignores_retry_after_when_disabled() -> None:
    policy = RetryPolicy(respect_retry_after=False)

    assert compute_backoff_delay(retry_number=1, policy=policy, retry_after_seconds=4.0) == 1.0


def test_compute_backoff_delay_applies_bounded_jitter() -> None:
    policy = RetryPolicy(initial_delay_seconds=2.0, jitter_ratio=0.5)

    assert compute_backoff_delay(retry_number=1, policy=policy, random_fn=lambda: 0.0) == 1.0
    assert compute_backoff_delay(retry_number=1, policy=policy, random_fn=lambda: 1.0) == 3.0
    with pytest.raises(ValueError, match="random_fn"):
        compute_backoff_delay(retry_number=1, policy=policy, random_fn=lambda: 2.0)


@pytest.mark.asyncio
async def test_run_with_retries_retries_transient_then_succeeds() -> None:
    operation = _ScriptedOperation(outcomes=deque([_status_error("RateLimitError", 429), "ok"]))
    sleep = _SleepRecorder()
    retries: list[tuple[int, str, float]] = []

    result = await run_with_retries(
        operation,
        map_exception=lambda exc: map_backend_exception(exc, provider="test"),
        policy=RetryPolicy(),
        sleep=sleep,
        on_retry=lambda n, error, delay: retries.append((n, error.code, delay)),
    )

    assert result == "ok"
    assert operation.calls == 2
    assert sleep.calls == [1.0]
    assert retries == [(1, "rate_limit", 1.0)]


@pytest.mark.asyncio
async def test_run_with_retries_raises_mapped_error_without_retry_for_fatal_failure() -> None:
    operation = _ScriptedOperation(outcomes=deque([_status_error("AuthenticationError", 401)]))
    sleep = _SleepRecorder()

    with pytest.raises(ProviderAuthenticationError):
        await run_with_retries(
            operation,
            map_exception=lambda exc: map_backend_exception(exc, provider="test"),
            policy=RetryPolicy(max_retries=3),
            sleep=sleep,
        )

    assert operation.calls == 1
    assert sleep.calls == []


@pytest.mark.asyncio
async def test_run_with_retries_with_zero_retries_fails_on_first_transient_error() -> None:
    operation = _ScriptedOperation(outcomes=deque([_status_error("RateLimitError", 429), "ok"]))

    with pytest.raises(ProviderRateLimitError):
        await run_with_retries(
            operation,
            map_exception=lambda exc: map_backend_exception(exc, provider="test"),
            policy=RetryPolicy(max_retries=0),
            sleep=_SleepRecorder(),
        )

    assert operation.calls == 1


# ---------------------------------------------------------------------------
# Registry and factory
# ---------------------------------------------------------------------------


def test_default_registry_knows_builtin_families() -> None:
    registry = default_registry()

    assert registry.names() == ("anthropic", "openai", "vertex")
    assert set(BUILTIN_PROVIDERS) == {"anthropic", "openai", "vertex"}


@pytest.mark.parametrize(
    ("name", "expected_cls"),
    [
        ("anthropic", AnthropicProvider),
        ("Vertex", VertexProvider),
        ("OPENAI", OpenAIProvider),
    ],
)
def test_create_handler_builds_each_family_without_network(
    name: str,
    expected_cls: type[object],
) -> None:
    handler = create_handler(name, {"apiModelId": "unknown-model"}, client=object())

    assert isinstance(handler, expected_cls)
    assert handler.get_model().id == load_model_catalog().default_model_id(name.lower())


def test_create_handler_passes_retry_policy_through() -> None:
    policy = RetryPolicy(max_retries=4)

    handler = create_handler("vertex", None, retry_policy=policy)

    assert handler.retry_policy is policy


def test_unknown_family_is_reported_as_unavailable() -> None:
    with pytest.raises(ProviderUnavailableError, match="not registered"):
        create_handler("bedrock")


def test_registry_rejects_duplicate_registration_unless_overwritten() -> None:
    registry = ProviderRegistry()
    registry.register("vertex", VertexProvider)

    with pytest.raises(ValueError, match="already registered"):
        registry.register("VERTEX", VertexProvider)

    registry.register("vertex", AnthropicProvider, overwrite=True)
    assert isinstance(registry.create("vertex", client=object()), AnthropicProvider)

    registry.unregister("vertex")
    assert not registry.is_registered("vertex")


def test_registry_rejects_factories_that_do_not_build_handlers() -> None:
    registry = ProviderRegistry()
    registry.register("broken", lambda options, **kwargs: object())  # type: ignore[arg-type,return-value]

    with pytest.raises(TypeError, match="invalid handler"):
        registry.create("broken")


def test_provider_error_is_runtime_error() -> None:
    assert issubclass(ProviderError, RuntimeError)
