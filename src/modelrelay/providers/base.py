"""
modelrelay - provider handler contract and shared utilities

File: src/modelrelay/providers/base.py
Last updated: 2026-10-18

Purpose
- Abstract streaming handler contract shared by every backend family.

What should be included in this file
- Handler options and conversation message models.
- Error taxonomy and transient-failure classification.
- Bounded retry around the stream-initiating backend call.
- The ``create_message`` driver: request build, initiation, translation, release.

Functional requirements
- Retry only before the first chunk is observable; never replay a started stream.
- Release the backend stream on every exit path.

Non-functional requirements
- Must make it easy to add new backend families without touching core logic.
- Must never log secrets or conversation content.
"""

from __future__ import annotations

import abc
import asyncio
import inspect
import logging
import random as random_module
from collections.abc import AsyncIterator, Awaitable, Callable, Iterable, Mapping, Sequence
from dataclasses import dataclass, field, fields
from typing import Any, Final, Literal, TypeAlias, TypeVar

from modelrelay.providers.model_catalog import (
    ModelCatalog,
    ResolvedModel,
    load_model_catalog,
)
from modelrelay.providers.stream import StreamChunk
from modelrelay.providers.usage import UsageAccumulator, read_field

logger = logging.getLogger(__name__)

SleepFn: TypeAlias = Callable[[float], Awaitable[None]]
RandomFn: TypeAlias = Callable[[], float]
MessageRole: TypeAlias = Literal["user", "assistant"]

_MESSAGE_ROLES: Final[frozenset[str]] = frozenset({"user", "assistant"})


def _validate_non_empty_str(value: str, field_name: str, *, strip: bool = True) -> str:
    if not isinstance(value, str):
        raise TypeError(f"{field_name} must be a string")
    normalized = value.strip() if strip else value
    if not normalized:
        raise ValueError(f"{field_name} cannot be empty")
    return normalized


def _validate_optional_str(value: str | None, field_name: str, *, strip: bool = True) -> str | None:
    if value is None:
        return None
    return _validate_non_empty_str(value, field_name, strip=strip)


def _to_snake_case(key: str) -> str:
    out: list[str] = []
    for char in key:
        if char.isupper():
            out.append("_")
            out.append(char.lower())
        else:
            out.append(char)
    return "".join(out).lstrip("_")


# ---------------------------------------------------------------------------
# Options and messages
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class ProviderOptions:
    """Already-validated handler options. Every field is optional."""

    api_model_id: str | None = None
    api_key: str | None = None
    anthropic_base_url: str | None = None
    vertex_project_id: str | None = None
    vertex_region: str | None = None
    openai_api_key: str | None = None
    openai_base_url: str | None = None
    max_tokens: int | None = None
    thinking_budget_tokens: int = 0
    request_timeout_seconds: float | None = None

    def __post_init__(self) -> None:
        for name in (
            "api_model_id",
            "api_key",
            "anthropic_base_url",
            "vertex_project_id",
            "vertex_region",
            "openai_api_key",
            "openai_base_url",
        ):
            value = getattr(self, name)
            if value is not None and not isinstance(value, str):
                raise TypeError(f"ProviderOptions.{name} must be a string")
            if isinstance(value, str) and not value.strip():
                object.__setattr__(self, name, None)
        if self.max_tokens is not None and self.max_tokens <= 0:
            raise ValueError("ProviderOptions.max_tokens must be > 0")
        if self.thinking_budget_tokens < 0:
            raise ValueError("ProviderOptions.thinking_budget_tokens must be >= 0")
        if self.request_timeout_seconds is not None and self.request_timeout_seconds <= 0:
            raise ValueError("ProviderOptions.request_timeout_seconds must be > 0")

    @classmethod
    def from_mapping(cls, payload: Mapping[str, object]) -> ProviderOptions:
        """Build options from snake_case or camelCase keys, ignoring unknown keys."""

        known = {item.name for item in fields(cls)}
        kwargs: dict[str, Any] = {}
        for raw_key, value in payload.items():
            if not isinstance(raw_key, str) or value is None:
                continue
            key = raw_key if raw_key in known else _to_snake_case(raw_key)
            if key in known:
                kwargs[key] = value
        return cls(**kwargs)

    def to_dict(self) -> dict[str, object]:
        payload: dict[str, object] = {}
        for item in fields(self):
            value = getattr(self, item.name)
            if value is None:
                continue
            if item.name in {"api_key", "openai_api_key"}:
                payload[item.name] = "***REDACTED***"
                continue
            payload[item.name] = value
        return payload


@dataclass(frozen=True, slots=True)
class Message:
    """One conversation turn. ``content`` is text or a sequence of content blocks."""

    role: MessageRole
    content: str | tuple[Mapping[str, object], ...]

    def __post_init__(self) -> None:
        if self.role not in _MESSAGE_ROLES:
            raise ValueError(f"Message.role must be one of {sorted(_MESSAGE_ROLES)}")
        if isinstance(self.content, str):
            return
        if not isinstance(self.content, Sequence):
            raise TypeError("Message.content must be a string or a sequence of blocks")
        blocks: list[Mapping[str, object]] = []
        for index, block in enumerate(self.content):
            if not isinstance(block, Mapping):
                raise TypeError(f"Message.content[{index}] must be a mapping")
            blocks.append(dict(block))
        object.__setattr__(self, "content", tuple(blocks))

    @classmethod
    def from_mapping(cls, payload: Mapping[str, object]) -> Message:
        role = payload.get("role")
        content = payload.get("content")
        if not isinstance(role, str):
            raise TypeError("message role must be a string")
        if content is None:
            raise ValueError("message content is required")
        return cls(role=role, content=content)  # type: ignore[arg-type]

    def text(self) -> str:
        """Concatenated text of all text blocks."""

        if isinstance(self.content, str):
            return self.content
        parts = [
            str(block.get("text", ""))
            for block in self.content
            if block.get("type", "text") == "text"
        ]
        return "\n".join(part for part in parts if part)


MessageLike: TypeAlias = Message | Mapping[str, object]


def normalize_messages(messages: Sequence[MessageLike]) -> tuple[Message, ...]:
    """Validate caller messages. The caller's objects are never mutated."""

    if isinstance(messages, (str, bytes)) or not isinstance(messages, Sequence):
        raise TypeError("messages must be a sequence")
    normalized: list[Message] = []
    for index, item in enumerate(messages):
        if isinstance(item, Message):
            normalized.append(item)
        elif isinstance(item, Mapping):
            normalized.append(Message.from_mapping(item))
        else:
            raise TypeError(f"messages[{index}] must be a Message or mapping")
    if not normalized:
        raise ValueError("messages cannot be empty")
    return tuple(normalized)


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------


class ProviderError(RuntimeError):
    """Base normalized provider error with deterministic machine-readable fields."""

    def __init__(
        self,
        *,
        provider: str,
        code: str,
        detail: str,
        retryable: bool,
        http_status: int | None = None,
        retry_after_seconds: float | None = None,
    ) -> None:
        self.provider = _validate_non_empty_str(provider, "provider")
        self.code = _validate_non_empty_str(code, "code")
        self.detail = _normalize_detail(detail)
        self.retryable = bool(retryable)
        self.http_status = http_status
        self.retry_after_seconds = retry_after_seconds

        parts = [
            f"provider={self.provider}",
            f"code={self.code}",
            f"retryable={str(self.retryable).lower()}",
        ]
        if self.http_status is not None:
            parts.append(f"http_status={self.http_status}")
        parts.append(f"detail={self.detail}")
        super().__init__(" ".join(parts))


class ProviderUnavailableError(ProviderError):
    """Raised when the backend SDK is not installed or unusable."""

    def __init__(self, detail: str, *, provider: str = "provider") -> None:
        super().__init__(provider=provider, code="unavailable", detail=detail, retryable=False)


class ProviderAuthenticationError(ProviderError):
    """Authentication/authorization failures."""

    def __init__(
        self,
        detail: str,
        *,
        provider: str = "provider",
        http_status: int | None = None,
    ) -> None:
        super().__init__(
            provider=provider,
            code="auth",
            detail=detail,
            retryable=False,
            http_status=http_status,
        )


class ProviderInvalidRequestError(ProviderError):
    """Request payload invalid for the backend API (including unknown models)."""

    def __init__(
        self,
        detail: str,
        *,
        provider: str = "provider",
        http_status: int | None = None,
    ) -> None:
        super().__init__(
            provider=provider,
            code="invalid_request",
            detail=detail,
            retryable=False,
            http_status=http_status,
        )


class ProviderContextLengthError(ProviderError):
    """Request exceeds the model's context window."""

    def __init__(
        self,
        detail: str,
        *,
        provider: str = "provider",
        http_status: int | None = None,
    ) -> None:
        super().__init__(
            provider=provider,
            code="context_length",
            detail=detail,
            retryable=False,
            http_status=http_status,
        )


class ProviderRateLimitError(ProviderError):
    """Backend rate-limit responses (transient)."""

    def __init__(
        self,
        detail: str,
        *,
        provider: str = "provider",
        http_status: int | None = 429,
        retry_after_seconds: float | None = None,
    ) -> None:
        super().__init__(
            provider=provider,
            code="rate_limit",
            detail=detail,
            retryable=True,
            http_status=http_status,
            retry_after_seconds=retry_after_seconds,
        )


class ProviderOverloadedError(ProviderError):
    """Backend overload responses (transient)."""

    def __init__(
        self,
        detail: str,
        *,
        provider: str = "provider",
        http_status: int | None = 529,
        retry_after_seconds: float | None = None,
    ) -> None:
        super().__init__(
            provider=provider,
            code="overloaded",
            detail=detail,
            retryable=True,
            http_status=http_status,
            retry_after_seconds=retry_after_seconds,
        )


class ProviderTimeoutError(ProviderError):
    """Backend timeout failures."""

    def __init__(self, detail: str, *, provider: str = "provider") -> None:
        super().__init__(provider=provider, code="timeout", detail=detail, retryable=False)


class ProviderServiceError(ProviderError):
    """Any other backend API/service failure."""

    def __init__(
        self,
        detail: str,
        *,
        provider: str = "provider",
        http_status: int | None = None,
    ) -> None:
        super().__init__(
            provider=provider,
            code="service",
            detail=detail,
            retryable=False,
            http_status=http_status,
        )


class StreamInitiationError(ProviderError):
    """The stream-initiating call failed; no chunk was produced for this call."""

    def __init__(self, *, provider: str, cause: ProviderError, attempts: int) -> None:
        self.cause = cause
        self.attempts = attempts
        super().__init__(
            provider=provider,
            code="stream_initiation",
            detail=f"attempts={attempts} cause={cause.code}: {cause.detail}",
            retryable=False,
            http_status=cause.http_status,
        )


class StreamInterruptedError(ProviderError):
    """The backend stream failed after it started; emitted output is incomplete."""

    def __init__(
        self,
        *,
        provider: str,
        cause: ProviderError,
        chunks_emitted: int,
    ) -> None:
        self.cause = cause
        self.chunks_emitted = chunks_emitted
        super().__init__(
            provider=provider,
            code="stream_interrupted",
            detail=f"chunks_emitted={chunks_emitted} cause={cause.code}: {cause.detail}",
            retryable=False,
            http_status=cause.http_status,
        )


def is_retryable_error(error: BaseException) -> bool:
    """Return retryability classification for normalized provider errors."""

    return isinstance(error, ProviderError) and error.retryable


def map_backend_exception(exc: BaseException, *, provider: str) -> ProviderError:
    """Classify a native SDK/transport exception into the provider error taxonomy."""

    if isinstance(exc, ProviderError):
        return exc

    status_code = _read_status_code(exc)
    retry_after = _read_retry_after(exc)
    class_name = exc.__class__.__name__.lower()
    detail = _exception_detail(exc)
    detail_lower = detail.lower()

    if status_code in {401, 403} or "auth" in class_name or "permission" in class_name:
        return ProviderAuthenticationError(detail, provider=provider, http_status=status_code)

    if status_code == 429 or "ratelimit" in class_name:
        return ProviderRateLimitError(
            detail,
            provider=provider,
            http_status=status_code,
            retry_after_seconds=retry_after,
        )

    if status_code == 529 or "overloaded" in class_name:
        return ProviderOverloadedError(
            detail,
            provider=provider,
            http_status=status_code,
            retry_after_seconds=retry_after,
        )

    if isinstance(exc, (asyncio.TimeoutError, TimeoutError)) or "timeout" in class_name:
        return ProviderTimeoutError(detail, provider=provider)

    if (
        status_code in {400, 413, 422}
        and ("context" in detail_lower or "prompt is too long" in detail_lower)
        and ("length" in detail_lower or "too long" in detail_lower)
    ) or "contextlength" in class_name:
        return ProviderContextLengthError(detail, provider=provider, http_status=status_code)

    if status_code in {400, 404, 409, 413, 422}:
        return ProviderInvalidRequestError(detail, provider=provider, http_status=status_code)

    if "badrequest" in class_name or "notfound" in class_name:
        return ProviderInvalidRequestError(detail, provider=provider)

    return ProviderServiceError(detail, provider=provider, http_status=status_code)


# ---------------------------------------------------------------------------
# Retry
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class RetryPolicy:
    """Bounded exponential backoff around the stream-initiating call."""

    max_retries: int = 1
    initial_delay_seconds: float = 1.0
    multiplier: float = 2.0
    max_delay_seconds: float = 10.0
    jitter_ratio: float = 0.0
    respect_retry_after: bool = True

    def __post_init__(self) -> None:
        if self.max_retries < 0:
            raise ValueError("max_retries must be >= 0")
        if self.initial_delay_seconds < 0:
            raise ValueError("initial_delay_seconds must be >= 0")
        if self.multiplier < 1.0:
            raise ValueError("multiplier must be >= 1.0")
        if self.max_delay_seconds < 0:
            raise ValueError("max_delay_seconds must be >= 0")
        if self.initial_delay_seconds > self.max_delay_seconds:
            raise ValueError("initial_delay_seconds must be <= max_delay_seconds")
        if not (0.0 <= self.jitter_ratio <= 1.0):
            raise ValueError("jitter_ratio must be between 0.0 and 1.0")

    @property
    def max_attempts(self) -> int:
        return self.max_retries + 1


def compute_backoff_delay(
    *,
    retry_number: int,
    policy: RetryPolicy,
    retry_after_seconds: float | None = None,
    random_fn: RandomFn = random_module.random,
) -> float:
    """Return bounded delay before retry N (1-based)."""

    if retry_number <= 0:
        raise ValueError("retry_number must be > 0")

    if policy.respect_retry_after and retry_after_seconds is not None:
        return max(0.0, min(retry_after_seconds, policy.max_delay_seconds))

    base_delay = policy.initial_delay_seconds * (policy.multiplier ** (retry_number - 1))
    bounded_delay = min(base_delay, policy.max_delay_seconds)

    if policy.jitter_ratio == 0.0:
        return bounded_delay

    random_value = random_fn()
    if not (0.0 <= random_value <= 1.0):
        raise ValueError("random_fn must return values in [0.0, 1.0]")

    max_jitter = bounded_delay * policy.jitter_ratio
    jitter = ((random_value * 2.0) - 1.0) * max_jitter
    return max(0.0, min(policy.max_delay_seconds, bounded_delay + jitter))


_ResultT = TypeVar("_ResultT")
RetryCallback: TypeAlias = Callable[[int, ProviderError, float], None]


async def run_with_retries(
    operation: Callable[[], Awaitable[_ResultT]],
    *,
    map_exception: Callable[[Exception], ProviderError],
    policy: RetryPolicy,
    sleep: SleepFn = asyncio.sleep,
    random_fn: RandomFn = random_module.random,
    on_retry: RetryCallback | None = None,
) -> _ResultT:
    """Run an async operation, retrying only transient ``ProviderError`` failures."""

    retry_count = 0
    while True:
        try:
            return await operation()
        except Exception as exc:  # noqa: BLE001
            mapped = exc if isinstance(exc, ProviderError) else map_exception(exc)
            if not isinstance(mapped, ProviderError):
                raise TypeError("map_exception must return ProviderError") from exc

            if not mapped.retryable or retry_count >= policy.max_retries:
                if mapped is exc:
                    raise
                raise mapped from exc

            retry_count += 1
            delay_seconds = compute_backoff_delay(
                retry_number=retry_count,
                policy=policy,
                retry_after_seconds=mapped.retry_after_seconds,
                random_fn=random_fn,
            )
            if on_retry is not None:
                on_retry(retry_count, mapped, delay_seconds)
            await sleep(delay_seconds)


@dataclass(slots=True)
class RetryState:
    """Attempt bookkeeping for one ``create_message`` call."""

    attempts: int = 0
    last_error: ProviderError | None = None


# ---------------------------------------------------------------------------
# Handler contract
# ---------------------------------------------------------------------------


class BaseProvider(abc.ABC):
    """Backend-agnostic streaming handler.

    Subclasses supply the backend-native pieces: client construction, request
    construction, the stream-initiating call, and event translation.
    """

    provider_name: str = "provider"

    def __init__(
        self,
        options: ProviderOptions | Mapping[str, object] | None = None,
        *,
        client: object | None = None,
        retry_policy: RetryPolicy | None = None,
        sleep: SleepFn = asyncio.sleep,
        random_fn: RandomFn = random_module.random,
        model_catalog: ModelCatalog | None = None,
    ) -> None:
        if options is None:
            options = ProviderOptions()
        elif isinstance(options, Mapping):
            options = ProviderOptions.from_mapping(options)
        elif not isinstance(options, ProviderOptions):
            raise TypeError("options must be ProviderOptions or a mapping")
        self.options = options
        self._client = client
        self._retry_policy = retry_policy if retry_policy is not None else RetryPolicy()
        self._sleep = sleep
        self._random_fn = random_fn
        self._model_catalog = model_catalog if model_catalog is not None else load_model_catalog()
        self._resolved_model = self._model_catalog.resolve(
            self.provider_name, self.options.api_model_id
        )

    @property
    def retry_policy(self) -> RetryPolicy:
        return self._retry_policy

    def get_model(self) -> ResolvedModel:
        """Return the resolved ``(id, info)`` pair; stable for the handler's lifetime."""

        return self._resolved_model

    async def create_message(
        self,
        system_prompt: str,
        messages: Sequence[MessageLike],
    ) -> AsyncIterator[StreamChunk]:
        """Stream normalized chunks for one conversation turn."""

        if not isinstance(system_prompt, str):
            raise TypeError("system_prompt must be a string")
        conversation = normalize_messages(messages)
        model = self.get_model()
        request = self._build_request(system_prompt, conversation, model)

        native_stream = await self._initiate_stream(request, model_id=model.id)
        emitted = 0
        try:
            accumulator = UsageAccumulator(model.info)
            iterator = aiter(native_stream)
            while True:
                try:
                    event = await anext(iterator)
                    chunks = list(self._translate_event(event, accumulator))
                except StopAsyncIteration:
                    break
                except Exception as exc:  # noqa: BLE001
                    raise self._interrupted(exc, model_id=model.id, emitted=emitted) from exc
                for chunk in chunks:
                    emitted += 1
                    yield chunk
        finally:
            await _release_stream(native_stream)

    def _interrupted(
        self, exc: Exception, *, model_id: str, emitted: int
    ) -> StreamInterruptedError:
        mapped = self._map_exception(exc)
        logger.warning(
            "backend stream interrupted",
            extra={
                "provider": self.provider_name,
                "model": model_id,
                "chunks_emitted": emitted,
                "error_code": mapped.code,
            },
        )
        return StreamInterruptedError(
            provider=self.provider_name,
            cause=mapped,
            chunks_emitted=emitted,
        )

    async def _initiate_stream(self, request: Mapping[str, object], *, model_id: str) -> Any:
        state = RetryState()

        async def operation() -> Any:
            state.attempts += 1
            client = self._ensure_client()
            return await self._open_stream(client, request)

        def on_retry(retry_number: int, error: ProviderError, delay_seconds: float) -> None:
            state.last_error = error
            logger.warning(
                "transient backend failure, retrying stream initiation",
                extra={
                    "provider": self.provider_name,
                    "model": model_id,
                    "attempt": retry_number,
                    "delay_seconds": delay_seconds,
                    "http_status": error.http_status,
                    "error_code": error.code,
                },
            )

        try:
            stream = await run_with_retries(
                operation,
                map_exception=self._map_exception,
                policy=self._retry_policy,
                sleep=self._sleep,
                random_fn=self._random_fn,
                on_retry=on_retry,
            )
        except ProviderError as exc:
            raise StreamInitiationError(
                provider=self.provider_name,
                cause=exc,
                attempts=state.attempts,
            ) from exc

        logger.debug(
            "backend stream started",
            extra={"provider": self.provider_name, "model": model_id, "attempts": state.attempts},
        )
        return stream

    def _ensure_client(self) -> Any:
        if self._client is not None:
            return self._client
        self._client = self._create_default_client()
        return self._client

    def _map_exception(self, exc: Exception) -> ProviderError:
        return map_backend_exception(exc, provider=self.provider_name)

    @abc.abstractmethod
    def _create_default_client(self) -> Any:
        """Build the backend SDK client from options. Called lazily."""

    @abc.abstractmethod
    def _build_request(
        self,
        system_prompt: str,
        messages: Sequence[Message],
        model: ResolvedModel,
    ) -> dict[str, object]:
        """Return the backend-native request for one call."""

    @abc.abstractmethod
    async def _open_stream(self, client: Any, request: Mapping[str, object]) -> Any:
        """Invoke the backend's create-streaming-message entry point."""

    @abc.abstractmethod
    def _translate_event(
        self,
        event: object,
        accumulator: UsageAccumulator,
    ) -> Iterable[StreamChunk]:
        """Map one native stream event onto zero or more chunks, in order."""


async def _release_stream(stream: object) -> None:
    for method_name in ("aclose", "close"):
        method = getattr(stream, method_name, None)
        if not callable(method):
            continue
        outcome = method()
        if inspect.isawaitable(outcome):
            await outcome
        return


def cache_control_block() -> dict[str, str]:
    return {"type": "ephemeral"}


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------

ProviderFactory: TypeAlias = Callable[..., BaseProvider]


class ProviderRegistry:
    """Registry for backend handler factories keyed by family name."""

    def __init__(self) -> None:
        self._factories: dict[str, ProviderFactory] = {}

    def register(self, name: str, factory: ProviderFactory, *, overwrite: bool = False) -> None:
        normalized = _validate_non_empty_str(name, "name").lower()
        if normalized in self._factories and not overwrite:
            raise ValueError(f"provider already registered: {normalized}")
        self._factories[normalized] = factory

    def unregister(self, name: str) -> None:
        normalized = _validate_non_empty_str(name, "name").lower()
        self._factories.pop(normalized, None)

    def is_registered(self, name: str) -> bool:
        normalized = _validate_non_empty_str(name, "name").lower()
        return normalized in self._factories

    def names(self) -> tuple[str, ...]:
        return tuple(sorted(self._factories.keys()))

    def create(
        self,
        name: str,
        options: ProviderOptions | Mapping[str, object] | None = None,
        **kwargs: Any,
    ) -> BaseProvider:
        normalized = _validate_non_empty_str(name, "name").lower()
        factory = self._factories.get(normalized)
        if factory is None:
            raise ProviderUnavailableError(
                provider=normalized,
                detail="provider is not registered",
            )
        handler = factory(options, **kwargs)
        if not isinstance(handler, BaseProvider):
            raise TypeError(f"provider factory returned invalid handler for {normalized}")
        return handler


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _normalize_detail(value: object) -> str:
    text = str(value).strip()
    if not text:
        return "unknown error"
    return " ".join(text.split())


def _exception_detail(exc: BaseException) -> str:
    text = str(exc).strip()
    if text:
        return " ".join(text.split())
    return exc.__class__.__name__


def _read_status_code(exc: BaseException) -> int | None:
    for key in ("status_code", "status", "http_status"):
        value = getattr(exc, key, None)
        if isinstance(value, int) and not isinstance(value, bool):
            return value
    response = getattr(exc, "response", None)
    if response is not None:
        nested = getattr(response, "status_code", None)
        if isinstance(nested, int) and not isinstance(nested, bool):
            return nested
    return None


def _read_retry_after(exc: BaseException) -> float | None:
    headers = read_field(exc, "headers")
    if headers is None:
        headers = read_field(exc, "response.headers")
    if headers is None:
        return None
    getter = getattr(headers, "get", None)
    if not callable(getter):
        return None
    raw = getter("retry-after")
    if raw is None:
        return None
    try:
        parsed = float(str(raw).strip())
    except ValueError:
        return None
    return parsed if parsed >= 0 else None


__all__ = [
    "BaseProvider",
    "Message",
    "MessageLike",
    "ProviderAuthenticationError",
    "ProviderContextLengthError",
    "ProviderError",
    "ProviderFactory",
    "ProviderInvalidRequestError",
    "ProviderOptions",
    "ProviderOverloadedError",
    "ProviderRateLimitError",
    "ProviderRegistry",
    "ProviderServiceError",
    "ProviderTimeoutError",
    "ProviderUnavailableError",
    "RandomFn",
    "RetryCallback",
    "RetryPolicy",
    "RetryState",
    "SleepFn",
    "StreamInitiationError",
    "StreamInterruptedError",
    "cache_control_block",
    "compute_backoff_delay",
    "is_retryable_error",
    "map_backend_exception",
    "normalize_messages",
    "run_with_retries",
]
