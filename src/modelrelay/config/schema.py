"""
modelrelay - configuration schema and validation.

File: src/modelrelay/config/schema.py
Last updated: 2026-10-18

Purpose
- Define authoritative configuration defaults and strict validation rules.

What should be included in this file
- Validation rules for required fields, types, enums, and numeric constraints.
- Deterministic deep-merge helpers.
- Redaction rules for sensitive fields.

Functional requirements
- Validate config payloads and return structured errors (field path + message).
- Reject embedded secrets; only env var names may appear in config.

Non-functional requirements
- Keep rules deterministic and easy to audit.
"""

from __future__ import annotations

import copy
import math
import re
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any, Final, Literal, NotRequired, TypedDict

PROVIDER_NAMES: Final[tuple[str, ...]] = ("anthropic", "openai", "vertex")
LOG_LEVELS: Final[tuple[str, ...]] = ("DEBUG", "INFO", "WARNING", "ERROR")

_ENV_NAME_PATTERN = re.compile(r"^[A-Z_][A-Z0-9_]*$")
_CAMEL_CASE_BOUNDARY = re.compile(r"([a-z0-9])([A-Z])")
_NON_ALNUM = re.compile(r"[^a-z0-9]+")

_SENSITIVE_KEY_TOKENS: Final[frozenset[str]] = frozenset(
    {
        "secret",
        "token",
        "password",
        "passwd",
        "api",
        "key",
        "apikey",
        "private",
        "credential",
        "credentials",
        "auth",
    }
)
_SENSITIVE_KEY_PHRASES: Final[tuple[str, ...]] = (
    "api_key",
    "access_token",
    "refresh_token",
    "client_secret",
    "private_key",
    "password",
    "secret",
)

# Config paths that should be normalized relative to config file location.
PATH_FIELDS: Final[tuple[tuple[str, ...], ...]] = (("observability", "log_dir"),)


class AnthropicSettings(TypedDict, total=False):
    api_key_env: str
    base_url: str


class VertexSettings(TypedDict, total=False):
    project_id: str
    region: str


class OpenAISettings(TypedDict, total=False):
    api_key_env: str
    base_url: str


class ProviderConfig(TypedDict):
    name: Literal["anthropic", "openai", "vertex"]
    model: NotRequired[str]
    max_tokens: NotRequired[int]
    thinking_budget_tokens: int
    request_timeout_seconds: NotRequired[float]
    anthropic: AnthropicSettings
    vertex: VertexSettings
    openai: OpenAISettings


class RetryConfig(TypedDict):
    max_retries: int
    initial_delay_seconds: float
    multiplier: float
    max_delay_seconds: float
    jitter_ratio: float
    respect_retry_after: bool


class ObservabilityConfig(TypedDict):
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"]
    log_format: Literal["json", "text"]
    log_dir: str
    redact_secrets: bool
    console: bool


class RelayConfig(TypedDict):
    provider: ProviderConfig
    retry: RetryConfig
    observability: ObservabilityConfig


DEFAULT_CONFIG: Final[RelayConfig] = {
    "provider": {
        "name": "anthropic",
        "thinking_budget_tokens": 0,
        "anthropic": {"api_key_env": "ANTHROPIC_API_KEY"},
        "vertex": {},
        "openai": {"api_key_env": "OPENAI_API_KEY"},
    },
    "retry": {
        "max_retries": 1,
        "initial_delay_seconds": 1.0,
        "multiplier": 2.0,
        "max_delay_seconds": 10.0,
        "jitter_ratio": 0.0,
        "respect_retry_after": True,
    },
    "observability": {
        "log_level": "INFO",
        "log_format": "json",
        "log_dir": "logs",
        "redact_secrets": True,
        "console": False,
    },
}


@dataclass(frozen=True, slots=True)
class ConfigValidationIssue:
    """Single structured validation failure."""

    path: str
    message: str


@dataclass(frozen=True, slots=True)
class ConfigValidationResult:
    """Validation result with normalized config when no issues were found."""

    config: dict[str, Any] | None
    issues: tuple[ConfigValidationIssue, ...]

    @property
    def is_valid(self) -> bool:
        return self.config is not None and not self.issues


class ConfigValidationError(ValueError):
    """Raised when strict config validation fails."""

    def __init__(self, issues: Sequence[ConfigValidationIssue]) -> None:
        self.issues = tuple(issues)
        if not self.issues:
            rendered = "unknown validation failure"
        else:
            rendered = "\n".join(f"- {item.path}: {item.message}" for item in self.issues)
        super().__init__(f"invalid config:\n{rendered}")


class _IssueCollector:
    __slots__ = ("_items",)

    def __init__(self) -> None:
        self._items: list[ConfigValidationIssue] = []

    def add(self, path: str, message: str) -> None:
        self._items.append(ConfigValidationIssue(path=path, message=message))

    def items(self) -> tuple[ConfigValidationIssue, ...]:
        return tuple(self._items)

    @property
    def has_issues(self) -> bool:
        return bool(self._items)


def default_config() -> RelayConfig:
    """Return a deep copy of deterministic built-in defaults."""

    return copy.deepcopy(DEFAULT_CONFIG)


def merge_config(base: Mapping[str, object], overlay: Mapping[str, object]) -> dict[str, Any]:
    """Deterministically deep-merge ``overlay`` onto ``base``."""

    merged = _deep_copy_mapping(base)
    _merge_into(merged, overlay)
    return merged


def validate_config(config: Mapping[str, object] | object) -> ConfigValidationResult:
    """Validate config and return structured issues with deterministic paths."""

    issues = _IssueCollector()
    root = _as_object(config, "<root>", issues)
    if root is None:
        return ConfigValidationResult(config=None, issues=issues.items())

    normalized = _validate_root(root, issues)
    if issues.has_issues:
        return ConfigValidationResult(config=None, issues=issues.items())
    return ConfigValidationResult(config=normalized, issues=issues.items())


def assert_valid_config(config: Mapping[str, object] | object) -> dict[str, Any]:
    """Validate config and raise ``ConfigValidationError`` on failure."""

    result = validate_config(config)
    if result.config is None:
        raise ConfigValidationError(result.issues)
    return result.config


def redact_config(config: Mapping[str, object] | object) -> dict[str, Any]:
    """Return deterministic redacted representation for logs and CLI output."""

    if not isinstance(config, Mapping):
        return {}
    redacted = _redact_value(config, parent_key=None)
    if isinstance(redacted, dict):
        return redacted
    return {}


def _validate_root(payload: Mapping[str, object], issues: _IssueCollector) -> dict[str, Any]:
    allowed = {"provider", "retry", "observability"}
    _reject_unknown_keys(payload, allowed, "", issues)
    _require_keys(payload, allowed, "", issues)

    out: dict[str, Any] = {}
    _section(payload, key="provider", path="", issues=issues, validator=_validate_provider, out=out)
    _section(payload, key="retry", path="", issues=issues, validator=_validate_retry, out=out)
    _section(
        payload,
        key="observability",
        path="",
        issues=issues,
        validator=_validate_observability,
        out=out,
    )
    return out


def _section(
    payload: Mapping[str, object],
    *,
    key: str,
    path: str,
    issues: _IssueCollector,
    validator: Callable[[dict[str, object], str, _IssueCollector], dict[str, Any]],
    out: dict[str, Any],
) -> None:
    raw = payload.get(key)
    if raw is None:
        return
    section_path = _join(path, key)
    section_obj = _as_object(raw, section_path, issues)
    if section_obj is None:
        return
    out[key] = validator(section_obj, section_path, issues)


def _validate_provider(
    payload: Mapping[str, object],
    path: str,
    issues: _IssueCollector,
) -> dict[str, Any]:
    allowed = {
        "name",
        "model",
        "max_tokens",
        "thinking_budget_tokens",
        "request_timeout_seconds",
        "anthropic",
        "vertex",
        "openai",
    }
    _reject_unknown_keys(payload, allowed, path, issues)
    _require_keys(payload, {"name"}, path, issues)

    out: dict[str, Any] = {}
    if "name" in payload:
        parsed_name = _as_enum(
            payload["name"], _join(path, "name"), issues, allowed_values=PROVIDER_NAMES
        )
        if parsed_name is not None:
            out["name"] = parsed_name

    if "model" in payload:
        parsed_model = _as_str(payload["model"], _join(path, "model"), issues)
        if parsed_model is not None:
            out["model"] = parsed_model

    if "max_tokens" in payload:
        parsed_max_tokens = _as_int(
            payload["max_tokens"], _join(path, "max_tokens"), issues, minimum=1
        )
        if parsed_max_tokens is not None:
            out["max_tokens"] = parsed_max_tokens

    if "thinking_budget_tokens" in payload:
        parsed_budget = _as_int(
            payload["thinking_budget_tokens"],
            _join(path, "thinking_budget_tokens"),
            issues,
            minimum=0,
        )
        if parsed_budget is not None:
            out["thinking_budget_tokens"] = parsed_budget

    if "request_timeout_seconds" in payload:
        parsed_timeout = _as_float(
            payload["request_timeout_seconds"],
            _join(path, "request_timeout_seconds"),
            issues,
            minimum=0.0,
        )
        if parsed_timeout is not None:
            if parsed_timeout == 0.0:
                issues.add(_join(path, "request_timeout_seconds"), "must be > 0")
            else:
                out["request_timeout_seconds"] = parsed_timeout

    _backend_section(payload, "anthropic", {"api_key_env", "base_url"}, path, issues, out)
    _backend_section(payload, "vertex", {"project_id", "region"}, path, issues, out)
    _backend_section(payload, "openai", {"api_key_env", "base_url"}, path, issues, out)
    return out


def _backend_section(
    payload: Mapping[str, object],
    key: str,
    allowed: set[str],
    path: str,
    issues: _IssueCollector,
    out: dict[str, Any],
) -> None:
    raw = payload.get(key)
    if raw is None:
        return
    section_path = _join(path, key)
    section = _as_object(raw, section_path, issues)
    if section is None:
        return
    _reject_unknown_keys(section, allowed, section_path, issues)

    parsed: dict[str, Any] = {}
    for field_name in sorted(allowed):
        if field_name not in section:
            continue
        field_path = _join(section_path, field_name)
        if field_name.endswith("_env"):
            value = _as_env_name(section[field_name], field_path, issues)
        else:
            value = _as_str(section[field_name], field_path, issues)
        if value is not None:
            parsed[field_name] = value
    out[key] = parsed


def _validate_retry(
    payload: Mapping[str, object],
    path: str,
    issues: _IssueCollector,
) -> dict[str, Any]:
    allowed = {
        "max_retries",
        "initial_delay_seconds",
        "multiplier",
        "max_delay_seconds",
        "jitter_ratio",
        "respect_retry_after",
    }
    _reject_unknown_keys(payload, allowed, path, issues)
    _require_keys(payload, allowed, path, issues)

    out: dict[str, Any] = {}
    if "max_retries" in payload:
        parsed_retries = _as_int(
            payload["max_retries"], _join(path, "max_retries"), issues, minimum=0
        )
        if parsed_retries is not None:
            out["max_retries"] = parsed_retries

    for key, minimum in (
        ("initial_delay_seconds", 0.0),
        ("multiplier", 1.0),
        ("max_delay_seconds", 0.0),
        ("jitter_ratio", 0.0),
    ):
        if key not in payload:
            continue
        parsed = _as_float(payload[key], _join(path, key), issues, minimum=minimum)
        if parsed is not None:
            out[key] = parsed

    jitter = out.get("jitter_ratio")
    if jitter is not None and jitter > 1.0:
        issues.add(_join(path, "jitter_ratio"), "must be <= 1.0")

    initial = out.get("initial_delay_seconds")
    ceiling = out.get("max_delay_seconds")
    if initial is not None and ceiling is not None and initial > ceiling:
        issues.add(
            _join(path, "initial_delay_seconds"),
            "must be <= retry.max_delay_seconds",
        )

    if "respect_retry_after" in payload:
        parsed_respect = _as_bool(
            payload["respect_retry_after"], _join(path, "respect_retry_after"), issues
        )
        if parsed_respect is not None:
            out["respect_retry_after"] = parsed_respect
    return out


def _validate_observability(
    payload: Mapping[str, object],
    path: str,
    issues: _IssueCollector,
) -> dict[str, Any]:
    allowed = {"log_level", "log_format", "log_dir", "redact_secrets", "console"}
    _reject_unknown_keys(payload, allowed, path, issues)
    _require_keys(payload, allowed, path, issues)

    out: dict[str, Any] = {}

    if "log_level" in payload:
        parsed_log_level = _as_enum(
            payload["log_level"],
            _join(path, "log_level"),
            issues,
            allowed_values=LOG_LEVELS,
        )
        if parsed_log_level is not None:
            out["log_level"] = parsed_log_level

    if "log_format" in payload:
        parsed_log_format = _as_enum(
            payload["log_format"],
            _join(path, "log_format"),
            issues,
            allowed_values=("json", "text"),
        )
        if parsed_log_format is not None:
            out["log_format"] = parsed_log_format

    if "log_dir" in payload:
        parsed_log_dir = _as_path_text(payload["log_dir"], _join(path, "log_dir"), issues)
        if parsed_log_dir is not None:
            out["log_dir"] = parsed_log_dir

    for key in ("redact_secrets", "console"):
        if key in payload:
            parsed_flag = _as_bool(payload[key], _join(path, key), issues)
            if parsed_flag is not None:
                out[key] = parsed_flag

    return out


def _as_object(value: object, path: str, issues: _IssueCollector) -> dict[str, object] | None:
    if not isinstance(value, Mapping):
        issues.add(path, f"expected object, got {type(value).__name__}")
        return None
    out: dict[str, object] = {}
    for key, item in value.items():
        if not isinstance(key, str):
            issues.add(path, f"object key must be string, got {type(key).__name__}")
            continue
        out[key] = item
    return out


def _as_str(value: object, path: str, issues: _IssueCollector) -> str | None:
    if not isinstance(value, str):
        issues.add(path, f"expected string, got {type(value).__name__}")
        return None
    parsed = value.strip()
    if not parsed:
        issues.add(path, "must not be empty")
        return None
    return parsed


def _as_path_text(value: object, path: str, issues: _IssueCollector) -> str | None:
    parsed = _as_str(value, path, issues)
    if parsed is None:
        return None
    if "\x00" in parsed:
        issues.add(path, "must not contain NUL bytes")
        return None
    return parsed


def _as_env_name(value: object, path: str, issues: _IssueCollector) -> str | None:
    parsed = _as_str(value, path, issues)
    if parsed is None:
        return None
    if not _ENV_NAME_PATTERN.fullmatch(parsed):
        issues.add(path, "must be an env var name (example: ANTHROPIC_API_KEY)")
        return None
    return parsed


def _as_bool(value: object, path: str, issues: _IssueCollector) -> bool | None:
    if isinstance(value, bool):
        return value
    issues.add(path, f"expected boolean, got {type(value).__name__}")
    return None


def _as_int(
    value: object,
    path: str,
    issues: _IssueCollector,
    *,
    minimum: int | None = None,
) -> int | None:
    if isinstance(value, bool) or not isinstance(value, int):
        issues.add(path, f"expected integer, got {type(value).__name__}")
        return None
    if minimum is not None and value < minimum:
        issues.add(path, f"must be >= {minimum}")
        return None
    return value


def _as_float(
    value: object,
    path: str,
    issues: _IssueCollector,
    *,
    minimum: float | None = None,
) -> float | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        issues.add(path, f"expected number, got {type(value).__name__}")
        return None
    parsed = float(value)
    if not math.isfinite(parsed):
        issues.add(path, "must be finite")
        return None
    if minimum is not None and parsed < minimum:
        issues.add(path, f"must be >= {minimum}")
        return None
    return parsed


def _as_enum(
    value: object,
    path: str,
    issues: _IssueCollector,
    *,
    allowed_values: tuple[str, ...],
) -> str | None:
    parsed = _as_str(value, path, issues)
    if parsed is None:
        return None
    if parsed not in allowed_values:
        expected = ", ".join(sorted(allowed_values))
        issues.add(path, f"invalid value {parsed!r}; expected one of: {expected}")
        return None
    return parsed


def _reject_unknown_keys(
    payload: Mapping[str, object],
    allowed: set[str],
    path: str,
    issues: _IssueCollector,
) -> None:
    for key in sorted(payload):
        if key in allowed:
            continue
        key_path = _join(path, key)
        if _looks_sensitive_key(key):
            issues.add(
                key_path,
                "embedded secret values are forbidden; use an *_env key with an env var name",
            )
        else:
            issues.add(key_path, "unknown field")


def _require_keys(
    payload: Mapping[str, object],
    required: set[str],
    path: str,
    issues: _IssueCollector,
) -> None:
    for key in sorted(required):
        if key not in payload:
            issues.add(_join(path, key), "missing required field")


def _looks_sensitive_key(key: str) -> bool:
    normalized = _normalize_key(key)
    if normalized.endswith("_env"):
        return False
    if any(phrase in normalized for phrase in _SENSITIVE_KEY_PHRASES):
        return True
    tokens = tuple(token for token in normalized.split("_") if token)
    return any(token in _SENSITIVE_KEY_TOKENS for token in tokens)


def _normalize_key(key: str) -> str:
    with_boundaries = _CAMEL_CASE_BOUNDARY.sub(r"\1_\2", key.strip())
    return _NON_ALNUM.sub("_", with_boundaries.lower()).strip("_")


def _join(path: str, key: str) -> str:
    if not path:
        return key
    return f"{path}.{key}"


def _merge_into(target: dict[str, Any], overlay: Mapping[str, object]) -> None:
    for key in sorted(overlay):
        value = overlay[key]
        if isinstance(value, Mapping):
            existing = target.get(key)
            if isinstance(existing, dict):
                _merge_into(existing, value)
            else:
                nested: dict[str, Any] = {}
                _merge_into(nested, value)
                target[key] = nested
        else:
            target[key] = _deep_copy_value(value)


def _deep_copy_mapping(value: Mapping[str, object]) -> dict[str, Any]:
    out: dict[str, Any] = {}
    for key in sorted(value):
        out[key] = _deep_copy_value(value[key])
    return out


def _deep_copy_value(value: object) -> Any:
    if isinstance(value, Mapping):
        return {key: _deep_copy_value(item) for key, item in value.items() if isinstance(key, str)}
    if isinstance(value, list):
        return [_deep_copy_value(item) for item in value]
    return copy.deepcopy(value)


def _redact_value(value: object, parent_key: str | None) -> object:
    if isinstance(value, Mapping):
        out: dict[str, object] = {}
        for key in sorted(value):
            item = value[key]
            if _key_is_sensitive_for_redaction(key) and isinstance(item, str):
                out[key] = "<redacted>"
            else:
                out[key] = _redact_value(item, key)
        return out
    if isinstance(value, (list, tuple)):
        return [_redact_value(item, parent_key) for item in value]
    return value


def _key_is_sensitive_for_redaction(key: str) -> bool:
    normalized = _normalize_key(key)
    if normalized.endswith("_env"):
        return True
    return _looks_sensitive_key(normalized)


__all__ = [
    "ConfigValidationError",
    "ConfigValidationIssue",
    "ConfigValidationResult",
    "DEFAULT_CONFIG",
    "LOG_LEVELS",
    "PATH_FIELDS",
    "PROVIDER_NAMES",
    "RelayConfig",
    "assert_valid_config",
    "default_config",
    "merge_config",
    "redact_config",
    "validate_config",
]
