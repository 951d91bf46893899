"""
modelrelay - runtime config loader.

File: src/modelrelay/config/loader.py
Last updated: 2026-10-18

Purpose
- Load effective runtime config from defaults, TOML file, env vars, and explicit overrides.

What should be included in this file
- Precedence logic: overrides > env (MODELRELAY_) > file > defaults.
- TOML loading via ``tomllib``.
- Deterministic environment variable mapping and coercion.
- Conversion of effective config into handler options and retry policy.

Functional requirements
- Reject invalid/embedded-secret config via schema validation.
- Secrets are only ever read from the environment, by configured env var name.

Non-functional requirements
- Keep loading deterministic and reproducible.
"""

from __future__ import annotations

import json
import os
import tomllib
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Final, Literal

from modelrelay.config.schema import (
    PATH_FIELDS,
    assert_valid_config,
    default_config,
    merge_config,
    redact_config,
)
from modelrelay.providers.base import ProviderOptions, RetryPolicy

DEFAULT_CONFIG_FILE: Final[str] = "modelrelay.toml"
ENV_PREFIX: Final[str] = "MODELRELAY_"
ENV_SEPARATOR: Final[str] = "__"

_BOOLEAN_TRUE: Final[frozenset[str]] = frozenset({"1", "true", "t", "yes", "y", "on"})
_BOOLEAN_FALSE: Final[frozenset[str]] = frozenset({"0", "false", "f", "no", "n", "off"})


@dataclass(frozen=True, slots=True)
class _Binding:
    path: tuple[str, ...]
    value_type: Literal["str", "int", "float", "bool"]


# Fields without a built-in default still need an env binding.
_OPTIONAL_BINDINGS: Final[tuple[_Binding, ...]] = (
    _Binding(("provider", "model"), "str"),
    _Binding(("provider", "max_tokens"), "int"),
    _Binding(("provider", "request_timeout_seconds"), "float"),
    _Binding(("provider", "anthropic", "base_url"), "str"),
    _Binding(("provider", "vertex", "project_id"), "str"),
    _Binding(("provider", "vertex", "region"), "str"),
    _Binding(("provider", "openai", "base_url"), "str"),
)


class ConfigLoadError(ValueError):
    """Raised when config cannot be loaded or overrides cannot be coerced."""


def load_config(
    config_path: str | Path | None = None,
    *,
    environ: Mapping[str, str] | None = None,
    overrides: Mapping[str, object] | None = None,
) -> dict[str, Any]:
    """Load effective config with deterministic precedence: overrides > env > file > defaults.

    ``overrides`` accepts dotted keys (``{"provider.name": "vertex"}``) or nested mappings.
    A missing default ``modelrelay.toml`` is fine; a missing explicit path is an error.
    """

    resolved_path = _resolve_config_path(config_path)
    env_map = dict(os.environ if environ is None else environ)

    file_payload = _load_toml_file(resolved_path, required=config_path is not None)
    merged = assert_valid_config(merge_config(default_config(), file_payload))

    merged = merge_config(merged, _collect_env_overrides(merged, env_map))
    merged = merge_config(merged, _materialize_overrides(overrides or {}))
    merged = assert_valid_config(merged)

    return normalize_paths(merged, base_dir=resolved_path.parent)


def normalize_paths(config: Mapping[str, object], *, base_dir: Path) -> dict[str, Any]:
    """Normalize configured path fields relative to ``base_dir``."""

    materialized = merge_config({}, config)
    for field_path in PATH_FIELDS:
        value = _get_nested(materialized, field_path)
        if isinstance(value, str):
            _set_nested(materialized, field_path, _normalize_one_path(value, base_dir))
    return materialized


def dump_effective_config(config: Mapping[str, object]) -> str:
    """Return deterministic JSON dump of redacted effective config."""

    return json.dumps(
        redact_config(config), sort_keys=True, indent=2, ensure_ascii=False
    )


def provider_options_from_config(
    config: Mapping[str, object],
    *,
    environ: Mapping[str, str] | None = None,
) -> ProviderOptions:
    """Build handler options from effective config; API keys come from configured env vars."""

    env_map = os.environ if environ is None else environ
    provider = _mapping(config.get("provider"))
    anthropic = _mapping(provider.get("anthropic"))
    vertex = _mapping(provider.get("vertex"))
    openai = _mapping(provider.get("openai"))

    return ProviderOptions(
        api_model_id=_optional_str(provider.get("model")),
        api_key=_secret_from_env(anthropic.get("api_key_env"), env_map),
        anthropic_base_url=_optional_str(anthropic.get("base_url")),
        vertex_project_id=_optional_str(vertex.get("project_id")),
        vertex_region=_optional_str(vertex.get("region")),
        openai_api_key=_secret_from_env(openai.get("api_key_env"), env_map),
        openai_base_url=_optional_str(openai.get("base_url")),
        max_tokens=_optional_int(provider.get("max_tokens")),
        thinking_budget_tokens=_optional_int(provider.get("thinking_budget_tokens")) or 0,
        request_timeout_seconds=_optional_float(provider.get("request_timeout_seconds")),
    )


def retry_policy_from_config(config: Mapping[str, object]) -> RetryPolicy:
    retry = _mapping(config.get("retry"))
    defaults = RetryPolicy()
    return RetryPolicy(
        max_retries=int(retry.get("max_retries", defaults.max_retries)),
        initial_delay_seconds=float(
            retry.get("initial_delay_seconds", defaults.initial_delay_seconds)
        ),
        multiplier=float(retry.get("multiplier", defaults.multiplier)),
        max_delay_seconds=float(retry.get("max_delay_seconds", defaults.max_delay_seconds)),
        jitter_ratio=float(retry.get("jitter_ratio", defaults.jitter_ratio)),
        respect_retry_after=bool(retry.get("respect_retry_after", defaults.respect_retry_after)),
    )


def provider_name_from_config(config: Mapping[str, object]) -> str:
    name = _mapping(config.get("provider")).get("name")
    if not isinstance(name, str) or not name:
        raise ConfigLoadError("provider.name is not configured")
    return name


def _resolve_config_path(config_path: str | Path | None) -> Path:
    if config_path is None:
        return (Path.cwd() / DEFAULT_CONFIG_FILE).resolve()
    return Path(config_path).expanduser().resolve()


def _load_toml_file(path: Path, *, required: bool) -> dict[str, Any]:
    if not path.exists():
        if required:
            raise ConfigLoadError(f"config file not found: {path}")
        return {}

    try:
        with path.open("rb") as handle:
            parsed = tomllib.load(handle)
    except tomllib.TOMLDecodeError as exc:
        raise ConfigLoadError(f"invalid TOML in {path}: {exc}") from exc
    except OSError as exc:
        raise ConfigLoadError(f"unable to read config file {path}: {exc}") from exc

    return parsed


def _collect_env_overrides(
    config: Mapping[str, object], environ: Mapping[str, str]
) -> dict[str, Any]:
    bindings = _build_bindings(config)
    overrides: dict[str, Any] = {}
    for env_name in sorted(bindings):
        raw = environ.get(env_name)
        if raw is None:
            continue
        binding = bindings[env_name]
        value = _coerce_env(raw, binding.value_type, env_name, binding.path)
        _set_nested(overrides, binding.path, value)
    return overrides


def _build_bindings(config: Mapping[str, object]) -> dict[str, _Binding]:
    bindings: dict[str, _Binding] = {}
    for path, value in _iter_scalar_paths(config):
        kind = _kind_for_value(value)
        if kind is None:
            continue
        bindings[env_name_for_path(path)] = _Binding(path=path, value_type=kind)

    for binding in _OPTIONAL_BINDINGS:
        bindings.setdefault(env_name_for_path(binding.path), binding)
    return bindings


def env_name_for_path(path: tuple[str, ...]) -> str:
    """``("provider", "vertex", "region")`` -> ``MODELRELAY_PROVIDER__VERTEX__REGION``."""

    return ENV_PREFIX + ENV_SEPARATOR.join(part.upper() for part in path)


def _iter_scalar_paths(
    payload: Mapping[str, object],
    prefix: tuple[str, ...] = (),
) -> list[tuple[tuple[str, ...], object]]:
    pairs: list[tuple[tuple[str, ...], object]] = []
    for key in sorted(payload):
        value = payload[key]
        path = (*prefix, key)
        if isinstance(value, Mapping):
            pairs.extend(_iter_scalar_paths(value, path))
        else:
            pairs.append((path, value))
    return pairs


def _kind_for_value(value: object) -> Literal["str", "int", "float", "bool"] | None:
    if isinstance(value, bool):
        return "bool"
    if isinstance(value, int):
        return "int"
    if isinstance(value, float):
        return "float"
    if isinstance(value, str):
        return "str"
    return None


def _coerce_env(
    raw: str,
    value_type: Literal["str", "int", "float", "bool"],
    env_name: str,
    path: tuple[str, ...],
) -> object:
    value = raw.strip()
    if value_type == "str":
        return value
    if value_type == "int":
        try:
            return int(value)
        except ValueError as exc:
            raise ConfigLoadError(f"{env_name} -> {'.'.join(path)} must be an integer") from exc
    if value_type == "float":
        try:
            return float(value)
        except ValueError as exc:
            raise ConfigLoadError(f"{env_name} -> {'.'.join(path)} must be a number") from exc

    lowered = value.lower()
    if lowered in _BOOLEAN_TRUE:
        return True
    if lowered in _BOOLEAN_FALSE:
        return False
    raise ConfigLoadError(
        f"{env_name} -> {'.'.join(path)} must be a boolean (true/false/1/0/yes/no/on/off)"
    )


def _materialize_overrides(overrides: Mapping[str, object]) -> dict[str, Any]:
    payload: dict[str, Any] = {}
    for key in sorted(overrides):
        value = overrides[key]
        if value is None:
            continue
        path = tuple(part for part in key.split(".") if part)
        if not path:
            raise ConfigLoadError(f"invalid override key {key!r}")
        _set_nested(payload, path, merge_config({}, value) if isinstance(value, Mapping) else value)
    return payload


def _set_nested(target: dict[str, Any], path: tuple[str, ...], value: object) -> None:
    cursor = target
    for part in path[:-1]:
        next_node = cursor.get(part)
        if not isinstance(next_node, dict):
            next_node = {}
            cursor[part] = next_node
        cursor = next_node
    cursor[path[-1]] = value


def _get_nested(payload: Mapping[str, object], path: tuple[str, ...]) -> object | None:
    cursor: object = payload
    for part in path:
        if not isinstance(cursor, Mapping) or part not in cursor:
            return None
        cursor = cursor[part]
    return cursor


def _normalize_one_path(raw: str, base_dir: Path) -> str:
    candidate = Path(os.path.expandvars(raw)).expanduser()
    if not candidate.is_absolute():
        candidate = base_dir / candidate
    return Path(os.path.normpath(str(candidate))).as_posix()


def _mapping(value: object) -> Mapping[str, object]:
    if isinstance(value, Mapping):
        return value
    return {}


def _optional_str(value: object) -> str | None:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def _optional_int(value: object) -> int | None:
    if isinstance(value, bool) or not isinstance(value, int):
        return None
    return value


def _optional_float(value: object) -> float | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return float(value)


def _secret_from_env(env_name: object, environ: Mapping[str, str]) -> str | None:
    if not isinstance(env_name, str):
        return None
    return _optional_str(environ.get(env_name))


__all__ = [
    "ConfigLoadError",
    "DEFAULT_CONFIG_FILE",
    "ENV_PREFIX",
    "ENV_SEPARATOR",
    "dump_effective_config",
    "env_name_for_path",
    "load_config",
    "normalize_paths",
    "provider_name_from_config",
    "provider_options_from_config",
    "retry_policy_from_config",
]
