"""
modelrelay config package public API.

File: src/modelrelay/config/__init__.py
Last updated: 2026-10-18

Purpose
- Export config loading/validation entrypoints and public error types.

Functional requirements
- Support loading from ``modelrelay.toml`` + ``MODELRELAY_`` env overrides.
- Fail fast with clear structured validation/load errors.
"""

from modelrelay.config.loader import (
    DEFAULT_CONFIG_FILE,
    ENV_PREFIX,
    ConfigLoadError,
    dump_effective_config,
    env_name_for_path,
    load_config,
    normalize_paths,
    provider_name_from_config,
    provider_options_from_config,
    retry_policy_from_config,
)
from modelrelay.config.schema import (
    DEFAULT_CONFIG,
    PROVIDER_NAMES,
    ConfigValidationError,
    ConfigValidationIssue,
    ConfigValidationResult,
    RelayConfig,
    assert_valid_config,
    default_config,
    merge_config,
    redact_config,
    validate_config,
)

__all__ = [
    "ConfigLoadError",
    "ConfigValidationError",
    "ConfigValidationIssue",
    "ConfigValidationResult",
    "DEFAULT_CONFIG",
    "DEFAULT_CONFIG_FILE",
    "ENV_PREFIX",
    "PROVIDER_NAMES",
    "RelayConfig",
    "assert_valid_config",
    "default_config",
    "dump_effective_config",
    "env_name_for_path",
    "load_config",
    "merge_config",
    "normalize_paths",
    "provider_name_from_config",
    "provider_options_from_config",
    "redact_config",
    "retry_policy_from_config",
    "validate_config",
]
