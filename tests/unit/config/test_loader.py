"""
modelrelay - unit tests for config loader

File: tests/unit/config/test_loader.py
Last updated: 2026-10-18

Purpose
- Validate deterministic config loading from defaults, TOML, env overrides, and explicit overrides.

What this test file should cover
- Precedence: overrides > env > file > defaults.
- Deterministic env var path mapping and type coercion.
- Path normalization relative to the config file.
- Conversion into handler options and retry policy.

Functional requirements
- Works without provider keys or network.
"""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from modelrelay.config import (
    ConfigLoadError,
    ConfigValidationError,
    dump_effective_config,
    env_name_for_path,
    load_config,
    provider_name_from_config,
    provider_options_from_config,
    retry_policy_from_config,
)
from modelrelay.providers import RetryPolicy


def _write_config(path: Path, text: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")


def test_loader_precedence_default_file_env_overrides(tmp_path: Path) -> None:
    config_path = tmp_path / "modelrelay.toml"
    default_path = tmp_path / "empty.toml"
    _write_config(default_path, "")
    _write_config(
        config_path,
        """
[retry]
max_retries = 2
""".strip(),
    )

    default_loaded = load_config(default_path, environ={})
    file_loaded = load_config(config_path, environ={})
    env_loaded = load_config(config_path, environ={"MODELRELAY_RETRY__MAX_RETRIES": "3"})
    override_loaded = load_config(
        config_path,
        environ={"MODELRELAY_RETRY__MAX_RETRIES": "3"},
        overrides={"retry.max_retries": 4},
    )

    assert default_loaded["retry"]["max_retries"] == 1
    assert file_loaded["retry"]["max_retries"] == 2
    assert env_loaded["retry"]["max_retries"] == 3
    assert override_loaded["retry"]["max_retries"] == 4


def test_env_mapping_covers_optional_backend_fields(tmp_path: Path) -> None:
    config_path = tmp_path / "modelrelay.toml"
    _write_config(config_path, "")

    loaded = load_config(
        config_path,
        environ={
            "MODELRELAY_PROVIDER__NAME": "vertex",
            "MODELRELAY_PROVIDER__MODEL": "claude-3-5-haiku@20241022",
            "MODELRELAY_PROVIDER__MAX_TOKENS": "1024",
            "MODELRELAY_PROVIDER__VERTEX__PROJECT_ID": "my-project",
            "MODELRELAY_PROVIDER__VERTEX__REGION": "us-east5",
            "MODELRELAY_RETRY__RESPECT_RETRY_AFTER": "off",
            "MODELRELAY_OBSERVABILITY__CONSOLE": "yes",
        },
    )

    assert loaded["provider"]["name"] == "vertex"
    assert loaded["provider"]["model"] == "claude-3-5-haiku@20241022"
    assert loaded["provider"]["max_tokens"] == 1024
    assert loaded["provider"]["vertex"] == {"project_id": "my-project", "region": "us-east5"}
    assert loaded["retry"]["respect_retry_after"] is False
    assert loaded["observability"]["console"] is True


def test_env_name_for_path_is_deterministic() -> None:
    assert env_name_for_path(("provider", "vertex", "region")) == "MODELRELAY_PROVIDER__VERTEX__REGION"
    assert env_name_for_path(("retry", "max_retries")) == "MODELRELAY_RETRY__MAX_RETRIES"


@pytest.mark.parametrize(
    ("env_name", "raw", "message"),
    [
        ("MODELRELAY_RETRY__MAX_RETRIES", "many", "must be an integer"),
        ("MODELRELAY_RETRY__MULTIPLIER", "fast", "must be a number"),
        ("MODELRELAY_OBSERVABILITY__CONSOLE", "maybe", "must be a boolean"),
    ],
)
def test_env_coercion_errors_name_the_variable(
    tmp_path: Path,
    env_name: str,
    raw: str,
    message: str,
) -> None:
    config_path = tmp_path / "modelrelay.toml"
    _write_config(config_path, "")

    with pytest.raises(ConfigLoadError, match=message) as excinfo:
        load_config(config_path, environ={env_name: raw})

    assert env_name in str(excinfo.value)


def test_env_values_are_validated_after_merge(tmp_path: Path) -> None:
    config_path = tmp_path / "modelrelay.toml"
    _write_config(config_path, "")

    with pytest.raises(ConfigValidationError, match="provider.name"):
        load_config(config_path, environ={"MODELRELAY_PROVIDER__NAME": "bedrock"})


def test_missing_explicit_config_path_is_an_error(tmp_path: Path) -> None:
    with pytest.raises(ConfigLoadError, match="config file not found"):
        load_config(tmp_path / "missing.toml", environ={})


def test_missing_default_config_file_falls_back_to_defaults(
    tmp_path: Path,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    monkeypatch.chdir(tmp_path)

    loaded = load_config(environ={})

    assert loaded["provider"]["name"] == "anthropic"
    assert loaded["observability"]["log_dir"] == (tmp_path.resolve() / "logs").as_posix()


def test_invalid_toml_is_reported(tmp_path: Path) -> None:
    config_path = tmp_path / "modelrelay.toml"
    _write_config(config_path, "[provider\nname = 'vertex'")

    with pytest.raises(ConfigLoadError, match="invalid TOML"):
        load_config(config_path, environ={})


def test_log_dir_is_normalized_relative_to_config_file(tmp_path: Path) -> None:
    config_path = tmp_path / "conf" / "modelrelay.toml"
    _write_config(
        config_path,
        """
[observability]
log_dir = "../var/logs"
""".strip(),
    )

    loaded = load_config(config_path, environ={})

    assert loaded["observability"]["log_dir"] == (tmp_path.resolve() / "var" / "logs").as_posix()


def test_embedded_secret_in_file_is_rejected(tmp_path: Path) -> None:
    config_path = tmp_path / "modelrelay.toml"
    _write_config(
        config_path,
        """
[provider.anthropic]
api_key = "sk-ant-should-not-be-here"
""".strip(),
    )

    with pytest.raises(ConfigValidationError, match="embedded secret values are forbidden"):
        load_config(config_path, environ={})


def test_dump_effective_config_is_redacted_and_stable(tmp_path: Path) -> None:
    config_path = tmp_path / "modelrelay.toml"
    _write_config(config_path, "")

    first = dump_effective_config(load_config(config_path, environ={}))
    second = dump_effective_config(load_config(config_path, environ={}))
    payload = json.loads(first)

    assert first == second
    assert payload["provider"]["anthropic"]["api_key_env"] == "<redacted>"
    assert payload["provider"]["openai"]["api_key_env"] == "<redacted>"
    assert payload["retry"]["max_retries"] == 1


def test_provider_options_read_keys_from_configured_env_vars(tmp_path: Path) -> None:
    config_path = tmp_path / "modelrelay.toml"
    _write_config(
        config_path,
        """
[provider]
name = "anthropic"
model = "claude-3-5-haiku-20241022"
thinking_budget_tokens = 0
request_timeout_seconds = 30

[provider.anthropic]
api_key_env = "MY_ANTHROPIC_KEY"
base_url = "https://proxy.example.test"
""".strip(),
    )
    environ = {"MY_ANTHROPIC_KEY": "sk-ant-from-env", "OPENAI_API_KEY": "  "}

    options = provider_options_from_config(load_config(config_path, environ=environ), environ=environ)

    assert options.api_model_id == "claude-3-5-haiku-20241022"
    assert options.api_key == "sk-ant-from-env"
    assert options.anthropic_base_url == "https://proxy.example.test"
    assert options.openai_api_key is None
    assert options.request_timeout_seconds == 30.0
    assert options.thinking_budget_tokens == 0


def test_retry_policy_and_provider_name_from_config(tmp_path: Path) -> None:
    config_path = tmp_path / "modelrelay.toml"
    _write_config(
        config_path,
        """
[provider]
name = "openai"

[retry]
max_retries = 3
initial_delay_seconds = 0.5
multiplier = 3.0
max_delay_seconds = 4.0
jitter_ratio = 0.1
respect_retry_after = false
""".strip(),
    )

    loaded = load_config(config_path, environ={})

    assert provider_name_from_config(loaded) == "openai"
    assert retry_policy_from_config(loaded) == RetryPolicy(
        max_retries=3,
        initial_delay_seconds=0.5,
        multiplier=3.0,
        max_delay_seconds=4.0,
        jitter_ratio=0.1,
        respect_retry_after=False,
    )


def test_provider_name_from_config_requires_name() -> None:
    with pytest.raises(ConfigLoadError, match="provider.name"):
        provider_name_from_config({"provider": {}})
