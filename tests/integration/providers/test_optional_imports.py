"""Integration tests for optional backend SDK imports."""

from __future__ import annotations

import os
import subprocess
import sys
from pathlib import Path

import pytest

_BLOCK_SDKS = """
import sys

# A None entry makes both `import` and importlib.import_module raise ImportError.
for _name in ("anthropic", "openai"):
    sys.modules[_name] = None
"""


def _repo_root() -> Path:
    return Path(__file__).resolve().parents[3]


def _run_python(script: str) -> subprocess.CompletedProcess[str]:
    env = os.environ.copy()
    src_path = str(_repo_root() / "src")
    existing = env.get("PYTHONPATH")
    env["PYTHONPATH"] = src_path if not existing else f"{src_path}:{existing}"

    return subprocess.run(
        [sys.executable, "-c", _BLOCK_SDKS + script],
        text=True,
        capture_output=True,
        env=env,
        check=False,
    )


@pytest.mark.integration
def test_modules_import_when_backend_sdks_are_unavailable() -> None:
    script = """
import importlib

importlib.import_module("modelrelay.providers.openai_adapter")
importlib.import_module("modelrelay.providers.anthropic_adapter")
importlib.import_module("modelrelay.providers.vertex_adapter")
importlib.import_module("modelrelay.providers")
importlib.import_module("modelrelay.cli")

for sdk in ("anthropic", "openai"):
    try:
        importlib.import_module(sdk)
    except ImportError:
        continue
    raise AssertionError(f"{sdk} should be unavailable")

print("imports-ok")
"""
    result = _run_python(script)

    assert result.returncode == 0, result.stderr
    assert "imports-ok" in result.stdout


@pytest.mark.integration
def test_missing_sdk_is_reported_on_first_call_not_at_construction() -> None:
    script = """
import asyncio

from modelrelay.providers import StreamInitiationError, create_handler

handlers = [create_handler(name) for name in ("anthropic", "vertex", "openai")]

async def main() -> None:
    for handler in handlers:
        try:
            async for _chunk in handler.create_message("sys", [{"role": "user", "content": "ping"}]):
                raise AssertionError("no chunk expected")
            raise AssertionError(f"expected failure for {handler.provider_name}")
        except StreamInitiationError as exc:
            assert exc.cause.code == "unavailable", exc
            assert exc.attempts == 1, exc
            assert f"provider={handler.provider_name}" in str(exc.cause)

asyncio.run(main())
print("runtime-ok")
"""
    result = _run_python(script)

    assert result.returncode == 0, result.stderr
    assert "runtime-ok" in result.stdout
