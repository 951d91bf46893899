"""Module entrypoint for ``python -m modelrelay``."""

from __future__ import annotations

from modelrelay.cli import run_cli

if __name__ == "__main__":
    raise SystemExit(run_cli())
