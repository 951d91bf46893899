"""
modelrelay - unified streaming client for LLM backends

File: src/modelrelay/__init__.py
Last updated: 2026-10-18

Purpose
- Package root. Defines public package-level metadata and import boundaries.

Functional requirements
- Must not have side effects at import time (no config loading, no logging init,
  no backend SDK imports).
"""

__version__ = "0.1.0"

__all__ = ["__version__"]
