"""
modelrelay - handler factory

File: src/modelrelay/providers/factory.py
Last updated: 2026-10-18

Purpose
- Map backend family names to handler classes.

Functional requirements
- Constructing a handler performs no network I/O and never imports a backend SDK.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from modelrelay.providers.anthropic_adapter import AnthropicProvider
from modelrelay.providers.base import BaseProvider, ProviderOptions, ProviderRegistry
from modelrelay.providers.openai_adapter import OpenAIProvider
from modelrelay.providers.vertex_adapter import VertexProvider

BUILTIN_PROVIDERS: dict[str, type[BaseProvider]] = {
    AnthropicProvider.provider_name: AnthropicProvider,
    VertexProvider.provider_name: VertexProvider,
    OpenAIProvider.provider_name: OpenAIProvider,
}


def default_registry() -> ProviderRegistry:
    """Return a fresh registry with every built-in backend family registered."""

    registry = ProviderRegistry()
    for name, provider_cls in BUILTIN_PROVIDERS.items():
        registry.register(name, provider_cls)
    return registry


def create_handler(
    provider: str,
    options: ProviderOptions | Mapping[str, object] | None = None,
    **kwargs: Any,
) -> BaseProvider:
    """Build the handler for ``provider``; keyword arguments go to the handler constructor."""

    return default_registry().create(provider, options, **kwargs)


__all__ = ["BUILTIN_PROVIDERS", "create_handler", "default_registry"]
