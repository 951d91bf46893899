"""
modelrelay - Anthropic-on-Vertex AI handler

File: src/modelrelay/providers/vertex_adapter.py
Last updated: 2026-10-18

Purpose
- Stream Claude models hosted on Google Vertex AI.

What should be included in this file
- Lazy ``AsyncAnthropicVertex`` client construction from project and region.
- The stream-initiating ``beta.messages.create`` call.

Functional requirements
- Missing project or region is not a construction error; the SDK resolves
  them from the environment when the first call is made.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Protocol, cast

from modelrelay.providers.anthropic_stream import (
    AnthropicMessagesProvider,
    import_anthropic_sdk,
)
from modelrelay.providers.base import ProviderUnavailableError


class _VertexMessagesAPI(Protocol):
    async def create(self, **kwargs: object) -> object: ...


class _VertexBetaAPI(Protocol):
    messages: _VertexMessagesAPI


class _VertexClient(Protocol):
    beta: _VertexBetaAPI


class VertexProvider(AnthropicMessagesProvider):
    provider_name = "vertex"

    def _create_default_client(self) -> _VertexClient:
        anthropic_module = import_anthropic_sdk(self.provider_name)
        async_vertex = getattr(anthropic_module, "AsyncAnthropicVertex", None)
        if async_vertex is None:
            raise ProviderUnavailableError(
                provider=self.provider_name,
                detail="anthropic SDK does not expose AsyncAnthropicVertex",
            )

        init_kwargs: dict[str, object] = {}
        if self.options.vertex_project_id is not None:
            init_kwargs["project_id"] = self.options.vertex_project_id
        if self.options.vertex_region is not None:
            init_kwargs["region"] = self.options.vertex_region
        if self.options.request_timeout_seconds is not None:
            init_kwargs["timeout"] = self.options.request_timeout_seconds

        try:
            client = async_vertex(**init_kwargs)
        except ImportError as exc:
            raise ProviderUnavailableError(
                provider=self.provider_name,
                detail="google-auth is required for Vertex AI; install anthropic[vertex]",
            ) from exc
        if not hasattr(client, "beta"):
            raise ProviderUnavailableError(
                provider=self.provider_name,
                detail="vertex client missing beta messages API",
            )
        return cast("_VertexClient", client)

    async def _open_stream(self, client: _VertexClient, request: Mapping[str, object]) -> object:
        return await client.beta.messages.create(**request)


__all__ = ["VertexProvider"]
