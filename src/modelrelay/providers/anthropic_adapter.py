"""
modelrelay - direct Anthropic API handler

File: src/modelrelay/providers/anthropic_adapter.py
Last updated: 2026-10-18

Purpose
- Stream Claude-class models through the Anthropic messages API.

What should be included in this file
- Lazy ``AsyncAnthropic`` client construction from handler options.
- The stream-initiating ``messages.create`` call.

Non-functional requirements
- Must be configurable and safe; no secrets in logs.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Protocol, cast

from modelrelay.providers.anthropic_stream import (
    AnthropicMessagesProvider,
    import_anthropic_sdk,
)
from modelrelay.providers.base import ProviderUnavailableError


class _AnthropicMessagesAPI(Protocol):
    async def create(self, **kwargs: object) -> object: ...


class _AnthropicClient(Protocol):
    messages: _AnthropicMessagesAPI


class AnthropicProvider(AnthropicMessagesProvider):
    """Anthropic messages handler with optional SDK dependency and injected client support."""

    provider_name = "anthropic"

    def _create_default_client(self) -> _AnthropicClient:
        anthropic_module = import_anthropic_sdk(self.provider_name)
        async_anthropic = getattr(anthropic_module, "AsyncAnthropic", None)
        if async_anthropic is None:
            raise ProviderUnavailableError(
                provider=self.provider_name,
                detail="anthropic SDK does not expose AsyncAnthropic",
            )

        init_kwargs: dict[str, object] = {}
        if self.options.api_key is not None:
            init_kwargs["api_key"] = self.options.api_key
        if self.options.anthropic_base_url is not None:
            init_kwargs["base_url"] = self.options.anthropic_base_url
        if self.options.request_timeout_seconds is not None:
            init_kwargs["timeout"] = self.options.request_timeout_seconds

        client = async_anthropic(**init_kwargs)
        if not hasattr(client, "messages"):
            raise ProviderUnavailableError(
                provider=self.provider_name,
                detail="anthropic client missing messages API",
            )
        return cast("_AnthropicClient", client)

    async def _open_stream(self, client: _AnthropicClient, request: Mapping[str, object]) -> object:
        return await client.messages.create(**request)


__all__ = ["AnthropicProvider"]
