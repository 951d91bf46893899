"""
modelrelay - OpenAI chat-completions handler

File: src/modelrelay/providers/openai_adapter.py
Last updated: 2026-10-18

Purpose
- Stream GPT-class models through the OpenAI chat completions API.

What should be included in this file
- Lazy ``AsyncOpenAI`` client construction from handler options.
- Request rendering (system message, flattened content blocks).
- Translation of streamed ``chat.completion.chunk`` objects.

Functional requirements
- Usage is requested with ``stream_options.include_usage`` and reported once.
- Cached prompt tokens are reported as cache reads for cache-capable models.
"""

from __future__ import annotations

import importlib
from collections.abc import Iterator, Mapping, Sequence
from typing import Protocol, cast

from modelrelay.providers.base import BaseProvider, Message, ProviderUnavailableError
from modelrelay.providers.model_catalog import ResolvedModel
from modelrelay.providers.stream import StreamChunk, TextChunk
from modelrelay.providers.usage import (
    OPENAI_USAGE_FIELDS,
    UsageAccumulator,
    read_field,
    read_str,
)


class _OpenAICompletionsAPI(Protocol):
    async def create(self, **kwargs: object) -> object: ...


class _OpenAIChatAPI(Protocol):
    completions: _OpenAICompletionsAPI


class _OpenAIClient(Protocol):
    chat: _OpenAIChatAPI


class OpenAIProvider(BaseProvider):
    """OpenAI chat completions handler with optional SDK dependency and injected client support."""

    provider_name = "openai"

    def _create_default_client(self) -> _OpenAIClient:
        try:
            openai_module = importlib.import_module("openai")
        except ImportError as exc:
            raise ProviderUnavailableError(
                provider=self.provider_name,
                detail="openai SDK is not installed",
            ) from exc

        async_openai = getattr(openai_module, "AsyncOpenAI", None)
        if async_openai is None:
            raise ProviderUnavailableError(
                provider=self.provider_name,
                detail="openai SDK does not expose AsyncOpenAI",
            )

        init_kwargs: dict[str, object] = {}
        if self.options.openai_api_key is not None:
            init_kwargs["api_key"] = self.options.openai_api_key
        if self.options.openai_base_url is not None:
            init_kwargs["base_url"] = self.options.openai_base_url
        if self.options.request_timeout_seconds is not None:
            init_kwargs["timeout"] = self.options.request_timeout_seconds

        client = async_openai(**init_kwargs)
        if not hasattr(client, "chat"):
            raise ProviderUnavailableError(
                provider=self.provider_name,
                detail="openai client missing chat completions API",
            )
        return cast("_OpenAIClient", client)

    def _build_request(
        self,
        system_prompt: str,
        messages: Sequence[Message],
        model: ResolvedModel,
    ) -> dict[str, object]:
        rendered: list[dict[str, object]] = [{"role": "system", "content": system_prompt}]
        rendered.extend({"role": item.role, "content": item.text()} for item in messages)

        request: dict[str, object] = {
            "model": model.id,
            "messages": rendered,
            "temperature": 0,
            "stream": True,
            "stream_options": {"include_usage": True},
        }
        if self.options.max_tokens is not None:
            request["max_completion_tokens"] = self.options.max_tokens
        return request

    async def _open_stream(self, client: _OpenAIClient, request: Mapping[str, object]) -> object:
        return await client.chat.completions.create(**request)

    def _translate_event(
        self,
        event: object,
        accumulator: UsageAccumulator,
    ) -> Iterator[StreamChunk]:
        for choice in _read_sequence(event, "choices"):
            content = read_str(choice, "delta.content")
            if content:
                yield TextChunk(content)

        usage = read_field(event, "usage")
        if usage is not None:
            yield accumulator.add_payload(usage, fields=OPENAI_USAGE_FIELDS)


def _read_sequence(value: object, key: str) -> tuple[object, ...]:
    candidate = read_field(value, key)
    if isinstance(candidate, Sequence) and not isinstance(candidate, (str, bytes, bytearray)):
        return tuple(candidate)
    return ()


__all__ = ["OpenAIProvider"]
