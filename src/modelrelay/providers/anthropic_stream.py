"""
modelrelay - Anthropic messages-stream request building and event translation

File: src/modelrelay/providers/anthropic_stream.py
Last updated: 2026-10-18

Purpose
- Shared base for every backend that speaks the Anthropic messages streaming
  format (direct API and Vertex AI).

What should be included in this file
- Request construction with prompt-cache directives and extended thinking.
- Translation of ``message_start``/``message_delta``/``content_block_*`` events.

Functional requirements
- Cache directives are attached only for cache-capable models.
- Text and reasoning fragments keep backend order; empty fragments are dropped.
"""

from __future__ import annotations

import importlib
from collections.abc import Iterator, Mapping, Sequence
from types import ModuleType
from typing import Final

from modelrelay.providers.base import (
    BaseProvider,
    Message,
    ProviderUnavailableError,
    cache_control_block,
)
from modelrelay.providers.model_catalog import ResolvedModel
from modelrelay.providers.stream import ReasoningChunk, StreamChunk, TextChunk
from modelrelay.providers.usage import (
    ANTHROPIC_USAGE_FIELDS,
    UsageAccumulator,
    read_field,
    read_int,
    read_str,
)

DEFAULT_MAX_TOKENS: Final[int] = 8192
REDACTED_THINKING_TEXT: Final[str] = "[Redacted thinking block]"
CACHED_USER_TURNS: Final[int] = 2


def import_anthropic_sdk(provider: str) -> ModuleType:
    try:
        return importlib.import_module("anthropic")
    except ImportError as exc:
        raise ProviderUnavailableError(
            provider=provider,
            detail="anthropic SDK is not installed",
        ) from exc


def _content_blocks(content: str | Sequence[Mapping[str, object]]) -> list[dict[str, object]]:
    if isinstance(content, str):
        return [{"type": "text", "text": content}]
    return [dict(block) for block in content]


def build_anthropic_messages(
    messages: Sequence[Message],
    *,
    use_cache: bool,
) -> list[dict[str, object]]:
    """Render messages as request payload; the caller's messages are not mutated."""

    cached_indices: set[int] = set()
    if use_cache:
        user_indices = [index for index, item in enumerate(messages) if item.role == "user"]
        cached_indices = set(user_indices[-CACHED_USER_TURNS:])

    rendered: list[dict[str, object]] = []
    for index, message in enumerate(messages):
        if index in cached_indices:
            blocks = _content_blocks(message.content)
            if blocks:
                blocks[-1] = {**blocks[-1], "cache_control": cache_control_block()}
            rendered.append({"role": message.role, "content": blocks})
        elif isinstance(message.content, str):
            rendered.append({"role": message.role, "content": message.content})
        else:
            rendered.append({"role": message.role, "content": _content_blocks(message.content)})
    return rendered


def build_anthropic_request(
    *,
    model: ResolvedModel,
    system_prompt: str,
    messages: Sequence[Message],
    max_tokens: int | None = None,
    thinking_budget_tokens: int = 0,
) -> dict[str, object]:
    use_cache = model.info.supports_prompt_cache

    system_block: dict[str, object] = {"type": "text", "text": system_prompt}
    if use_cache:
        system_block["cache_control"] = cache_control_block()

    request: dict[str, object] = {
        "model": model.id,
        "max_tokens": max_tokens or model.info.max_tokens or DEFAULT_MAX_TOKENS,
        "system": [system_block],
        "messages": build_anthropic_messages(messages, use_cache=use_cache),
        "stream": True,
    }
    if model.info.supports_thinking and thinking_budget_tokens > 0:
        request["thinking"] = {"type": "enabled", "budget_tokens": thinking_budget_tokens}
    else:
        request["temperature"] = 0
    return request


def translate_anthropic_event(
    event: object,
    accumulator: UsageAccumulator,
) -> Iterator[StreamChunk]:
    """Translate one messages-stream event into chunks."""

    event_type = read_str(event, "type")

    if event_type == "message_start":
        usage = read_field(event, "message.usage")
        yield accumulator.add_payload(usage, fields=ANTHROPIC_USAGE_FIELDS)

    elif event_type == "message_delta":
        yield accumulator.add(
            input_tokens=0,
            output_tokens=read_int(event, "usage.output_tokens"),
        )

    elif event_type == "content_block_start":
        block = read_field(event, "content_block")
        block_type = read_str(block, "type")
        if block_type == "text":
            if (read_int(event, "index") or 0) > 0:
                yield TextChunk("\n")
            text = read_str(block, "text")
            if text:
                yield TextChunk(text)
        elif block_type == "thinking":
            thinking = read_str(block, "thinking")
            if thinking:
                yield ReasoningChunk(thinking)
        elif block_type == "redacted_thinking":
            yield ReasoningChunk(REDACTED_THINKING_TEXT)

    elif event_type == "content_block_delta":
        delta = read_field(event, "delta")
        delta_type = read_str(delta, "type")
        if delta_type == "text_delta":
            text = read_str(delta, "text")
            if text:
                yield TextChunk(text)
        elif delta_type == "thinking_delta":
            thinking = read_str(delta, "thinking")
            if thinking:
                yield ReasoningChunk(thinking)


class AnthropicMessagesProvider(BaseProvider):
    """Handler base for backends that stream Anthropic messages events."""

    def _build_request(
        self,
        system_prompt: str,
        messages: Sequence[Message],
        model: ResolvedModel,
    ) -> dict[str, object]:
        return build_anthropic_request(
            model=model,
            system_prompt=system_prompt,
            messages=messages,
            max_tokens=self.options.max_tokens,
            thinking_budget_tokens=self.options.thinking_budget_tokens,
        )

    def _translate_event(
        self,
        event: object,
        accumulator: UsageAccumulator,
    ) -> Iterator[StreamChunk]:
        return translate_anthropic_event(event, accumulator)


__all__ = [
    "AnthropicMessagesProvider",
    "CACHED_USER_TURNS",
    "DEFAULT_MAX_TOKENS",
    "REDACTED_THINKING_TEXT",
    "build_anthropic_messages",
    "build_anthropic_request",
    "import_anthropic_sdk",
    "translate_anthropic_event",
]
