"""
modelrelay - normalized stream chunk protocol

File: src/modelrelay/providers/stream.py
Last updated: 2026-10-18

Purpose
- Define the chunk values every provider handler yields from ``create_message``.

What should be included in this file
- One frozen record per chunk kind with a ``type`` discriminant.
- Wire serialization that omits optional fields which are absent.

Functional requirements
- Absent cache counters must stay distinguishable from zero cache activity.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from dataclasses import dataclass
from typing import ClassVar, Literal, TypeAlias

ChunkType: TypeAlias = Literal["text", "reasoning", "usage"]


def _validate_token_count(value: int | None, field_name: str) -> None:
    if value is None:
        return
    if isinstance(value, bool) or not isinstance(value, int):
        raise TypeError(f"{field_name} must be an integer")
    if value < 0:
        raise ValueError(f"{field_name} must be >= 0")


@dataclass(frozen=True, slots=True)
class TextChunk:
    """Fragment of assistant text, passed through unmodified."""

    type: ClassVar[ChunkType] = "text"

    text: str

    def __post_init__(self) -> None:
        if not isinstance(self.text, str):
            raise TypeError("TextChunk.text must be a string")

    def to_dict(self) -> dict[str, object]:
        return {"type": self.type, "text": self.text}


@dataclass(frozen=True, slots=True)
class ReasoningChunk:
    """Fragment of model reasoning (extended thinking) output."""

    type: ClassVar[ChunkType] = "reasoning"

    reasoning: str

    def __post_init__(self) -> None:
        if not isinstance(self.reasoning, str):
            raise TypeError("ReasoningChunk.reasoning must be a string")

    def to_dict(self) -> dict[str, object]:
        return {"type": self.type, "reasoning": self.reasoning}


@dataclass(frozen=True, slots=True)
class UsageChunk:
    """One logical usage update.

    ``cache_write_tokens``/``cache_read_tokens`` are ``None`` when the model does
    not support prompt caching or the backend did not report them.
    """

    type: ClassVar[ChunkType] = "usage"

    input_tokens: int
    output_tokens: int
    cache_write_tokens: int | None = None
    cache_read_tokens: int | None = None
    total_cost: float | None = None

    def __post_init__(self) -> None:
        _validate_token_count(self.input_tokens, "UsageChunk.input_tokens")
        _validate_token_count(self.output_tokens, "UsageChunk.output_tokens")
        _validate_token_count(self.cache_write_tokens, "UsageChunk.cache_write_tokens")
        _validate_token_count(self.cache_read_tokens, "UsageChunk.cache_read_tokens")
        if self.total_cost is not None and self.total_cost < 0:
            raise ValueError("UsageChunk.total_cost must be >= 0")

    @property
    def has_cache_fields(self) -> bool:
        return self.cache_write_tokens is not None or self.cache_read_tokens is not None

    def to_dict(self) -> dict[str, object]:
        payload: dict[str, object] = {
            "type": self.type,
            "inputTokens": self.input_tokens,
            "outputTokens": self.output_tokens,
        }
        if self.cache_write_tokens is not None:
            payload["cacheWriteTokens"] = self.cache_write_tokens
        if self.cache_read_tokens is not None:
            payload["cacheReadTokens"] = self.cache_read_tokens
        if self.total_cost is not None:
            payload["totalCost"] = self.total_cost
        return payload


StreamChunk: TypeAlias = TextChunk | ReasoningChunk | UsageChunk
ChunkStream: TypeAlias = AsyncIterator[StreamChunk]


async def collect_chunks(stream: ChunkStream) -> list[StreamChunk]:
    """Drain a chunk stream into a list, preserving order."""

    return [chunk async for chunk in stream]


__all__ = [
    "ChunkStream",
    "ChunkType",
    "ReasoningChunk",
    "StreamChunk",
    "TextChunk",
    "UsageChunk",
    "collect_chunks",
]
