"""
modelrelay - token usage and cost accounting

File: src/modelrelay/providers/usage.py
Last updated: 2026-10-18

Purpose
- Map backend-native usage payloads onto normalized ``UsageChunk`` values.

What should be included in this file
- Field maps describing where each backend reports its counters.
- Per-call accumulator with running totals and catalog-priced cost.

Functional requirements
- Cache counters appear only when the model supports prompt caching and the
  backend actually reported the counter.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import cast

from modelrelay.providers.model_catalog import ModelInfo
from modelrelay.providers.stream import UsageChunk

_PER_MILLION = 1_000_000.0


def read_field(value: object, path: str, *, default: object | None = None) -> object | None:
    """Read a possibly dotted attribute/key path from an SDK object or mapping."""

    current: object | None = value
    for key in path.split("."):
        if current is None:
            return default
        if isinstance(current, Mapping):
            current = cast("object | None", current.get(key))
        else:
            current = cast("object | None", getattr(current, key, None))
    return default if current is None else current


def read_int(value: object, path: str) -> int | None:
    candidate = read_field(value, path)
    if isinstance(candidate, bool) or not isinstance(candidate, int):
        return None
    return candidate


def read_str(value: object, path: str) -> str | None:
    candidate = read_field(value, path)
    if isinstance(candidate, str):
        return candidate
    return None


@dataclass(frozen=True, slots=True)
class UsageFieldMap:
    """Where a backend reports each usage counter. ``None`` means never reported."""

    input_tokens: str
    output_tokens: str
    cache_write_tokens: str | None = None
    cache_read_tokens: str | None = None


ANTHROPIC_USAGE_FIELDS = UsageFieldMap(
    input_tokens="input_tokens",
    output_tokens="output_tokens",
    cache_write_tokens="cache_creation_input_tokens",
    cache_read_tokens="cache_read_input_tokens",
)

OPENAI_USAGE_FIELDS = UsageFieldMap(
    input_tokens="prompt_tokens",
    output_tokens="completion_tokens",
    cache_read_tokens="prompt_tokens_details.cached_tokens",
)


@dataclass(frozen=True, slots=True)
class UsageTotals:
    """Running totals for one ``create_message`` call."""

    input_tokens: int = 0
    output_tokens: int = 0
    cache_write_tokens: int | None = None
    cache_read_tokens: int | None = None
    total_cost: float | None = None

    def to_dict(self) -> dict[str, object]:
        payload: dict[str, object] = {
            "input_tokens": self.input_tokens,
            "output_tokens": self.output_tokens,
        }
        if self.cache_write_tokens is not None:
            payload["cache_write_tokens"] = self.cache_write_tokens
        if self.cache_read_tokens is not None:
            payload["cache_read_tokens"] = self.cache_read_tokens
        if self.total_cost is not None:
            payload["total_cost"] = self.total_cost
        return payload


def has_pricing(info: ModelInfo) -> bool:
    return info.input_price is not None or info.output_price is not None


def calculate_api_cost(
    info: ModelInfo,
    *,
    input_tokens: int,
    output_tokens: int,
    cache_write_tokens: int | None = None,
    cache_read_tokens: int | None = None,
) -> float:
    """Return USD cost of one usage update using the model's per-million prices."""

    cache_writes_cost = ((info.cache_writes_price or 0.0) / _PER_MILLION) * (
        cache_write_tokens or 0
    )
    cache_reads_cost = ((info.cache_reads_price or 0.0) / _PER_MILLION) * (cache_read_tokens or 0)
    base_input_cost = ((info.input_price or 0.0) / _PER_MILLION) * input_tokens
    output_cost = ((info.output_price or 0.0) / _PER_MILLION) * output_tokens
    return cache_writes_cost + cache_reads_cost + base_input_cost + output_cost


def _add_optional(total: int | None, value: int | None) -> int | None:
    if value is None:
        return total
    return (total or 0) + value


class UsageAccumulator:
    """Derive normalized usage chunks and running totals for a single call."""

    def __init__(self, info: ModelInfo) -> None:
        self._info = info
        self._totals = UsageTotals()

    @property
    def info(self) -> ModelInfo:
        return self._info

    @property
    def totals(self) -> UsageTotals:
        return self._totals

    def add(
        self,
        *,
        input_tokens: int | None = None,
        output_tokens: int | None = None,
        cache_write_tokens: int | None = None,
        cache_read_tokens: int | None = None,
    ) -> UsageChunk:
        if not self._info.supports_prompt_cache:
            cache_write_tokens = None
            cache_read_tokens = None

        normalized_input = input_tokens or 0
        normalized_output = output_tokens or 0
        cost: float | None = None
        if has_pricing(self._info):
            cost = calculate_api_cost(
                self._info,
                input_tokens=normalized_input,
                output_tokens=normalized_output,
                cache_write_tokens=cache_write_tokens,
                cache_read_tokens=cache_read_tokens,
            )

        previous = self._totals
        self._totals = UsageTotals(
            input_tokens=previous.input_tokens + normalized_input,
            output_tokens=previous.output_tokens + normalized_output,
            cache_write_tokens=_add_optional(previous.cache_write_tokens, cache_write_tokens),
            cache_read_tokens=_add_optional(previous.cache_read_tokens, cache_read_tokens),
            total_cost=(
                (previous.total_cost or 0.0) + cost if cost is not None else previous.total_cost
            ),
        )

        return UsageChunk(
            input_tokens=normalized_input,
            output_tokens=normalized_output,
            cache_write_tokens=cache_write_tokens,
            cache_read_tokens=cache_read_tokens,
            total_cost=cost,
        )

    def add_payload(self, payload: object, *, fields: UsageFieldMap) -> UsageChunk:
        """Read counters from a backend usage payload and record them."""

        return self.add(**read_usage(payload, fields))


def read_usage(payload: object, fields: UsageFieldMap) -> dict[str, int | None]:
    """Extract usage counters from an SDK object or mapping; unreported ones are ``None``."""

    return {
        "input_tokens": read_int(payload, fields.input_tokens),
        "output_tokens": read_int(payload, fields.output_tokens),
        "cache_write_tokens": (
            read_int(payload, fields.cache_write_tokens)
            if fields.cache_write_tokens is not None
            else None
        ),
        "cache_read_tokens": (
            read_int(payload, fields.cache_read_tokens)
            if fields.cache_read_tokens is not None
            else None
        ),
    }


__all__ = [
    "ANTHROPIC_USAGE_FIELDS",
    "OPENAI_USAGE_FIELDS",
    "UsageAccumulator",
    "UsageFieldMap",
    "UsageTotals",
    "calculate_api_cost",
    "has_pricing",
    "read_field",
    "read_int",
    "read_str",
    "read_usage",
]
