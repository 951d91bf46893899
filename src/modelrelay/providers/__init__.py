"""
modelrelay - provider handlers and shared streaming API

File: src/modelrelay/providers/__init__.py
Last updated: 2026-10-18

Purpose
- Backend handlers (direct Anthropic, Anthropic on Vertex AI, OpenAI).

What should be included in this file
- Abstract handler contract, chunk protocol, and concrete handlers.

Functional requirements
- Must normalize streamed output (text, reasoning, usage) into a common format.

Non-functional requirements
- Must never log secrets or raw API keys.
"""

from modelrelay.providers.anthropic_adapter import AnthropicProvider
from modelrelay.providers.base import (
    BaseProvider,
    Message,
    ProviderAuthenticationError,
    ProviderContextLengthError,
    ProviderError,
    ProviderFactory,
    ProviderInvalidRequestError,
    ProviderOptions,
    ProviderOverloadedError,
    ProviderRateLimitError,
    ProviderRegistry,
    ProviderServiceError,
    ProviderTimeoutError,
    ProviderUnavailableError,
    RetryPolicy,
    StreamInitiationError,
    StreamInterruptedError,
    compute_backoff_delay,
    is_retryable_error,
    map_backend_exception,
    normalize_messages,
    run_with_retries,
)
from modelrelay.providers.factory import BUILTIN_PROVIDERS, create_handler, default_registry
from modelrelay.providers.model_catalog import (
    ModelCatalog,
    ModelInfo,
    ResolvedModel,
    load_model_catalog,
)
from modelrelay.providers.openai_adapter import OpenAIProvider
from modelrelay.providers.stream import (
    ReasoningChunk,
    StreamChunk,
    TextChunk,
    UsageChunk,
    collect_chunks,
)
from modelrelay.providers.usage import UsageAccumulator, UsageTotals, calculate_api_cost
from modelrelay.providers.vertex_adapter import VertexProvider

__all__ = [
    "AnthropicProvider",
    "BUILTIN_PROVIDERS",
    "BaseProvider",
    "Message",
    "ModelCatalog",
    "ModelInfo",
    "OpenAIProvider",
    "ProviderAuthenticationError",
    "ProviderContextLengthError",
    "ProviderError",
    "ProviderFactory",
    "ProviderInvalidRequestError",
    "ProviderOptions",
    "ProviderOverloadedError",
    "ProviderRateLimitError",
    "ProviderRegistry",
    "ProviderServiceError",
    "ProviderTimeoutError",
    "ProviderUnavailableError",
    "ReasoningChunk",
    "ResolvedModel",
    "RetryPolicy",
    "StreamChunk",
    "StreamInitiationError",
    "StreamInterruptedError",
    "TextChunk",
    "UsageAccumulator",
    "UsageChunk",
    "UsageTotals",
    "VertexProvider",
    "calculate_api_cost",
    "collect_chunks",
    "compute_backoff_delay",
    "create_handler",
    "default_registry",
    "is_retryable_error",
    "load_model_catalog",
    "map_backend_exception",
    "normalize_messages",
    "run_with_retries",
]
