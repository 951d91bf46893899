"""Command-line interface router for modelrelay."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
import uuid
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any, Final

from modelrelay.config import (
    ConfigLoadError,
    ConfigValidationError,
    dump_effective_config,
    load_config,
    provider_name_from_config,
    provider_options_from_config,
    retry_policy_from_config,
)
from modelrelay.observability import correlation_scope, setup_logging, shutdown_logging
from modelrelay.providers import (
    BaseProvider,
    ModelCatalog,
    ProviderError,
    ProviderOptions,
    ReasoningChunk,
    RetryPolicy,
    TextChunk,
    UsageChunk,
    create_handler,
    load_model_catalog,
)

HandlerFactory = Callable[..., BaseProvider]

PROVIDER_CHOICES: Final[tuple[str, ...]] = ("anthropic", "openai", "vertex")

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class CLIError(RuntimeError):
    """Typed CLI failure with an explicit process exit code."""

    message: str
    exit_code: int = 1

    def __str__(self) -> str:
        return self.message


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    """Build the argparse command router for all supported CLI workflows."""

    parser = argparse.ArgumentParser(
        prog="modelrelay",
        description=(
            "modelrelay: one streaming interface over several LLM backends.\n\n"
            "Common workflows:\n"
            "  modelrelay models                       List known models per backend\n"
            "  modelrelay resolve --provider vertex    Show the model a handler would use\n"
            "  modelrelay chat --prompt 'hello'        Stream a single-turn conversation\n"
            "  modelrelay config                       Show effective (redacted) config\n"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    config_parent = argparse.ArgumentParser(add_help=False)
    config_parent.add_argument(
        "--config",
        dest="config_path",
        default=None,
        help="Path to modelrelay TOML config (default: ./modelrelay.toml if present).",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    # models --------------------------------------------------------------
    models_parser = subparsers.add_parser(
        "models",
        help="List catalog models with defaults and prompt-cache support",
    )
    models_parser.add_argument("--provider", choices=PROVIDER_CHOICES, default=None)
    models_parser.add_argument("--json", action="store_true", default=False)
    models_parser.set_defaults(handler=_cmd_models)

    # resolve -------------------------------------------------------------
    resolve_parser = subparsers.add_parser(
        "resolve",
        help="Print the model id a handler resolves to",
        description="Unknown or missing model ids resolve to the backend default.",
    )
    resolve_parser.add_argument("--provider", choices=PROVIDER_CHOICES, required=True)
    resolve_parser.add_argument("--model", default=None)
    resolve_parser.add_argument("--json", action="store_true", default=False)
    resolve_parser.set_defaults(handler=_cmd_resolve)

    # chat ----------------------------------------------------------------
    chat_parser = subparsers.add_parser(
        "chat",
        parents=[config_parent],
        help="Stream one conversation turn from the configured backend",
        description=(
            "Send a single user prompt and stream the reply.\n\n"
            "Examples:\n"
            "  modelrelay chat --prompt 'Explain this stack trace'\n"
            "  modelrelay chat --provider vertex --model claude-3-5-haiku@20241022 "
            "--prompt 'hi' --json\n"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    chat_parser.add_argument("--prompt", required=True, help="User message text.")
    chat_parser.add_argument("--system", default="", help="System prompt text.")
    chat_parser.add_argument("--provider", choices=PROVIDER_CHOICES, default=None)
    chat_parser.add_argument("--model", default=None)
    chat_parser.add_argument(
        "--json",
        action="store_true",
        default=False,
        help="Emit one JSON object per chunk instead of plain text.",
    )
    chat_parser.add_argument(
        "--show-reasoning",
        action="store_true",
        default=False,
        help="Print reasoning chunks to stderr.",
    )
    chat_parser.add_argument(
        "--log",
        action="store_true",
        default=False,
        help="Write structured JSON-lines logs to the configured log directory.",
    )
    chat_parser.set_defaults(handler=_cmd_chat)

    # config --------------------------------------------------------------
    config_cmd = subparsers.add_parser(
        "config",
        parents=[config_parent],
        help="Print the effective, redacted configuration",
    )
    config_cmd.set_defaults(handler=_cmd_config)

    return parser


# ---------------------------------------------------------------------------
# Entrypoints
# ---------------------------------------------------------------------------


def run_cli(
    argv: Sequence[str] | None = None,
    *,
    handler_factory: HandlerFactory | None = None,
) -> int:
    """Parse argv, route to a command handler, and return process exit code."""

    parser = build_parser()
    namespace = parser.parse_args(list(argv) if argv is not None else None)
    namespace.handler_factory = handler_factory or create_handler
    handler = getattr(namespace, "handler", None)
    if not callable(handler):
        parser.print_help(sys.stderr)
        return 2

    try:
        result = handler(namespace)
    except CLIError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return exc.exit_code
    return int(result)


def main(argv: Sequence[str] | None = None) -> int:
    return run_cli(argv)


def cli_entrypoint() -> None:
    """Console-script entrypoint."""

    raise SystemExit(run_cli())


# ---------------------------------------------------------------------------
# Command handlers
# ---------------------------------------------------------------------------


def _cmd_models(args: argparse.Namespace) -> int:
    catalog = load_model_catalog()
    families = (args.provider,) if args.provider else catalog.families()

    if args.json:
        _emit_json(
            {
                "command": "models",
                "families": {family: _family_payload(catalog, family) for family in families},
            }
        )
        return 0

    rows: list[list[str]] = []
    for family in families:
        default_id = catalog.default_model_id(family)
        for model_id, info in catalog.models_for(family).items():
            rows.append(
                [
                    family,
                    model_id + (" *" if model_id == default_id else ""),
                    str(info.context_window),
                    "yes" if info.supports_prompt_cache else "no",
                    "yes" if info.supports_thinking else "no",
                ]
            )
    _print_table(("provider", "model", "context", "cache", "thinking"), rows)
    print("\n* = backend default")
    return 0


def _cmd_resolve(args: argparse.Namespace) -> int:
    catalog = load_model_catalog()
    resolved = catalog.resolve(args.provider, args.model)
    if args.json:
        _emit_json(
            {
                "command": "resolve",
                "provider": args.provider,
                "requested": args.model,
                "model": resolved.id,
                "info": resolved.info.to_dict(),
            }
        )
        return 0
    print(resolved.id)
    return 0


def _cmd_chat(args: argparse.Namespace) -> int:
    config = _load_effective_config(args)
    try:
        provider = provider_name_from_config(config)
    except ConfigLoadError as exc:
        raise CLIError(str(exc), exit_code=2) from exc
    options = provider_options_from_config(config)
    policy = retry_policy_from_config(config)
    handler = _build_handler(args.handler_factory, provider, options, policy)

    session_id = uuid.uuid4().hex
    if args.log:
        setup_logging(_mapping(config.get("observability")), session_id=session_id)
    model_id = handler.get_model().id
    try:
        with correlation_scope(session_id=session_id):
            logger.info("chat request started", extra={"provider": provider, "model": model_id})
            usage = asyncio.run(_stream_chat(handler, args))
            logger.info(
                "chat request finished",
                extra={
                    "provider": provider,
                    "model": model_id,
                    "usage": usage.to_dict() if usage is not None else None,
                },
            )
    except ProviderError as exc:
        if args.log:
            logger.error(
                "chat request failed",
                extra={"provider": provider, "model": model_id, "error_code": exc.code},
            )
        raise CLIError(f"{provider} request failed: {exc}", exit_code=1) from exc
    finally:
        if args.log:
            shutdown_logging()

    if not args.json and usage is not None:
        print(f"\n{_format_usage(usage)}")
    return 0


def _cmd_config(args: argparse.Namespace) -> int:
    config = _load_effective_config(args)
    print(dump_effective_config(config))
    return 0


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


async def _stream_chat(handler: BaseProvider, args: argparse.Namespace) -> UsageChunk | None:
    input_tokens = 0
    output_tokens = 0
    cache_write: int | None = None
    cache_read: int | None = None
    cost: float | None = None
    saw_usage = False

    stream = handler.create_message(args.system, [{"role": "user", "content": args.prompt}])
    async for chunk in stream:
        if args.json:
            _emit_json(chunk.to_dict())
        elif isinstance(chunk, TextChunk):
            sys.stdout.write(chunk.text)
            sys.stdout.flush()
        elif isinstance(chunk, ReasoningChunk) and args.show_reasoning:
            sys.stderr.write(chunk.reasoning)
            sys.stderr.flush()

        if isinstance(chunk, UsageChunk):
            saw_usage = True
            input_tokens += chunk.input_tokens
            output_tokens += chunk.output_tokens
            if chunk.cache_write_tokens is not None:
                cache_write = (cache_write or 0) + chunk.cache_write_tokens
            if chunk.cache_read_tokens is not None:
                cache_read = (cache_read or 0) + chunk.cache_read_tokens
            if chunk.total_cost is not None:
                cost = (cost or 0.0) + chunk.total_cost

    if not saw_usage:
        return None
    return UsageChunk(
        input_tokens=input_tokens,
        output_tokens=output_tokens,
        cache_write_tokens=cache_write,
        cache_read_tokens=cache_read,
        total_cost=cost,
    )


def _build_handler(
    factory: HandlerFactory,
    provider: str,
    options: ProviderOptions,
    policy: RetryPolicy,
) -> BaseProvider:
    try:
        return factory(provider, options, retry_policy=policy)
    except (ValueError, TypeError) as exc:
        raise CLIError(f"invalid provider options: {exc}", exit_code=2) from exc


def _format_usage(usage: UsageChunk) -> str:
    parts = [f"input={usage.input_tokens}", f"output={usage.output_tokens}"]
    if usage.cache_write_tokens is not None:
        parts.append(f"cache_write={usage.cache_write_tokens}")
    if usage.cache_read_tokens is not None:
        parts.append(f"cache_read={usage.cache_read_tokens}")
    if usage.total_cost is not None:
        parts.append(f"cost=${usage.total_cost:.6f}")
    return "usage: " + " ".join(parts)


def _family_payload(catalog: ModelCatalog, family: str) -> dict[str, object]:
    return {
        "default": catalog.default_model_id(family),
        "models": {
            model_id: info.to_dict() for model_id, info in catalog.models_for(family).items()
        },
    }


def _load_effective_config(args: argparse.Namespace) -> dict[str, Any]:
    overrides: dict[str, object] = {}
    provider = getattr(args, "provider", None)
    if provider is not None:
        overrides["provider.name"] = provider
    model = getattr(args, "model", None)
    if model is not None:
        overrides["provider.model"] = model

    try:
        return load_config(getattr(args, "config_path", None), overrides=overrides)
    except (ConfigLoadError, ConfigValidationError) as exc:
        raise CLIError(str(exc), exit_code=2) from exc


def _emit_json(payload: Mapping[str, object]) -> None:
    """Emit a JSON payload to stdout with deterministic formatting."""

    print(json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False))


def _print_table(headers: Sequence[str], rows: Sequence[Sequence[str]]) -> None:
    widths = [len(header) for header in headers]
    for row in rows:
        for index, cell in enumerate(row):
            widths[index] = max(widths[index], len(cell))

    def _pad(cells: Sequence[str]) -> str:
        return "  ".join(cell.ljust(widths[index]) for index, cell in enumerate(cells)).rstrip()

    print(_pad(headers))
    print("  ".join("-" * width for width in widths))
    for row in rows:
        print(_pad(row))


def _mapping(value: object) -> Mapping[str, object]:
    return value if isinstance(value, Mapping) else {}


__all__ = [
    "CLIError",
    "HandlerFactory",
    "build_parser",
    "cli_entrypoint",
    "main",
    "run_cli",
]
