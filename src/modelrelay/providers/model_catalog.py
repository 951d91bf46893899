"""
modelrelay - per-backend model capability catalog.

File: src/modelrelay/providers/model_catalog.py
Last updated: 2026-10-18

Purpose
- Load and expose the package-shipped model catalog used by provider handlers.

What should be included in this file
- File-backed loader for model capability/pricing metadata.
- Deterministic lookup by backend family and model id.
- Default-model resolution per backend family.

Functional requirements
- Resolution never fails for a known family: unknown ids degrade to the default.

Non-functional requirements
- Deterministic, offline-safe, and read-only once loaded.
"""

from __future__ import annotations

import json
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from types import MappingProxyType
from typing import NamedTuple


def _validate_non_empty_str(value: str, field_name: str) -> str:
    if not isinstance(value, str):
        raise TypeError(f"{field_name} must be a string")
    parsed = value.strip()
    if not parsed:
        raise ValueError(f"{field_name} cannot be empty")
    return parsed


def _validate_optional_price(value: object, field_name: str) -> float | None:
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise TypeError(f"{field_name} must be numeric")
    parsed = float(value)
    if parsed < 0:
        raise ValueError(f"{field_name} must be >= 0")
    return parsed


def _coerce_optional_int(value: object, field_name: str) -> int | None:
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int):
        raise TypeError(f"{field_name} must be an integer")
    if value <= 0:
        raise ValueError(f"{field_name} must be > 0")
    return value


def _normalize_key(value: str) -> str:
    return _validate_non_empty_str(value, "value").lower()


def _as_mapping(value: object, field_name: str) -> Mapping[str, object]:
    if not isinstance(value, Mapping):
        raise TypeError(f"{field_name} must be an object")
    out: dict[str, object] = {}
    for key, item in value.items():
        if not isinstance(key, str):
            raise TypeError(f"{field_name} keys must be strings")
        out[key] = item
    return out


def _as_sequence(value: object, field_name: str) -> Sequence[object]:
    if isinstance(value, Sequence) and not isinstance(value, (str, bytes, bytearray)):
        return value
    raise TypeError(f"{field_name} must be an array")


@dataclass(frozen=True, slots=True)
class ModelInfo:
    """Capability and pricing descriptor for one model. Prices are USD per million tokens."""

    context_window: int
    max_tokens: int | None = None
    supports_images: bool = False
    supports_prompt_cache: bool = False
    supports_thinking: bool = False
    input_price: float | None = None
    output_price: float | None = None
    cache_writes_price: float | None = None
    cache_reads_price: float | None = None
    description: str | None = None

    def __post_init__(self) -> None:
        if isinstance(self.context_window, bool) or not isinstance(self.context_window, int):
            raise TypeError("ModelInfo.context_window must be an integer")
        if self.context_window <= 0:
            raise ValueError("ModelInfo.context_window must be > 0")
        object.__setattr__(
            self, "max_tokens", _coerce_optional_int(self.max_tokens, "ModelInfo.max_tokens")
        )
        object.__setattr__(self, "supports_images", bool(self.supports_images))
        object.__setattr__(self, "supports_prompt_cache", bool(self.supports_prompt_cache))
        object.__setattr__(self, "supports_thinking", bool(self.supports_thinking))
        for price_field in (
            "input_price",
            "output_price",
            "cache_writes_price",
            "cache_reads_price",
        ):
            object.__setattr__(
                self,
                price_field,
                _validate_optional_price(getattr(self, price_field), f"ModelInfo.{price_field}"),
            )
        if self.description is not None:
            object.__setattr__(
                self,
                "description",
                _validate_non_empty_str(self.description, "ModelInfo.description"),
            )

    def to_dict(self) -> dict[str, object]:
        payload: dict[str, object] = {
            "context_window": self.context_window,
            "supports_images": self.supports_images,
            "supports_prompt_cache": self.supports_prompt_cache,
            "supports_thinking": self.supports_thinking,
        }
        for key in (
            "max_tokens",
            "input_price",
            "output_price",
            "cache_writes_price",
            "cache_reads_price",
            "description",
        ):
            value = getattr(self, key)
            if value is not None:
                payload[key] = value
        return payload


class ResolvedModel(NamedTuple):
    """Final model id and its capability descriptor."""

    id: str
    info: ModelInfo


@dataclass(frozen=True, slots=True)
class ModelCatalog:
    """File-backed per-family model catalog with declared defaults."""

    version: str
    last_updated: str
    models: Mapping[str, Mapping[str, ModelInfo]]
    default_models: Mapping[str, str]

    def __post_init__(self) -> None:
        object.__setattr__(
            self, "version", _validate_non_empty_str(self.version, "ModelCatalog.version")
        )
        object.__setattr__(
            self,
            "last_updated",
            _validate_non_empty_str(self.last_updated, "ModelCatalog.last_updated"),
        )
        if not self.models:
            raise ValueError("ModelCatalog.models cannot be empty")

        frozen_models: dict[str, Mapping[str, ModelInfo]] = {}
        for family_raw, entries in self.models.items():
            family = _normalize_key(family_raw)
            if family in frozen_models:
                raise ValueError(f"duplicate model catalog family {family!r}")
            if not entries:
                raise ValueError(f"model catalog family {family!r} has no models")
            canonical: dict[str, ModelInfo] = {}
            for model_id_raw, info in entries.items():
                model_id = _validate_non_empty_str(model_id_raw, f"models.{family} key")
                if not isinstance(info, ModelInfo):
                    raise TypeError(f"models.{family}.{model_id} must be ModelInfo")
                if model_id in canonical:
                    raise ValueError(
                        f"duplicate model catalog key for family={family!r}, model={model_id!r}"
                    )
                canonical[model_id] = info
            frozen_models[family] = MappingProxyType(canonical)

        normalized_defaults: dict[str, str] = {}
        for family_raw, model_raw in self.default_models.items():
            family = _normalize_key(family_raw)
            family_models = frozen_models.get(family)
            if family_models is None:
                raise ValueError(f"default_models.{family} references unknown family")
            model_id = _validate_non_empty_str(str(model_raw), f"default_models.{family}")
            if model_id not in family_models:
                raise ValueError(
                    f"default_models.{family} references unknown model {model_id!r}"
                )
            normalized_defaults[family] = model_id

        missing = sorted(set(frozen_models) - set(normalized_defaults))
        if missing:
            raise ValueError(f"default_models missing families: {', '.join(missing)}")

        object.__setattr__(self, "models", MappingProxyType(frozen_models))
        object.__setattr__(self, "default_models", MappingProxyType(normalized_defaults))

    @classmethod
    def from_mapping(cls, payload: Mapping[str, object]) -> ModelCatalog:
        if "version" not in payload:
            raise ValueError("version is required")
        if "last_updated" not in payload:
            raise ValueError("last_updated is required")

        models_raw = _as_sequence(payload.get("models"), "models")
        families: dict[str, dict[str, ModelInfo]] = {}
        for index, item in enumerate(models_raw):
            item_map = _as_mapping(item, f"models[{index}]")
            family = _validate_non_empty_str(
                str(item_map.get("family")), f"models[{index}].family"
            )
            model_id = _validate_non_empty_str(str(item_map.get("id")), f"models[{index}].id")
            context_window = item_map.get("context_window", 0)
            if isinstance(context_window, bool) or not isinstance(context_window, int):
                raise TypeError(f"models[{index}].context_window must be an integer")
            pricing = _as_mapping(item_map.get("pricing", {}), f"models[{index}].pricing")
            info = ModelInfo(
                context_window=context_window,
                max_tokens=_coerce_optional_int(
                    item_map.get("max_tokens"), f"models[{index}].max_tokens"
                ),
                supports_images=bool(item_map.get("supports_images", False)),
                supports_prompt_cache=bool(item_map.get("supports_prompt_cache", False)),
                supports_thinking=bool(item_map.get("supports_thinking", False)),
                input_price=_validate_optional_price(
                    pricing.get("input"), f"models[{index}].pricing.input"
                ),
                output_price=_validate_optional_price(
                    pricing.get("output"), f"models[{index}].pricing.output"
                ),
                cache_writes_price=_validate_optional_price(
                    pricing.get("cache_writes"), f"models[{index}].pricing.cache_writes"
                ),
                cache_reads_price=_validate_optional_price(
                    pricing.get("cache_reads"), f"models[{index}].pricing.cache_reads"
                ),
                description=(
                    str(item_map["description"])
                    if item_map.get("description") is not None
                    else None
                ),
            )
            family_models = families.setdefault(family.lower(), {})
            if model_id in family_models:
                raise ValueError(f"duplicate model {model_id!r} in family {family!r}")
            family_models[model_id] = info

        defaults_raw = _as_mapping(payload.get("default_models"), "default_models")
        default_models = {
            family: _validate_non_empty_str(str(model_id), f"default_models.{family}")
            for family, model_id in defaults_raw.items()
        }

        return cls(
            version=_validate_non_empty_str(str(payload["version"]), "version"),
            last_updated=_validate_non_empty_str(str(payload["last_updated"]), "last_updated"),
            models=families,
            default_models=default_models,
        )

    @classmethod
    def from_file(cls, path: str | Path) -> ModelCatalog:
        candidate = Path(path).expanduser().resolve()
        try:
            payload = json.loads(candidate.read_text(encoding="utf-8"))
        except json.JSONDecodeError as exc:
            raise ValueError(f"invalid model catalog JSON in {candidate}: {exc}") from exc
        except OSError as exc:
            raise ValueError(f"unable to read model catalog file {candidate}: {exc}") from exc
        return cls.from_mapping(_as_mapping(payload, "catalog"))

    def families(self) -> tuple[str, ...]:
        return tuple(sorted(self.models))

    def models_for(self, family: str) -> Mapping[str, ModelInfo]:
        family_key = _normalize_key(family)
        found = self.models.get(family_key)
        if found is None:
            raise KeyError(f"unknown backend family {family!r}")
        return found

    def default_model_id(self, family: str) -> str:
        family_key = _normalize_key(family)
        model_id = self.default_models.get(family_key)
        if model_id is None:
            raise KeyError(f"unknown backend family {family!r}")
        return model_id

    def get(self, family: str, model_id: str) -> ResolvedModel | None:
        family_key = _normalize_key(family)
        family_models = self.models.get(family_key)
        if family_models is None:
            raise KeyError(f"unknown backend family {family!r}")
        # Ids match catalog keys exactly; anything else is unknown.
        info = family_models.get(model_id) if isinstance(model_id, str) else None
        if info is None:
            return None
        return ResolvedModel(model_id, info)

    def require(self, family: str, model_id: str) -> ResolvedModel:
        found = self.get(family, model_id)
        if found is None:
            raise KeyError(f"unknown model {model_id!r} for family {family!r}")
        return found

    def resolve(self, family: str, requested_id: str | None) -> ResolvedModel:
        """Return the requested model, or the family default when it is absent or unknown."""

        if requested_id is not None:
            found = self.get(family, requested_id)
            if found is not None:
                return found
        default_id = self.default_model_id(family)
        return ResolvedModel(default_id, self.models[_normalize_key(family)][default_id])


def _bundled_catalog_path() -> Path:
    return Path(__file__).resolve().with_name("model_catalog.json")


@lru_cache(maxsize=8)
def load_model_catalog(path: str | Path | None = None) -> ModelCatalog:
    """Load model catalog from disk with deterministic caching."""

    resolved = _bundled_catalog_path() if path is None else Path(path).expanduser().resolve()
    return ModelCatalog.from_file(resolved)


__all__ = [
    "ModelCatalog",
    "ModelInfo",
    "ResolvedModel",
    "load_model_catalog",
]
