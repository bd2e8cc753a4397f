"""Vision model catalogue: pricing, image token multipliers and cost arithmetic.

Prices are USD per one million tokens. Lookups never fail: an unknown model id resolves to
the ``DEFAULT_MODEL`` entry and :class:`ModelResolution` says so through ``fallback``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Dict, Mapping

import yaml

from .constants import (
    DEFAULT_MODEL,
    GEMINI_2_5_FLASH,
    GEMINI_2_5_FLASH_LITE,
    GEMINI_2_5_PRO,
    GPT_5_MINI,
    GPT_5_NANO,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ModelPricing:
    input_cost_per_million: float
    cached_input_cost_per_million: float
    output_cost_per_million: float


@dataclass(frozen=True)
class VisionModelConfig:
    id: str
    name: str
    description: str
    pricing: ModelPricing
    # Patch-count multiplier; cost-efficient tiers spend more tokens per patch.
    image_token_multiplier: float = 1.0
    supports_vision: bool = True
    max_context_tokens: int = 128_000
    deprecated: bool = False

    def to_dict(self) -> Dict[str, object]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "input_cost_per_million": self.pricing.input_cost_per_million,
            "cached_input_cost_per_million": self.pricing.cached_input_cost_per_million,
            "output_cost_per_million": self.pricing.output_cost_per_million,
            "image_token_multiplier": self.image_token_multiplier,
            "supports_vision": self.supports_vision,
            "max_context_tokens": self.max_context_tokens,
            "deprecated": self.deprecated,
        }


@dataclass(frozen=True)
class ModelResolution:
    """Outcome of a pricing lookup; ``fallback`` is True when the default entry was used."""

    requested: str
    config: VisionModelConfig
    fallback: bool


def _model(
    model_id: str,
    name: str,
    description: str,
    input_cost: float,
    cached_cost: float,
    output_cost: float,
    multiplier: float = 1.0,
    max_context: int = 128_000,
) -> VisionModelConfig:
    return VisionModelConfig(
        id=model_id,
        name=name,
        description=description,
        pricing=ModelPricing(
            input_cost_per_million=input_cost,
            cached_input_cost_per_million=cached_cost,
            output_cost_per_million=output_cost,
        ),
        image_token_multiplier=multiplier,
        max_context_tokens=max_context,
    )


VISION_MODELS: Dict[str, VisionModelConfig] = {
    # GPT-5 family
    "gpt-5.2": _model("gpt-5.2", "GPT-5.2", "Flagship model for coding and agentic tasks", 1.75, 0.175, 14.00),
    "gpt-5.2-pro": _model("gpt-5.2-pro", "GPT-5.2 Pro", "GPT-5.2 with more compute per response", 21.00, 21.00, 168.00),
    "gpt-5.1": _model("gpt-5.1", "GPT-5.1", "Reasoning model with configurable effort", 1.25, 0.125, 10.00),
    "gpt-5": _model("gpt-5", "GPT-5", "Previous reasoning model for coding and agentic tasks", 1.25, 0.125, 10.00),
    "gpt-5-pro": _model("gpt-5-pro", "GPT-5 Pro", "GPT-5 with more compute per response", 15.00, 15.00, 120.00),
    GPT_5_MINI: _model(GPT_5_MINI, "GPT-5 Mini", "Faster, cost-efficient GPT-5", 0.25, 0.025, 2.00, 1.62),
    GPT_5_NANO: _model(GPT_5_NANO, "GPT-5 Nano", "Fastest, most cost-efficient GPT-5", 0.05, 0.005, 0.40, 2.46),
    # GPT-4.1 family
    "gpt-4.1": _model("gpt-4.1", "GPT-4.1", "Smartest non-reasoning model", 2.00, 0.50, 8.00),
    "gpt-4.1-mini": _model("gpt-4.1-mini", "GPT-4.1 Mini", "Smaller, faster GPT-4.1", 0.40, 0.10, 1.60, 1.62),
    "gpt-4.1-nano": _model("gpt-4.1-nano", "GPT-4.1 Nano", "Smallest, fastest GPT-4.1", 0.10, 0.025, 0.40, 2.46),
    # o-series
    "o3": _model("o3", "o3", "Reasoning model for complex tasks", 2.00, 0.50, 8.00, max_context=200_000),
    "o3-pro": _model("o3-pro", "o3 Pro", "o3 with more compute per response", 20.00, 20.00, 80.00, max_context=200_000),
    "o4-mini": _model("o4-mini", "o4 Mini", "Fast, cost-efficient reasoning model", 1.10, 0.275, 4.40, 1.72, 200_000),
    "o1": _model("o1", "o1", "Previous full o-series reasoning model", 15.00, 7.50, 60.00, max_context=200_000),
    # Gemini
    GEMINI_2_5_PRO: _model(GEMINI_2_5_PRO, "Gemini 2.5 Pro", "Google's most capable Gemini model", 3.50, 3.50, 10.00, max_context=1_048_576),
    GEMINI_2_5_FLASH: _model(GEMINI_2_5_FLASH, "Gemini 2.5 Flash", "Balanced Gemini model", 0.35, 0.35, 1.05, max_context=1_048_576),
    GEMINI_2_5_FLASH_LITE: _model(GEMINI_2_5_FLASH_LITE, "Gemini 2.5 Flash-Lite", "Lowest-cost Gemini model", 0.10, 0.10, 0.40, max_context=1_048_576),
}


class PricingTable:
    """Model catalogue with a designated default entry for lookup misses."""

    def __init__(self, models: Mapping[str, VisionModelConfig] | None = None, *, default_model: str = DEFAULT_MODEL) -> None:
        self._models: Dict[str, VisionModelConfig] = dict(VISION_MODELS if models is None else models)
        if default_model not in self._models:
            raise ValueError(f"Default model {default_model!r} missing from pricing table")
        self._default_model = default_model

    @property
    def default_model(self) -> str:
        return self._default_model

    def __contains__(self, model_id: object) -> bool:
        return model_id in self._models

    def __iter__(self):
        return iter(self._models.values())

    def resolve(self, model_id: str | None) -> ModelResolution:
        requested = model_id or self._default_model
        config = self._models.get(requested)
        if config is None:
            logger.debug("No pricing entry for %s; using %s", requested, self._default_model)
            return ModelResolution(requested=requested, config=self._models[self._default_model], fallback=True)
        return ModelResolution(requested=requested, config=config, fallback=False)

    def get_model_config(self, model_id: str | None) -> VisionModelConfig:
        return self.resolve(model_id).config

    def get_model_pricing(self, model_id: str | None) -> ModelPricing:
        return self.resolve(model_id).config.pricing

    def get_image_token_multiplier(self, model_id: str | None) -> float:
        return self.resolve(model_id).config.image_token_multiplier

    def calculate_cost(
        self,
        input_tokens: int,
        output_tokens: int,
        model_id: str | None = None,
        use_cached_input: bool = False,
    ) -> float:
        pricing = self.get_model_pricing(model_id)
        input_rate = pricing.cached_input_cost_per_million if use_cached_input else pricing.input_cost_per_million
        input_cost = (input_tokens / 1_000_000) * input_rate
        output_cost = (output_tokens / 1_000_000) * pricing.output_cost_per_million
        return input_cost + output_cost

    def get_supported_models(self) -> list[str]:
        return [model_id for model_id, cfg in self._models.items() if not cfg.deprecated and cfg.supports_vision]

    def get_models_by_cost(self) -> list[VisionModelConfig]:
        active = [cfg for cfg in self._models.values() if not cfg.deprecated]
        return sorted(active, key=lambda cfg: cfg.pricing.input_cost_per_million)

    def with_overrides(self, overrides: Mapping[str, Any]) -> "PricingTable":
        merged = dict(self._models)
        for model_id, entry in overrides.items():
            if not isinstance(entry, Mapping):
                logger.warning("Ignoring pricing override for %s: expected a mapping", model_id)
                continue
            merged[str(model_id)] = _merge_entry(str(model_id), merged.get(str(model_id)), entry)
        return PricingTable(merged, default_model=self._default_model)

    @classmethod
    def from_yaml(cls, path: Path | None) -> "PricingTable":
        """Overlay ``models:`` entries from a YAML file onto the built-in table."""
        table = cls()
        if path is None:
            return table
        path = Path(path).expanduser()
        if not path.exists():
            logger.warning("Pricing file %s not found; using built-in pricing", path)
            return table
        try:
            data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
        except yaml.YAMLError as exc:
            logger.warning("Failed to parse pricing file %s: %s", path, exc)
            return table
        models = data.get("models", data) if isinstance(data, dict) else None
        if not isinstance(models, dict):
            return table
        return table.with_overrides(models)


def _merge_entry(model_id: str, base: VisionModelConfig | None, entry: Mapping[str, Any]) -> VisionModelConfig:
    if base is None:
        base = _model(model_id, model_id, "", 0.0, 0.0, 0.0)
    pricing = ModelPricing(
        input_cost_per_million=float(entry.get("input", base.pricing.input_cost_per_million)),
        cached_input_cost_per_million=float(
            entry.get("cached_input", entry.get("input", base.pricing.cached_input_cost_per_million))
        ),
        output_cost_per_million=float(entry.get("output", base.pricing.output_cost_per_million)),
    )
    return replace(
        base,
        name=str(entry.get("name", base.name)),
        pricing=pricing,
        image_token_multiplier=float(entry.get("image_token_multiplier", base.image_token_multiplier)),
        deprecated=bool(entry.get("deprecated", base.deprecated)),
    )


DEFAULT_PRICING = PricingTable()


def get_model_config(model_id: str | None) -> VisionModelConfig:
    return DEFAULT_PRICING.get_model_config(model_id)


def get_model_pricing(model_id: str | None) -> ModelPricing:
    return DEFAULT_PRICING.get_model_pricing(model_id)


def get_image_token_multiplier(model_id: str | None) -> float:
    return DEFAULT_PRICING.get_image_token_multiplier(model_id)


def calculate_cost(
    input_tokens: int,
    output_tokens: int,
    model_id: str | None = DEFAULT_MODEL,
    use_cached_input: bool = False,
) -> float:
    return DEFAULT_PRICING.calculate_cost(input_tokens, output_tokens, model_id, use_cached_input)


def get_supported_models() -> list[str]:
    return DEFAULT_PRICING.get_supported_models()


def get_models_by_cost() -> list[VisionModelConfig]:
    return DEFAULT_PRICING.get_models_by_cost()
