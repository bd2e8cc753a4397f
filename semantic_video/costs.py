from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterable

from .models import DEFAULT_PRICING, PricingTable
from .telemetry import RequestEvent


@dataclass
class CostLine:
    input_cost: float = 0.0
    output_cost: float = 0.0

    @property
    def total_cost(self) -> float:
        return self.input_cost + self.output_cost

    def to_dict(self) -> Dict[str, float]:
        return {
            "input_cost": self.input_cost,
            "output_cost": self.output_cost,
            "total_cost": self.total_cost,
        }


@dataclass
class CostSummary:
    """Dollar cost of recorded requests, split by model and by video.

    ``fallback_models`` lists model ids priced with the default entry because the
    pricing table has no row for them.
    """

    totals: CostLine = field(default_factory=CostLine)
    per_model: Dict[str, CostLine] = field(default_factory=dict)
    per_video: Dict[str, CostLine] = field(default_factory=dict)
    fallback_models: set[str] = field(default_factory=set)

    @property
    def total_input_cost(self) -> float:
        return self.totals.input_cost

    @property
    def total_output_cost(self) -> float:
        return self.totals.output_cost

    @property
    def total_cost(self) -> float:
        return self.totals.total_cost

    def to_dict(self) -> Dict[str, object]:
        return {
            **self.totals.to_dict(),
            "per_model": {model: line.to_dict() for model, line in self.per_model.items()},
            "per_video": {video: line.to_dict() for video, line in self.per_video.items()},
            "fallback_models": sorted(self.fallback_models),
        }


def estimate_costs(events: Iterable[RequestEvent], pricing: PricingTable | None = None) -> CostSummary:
    table = pricing or DEFAULT_PRICING
    summary = CostSummary()
    for event in events:
        resolution = table.resolve(event.model)
        if resolution.fallback:
            summary.fallback_models.add(event.model)
        rates = resolution.config.pricing
        input_cost = event.input_tokens / 1_000_000 * rates.input_cost_per_million
        output_cost = event.output_tokens / 1_000_000 * rates.output_cost_per_million

        lines = [summary.totals, summary.per_model.setdefault(event.model, CostLine())]
        if event.video_path is not None:
            lines.append(summary.per_video.setdefault(event.video_path, CostLine()))
        for line in lines:
            line.input_cost += input_cost
            line.output_cost += output_cost
    return summary
