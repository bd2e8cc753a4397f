from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Iterable, List, TYPE_CHECKING

if TYPE_CHECKING:  # pragma: no cover - type checking only
    from .costs import CostSummary
    from .models import PricingTable


@dataclass(frozen=True)
class RequestEvent:
    """One vision request: which model answered, when, and what it consumed."""

    model: str
    started_at: datetime
    finished_at: datetime
    input_tokens: int
    output_tokens: int
    metadata: Dict[str, object] = field(default_factory=dict)

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens

    @property
    def duration_seconds(self) -> float:
        return max((self.finished_at - self.started_at).total_seconds(), 0.0)

    @property
    def video_path(self) -> str | None:
        value = self.metadata.get("video_path")
        return str(value) if value is not None else None

    def to_dict(self) -> Dict[str, object]:
        return {
            "model": self.model,
            "video_path": self.video_path,
            "frame_number": self.metadata.get("frame_number"),
            "started_at": self.started_at.isoformat(),
            "seconds": self.duration_seconds,
            "input_tokens": self.input_tokens,
            "output_tokens": self.output_tokens,
            "metadata": dict(self.metadata),
        }


@dataclass
class UsageTotals:
    requests: int = 0
    input_tokens: int = 0
    output_tokens: int = 0
    request_seconds: float = 0.0

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens

    def add(self, event: RequestEvent) -> None:
        self.requests += 1
        self.input_tokens += event.input_tokens
        self.output_tokens += event.output_tokens
        self.request_seconds += event.duration_seconds

    def to_dict(self) -> Dict[str, float]:
        return {
            "requests": self.requests,
            "input_tokens": self.input_tokens,
            "output_tokens": self.output_tokens,
            "total_tokens": self.total_tokens,
            "request_seconds": self.request_seconds,
        }


@dataclass(frozen=True)
class RunSummary:
    totals: UsageTotals
    by_model: Dict[str, UsageTotals]
    by_video: Dict[str, UsageTotals]

    @property
    def total_requests(self) -> int:
        return self.totals.requests

    @property
    def total_tokens(self) -> int:
        return self.totals.total_tokens

    def to_dict(self) -> Dict[str, object]:
        return {
            **self.totals.to_dict(),
            "by_model": {model: usage.to_dict() for model, usage in self.by_model.items()},
            "by_video": {video: usage.to_dict() for video, usage in self.by_video.items()},
        }


def summarize_events(events: Iterable[RequestEvent]) -> RunSummary:
    totals = UsageTotals()
    by_model: Dict[str, UsageTotals] = {}
    by_video: Dict[str, UsageTotals] = {}
    for event in events:
        totals.add(event)
        by_model.setdefault(event.model, UsageTotals()).add(event)
        if event.video_path is not None:
            by_video.setdefault(event.video_path, UsageTotals()).add(event)
    return RunSummary(totals=totals, by_model=by_model, by_video=by_video)


class RunMonitor:
    """Collects vision request telemetry for the lifetime of a client.

    Events arrive from provider clients running on one event loop, so no locking is
    needed.
    """

    def __init__(self) -> None:
        self._events: List[RequestEvent] = []

    def record(self, event: RequestEvent) -> None:
        self._events.append(event)

    def events(self) -> List[RequestEvent]:
        return list(self._events)

    def reset(self) -> None:
        self._events.clear()

    def window(self) -> tuple[datetime | None, datetime | None]:
        """Earliest request start and latest request finish."""
        if not self._events:
            return None, None
        return (
            min(event.started_at for event in self._events),
            max(event.finished_at for event in self._events),
        )

    def summarize(self) -> RunSummary:
        return summarize_events(self._events)

    def costs(self, pricing: "PricingTable | None" = None) -> "CostSummary":
        from .costs import estimate_costs

        return estimate_costs(self._events, pricing=pricing)

    def flush_summary(self, *, to: Path, pricing: "PricingTable | None" = None) -> Path:
        """Write the run summary, cost roll-up and request window as JSON."""
        summary = self.summarize()
        costs = self.costs(pricing)
        start, end = self.window()
        payload = {
            "usage": summary.to_dict(),
            "costs": costs.to_dict(),
            "window": {
                "start": start.isoformat() if start else None,
                "end": end.isoformat() if end else None,
                "elapsed_sec": (end - start).total_seconds() if start and end else None,
            },
            "generated_at": datetime.now(timezone.utc).isoformat(),
        }
        to.parent.mkdir(parents=True, exist_ok=True)
        to.write_text(json.dumps(payload, indent=2, sort_keys=True))
        return to
