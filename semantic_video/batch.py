from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Dict, Sequence

from .concurrency import Settled, clamp_concurrency, run_bounded
from .constants import DEFAULT_MAX_FRAME_CONCURRENCY, DEFAULT_MAX_VIDEO_CONCURRENCY
from .core.types import FrameRecord, VideoConfig
from .models import DEFAULT_PRICING, PricingTable
from .registry import VideoRegistry
from .reporting import Reporter
from .stats import StatsTracker
from .utils import format_duration

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class VideoOutcome:
    """Result of one video in a batch; ``error`` is set when the video failed."""

    video_path: str
    frames: list[FrameRecord]
    input_tokens: int
    output_tokens: int
    model: str
    duration_seconds: float
    error: str | None = None
    elapsed_seconds: float = 0.0

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens

    def to_dict(self, *, include_images: bool = False) -> Dict[str, object]:
        return {
            "video_path": self.video_path,
            "model": self.model,
            "duration_seconds": self.duration_seconds,
            "input_tokens": self.input_tokens,
            "output_tokens": self.output_tokens,
            "elapsed_seconds": self.elapsed_seconds,
            "error": self.error,
            "frames": [frame.to_dict(include_image=include_images) for frame in self.frames],
        }


@dataclass
class BatchState:
    input_tokens: int = 0
    output_tokens: int = 0
    cost: float = 0.0
    succeeded: int = 0
    failed: int = 0
    outcomes: list[VideoOutcome] = field(default_factory=list)

    def record(self, outcome: VideoOutcome, cost: float = 0.0) -> None:
        self.outcomes.append(outcome)
        if not outcome.ok:
            self.failed += 1
            return
        self.succeeded += 1
        self.input_tokens += outcome.input_tokens
        self.output_tokens += outcome.output_tokens
        self.cost += cost

    def reset(self) -> None:
        self.input_tokens = 0
        self.output_tokens = 0
        self.cost = 0.0
        self.succeeded = 0
        self.failed = 0
        self.outcomes = []


class BatchOrchestrator:
    """Analyzes many videos with a bounded number of pipelines in flight."""

    def __init__(
        self,
        registry: VideoRegistry,
        *,
        stats: StatsTracker | None = None,
        reporter: Reporter | None = None,
        pricing: PricingTable | None = None,
        max_video_concurrency: int = DEFAULT_MAX_VIDEO_CONCURRENCY,
        max_frame_concurrency: int = DEFAULT_MAX_FRAME_CONCURRENCY,
    ) -> None:
        self._registry = registry
        self._stats = stats
        self._reporter = reporter or Reporter(enabled=False)
        self._pricing = pricing or DEFAULT_PRICING
        self.max_video_concurrency = clamp_concurrency(max_video_concurrency)
        self.max_frame_concurrency = clamp_concurrency(max_frame_concurrency)
        self.state = BatchState()

    async def run(self, configs: Sequence[VideoConfig | str | dict]) -> list[VideoOutcome]:
        """Analyze every config; outcomes come back in completion order.

        A failing video becomes an outcome with ``error`` set and never stops its siblings.
        Usage statistics only include videos that finished successfully.
        """
        requests = [VideoConfig.coerce(config) for config in configs]
        self.state.reset()
        self._reporter.init_batch(len(requests))
        started = time.monotonic()
        logger.info(
            "Starting analysis of %d videos (%d at a time)", len(requests), self.max_video_concurrency
        )

        def _factory(request: VideoConfig):
            return lambda: self._analyze_one(request)

        def _on_settle(settled: Settled[VideoOutcome]) -> None:
            outcome = settled.value
            if outcome is None:
                # _analyze_one captures its own failures; this only covers cancellation.
                request = requests[settled.index]
                outcome = VideoOutcome(
                    video_path=request.video_path,
                    frames=[],
                    input_tokens=0,
                    output_tokens=0,
                    model=request.model,
                    duration_seconds=0.0,
                    error=str(settled.error) or type(settled.error).__name__,
                )
            self._settle(outcome)

        await run_bounded([_factory(r) for r in requests], self.max_video_concurrency, on_settle=_on_settle)

        elapsed = time.monotonic() - started
        self._reporter.complete_batch(self.state.succeeded, self.state.failed)
        logger.info(
            "Analysis complete in %s: %d successful, %d failed",
            format_duration(elapsed),
            self.state.succeeded,
            self.state.failed,
        )
        return list(self.state.outcomes)

    async def _analyze_one(self, request: VideoConfig) -> VideoOutcome:
        started = time.monotonic()
        self._reporter.update_video(request.video_path, "processing", "Starting analysis")
        try:
            video = self._registry.get_or_create(request.video_path)
            frames = await video.analyze(
                num_partitions=request.num_partitions,
                prompt=request.prompt,
                quality=request.quality,
                scale=request.scale,
                model=request.model,
                max_frame_concurrency=self.max_frame_concurrency,
            )
        except Exception as exc:  # noqa: BLE001
            elapsed = time.monotonic() - started
            logger.error("Failed after %s: %s: %s", format_duration(elapsed), request.video_path, exc)
            return VideoOutcome(
                video_path=request.video_path,
                frames=[],
                input_tokens=0,
                output_tokens=0,
                model=request.model,
                duration_seconds=0.0,
                error=str(exc) or type(exc).__name__,
                elapsed_seconds=elapsed,
            )

        usage = video.get_tokens_used()
        return VideoOutcome(
            video_path=request.video_path,
            frames=frames,
            input_tokens=usage.input_tokens,
            output_tokens=usage.output_tokens,
            model=usage.model,
            duration_seconds=video.get_duration(),
            elapsed_seconds=time.monotonic() - started,
        )

    def _settle(self, outcome: VideoOutcome) -> None:
        if not outcome.ok:
            self.state.record(outcome)
            self._reporter.update_video(outcome.video_path, "failed", "Failed", error=outcome.error)
            self._reporter.fail_video(outcome.video_path, outcome.error or "")
            return

        cost = self._pricing.calculate_cost(outcome.input_tokens, outcome.output_tokens, outcome.model)
        self.state.record(outcome, cost)
        if self._stats is not None:
            self._stats.record_analysis(
                outcome.input_tokens, outcome.output_tokens, len(outcome.frames), outcome.model
            )
        self._reporter.update_video(outcome.video_path, "completed", "Analysis complete", progress=100)
        self._reporter.complete_video(
            outcome.video_path,
            len(outcome.frames),
            outcome.input_tokens,
            outcome.output_tokens,
            outcome.model,
        )
