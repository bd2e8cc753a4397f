from __future__ import annotations

import logging
import shutil
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Sequence

from .constants import (
    DEFAULT_MODEL,
    DEFAULT_NUM_PARTITIONS,
    DEFAULT_PROMPT,
    DEFAULT_QUALITY,
    DEFAULT_SCALE,
    ESTIMATE_SAMPLE_SECONDS,
    ESTIMATE_SCRATCH_ROOT,
)
from .core.contracts import FrameExtractor
from .core.types import VideoConfig
from .extractor import FFmpegFrameExtractor
from .models import DEFAULT_PRICING, PricingTable
from .reporting import Reporter
from .token_estimate import TokenEstimate, estimate_frame_tokens, estimate_frames_tokens
from .utils import ensure_dir, unique_scratch_dir

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class VideoTokenEstimate:
    video_path: str
    num_partitions: int
    per_frame: TokenEstimate
    total: TokenEstimate
    model: str

    def to_dict(self) -> Dict[str, object]:
        return {
            "video_path": self.video_path,
            "num_partitions": self.num_partitions,
            "model": self.model,
            "per_frame": self.per_frame.to_dict(),
            "total": self.total.to_dict(),
        }


@dataclass(frozen=True)
class MultiVideoTokenEstimate:
    videos: list[VideoTokenEstimate]
    total_tokens: int
    estimated_cost: float
    elapsed_seconds: float
    warnings: list[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, object]:
        return {
            "videos": [video.to_dict() for video in self.videos],
            "grand_total": {
                "total_tokens": self.total_tokens,
                "estimated_cost": self.estimated_cost,
            },
            "elapsed_seconds": self.elapsed_seconds,
            "warnings": list(self.warnings),
        }


def sample_timestamp(duration: float) -> float:
    """Representative frame position: one second in, or the first frame for short clips."""
    return ESTIMATE_SAMPLE_SECONDS if duration > ESTIMATE_SAMPLE_SECONDS else 0.0


class TokenEstimator:
    """Predicts analysis tokens and cost from one representative frame per video."""

    def __init__(
        self,
        *,
        extractor: FrameExtractor | None = None,
        reporter: Reporter | None = None,
        pricing: PricingTable | None = None,
        scratch_root: Path = ESTIMATE_SCRATCH_ROOT,
    ) -> None:
        self._extractor = extractor or FFmpegFrameExtractor()
        self._reporter = reporter or Reporter(enabled=False)
        self._pricing = pricing or DEFAULT_PRICING
        self._scratch_root = Path(scratch_root)

    async def estimate_video(
        self,
        video_path: str | Path,
        num_partitions: int = DEFAULT_NUM_PARTITIONS,
        prompt: str | None = None,
        model: str = DEFAULT_MODEL,
        quality: int = DEFAULT_QUALITY,
        scale: int = DEFAULT_SCALE,
    ) -> VideoTokenEstimate:
        if not Path(video_path).exists():
            raise FileNotFoundError(f"Video file not found: {video_path}")
        if num_partitions < 0:
            raise ValueError(f"num_partitions must be ≥ 0, got {num_partitions}")
        instruction = prompt or DEFAULT_PROMPT

        scratch = unique_scratch_dir(self._scratch_root, video_path)
        try:
            duration = await self._extractor.probe_duration(video_path)
            ensure_dir(scratch)
            image = await self._extractor.extract_frame(
                video_path,
                sample_timestamp(duration),
                scratch / "sample_frame.jpg",
                quality=quality,
                scale=scale,
            )
        finally:
            shutil.rmtree(scratch, ignore_errors=True)

        if num_partitions == 0:
            per_frame = estimate_frame_tokens(image, instruction, model, pricing=self._pricing)
            total = per_frame.scaled(0)
        else:
            frames = estimate_frames_tokens([image] * num_partitions, instruction, model, pricing=self._pricing)
            per_frame, total = frames.per_frame, frames.total
        logger.debug(
            "Estimated %s: %d tokens per frame, %d total", video_path, per_frame.total_tokens, total.total_tokens
        )
        return VideoTokenEstimate(
            video_path=str(video_path),
            num_partitions=num_partitions,
            per_frame=per_frame,
            total=total,
            model=model,
        )

    async def estimate_multiple_videos(
        self, configs: Sequence[VideoConfig | str | dict], *, default_model: str = DEFAULT_MODEL
    ) -> MultiVideoTokenEstimate:
        """Estimate each video in turn; videos that cannot be estimated are skipped with a warning."""
        started = time.monotonic()
        estimates: list[VideoTokenEstimate] = []
        warnings: list[str] = []
        total_tokens = 0
        total_cost = 0.0

        for config in configs:
            request = None
            try:
                request = VideoConfig.coerce(config, default_model=default_model)
                estimate = await self.estimate_video(
                    request.video_path,
                    num_partitions=request.num_partitions,
                    prompt=request.prompt,
                    model=request.model,
                    quality=request.quality,
                    scale=request.scale,
                )
            except Exception as exc:  # noqa: BLE001
                label = request.video_path if request is not None else repr(config)
                message = f"Could not estimate for {label}: {exc}"
                logger.warning(message)
                self._reporter.warn(message)
                warnings.append(message)
                continue
            estimates.append(estimate)
            total_tokens += estimate.total.total_tokens
            total_cost += estimate.total.estimated_cost

        result = MultiVideoTokenEstimate(
            videos=estimates,
            total_tokens=total_tokens,
            estimated_cost=total_cost,
            elapsed_seconds=time.monotonic() - started,
            warnings=warnings,
        )
        if self._reporter.should_show_estimate_tables():
            self._reporter.display_estimate(result.videos, elapsed_seconds=result.elapsed_seconds)
        return result
