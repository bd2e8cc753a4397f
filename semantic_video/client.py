from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, Optional, Sequence

from .batch import BatchOrchestrator, VideoOutcome
from .concurrency import clamp_concurrency
from .config import AppConfig
from .constants import (
    DEFAULT_MAX_FRAME_CONCURRENCY,
    DEFAULT_MAX_VIDEO_CONCURRENCY,
    DEFAULT_MODEL,
    DEFAULT_NUM_PARTITIONS,
    DEFAULT_PROVIDER,
    DEFAULT_QUALITY,
    DEFAULT_SCALE,
    SCRATCH_ROOT,
)
from .core.contracts import FrameExtractor, VisionClient
from .core.types import FrameRecord, VideoConfig
from .estimator import MultiVideoTokenEstimate, TokenEstimator, VideoTokenEstimate
from .exceptions import MissingAPIKeyError
from .extractor import FFmpegFrameExtractor
from .models import DEFAULT_PRICING, PricingTable
from .providers import build_vision_client
from .registry import VideoRegistry
from .reporting import Reporter
from .stats import ClientStats, StatsTracker
from .telemetry import RunMonitor
from .video import SemanticVideo

logger = logging.getLogger(__name__)


class SemanticVideoClient:
    """Entry point for analyzing and estimating videos.

    Owns the video registry, usage statistics and request telemetry. Collaborators
    (vision client, frame extractor, reporter, pricing) can be injected; otherwise the
    defaults for ``provider`` are built from ``api_key``.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        *,
        provider: str = DEFAULT_PROVIDER,
        vision_client: VisionClient | None = None,
        extractor: FrameExtractor | None = None,
        reporter: Reporter | None = None,
        pricing: PricingTable | None = None,
        monitor: RunMonitor | None = None,
        max_video_concurrency: int = DEFAULT_MAX_VIDEO_CONCURRENCY,
        max_frame_concurrency: int = DEFAULT_MAX_FRAME_CONCURRENCY,
        requests_per_minute: int | None = None,
        scratch_root: Path = SCRATCH_ROOT,
        default_model: str = DEFAULT_MODEL,
    ) -> None:
        self.monitor = monitor or RunMonitor()
        if vision_client is None:
            if not api_key:
                raise MissingAPIKeyError(provider)
            vision_client = build_vision_client(
                provider,
                api_key=api_key,
                monitor=self.monitor,
                requests_per_minute=requests_per_minute,
            )
        self.pricing = pricing or DEFAULT_PRICING
        self.reporter = reporter or Reporter(enabled=False, pricing=self.pricing)
        self.default_model = default_model
        self.max_video_concurrency = clamp_concurrency(max_video_concurrency)
        self.max_frame_concurrency = clamp_concurrency(max_frame_concurrency)
        self._vision_client = vision_client
        self._extractor = extractor or FFmpegFrameExtractor()
        self._scratch_root = Path(scratch_root)
        self._stats = StatsTracker(self.pricing)
        self._registry = VideoRegistry(self._new_video)
        self._estimator = TokenEstimator(extractor=self._extractor, reporter=self.reporter, pricing=self.pricing)

    @classmethod
    def from_config(cls, config: AppConfig, **overrides) -> "SemanticVideoClient":
        options = {
            "provider": config.provider,
            "pricing": PricingTable.from_yaml(config.pricing_file) if config.pricing_file else None,
            "max_video_concurrency": config.max_video_concurrency,
            "max_frame_concurrency": config.max_frame_concurrency,
            "requests_per_minute": config.requests_per_minute,
            "scratch_root": config.scratch_dir,
            "default_model": config.default_model,
        }
        options.update(overrides)
        return cls(config.api_key, **options)

    def _new_video(self, video_path: str) -> SemanticVideo:
        return SemanticVideo(
            video_path,
            self._vision_client,
            extractor=self._extractor,
            reporter=self.reporter,
            scratch_root=self._scratch_root,
        )

    @property
    def stats(self) -> StatsTracker:
        return self._stats

    @property
    def registry(self) -> VideoRegistry:
        return self._registry

    def create_video(self, video_path: str | Path) -> SemanticVideo:
        """Register ``video_path``, replacing any previous instance and its results."""
        return self._registry.create(video_path)

    async def analyze_video(
        self,
        video_path: str | Path,
        num_partitions: int = DEFAULT_NUM_PARTITIONS,
        prompt: Optional[str] = None,
        quality: int = DEFAULT_QUALITY,
        scale: int = DEFAULT_SCALE,
        model: Optional[str] = None,
        max_frame_concurrency: int | None = None,
    ) -> list[FrameRecord]:
        video = self._registry.get_or_create(video_path)
        model = model or self.default_model
        self.reporter.start_single_video(str(video_path))
        frames = await video.analyze(
            num_partitions=num_partitions,
            prompt=prompt,
            quality=quality,
            scale=scale,
            model=model,
            max_frame_concurrency=self._limit(max_frame_concurrency, self.max_frame_concurrency),
        )
        usage = video.get_tokens_used()
        self._stats.record_analysis(usage.input_tokens, usage.output_tokens, len(frames), usage.model)
        return frames

    async def analyze_multiple_videos(
        self,
        configs: Sequence[VideoConfig | str | dict],
        *,
        max_video_concurrency: int | None = None,
    ) -> list[VideoOutcome]:
        orchestrator = BatchOrchestrator(
            self._registry,
            stats=self._stats,
            reporter=self.reporter,
            pricing=self.pricing,
            max_video_concurrency=self._limit(max_video_concurrency, self.max_video_concurrency),
            max_frame_concurrency=self.max_frame_concurrency,
        )
        return await orchestrator.run([self._with_default_model(config) for config in configs])

    @staticmethod
    def _limit(requested: int | None, configured: int) -> int:
        # An explicit limit below one still means one at a time.
        return configured if requested is None else clamp_concurrency(requested)

    def _with_default_model(self, config: VideoConfig | str | dict) -> VideoConfig:
        return VideoConfig.coerce(config, default_model=self.default_model)

    def get_video(self, video_path: str | Path) -> SemanticVideo | None:
        return self._registry.get(video_path)

    def get_all_videos(self) -> Dict[str, SemanticVideo]:
        return self._registry.get_all()

    def get_stats(self) -> ClientStats:
        return self._stats.get_stats(self._registry)

    def remove_video(self, video_path: str | Path) -> bool:
        return self._registry.remove(video_path)

    def clear_all(self) -> None:
        self._registry.clear()

    async def estimate_video_tokens(
        self,
        video_path: str | Path,
        num_partitions: int = DEFAULT_NUM_PARTITIONS,
        prompt: Optional[str] = None,
        model: Optional[str] = None,
        quality: int = DEFAULT_QUALITY,
        scale: int = DEFAULT_SCALE,
    ) -> VideoTokenEstimate:
        return await self._estimator.estimate_video(
            video_path,
            num_partitions=num_partitions,
            prompt=prompt,
            model=model or self.default_model,
            quality=quality,
            scale=scale,
        )

    async def estimate_multiple_videos_tokens(
        self, configs: Sequence[VideoConfig | str | dict]
    ) -> MultiVideoTokenEstimate:
        return await self._estimator.estimate_multiple_videos(configs, default_model=self.default_model)
