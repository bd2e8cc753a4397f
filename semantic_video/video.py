from __future__ import annotations

import logging
import shutil
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from .concurrency import Settled, clamp_concurrency, run_bounded
from .constants import (
    DEFAULT_MAX_FRAME_CONCURRENCY,
    DEFAULT_MODEL,
    DEFAULT_NUM_PARTITIONS,
    DEFAULT_PROMPT,
    DEFAULT_QUALITY,
    DEFAULT_SCALE,
    FRAME_FILENAME_TEMPLATE,
    ORIGINAL_SCALE,
    SCRATCH_ROOT,
)
from .core.contracts import FrameExtractor, VisionClient
from .core.types import FrameAnalysis, FrameRecord, TokensUsed
from .exceptions import ExtractionError, FrameProcessingError, VideoAnalysisError
from .extractor import FFmpegFrameExtractor
from .reporting import Reporter
from .utils import ensure_dir, unique_scratch_dir

logger = logging.getLogger(__name__)


@dataclass
class VideoAnalysisState:
    video_path: str
    duration_seconds: float = 0.0
    frames: list[FrameRecord] = field(default_factory=list)
    input_tokens: int = 0
    output_tokens: int = 0
    model: str = ""


def frame_timestamps(duration: float, num_partitions: int) -> list[float]:
    """Evenly spaced timestamps across ``[0, duration)``."""
    if num_partitions <= 0:
        return []
    step = duration / num_partitions
    return [step * index for index in range(num_partitions)]


def _resolution_label(scale: int) -> str:
    return "original" if scale == ORIGINAL_SCALE else f"{scale}p"


class SemanticVideo:
    """One video file and the frame descriptions of its latest successful analysis."""

    def __init__(
        self,
        video_path: str | Path,
        vision_client: VisionClient,
        *,
        extractor: FrameExtractor | None = None,
        reporter: Reporter | None = None,
        scratch_root: Path = SCRATCH_ROOT,
    ) -> None:
        path = Path(video_path)
        if not path.exists():
            raise FileNotFoundError(f"Video file not found: {video_path}")
        if vision_client is None:
            raise ValueError("A vision client is required")
        self.video_path = str(video_path)
        self._client = vision_client
        self._extractor = extractor or FFmpegFrameExtractor()
        self._reporter = reporter or Reporter(enabled=False)
        self._scratch_root = Path(scratch_root)
        self._scratch_dirs: set[Path] = set()
        self._state = VideoAnalysisState(video_path=self.video_path)

    def __repr__(self) -> str:
        return f"SemanticVideo({self.video_path!r}, frames={len(self._state.frames)})"

    @property
    def state(self) -> VideoAnalysisState:
        return self._state

    async def analyze(
        self,
        num_partitions: int = DEFAULT_NUM_PARTITIONS,
        prompt: Optional[str] = None,
        quality: int = DEFAULT_QUALITY,
        scale: int = DEFAULT_SCALE,
        model: str = DEFAULT_MODEL,
        max_frame_concurrency: int = DEFAULT_MAX_FRAME_CONCURRENCY,
        max_extraction_concurrency: int | None = None,
    ) -> list[FrameRecord]:
        """Extract ``num_partitions`` frames, describe each one and commit the result.

        Any frame failure fails the whole call with :class:`FrameProcessingError`; the
        previously committed frames and token counts are left as they were. Scratch files
        are removed whether the run succeeds or not.
        """
        if num_partitions < 0:
            raise ValueError(f"num_partitions must be ≥ 0, got {num_partitions}")
        frame_limit = clamp_concurrency(max_frame_concurrency)
        extraction_limit = clamp_concurrency(max_extraction_concurrency, default=DEFAULT_MAX_FRAME_CONCURRENCY)
        instruction = prompt or DEFAULT_PROMPT

        scratch = unique_scratch_dir(self._scratch_root, self.video_path)
        self._scratch_dirs.add(scratch)
        try:
            try:
                duration = await self._extractor.probe_duration(self.video_path)
            except ExtractionError as exc:
                raise VideoAnalysisError(
                    f"Failed to analyze video {self.video_path}: {exc}", video_path=self.video_path
                ) from exc

            timestamps = frame_timestamps(duration, num_partitions)
            images: list[bytes] = []
            analyses: list[FrameAnalysis] = []
            if timestamps:
                ensure_dir(scratch)
                self._reporter.log_frame_extraction(len(timestamps), quality, _resolution_label(scale))
                images = await self._extract_frames(
                    scratch, timestamps, quality=quality, scale=scale, limit=extraction_limit
                )
                self._reporter.log_ai_analysis(len(images), model)
                analyses = await self._analyze_frames(
                    images, timestamps, prompt=instruction, model=model, limit=frame_limit
                )

            frames = [
                FrameRecord(
                    frame_number=index + 1,
                    timestamp=timestamps[index],
                    description=analysis.description,
                    image_data=images[index],
                )
                for index, analysis in enumerate(analyses)
            ]
            self._state = VideoAnalysisState(
                video_path=self.video_path,
                duration_seconds=duration,
                frames=frames,
                input_tokens=sum(a.input_tokens for a in analyses),
                output_tokens=sum(a.output_tokens for a in analyses),
                model=model,
            )
            logger.info(
                "Analyzed %d frames of %s (%d input / %d output tokens)",
                len(frames),
                self.video_path,
                self._state.input_tokens,
                self._state.output_tokens,
            )
            return list(frames)
        finally:
            self._release(scratch)

    async def _extract_frames(
        self, scratch: Path, timestamps: list[float], *, quality: int, scale: int, limit: int
    ) -> list[bytes]:
        def _factory(index: int, timestamp: float):
            output = scratch / FRAME_FILENAME_TEMPLATE.format(index + 1)
            return lambda: self._extractor.extract_frame(
                self.video_path, timestamp, output, quality=quality, scale=scale
            )

        settled = await run_bounded([_factory(i, ts) for i, ts in enumerate(timestamps)], limit)
        self._raise_first_failure(settled, stage="extraction")
        return [item.value for item in settled]

    async def _analyze_frames(
        self,
        images: list[bytes],
        timestamps: list[float],
        *,
        prompt: str,
        model: str,
        limit: int,
    ) -> list[FrameAnalysis]:
        def _factory(index: int, image: bytes):
            metadata = {
                "video_path": self.video_path,
                "frame_number": index + 1,
                "timestamp": timestamps[index],
            }
            return lambda: self._client.analyze_image(image, prompt=prompt, model=model, metadata=metadata)

        settled = await run_bounded([_factory(i, image) for i, image in enumerate(images)], limit)
        self._raise_first_failure(settled, stage="analysis")
        return [item.value for item in settled]

    def _raise_first_failure(self, settled: list[Settled], *, stage: str) -> None:
        for item in settled:
            if item.ok:
                continue
            failures = sum(1 for s in settled if not s.ok)
            if failures > 1:
                logger.debug("%d frames of %s failed during %s", failures, self.video_path, stage)
            raise FrameProcessingError(
                video_path=self.video_path,
                frame_number=item.index + 1,
                stage=stage,
                reason=str(item.error),
            ) from item.error

    def get_frames(self) -> list[FrameRecord]:
        return list(self._state.frames)

    def get_frame(self, frame_number: int) -> FrameRecord | None:
        for frame in self._state.frames:
            if frame.frame_number == frame_number:
                return frame
        return None

    def get_duration(self) -> float:
        return self._state.duration_seconds

    def get_frames_count(self) -> int:
        return len(self._state.frames)

    def get_tokens_used(self) -> TokensUsed:
        return TokensUsed(
            input_tokens=self._state.input_tokens,
            output_tokens=self._state.output_tokens,
            model=self._state.model,
        )

    def get_frame_image_base64(self, frame_number: int) -> str | None:
        frame = self.get_frame(frame_number)
        return frame.image_base64() if frame else None

    def get_frame_image_data_url(self, frame_number: int) -> str | None:
        frame = self.get_frame(frame_number)
        return frame.image_data_url() if frame else None

    def save_frame(self, frame_number: int, output_path: str | Path) -> Path:
        frame = self.get_frame(frame_number)
        if frame is None:
            raise KeyError(f"Frame {frame_number} not found")
        target = Path(output_path)
        ensure_dir(target.parent)
        target.write_bytes(frame.image_data)
        return target

    def _release(self, scratch: Path) -> None:
        shutil.rmtree(scratch, ignore_errors=True)
        self._scratch_dirs.discard(scratch)

    def cleanup(self) -> None:
        """Remove scratch directories left by in-progress or interrupted runs."""
        for scratch in list(self._scratch_dirs):
            self._release(scratch)
