from __future__ import annotations

from pathlib import Path
from typing import Mapping, Protocol

from .types import FrameAnalysis


class FrameExtractor(Protocol):
    async def probe_duration(self, video_path: str | Path) -> float:
        ...

    async def extract_frame(
        self,
        video_path: str | Path,
        timestamp: float,
        output_path: Path,
        *,
        quality: int,
        scale: int,
    ) -> bytes:
        ...


class VisionClient(Protocol):
    async def analyze_image(
        self,
        image: bytes,
        *,
        prompt: str,
        model: str,
        metadata: Mapping[str, object] | None = None,
    ) -> FrameAnalysis:
        ...
