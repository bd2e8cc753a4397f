from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path

from .constants import DEFAULT_QUALITY, DEFAULT_SCALE, ORIGINAL_SCALE
from .exceptions import ExtractionError

logger = logging.getLogger(__name__)


class FFmpegFrameExtractor:
    """Frame extractor backed by the ffprobe/ffmpeg executables."""

    def __init__(self, *, ffmpeg: str = "ffmpeg", ffprobe: str = "ffprobe") -> None:
        self._ffmpeg = ffmpeg
        self._ffprobe = ffprobe

    async def probe_duration(self, video_path: str | Path) -> float:
        """Return the container duration in seconds (0.0 when unknown)."""
        path = Path(video_path)
        stdout = await self._run(
            [
                self._ffprobe,
                "-v",
                "error",
                "-print_format",
                "json",
                "-show_streams",
                "-show_format",
                str(path),
            ],
            failure=f"Failed to get video duration for {path}",
        )
        try:
            data = json.loads(stdout or "{}")
        except json.JSONDecodeError as exc:
            raise ExtractionError(f"ffprobe returned unreadable metadata for {path}: {exc}") from exc

        duration = _safe_float((data.get("format") or {}).get("duration"))
        if duration is None:
            for stream in data.get("streams") or []:
                duration = _safe_float(stream.get("duration"))
                if duration is not None:
                    break
        return max(duration or 0.0, 0.0)

    async def extract_frame(
        self,
        video_path: str | Path,
        timestamp: float,
        output_path: Path,
        *,
        quality: int = DEFAULT_QUALITY,
        scale: int = DEFAULT_SCALE,
    ) -> bytes:
        """Write the frame at *timestamp* to *output_path* as JPEG and return its bytes."""
        output_path = Path(output_path)
        cmd = [
            self._ffmpeg,
            "-y",
            "-ss",
            f"{max(timestamp, 0.0):.3f}",
            "-i",
            str(video_path),
            "-frames:v",
            "1",
            "-q:v",
            str(quality),
        ]
        if scale != ORIGINAL_SCALE:
            # Keep aspect ratio with an even width.
            cmd.extend(["-vf", f"scale=-2:{scale}"])
        cmd.append(str(output_path))

        await self._run(cmd, failure=f"Failed to extract frame at {timestamp:.3f}s")
        try:
            return await asyncio.to_thread(output_path.read_bytes)
        except FileNotFoundError as exc:
            raise ExtractionError(f"ffmpeg produced no frame at {timestamp:.3f}s for {video_path}") from exc

    async def _run(self, cmd: list[str], *, failure: str) -> str:
        logger.debug("running %s", " ".join(cmd))
        try:
            proc = await asyncio.create_subprocess_exec(
                *cmd,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except FileNotFoundError as exc:
            raise ExtractionError(f"{cmd[0]} executable not found; install ffmpeg to process videos.") from exc
        stdout, stderr = await proc.communicate()
        if proc.returncode != 0:
            message = (stderr or b"").decode("utf-8", errors="replace").strip()
            raise ExtractionError(f"{failure}: {message or f'exit status {proc.returncode}'}")
        return (stdout or b"").decode("utf-8", errors="replace")


def _safe_float(value, default: float | None = None) -> float | None:
    try:
        return float(value)
    except (TypeError, ValueError):
        return default
