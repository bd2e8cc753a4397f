import asyncio
import io
from pathlib import Path

import PIL.Image
import pytest

from semantic_video import token_estimate
from semantic_video.core.types import FrameAnalysis
from semantic_video.exceptions import ExtractionError, InferenceError


def make_jpeg(width: int = 64, height: int = 36, color=(200, 30, 30)) -> bytes:
    buffer = io.BytesIO()
    PIL.Image.new("RGB", (width, height), color).save(buffer, format="JPEG")
    return buffer.getvalue()


class FakeEncoding:
    """Whitespace tokenizer standing in for a tiktoken encoding."""

    def encode(self, text: str) -> list[str]:
        return text.split()


class FakeExtractor:
    def __init__(
        self,
        duration: float = 10.0,
        *,
        width: int = 64,
        height: int = 36,
        delay: float = 0.0,
        fail_timestamps: set[float] | None = None,
        probe_error: Exception | None = None,
    ) -> None:
        self.duration = duration
        self.width = width
        self.height = height
        self.delay = delay
        self.fail_timestamps = set(fail_timestamps or ())
        self.probe_error = probe_error
        self.probed: list[str] = []
        self.extracted: list[tuple[float, Path, int, int]] = []
        self.active = 0
        self.max_active = 0

    async def probe_duration(self, video_path) -> float:
        self.probed.append(str(video_path))
        if self.probe_error is not None:
            raise self.probe_error
        return self.duration

    async def extract_frame(self, video_path, timestamp, output_path, *, quality, scale) -> bytes:
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            await asyncio.sleep(self.delay)
            self.extracted.append((timestamp, Path(output_path), quality, scale))
            if timestamp in self.fail_timestamps:
                raise ExtractionError(f"Failed to extract frame at {timestamp:.3f}s: boom")
            data = make_jpeg(self.width, self.height)
            Path(output_path).write_bytes(data)
            return data
        finally:
            self.active -= 1


class FakeVisionClient:
    def __init__(
        self,
        *,
        input_tokens: int = 100,
        output_tokens: int = 10,
        delays: dict[int, float] | None = None,
        fail_frames: set[int] | None = None,
        fail_videos: set[str] | None = None,
    ) -> None:
        self.input_tokens = input_tokens
        self.output_tokens = output_tokens
        self.delays = dict(delays or {})
        self.fail_frames = set(fail_frames or ())
        self.fail_videos = set(fail_videos or ())
        self.calls: list[dict] = []
        self.active = 0
        self.max_active = 0

    async def analyze_image(self, image, *, prompt, model, metadata=None) -> FrameAnalysis:
        metadata = dict(metadata or {})
        frame_number = int(metadata.get("frame_number", 0))
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            await asyncio.sleep(self.delays.get(frame_number, 0.0))
            self.calls.append({"prompt": prompt, "model": model, "metadata": metadata, "size": len(image)})
            if frame_number in self.fail_frames or metadata.get("video_path") in self.fail_videos:
                raise InferenceError(f"frame {frame_number} rejected", model=model)
            return FrameAnalysis(
                description=f"frame {frame_number}",
                input_tokens=self.input_tokens,
                output_tokens=self.output_tokens,
            )
        finally:
            self.active -= 1


@pytest.fixture(autouse=True)
def fake_tokenizer(monkeypatch):
    monkeypatch.setattr(token_estimate, "_encoding_for_model", lambda model: FakeEncoding())


@pytest.fixture
def extractor() -> FakeExtractor:
    return FakeExtractor()


@pytest.fixture
def vision_client() -> FakeVisionClient:
    return FakeVisionClient()


@pytest.fixture
def video_file(tmp_path) -> Path:
    path = tmp_path / "clip.mp4"
    path.write_bytes(b"\x00\x00\x00\x18ftypmp42")
    return path


@pytest.fixture
def make_video(tmp_path):
    def _make(name: str) -> Path:
        path = tmp_path / name
        path.write_bytes(b"\x00\x00\x00\x18ftypmp42")
        return path

    return _make
