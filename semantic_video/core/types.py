from __future__ import annotations

import base64
from dataclasses import dataclass, replace
from pathlib import Path

from ..constants import DEFAULT_MODEL, DEFAULT_NUM_PARTITIONS, DEFAULT_QUALITY, DEFAULT_SCALE


@dataclass(frozen=True)
class FrameRecord:
    frame_number: int
    timestamp: float
    description: str
    image_data: bytes

    def image_base64(self) -> str:
        return base64.b64encode(self.image_data).decode("ascii")

    def image_data_url(self, mime_type: str = "image/jpeg") -> str:
        return f"data:{mime_type};base64,{self.image_base64()}"

    def to_dict(self, *, include_image: bool = False) -> dict[str, object]:
        payload: dict[str, object] = {
            "frame_number": self.frame_number,
            "timestamp": self.timestamp,
            "description": self.description,
        }
        if include_image:
            payload["image_base64"] = self.image_base64()
        return payload


@dataclass(frozen=True)
class FrameAnalysis:
    """What the vision model returned for one image."""

    description: str
    input_tokens: int = 0
    output_tokens: int = 0


@dataclass(frozen=True)
class TokensUsed:
    input_tokens: int
    output_tokens: int
    model: str

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens


@dataclass(frozen=True)
class VideoConfig:
    """Per-video request used by batch analysis and multi-video estimation."""

    video_path: str
    num_partitions: int = DEFAULT_NUM_PARTITIONS
    prompt: str | None = None
    quality: int = DEFAULT_QUALITY
    scale: int = DEFAULT_SCALE
    model: str | None = None

    @classmethod
    def coerce(cls, value: "VideoConfig | str | Path | dict", default_model: str = DEFAULT_MODEL) -> "VideoConfig":
        """Build a config from a path, mapping or config; an unset ``model`` becomes *default_model*."""
        if isinstance(value, VideoConfig):
            config = value
        elif isinstance(value, (str, Path)):
            config = cls(video_path=str(value))
        elif isinstance(value, dict):
            data = {k: v for k, v in value.items() if v is not None}
            data["video_path"] = str(data["video_path"])
            config = cls(**data)
        else:
            raise TypeError(f"Cannot build a VideoConfig from {type(value).__name__}")
        if config.model is None:
            config = replace(config, model=default_model)
        return config
