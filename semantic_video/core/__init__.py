"""Core value types and collaborator contracts."""

from .types import FrameAnalysis, FrameRecord, TokensUsed, VideoConfig
from .contracts import FrameExtractor, VisionClient

__all__ = [
    "FrameAnalysis",
    "FrameRecord",
    "TokensUsed",
    "VideoConfig",
    "FrameExtractor",
    "VisionClient",
]
