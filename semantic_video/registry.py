from __future__ import annotations

from pathlib import Path
from typing import Callable, Dict, Iterator

from .video import SemanticVideo

VideoFactory = Callable[[str], SemanticVideo]


class VideoRegistry:
    """Maps video paths to their :class:`SemanticVideo` instances.

    Mutation only happens synchronously, so concurrent pipelines never observe a
    half-updated registry.
    """

    def __init__(self, factory: VideoFactory) -> None:
        self._factory = factory
        self._videos: Dict[str, SemanticVideo] = {}

    @staticmethod
    def _key(video_path: str | Path) -> str:
        return str(video_path)

    def create(self, video_path: str | Path) -> SemanticVideo:
        """Register a fresh instance, replacing any previous one for the same path."""
        key = self._key(video_path)
        video = self._factory(key)
        self._videos[key] = video
        return video

    def get(self, video_path: str | Path) -> SemanticVideo | None:
        return self._videos.get(self._key(video_path))

    def get_or_create(self, video_path: str | Path) -> SemanticVideo:
        existing = self.get(video_path)
        if existing is not None:
            return existing
        return self.create(video_path)

    def get_all(self) -> Dict[str, SemanticVideo]:
        return dict(self._videos)

    def remove(self, video_path: str | Path) -> bool:
        return self._videos.pop(self._key(video_path), None) is not None

    def clear(self) -> None:
        self._videos.clear()

    @property
    def count(self) -> int:
        return len(self._videos)

    def __len__(self) -> int:
        return len(self._videos)

    def __contains__(self, video_path: object) -> bool:
        return isinstance(video_path, (str, Path)) and self._key(video_path) in self._videos

    def __iter__(self) -> Iterator[SemanticVideo]:
        return iter(list(self._videos.values()))

    def for_each(self, callback: Callable[[SemanticVideo, str], None]) -> None:
        for path, video in list(self._videos.items()):
            callback(video, path)
