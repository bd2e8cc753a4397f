from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Dict, Iterable

from .constants import DEFAULT_MODEL
from .models import DEFAULT_PRICING, PricingTable
from .video import SemanticVideo


@dataclass(frozen=True)
class ClientStats:
    total_videos: int
    total_frames: int
    total_duration: float
    average_frames_per_video: float
    total_tokens_used: int
    total_cost_incurred: float
    total_api_calls: int
    average_tokens_per_video: float
    average_tokens_per_frame: float

    def to_dict(self) -> Dict[str, object]:
        return asdict(self)


class StatsTracker:
    """Accumulates token, cost and request counts across analyses."""

    def __init__(self, pricing: PricingTable | None = None) -> None:
        self._pricing = pricing or DEFAULT_PRICING
        self._tokens = 0
        self._cost = 0.0
        self._api_calls = 0

    def record_analysis(
        self,
        input_tokens: int,
        output_tokens: int,
        frame_count: int,
        model: str = DEFAULT_MODEL,
    ) -> None:
        self._tokens += input_tokens + output_tokens
        self._api_calls += frame_count
        self._cost += self._pricing.calculate_cost(input_tokens, output_tokens, model)

    def get_stats(self, videos: Iterable[SemanticVideo]) -> ClientStats:
        total_videos = 0
        total_frames = 0
        total_duration = 0.0
        for video in videos:
            total_videos += 1
            total_frames += video.get_frames_count()
            total_duration += video.get_duration()

        return ClientStats(
            total_videos=total_videos,
            total_frames=total_frames,
            total_duration=total_duration,
            average_frames_per_video=total_frames / total_videos if total_videos else 0.0,
            total_tokens_used=self._tokens,
            total_cost_incurred=self._cost,
            total_api_calls=self._api_calls,
            average_tokens_per_video=self._tokens / total_videos if total_videos else 0.0,
            average_tokens_per_frame=self._tokens / total_frames if total_frames else 0.0,
        )

    @property
    def tokens(self) -> int:
        return self._tokens

    @property
    def cost(self) -> float:
        return self._cost

    @property
    def api_calls(self) -> int:
        return self._api_calls

    def reset(self) -> None:
        self._tokens = 0
        self._cost = 0.0
        self._api_calls = 0
