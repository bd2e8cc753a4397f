from .batch import BatchOrchestrator, BatchState, VideoOutcome
from .client import SemanticVideoClient
from .concurrency import Settled, run_bounded
from .config import AppConfig
from .core.types import FrameRecord, TokensUsed, VideoConfig
from .estimator import MultiVideoTokenEstimate, TokenEstimator, VideoTokenEstimate
from .exceptions import (
    ConfigError,
    ExtractionError,
    FrameProcessingError,
    InferenceError,
    MissingAPIKeyError,
    SemanticVideoError,
    VideoAnalysisError,
)
from .extractor import FFmpegFrameExtractor
from .models import PricingTable, calculate_cost, get_model_config, get_models_by_cost, get_supported_models
from .providers import GeminiVisionClient, OpenAIVisionClient
from .registry import VideoRegistry
from .reporting import Reporter
from .stats import ClientStats, StatsTracker
from .token_estimate import TokenEstimate, count_image_tokens, count_text_tokens, estimate_frames_tokens
from .video import SemanticVideo

__all__ = [
    "AppConfig",
    "BatchOrchestrator",
    "BatchState",
    "ClientStats",
    "ConfigError",
    "ExtractionError",
    "FFmpegFrameExtractor",
    "FrameProcessingError",
    "FrameRecord",
    "GeminiVisionClient",
    "InferenceError",
    "MissingAPIKeyError",
    "MultiVideoTokenEstimate",
    "OpenAIVisionClient",
    "PricingTable",
    "Reporter",
    "SemanticVideo",
    "SemanticVideoClient",
    "SemanticVideoError",
    "Settled",
    "StatsTracker",
    "TokenEstimate",
    "TokenEstimator",
    "TokensUsed",
    "VideoAnalysisError",
    "VideoConfig",
    "VideoOutcome",
    "VideoRegistry",
    "VideoTokenEstimate",
    "calculate_cost",
    "count_image_tokens",
    "count_text_tokens",
    "estimate_frames_tokens",
    "get_model_config",
    "get_models_by_cost",
    "get_supported_models",
    "run_bounded",
]
