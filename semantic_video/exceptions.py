"""Exception hierarchy for semantic_video."""

# Environment variable names per provider
API_KEY_ENV_VARS: dict[str, str] = {
    "openai": "OPENAI_API_KEY",
    "gemini": "GEMINI_API_KEY",
}


class SemanticVideoError(Exception):
    """Base exception for semantic_video errors."""

    pass


class MissingAPIKeyError(SemanticVideoError, ValueError):
    """Raised when a required API key is not found."""

    def __init__(self, provider: str):
        env_var = API_KEY_ENV_VARS.get(provider, f"{provider.upper()}_API_KEY")
        super().__init__(
            f"API key for '{provider}' not found. Set the {env_var} environment variable or pass api_key parameter."
        )
        self.provider = provider


class ConfigError(SemanticVideoError, ValueError):
    """Raised when there's an error loading or parsing configuration."""

    pass


class ExtractionError(SemanticVideoError, RuntimeError):
    """Raised when ffmpeg/ffprobe cannot produce a duration or a frame."""

    pass


class InferenceError(SemanticVideoError, RuntimeError):
    """Raised when the vision model request fails."""

    def __init__(self, message: str, *, model: str | None = None):
        super().__init__(message)
        self.model = model


class VideoAnalysisError(SemanticVideoError, RuntimeError):
    """Raised when a video pipeline run fails as a whole."""

    def __init__(self, message: str, *, video_path: str | None = None):
        super().__init__(message)
        self.video_path = video_path


class FrameProcessingError(VideoAnalysisError):
    """Raised when one frame fails; the owning video fails with it."""

    def __init__(self, *, video_path: str, frame_number: int, stage: str, reason: str):
        super().__init__(
            f"Failed to analyze video {video_path}: frame {frame_number} failed during {stage}: {reason}",
            video_path=video_path,
        )
        self.frame_number = frame_number
        self.stage = stage
        self.reason = reason
