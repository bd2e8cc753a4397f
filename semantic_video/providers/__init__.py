from __future__ import annotations

from ..constants import PROVIDERS
from ..exceptions import ConfigError
from ..rate_limiter import RequestBucket
from ..telemetry import RunMonitor
from .gemini import GeminiVisionClient
from .openai import OpenAIVisionClient

__all__ = ["GeminiVisionClient", "OpenAIVisionClient", "build_vision_client"]


def build_vision_client(
    provider: str,
    *,
    api_key: str | None,
    monitor: RunMonitor | None = None,
    requests_per_minute: int | None = None,
):
    """Construct the default vision client for *provider*."""
    limiter = RequestBucket(per_minute=requests_per_minute, label=provider) if requests_per_minute else None
    if provider == "openai":
        return OpenAIVisionClient(api_key=api_key, monitor=monitor, limiter=limiter)
    if provider == "gemini":
        return GeminiVisionClient(api_key=api_key, monitor=monitor, limiter=limiter)
    raise ConfigError(f"Unknown provider {provider!r}; expected one of {', '.join(PROVIDERS)}")
