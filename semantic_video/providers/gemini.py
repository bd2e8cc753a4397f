from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Mapping, Optional

from google import genai
from google.genai import types as genai_types

from ..core.types import FrameAnalysis
from ..exceptions import InferenceError, MissingAPIKeyError
from ..rate_limiter import RequestBucket
from ..telemetry import RequestEvent, RunMonitor

logger = logging.getLogger(__name__)


class GeminiVisionClient:
    """Wrapper around the google-genai async client for frame descriptions."""

    def __init__(
        self,
        *,
        api_key: str | None = None,
        client: Optional[object] = None,
        types_module: Optional[object] = None,
        monitor: RunMonitor | None = None,
        limiter: RequestBucket | None = None,
        mime_type: str = "image/jpeg",
    ) -> None:
        self._types = types_module or genai_types
        if client is not None:
            self._client = client
        else:
            if not api_key:
                raise MissingAPIKeyError("gemini")
            # Gemini SDK interprets timeout in milliseconds.
            self._client = genai.Client(
                api_key=api_key,
                http_options=self._types.HttpOptions(timeout=600_000),
            )
        self._monitor = monitor
        self._limiter = limiter
        self._mime_type = mime_type

    async def analyze_image(
        self,
        image: bytes,
        *,
        prompt: str,
        model: str,
        metadata: Mapping[str, object] | None = None,
    ) -> FrameAnalysis:
        if self._limiter is not None:
            await self._limiter.acquire()

        parts = [
            self._types.Part.from_bytes(data=image, mime_type=self._mime_type),
            self._types.Part(text=prompt),
        ]
        request = self._types.Content(role="user", parts=parts)

        started = datetime.now(timezone.utc)
        try:
            response = await self._client.aio.models.generate_content(model=model, contents=request)
        except Exception as exc:  # noqa: BLE001
            raise InferenceError(f"{model} request failed: {exc}", model=model) from exc
        finished = datetime.now(timezone.utc)

        text = getattr(response, "text", "") or ""
        input_tokens, output_tokens = self._extract_usage_counts(getattr(response, "usage_metadata", None))
        if self._monitor is not None:
            event = RequestEvent(
                model=model,
                started_at=started,
                finished_at=finished,
                input_tokens=input_tokens,
                output_tokens=output_tokens,
                metadata=dict(metadata or {}),
            )
            self._monitor.record(event)
            logger.debug("gemini_request %s", event.to_dict())
        return FrameAnalysis(description=text, input_tokens=input_tokens, output_tokens=output_tokens)

    @staticmethod
    def _extract_usage_counts(usage: Any) -> tuple[int, int]:
        if usage is None:
            return 0, 0
        if isinstance(usage, dict):
            prompt = usage.get("prompt_token_count")
            output = usage.get("candidates_token_count")
            total = usage.get("total_token_count")
        else:
            prompt = getattr(usage, "prompt_token_count", None)
            output = getattr(usage, "candidates_token_count", None)
            total = getattr(usage, "total_token_count", None)
        if output is None and total is not None and prompt is not None:
            output = int(total) - int(prompt)
        return int(prompt or 0), max(int(output or 0), 0)
