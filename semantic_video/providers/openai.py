from __future__ import annotations

import base64
import logging
from datetime import datetime, timezone
from typing import Any, Mapping, Optional

import httpx
from openai import AsyncOpenAI

from ..core.types import FrameAnalysis
from ..exceptions import InferenceError, MissingAPIKeyError
from ..rate_limiter import RequestBucket
from ..telemetry import RequestEvent, RunMonitor

logger = logging.getLogger(__name__)


class OpenAIVisionClient:
    """Describes single frames with an OpenAI chat-completions vision model."""

    def __init__(
        self,
        *,
        api_key: str | None = None,
        client: Optional[object] = None,
        monitor: RunMonitor | None = None,
        limiter: RequestBucket | None = None,
        detail: str = "high",
        mime_type: str = "image/jpeg",
    ) -> None:
        if client is not None:
            self._client = client
        else:
            if not api_key:
                raise MissingAPIKeyError("openai")
            self._client = AsyncOpenAI(
                api_key=api_key,
                timeout=httpx.Timeout(timeout=600.0, connect=30.0),
            )
        self._monitor = monitor
        self._limiter = limiter
        self._detail = detail
        self._mime_type = mime_type

    def _build_messages(self, image: bytes, prompt: str) -> list[dict[str, Any]]:
        encoded = base64.b64encode(image).decode("ascii")
        return [
            {
                "role": "user",
                "content": [
                    {"type": "text", "text": prompt},
                    {
                        "type": "image_url",
                        "image_url": {
                            "url": f"data:{self._mime_type};base64,{encoded}",
                            "detail": self._detail,
                        },
                    },
                ],
            }
        ]

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

        started = datetime.now(timezone.utc)
        try:
            response = await self._client.chat.completions.create(
                model=model,
                messages=self._build_messages(image, prompt),
            )
        except Exception as exc:  # noqa: BLE001
            raise InferenceError(f"{model} request failed: {exc}", model=model) from exc
        finished = datetime.now(timezone.utc)

        choices = getattr(response, "choices", None) or []
        if not choices:
            raise InferenceError(f"{model} returned no choices", model=model)
        message = getattr(choices[0], "message", None)
        content = getattr(message, "content", None) or ""

        input_tokens, output_tokens = self._extract_usage_counts(getattr(response, "usage", None))
        self._record_event(
            model=model,
            started=started,
            finished=finished,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            metadata=metadata,
        )
        return FrameAnalysis(description=content, input_tokens=input_tokens, output_tokens=output_tokens)

    @staticmethod
    def _extract_usage_counts(usage: Any) -> tuple[int, int]:
        if usage is None:
            return 0, 0
        if isinstance(usage, dict):
            prompt = usage.get("prompt_tokens")
            completion = usage.get("completion_tokens")
        else:
            prompt = getattr(usage, "prompt_tokens", None)
            completion = getattr(usage, "completion_tokens", None)
        return int(prompt or 0), int(completion or 0)

    def _record_event(
        self,
        *,
        model: str,
        started: datetime,
        finished: datetime,
        input_tokens: int,
        output_tokens: int,
        metadata: Mapping[str, object] | None,
    ) -> None:
        if self._monitor is None:
            return
        event = RequestEvent(
            model=model,
            started_at=started,
            finished_at=finished,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            metadata=dict(metadata or {}),
        )
        self._monitor.record(event)
        logger.debug("openai_request %s", event.to_dict())
