"""Token and cost estimation for frame analysis requests.

Image tokens follow the published patch-based vision cost model:

1. Count 32x32 patches covering the image: ``ceil(w/32) * ceil(h/32)``.
2. When that reaches 1536 patches the image is conceptually downscaled so it fits within
   1536 patches, with the shrink factor nudged down so the patch grid lands on whole
   patches along the tighter side.
3. ``ceil(patches * model_multiplier + 85)``.

Text tokens come from tiktoken when it knows the model, otherwise one token per four
characters. Neither path raises; the heuristic is a valid result, not an error.
"""

from __future__ import annotations

import io
import logging
import math
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Literal, Sequence

import PIL.Image
import tiktoken

from .constants import (
    ASSUMED_OUTPUT_TOKENS,
    CHARS_PER_TOKEN,
    DEFAULT_MODEL,
    IMAGE_BASE_TOKENS,
    MAX_PATCHES,
    PATCH_SIZE,
)
from .models import DEFAULT_PRICING, PricingTable

logger = logging.getLogger(__name__)

# Absorbs float noise when a scaled side lands exactly on a patch boundary.
_PATCH_EPSILON = 1e-9

ImageSource = str | Path | bytes


@dataclass(frozen=True)
class TokenEstimate:
    text_tokens: int
    image_tokens: int
    total_tokens: int
    estimated_cost: float
    model: str

    def scaled(self, factor: int) -> "TokenEstimate":
        return TokenEstimate(
            text_tokens=self.text_tokens * factor,
            image_tokens=self.image_tokens * factor,
            total_tokens=self.total_tokens * factor,
            estimated_cost=self.estimated_cost * factor,
            model=self.model,
        )

    def to_dict(self) -> dict[str, object]:
        return {
            "text_tokens": self.text_tokens,
            "image_tokens": self.image_tokens,
            "total_tokens": self.total_tokens,
            "estimated_cost": self.estimated_cost,
            "model": self.model,
        }


@dataclass(frozen=True)
class FramesTokenEstimate:
    per_frame: TokenEstimate
    total: TokenEstimate
    frame_count: int


@dataclass(frozen=True)
class TextTokenCount:
    tokens: int
    method: Literal["tiktoken", "heuristic"]


@lru_cache(maxsize=32)
def _encoding_for_model(model: str) -> tiktoken.Encoding:
    return tiktoken.encoding_for_model(model)


def measure_text_tokens(text: str, model: str = DEFAULT_MODEL) -> TextTokenCount:
    try:
        encoding = _encoding_for_model(model)
        return TextTokenCount(tokens=len(encoding.encode(text)), method="tiktoken")
    except Exception as exc:  # noqa: BLE001
        logger.debug("tiktoken unavailable for %s (%s); using character heuristic", model, exc)
        return TextTokenCount(tokens=math.ceil(len(text) / CHARS_PER_TOKEN), method="heuristic")


def count_text_tokens(text: str, model: str = DEFAULT_MODEL) -> int:
    return measure_text_tokens(text, model).tokens


def _patches_along(length: float) -> int:
    return math.ceil(length / PATCH_SIZE - _PATCH_EPSILON)


def image_patch_count(width: int, height: int) -> int:
    """Number of 32px patches billed for a *width* x *height* image."""
    if width <= 0 or height <= 0:
        return 0
    patches = _patches_along(width) * _patches_along(height)
    if patches < MAX_PATCHES:
        return patches

    shrink = math.sqrt(PATCH_SIZE**2 * MAX_PATCHES / (width * height))
    width_units = width * shrink / PATCH_SIZE
    height_units = height * shrink / PATCH_SIZE
    shrink *= min(math.floor(width_units) / width_units, math.floor(height_units) / height_units)
    return _patches_along(width * shrink) * _patches_along(height * shrink)


def image_tokens_for_dimensions(width: int, height: int, multiplier: float) -> int:
    return math.ceil(image_patch_count(width, height) * multiplier + IMAGE_BASE_TOKENS)


def image_dimensions(image: ImageSource) -> tuple[int, int]:
    try:
        if isinstance(image, (bytes, bytearray)):
            with PIL.Image.open(io.BytesIO(image)) as img:
                return img.size
        with PIL.Image.open(Path(image)) as img:
            return img.size
    except (OSError, PIL.UnidentifiedImageError) as exc:
        raise ValueError(f"Failed to process image for token count: {exc}") from exc


def count_image_tokens(image: ImageSource, model: str = DEFAULT_MODEL, *, pricing: PricingTable = DEFAULT_PRICING) -> int:
    width, height = image_dimensions(image)
    return image_tokens_for_dimensions(width, height, pricing.get_image_token_multiplier(model))


def estimate_frame_tokens(
    image: ImageSource,
    prompt: str,
    model: str = DEFAULT_MODEL,
    *,
    pricing: PricingTable = DEFAULT_PRICING,
    output_tokens: int = ASSUMED_OUTPUT_TOKENS,
) -> TokenEstimate:
    text_tokens = count_text_tokens(prompt, model)
    image_tokens = count_image_tokens(image, model, pricing=pricing)
    total_tokens = text_tokens + image_tokens
    return TokenEstimate(
        text_tokens=text_tokens,
        image_tokens=image_tokens,
        total_tokens=total_tokens,
        estimated_cost=pricing.calculate_cost(total_tokens, output_tokens, model),
        model=model,
    )


def estimate_frames_tokens(
    images: Sequence[ImageSource],
    prompt: str,
    model: str = DEFAULT_MODEL,
    *,
    pricing: PricingTable = DEFAULT_PRICING,
) -> FramesTokenEstimate:
    """Measure the first image and scale by ``len(images)``."""
    if not images:
        raise ValueError("At least one image is required for estimation")
    per_frame = estimate_frame_tokens(images[0], prompt, model, pricing=pricing)
    return FramesTokenEstimate(per_frame=per_frame, total=per_frame.scaled(len(images)), frame_count=len(images))
