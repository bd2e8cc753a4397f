from pathlib import Path
from typing import Final

# Models
GPT_5_NANO: Final = "gpt-5-nano"
GPT_5_MINI: Final = "gpt-5-mini"
GEMINI_2_5_FLASH: Final = "gemini-2.5-flash"
GEMINI_2_5_FLASH_LITE: Final = "gemini-2.5-flash-lite"
GEMINI_2_5_PRO: Final = "gemini-2.5-pro"

DEFAULT_MODEL: Final = GPT_5_NANO
DEFAULT_PROVIDER: Final = "openai"
PROVIDERS: Final = ("openai", "gemini")

DEFAULT_PROMPT: Final = (
    "Describe the image using concise, comma-separated semantic keywords only, no sentences, "
    "no filler, focus on objects, actions, setting, style, and notable attributes, "
    "optimize for efficient semantic search."
)

# Frame extraction
DEFAULT_NUM_PARTITIONS: Final = 10
DEFAULT_QUALITY: Final = 10  # ffmpeg -q:v, 2 (best) .. 31 (worst)
DEFAULT_SCALE: Final = 720  # output height in pixels, -1 keeps the original resolution
ORIGINAL_SCALE: Final = -1
ESTIMATE_SAMPLE_SECONDS: Final = 1.0

# Concurrency
DEFAULT_MAX_VIDEO_CONCURRENCY: Final = 3
DEFAULT_MAX_FRAME_CONCURRENCY: Final = 5

# Token estimation
PATCH_SIZE: Final = 32
MAX_PATCHES: Final = 1536
IMAGE_BASE_TOKENS: Final = 85
CHARS_PER_TOKEN: Final = 4
ASSUMED_OUTPUT_TOKENS: Final = 100

# Scratch locations
SCRATCH_ROOT = Path(".semantic-video-frames-temp")
ESTIMATE_SCRATCH_ROOT = Path(".semantic-video-estimate-temp")
FRAME_FILENAME_TEMPLATE: Final = "frame_{:04d}.jpg"

# Rate limiter window
RATE_LIMIT_WINDOW_SEC: Final = 60

# CLI
VIDEO_EXTENSIONS: Final = frozenset({".mp4", ".mov", ".m4v", ".mkv", ".avi", ".webm"})
DEFAULT_SUMMARY_PATH = Path("semantic-video-run-summary.json")
