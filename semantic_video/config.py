from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional
import os

import yaml

from .constants import (
    DEFAULT_MAX_FRAME_CONCURRENCY,
    DEFAULT_MAX_VIDEO_CONCURRENCY,
    DEFAULT_MODEL,
    DEFAULT_NUM_PARTITIONS,
    DEFAULT_PROVIDER,
    DEFAULT_QUALITY,
    DEFAULT_SCALE,
    ORIGINAL_SCALE,
    PROVIDERS,
    SCRATCH_ROOT,
)
from .exceptions import API_KEY_ENV_VARS, ConfigError, MissingAPIKeyError

CONFIG_FILENAMES = ("semantic-video.yaml", "semantic-video.yml")


def _as_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if value is None:
        return False
    if isinstance(value, (int, float)):
        return bool(value)
    if isinstance(value, str):
        normalized = value.strip().lower()
        return normalized in {"1", "true", "yes", "on"}
    return bool(value)


def _as_int(value: Any, *, minimum: int | None = None, name: str = "value") -> int | None:
    if value is None or value == "":
        return None
    try:
        parsed = int(value)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"Expected integer for {name}, got {value!r}") from exc
    if minimum is not None and parsed < minimum:
        raise ConfigError(f"Expected {name} ≥ {minimum}, got {parsed}")
    return parsed


def _clamp_workers(value: Any, default: int, name: str) -> int:
    parsed = _as_int(value, name=name)
    if parsed is None:
        return default
    return max(parsed, 1)


def _coerce_path(value: Any) -> Path | None:
    if value in {None, "", False}:
        return None
    return Path(str(value)).expanduser()


@dataclass(frozen=True)
class AppConfig:
    api_key: Optional[str]
    provider: str = DEFAULT_PROVIDER
    default_model: str = DEFAULT_MODEL
    num_partitions: int = DEFAULT_NUM_PARTITIONS
    quality: int = DEFAULT_QUALITY
    scale: int = DEFAULT_SCALE
    prompt: Optional[str] = None
    max_video_concurrency: int = DEFAULT_MAX_VIDEO_CONCURRENCY
    max_frame_concurrency: int = DEFAULT_MAX_FRAME_CONCURRENCY
    requests_per_minute: int | None = None
    pricing_file: Path | None = None
    scratch_dir: Path = SCRATCH_ROOT
    report_enabled: bool = True
    report_level: str = "normal"
    config_path: Path | None = None

    @staticmethod
    def from_sources(config_path: Path | None = None, *, require_api_key: bool = True) -> "AppConfig":
        env_config = os.getenv("SEMANTIC_VIDEO_CONFIG")
        candidates: list[Path] = []
        if config_path is not None:
            candidates.append(Path(config_path).expanduser())
        elif env_config:
            candidates.append(Path(env_config).expanduser())
        else:
            candidates.extend(Path(name) for name in CONFIG_FILENAMES)

        resolved_config: Path | None = None
        config_data: dict[str, Any] = {}
        for candidate in candidates:
            if candidate.exists():
                resolved_config = candidate
                try:
                    config_data = yaml.safe_load(candidate.read_text()) or {}
                except yaml.YAMLError as exc:
                    raise ConfigError(f"Failed to parse configuration file {candidate}: {exc}") from exc
                break

        if config_path is not None and resolved_config is None:
            raise FileNotFoundError(f"Configuration file not found: {config_path}")
        if not isinstance(config_data, dict):
            raise ConfigError(f"Configuration file {resolved_config} must contain a mapping")

        defaults_cfg = config_data.get("defaults") or {}
        analysis_cfg = config_data.get("analysis") or {}
        concurrency_cfg = config_data.get("concurrency") or {}
        report_cfg = config_data.get("report") or {}

        provider = str(defaults_cfg.get("provider", DEFAULT_PROVIDER)).strip().lower()
        default_model = str(defaults_cfg.get("model", DEFAULT_MODEL))

        num_partitions = _as_int(analysis_cfg.get("frames"), minimum=0, name="analysis.frames")
        quality = _as_int(analysis_cfg.get("quality"), minimum=1, name="analysis.quality")
        scale = _as_int(analysis_cfg.get("scale"), minimum=ORIGINAL_SCALE, name="analysis.scale")
        prompt = analysis_cfg.get("prompt") or None

        max_video = _clamp_workers(concurrency_cfg.get("videos"), DEFAULT_MAX_VIDEO_CONCURRENCY, "concurrency.videos")
        max_frames = _clamp_workers(concurrency_cfg.get("frames"), DEFAULT_MAX_FRAME_CONCURRENCY, "concurrency.frames")
        requests_per_minute = _as_int(
            concurrency_cfg.get("requests_per_minute"), minimum=1, name="concurrency.requests_per_minute"
        )

        pricing_file = _coerce_path(config_data.get("pricing_file"))
        scratch_dir = _coerce_path(config_data.get("scratch_dir")) or SCRATCH_ROOT
        report_enabled = _as_bool(report_cfg.get("enabled", True))
        report_level = str(report_cfg.get("level", "normal")).strip().lower()

        # Environment overrides
        provider = (os.getenv("SEMANTIC_VIDEO_PROVIDER") or provider).strip().lower()
        default_model = os.getenv("SEMANTIC_VIDEO_DEFAULT_MODEL") or default_model

        frames_env = os.getenv("SEMANTIC_VIDEO_FRAMES")
        if frames_env:
            num_partitions = _as_int(frames_env, minimum=0, name="SEMANTIC_VIDEO_FRAMES")

        max_video = _clamp_workers(
            os.getenv("SEMANTIC_VIDEO_MAX_VIDEO_CONCURRENCY"), max_video, "SEMANTIC_VIDEO_MAX_VIDEO_CONCURRENCY"
        )
        max_frames = _clamp_workers(
            os.getenv("SEMANTIC_VIDEO_MAX_FRAME_CONCURRENCY"), max_frames, "SEMANTIC_VIDEO_MAX_FRAME_CONCURRENCY"
        )

        rpm_env = os.getenv("SEMANTIC_VIDEO_REQUESTS_PER_MINUTE")
        if rpm_env:
            requests_per_minute = _as_int(rpm_env, minimum=1, name="SEMANTIC_VIDEO_REQUESTS_PER_MINUTE")

        pricing_env = os.getenv("SEMANTIC_VIDEO_PRICING_FILE")
        if pricing_env:
            pricing_file = Path(pricing_env).expanduser()

        scratch_env = os.getenv("SEMANTIC_VIDEO_SCRATCH_DIR")
        if scratch_env:
            scratch_dir = Path(scratch_env).expanduser()

        if provider not in PROVIDERS:
            raise ConfigError(f"Unknown provider {provider!r}; expected one of {', '.join(PROVIDERS)}")
        if report_level not in {"minimal", "normal", "verbose"}:
            report_level = "normal"

        api_key = os.getenv(API_KEY_ENV_VARS[provider])
        if not api_key and require_api_key:
            raise MissingAPIKeyError(provider)

        return AppConfig(
            api_key=api_key or None,
            provider=provider,
            default_model=default_model,
            num_partitions=DEFAULT_NUM_PARTITIONS if num_partitions is None else num_partitions,
            quality=quality or DEFAULT_QUALITY,
            scale=DEFAULT_SCALE if scale is None else scale,
            prompt=prompt,
            max_video_concurrency=max_video,
            max_frame_concurrency=max_frames,
            requests_per_minute=requests_per_minute,
            pricing_file=pricing_file,
            scratch_dir=scratch_dir,
            report_enabled=report_enabled,
            report_level=report_level,
            config_path=resolved_config,
        )
