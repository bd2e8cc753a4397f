import asyncio
import json
import logging
import os
from dataclasses import replace
from pathlib import Path
from typing import Optional

import typer
from natsort import natsorted
from rich.logging import RichHandler

from .client import SemanticVideoClient
from .config import CONFIG_FILENAMES, AppConfig
from .constants import DEFAULT_SUMMARY_PATH, PROVIDERS, VIDEO_EXTENSIONS
from .core.types import VideoConfig
from .estimator import TokenEstimator
from .exceptions import API_KEY_ENV_VARS, SemanticVideoError
from .models import DEFAULT_PRICING, PricingTable
from .reporting import Reporter

_CONTEXT_SETTINGS = {"help_option_names": ["-h", "--help"], "allow_interspersed_args": True}

app = typer.Typer(
    add_completion=False,
    no_args_is_help=True,
    context_settings=_CONTEXT_SETTINGS,
    help="Describe video frames with vision models and track token cost.",
)

logger = logging.getLogger(__name__)


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(rich_tracebacks=verbose, show_path=verbose)],
        force=True,
    )


def _load_config(config_path: Path | None, *, require_api_key: bool) -> AppConfig:
    try:
        return AppConfig.from_sources(config_path, require_api_key=require_api_key)
    except (SemanticVideoError, FileNotFoundError) as exc:
        typer.echo(str(exc))
        raise typer.Exit(code=1) from exc


def _load_pricing(pricing_file: Path | None) -> PricingTable:
    if pricing_file is None:
        return DEFAULT_PRICING
    return PricingTable.from_yaml(pricing_file)


def expand_sources(sources: list[Path], *, recursive: bool = False) -> list[Path]:
    """Expand directories into their video files, naturally sorted."""
    videos: list[Path] = []
    for source in sources:
        path = source.expanduser()
        if path.is_dir():
            globber = path.rglob if recursive else path.glob
            videos.extend(
                natsorted(
                    (p for p in globber("*") if p.is_file() and p.suffix.lower() in VIDEO_EXTENSIONS),
                    key=str,
                )
            )
        else:
            videos.append(path)
    return videos


def _reporter(cfg: AppConfig, quiet: bool, level: str | None, pricing: PricingTable) -> Reporter:
    level = (level or cfg.report_level).strip().lower()
    if level not in {"minimal", "normal", "verbose"}:
        raise typer.BadParameter("Level must be one of minimal|normal|verbose", param_hint="--level")
    return Reporter(enabled=cfg.report_enabled and not quiet, level=level, pricing=pricing)  # type: ignore[arg-type]


@app.command(help="Extract frames from videos and describe each one with a vision model.")
def analyze(
    sources: list[Path] = typer.Argument(..., help="Video files or directories of videos."),
    frames: Optional[int] = typer.Option(None, "--frames", "-n", min=0, help="Frames to extract per video"),
    prompt: Optional[str] = typer.Option(None, "--prompt", "-p", help="Prompt sent with every frame"),
    quality: Optional[int] = typer.Option(None, "--quality", "-q", min=2, max=31, help="JPEG quality 2 (best)..31"),
    scale: Optional[int] = typer.Option(None, "--scale", "-s", help="Frame height in pixels; -1 keeps the original"),
    model: Optional[str] = typer.Option(None, "--model", "-m", help="Override the default model"),
    provider: Optional[str] = typer.Option(None, "--provider", help="openai|gemini"),
    recursive: bool = typer.Option(False, "--recursive/--no-recursive", help="Recurse into directories"),
    video_concurrency: Optional[int] = typer.Option(None, "--video-concurrency", min=1, help="Videos analyzed at once"),
    frame_concurrency: Optional[int] = typer.Option(None, "--frame-concurrency", min=1, help="Frames analyzed at once"),
    output_json: Optional[Path] = typer.Option(None, "--output-json", "-o", help="Write frame descriptions as JSON"),
    summary_path: Optional[Path] = typer.Option(None, "--summary-path", help="Where to write the run summary JSON"),
    include_images: bool = typer.Option(False, "--include-images", help="Embed base64 frames in --output-json"),
    config: Optional[Path] = typer.Option(None, "--config", "-c", help="Configuration file"),
    level: Optional[str] = typer.Option(None, "--level", help="minimal|normal|verbose (default: report.level)"),
    quiet: bool = typer.Option(False, "--quiet", help="Disable progress tables even when report.enabled is set"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),
):
    _configure_logging(verbose)
    cfg = _load_config(config, require_api_key=False)
    if provider is not None:
        provider = provider.strip().lower()
        if provider not in PROVIDERS:
            raise typer.BadParameter(f"Provider must be one of {'|'.join(PROVIDERS)}", param_hint="--provider")
        cfg = replace(cfg, provider=provider, api_key=os.getenv(API_KEY_ENV_VARS[provider]) or None)
    pricing = _load_pricing(cfg.pricing_file)
    videos = expand_sources(sources, recursive=recursive)
    if not videos:
        typer.echo("No videos found.")
        raise typer.Exit(code=1)

    try:
        client = SemanticVideoClient.from_config(
            cfg,
            pricing=pricing,
            reporter=_reporter(cfg, quiet, level, pricing),
            max_video_concurrency=video_concurrency or cfg.max_video_concurrency,
            max_frame_concurrency=frame_concurrency or cfg.max_frame_concurrency,
        )
    except SemanticVideoError as exc:
        typer.echo(str(exc))
        raise typer.Exit(code=1) from exc

    configs = [
        VideoConfig(
            video_path=str(video),
            num_partitions=cfg.num_partitions if frames is None else frames,
            prompt=prompt or cfg.prompt,
            quality=quality or cfg.quality,
            scale=cfg.scale if scale is None else scale,
            model=model or cfg.default_model,
        )
        for video in videos
    ]
    outcomes = asyncio.run(client.analyze_multiple_videos(configs))

    failed = [outcome for outcome in outcomes if not outcome.ok]
    for outcome in failed:
        typer.echo(f"Failed: {outcome.video_path}: {outcome.error}")

    if output_json is not None:
        target = output_json.expanduser()
        target.parent.mkdir(parents=True, exist_ok=True)
        payload = [outcome.to_dict(include_images=include_images) for outcome in outcomes]
        target.write_text(json.dumps(payload, indent=2))
        typer.echo(f"Wrote {target}")

    stats = client.get_stats()
    typer.echo(
        f"Videos: {stats.total_videos}  Frames: {stats.total_frames}  "
        f"Tokens: {stats.total_tokens_used:,}  Cost: ${stats.total_cost_incurred:.6f}"
    )
    path = summary_path or DEFAULT_SUMMARY_PATH
    try:
        client.monitor.flush_summary(to=path.expanduser(), pricing=pricing)
    except OSError as exc:
        typer.echo(f"Warning: failed to write summary to {path}: {exc}")

    if failed:
        raise typer.Exit(code=1)


@app.command(help="Estimate tokens and cost before analyzing.")
def estimate(
    sources: list[Path] = typer.Argument(..., help="Video files or directories of videos."),
    frames: Optional[int] = typer.Option(None, "--frames", "-n", min=0, help="Frames to extract per video"),
    prompt: Optional[str] = typer.Option(None, "--prompt", "-p", help="Prompt sent with every frame"),
    quality: Optional[int] = typer.Option(None, "--quality", "-q", min=2, max=31, help="JPEG quality 2 (best)..31"),
    scale: Optional[int] = typer.Option(None, "--scale", "-s", help="Frame height in pixels; -1 keeps the original"),
    model: Optional[str] = typer.Option(None, "--model", "-m", help="Model to price against"),
    recursive: bool = typer.Option(False, "--recursive/--no-recursive", help="Recurse into directories"),
    output_json: Optional[Path] = typer.Option(None, "--output-json", "-o", help="Write the estimate as JSON"),
    config: Optional[Path] = typer.Option(None, "--config", "-c", help="Configuration file"),
    level: Optional[str] = typer.Option(None, "--level", help="minimal|normal|verbose (default: report.level)"),
    quiet: bool = typer.Option(False, "--quiet", help="Hide estimate tables"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),
):
    _configure_logging(verbose)
    cfg = _load_config(config, require_api_key=False)
    pricing = _load_pricing(cfg.pricing_file)
    videos = expand_sources(sources, recursive=recursive)
    if not videos:
        typer.echo("No videos found.")
        raise typer.Exit(code=1)

    estimator = TokenEstimator(
        reporter=_reporter(cfg, quiet, level, pricing),
        pricing=pricing,
    )
    configs = [
        VideoConfig(
            video_path=str(video),
            num_partitions=cfg.num_partitions if frames is None else frames,
            prompt=prompt or cfg.prompt,
            quality=quality or cfg.quality,
            scale=cfg.scale if scale is None else scale,
            model=model or cfg.default_model,
        )
        for video in videos
    ]
    result = asyncio.run(estimator.estimate_multiple_videos(configs))

    typer.echo(f"Total tokens: {result.total_tokens:,}  Estimated cost: ${result.estimated_cost:.6f}")
    if output_json is not None:
        target = output_json.expanduser()
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(json.dumps(result.to_dict(), indent=2))
        typer.echo(f"Wrote {target}")
    if not result.videos:
        raise typer.Exit(code=1)


@app.command(help="List supported models and their pricing.")
def models(
    pricing_file: Optional[Path] = typer.Option(None, "--pricing-file", help="YAML pricing overrides"),
    as_json: bool = typer.Option(False, "--json", help="Print JSON instead of a table"),
):
    pricing = _load_pricing(pricing_file)
    if as_json:
        typer.echo(json.dumps([config.to_dict() for config in pricing.get_models_by_cost()], indent=2))
        return
    Reporter(enabled=True, pricing=pricing).display_models()


@app.command(help="Create a starter configuration file in the current directory.")
def init(
    path: Path = typer.Option(Path(CONFIG_FILENAMES[0]), "--path", help="Where to write the config file"),
    force: bool = typer.Option(False, "--force", help="Overwrite existing file"),
):
    target = path.expanduser()
    if target.exists() and not force:
        raise typer.BadParameter(f"{target} already exists; use --force to overwrite", param_hint="--force")

    content = """# semantic-video configuration
# API keys come from OPENAI_API_KEY or GEMINI_API_KEY.

defaults:
  provider: openai
  model: gpt-5-nano

analysis:
  frames: 10
  quality: 10
  scale: 720

concurrency:
  videos: 3
  frames: 5
  # requests_per_minute: 60

report:
  enabled: true
  level: normal

# pricing_file: pricing.yaml
"""
    target.write_text(content)
    typer.echo(f"Wrote {target}")


def main():
    app()


if __name__ == "__main__":
    main()
