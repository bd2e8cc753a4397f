from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Iterable, Literal

from rich.console import Console
from rich.progress_bar import ProgressBar
from rich.table import Table

from .models import DEFAULT_PRICING, PricingTable
from .utils import display_name, format_duration

ReportLevel = Literal["minimal", "normal", "verbose"]

_STATUS_PREFIX = {
    "pending": "[PENDING]",
    "processing": "[PROCESSING]",
    "completed": "[COMPLETED]",
    "failed": "[FAILED]",
}


@dataclass
class VideoProgress:
    video_path: str
    status: str
    stage: str
    progress: float = 0.0
    started: float = field(default_factory=time.monotonic)
    finished: float | None = None
    error: str | None = None


@dataclass
class _BatchRow:
    name: str
    elapsed: float
    model: str
    frames: int
    input_tokens: int
    output_tokens: int
    cost: float


class Reporter:
    """Console display for analysis batches and estimates.

    A disabled reporter (the default) turns every call into a no-op, so library code can
    report unconditionally. Diagnostic messages go through :mod:`logging` instead.
    """

    def __init__(
        self,
        *,
        enabled: bool = False,
        show_progress: bool = True,
        show_timestamps: bool = False,
        level: ReportLevel = "normal",
        show_estimate_tables: bool = True,
        console: Console | None = None,
        pricing: PricingTable | None = None,
    ) -> None:
        if level not in ("minimal", "normal", "verbose"):
            raise ValueError(f"Unknown report level {level!r}")
        self.enabled = enabled
        self.show_progress = show_progress
        self.show_timestamps = show_timestamps
        self.level: ReportLevel = level
        self.show_estimate_tables = show_estimate_tables
        self.console = console or Console(stderr=True)
        self.pricing = pricing or DEFAULT_PRICING
        self._progress: dict[str, VideoProgress] = {}
        self._rows: list[_BatchRow] = []
        self._total_videos = 0
        self._completed_videos = 0
        self._batch_started = time.monotonic()
        self._input_tokens = 0
        self._output_tokens = 0
        self._cost = 0.0

    def _print(self, message: str, *, style: str | None = None) -> None:
        if self.show_timestamps:
            message = f"[{time.strftime('%H:%M:%S')}] {message}"
        self.console.print(message, style=style, highlight=False, markup=False)

    def _banner(self, title: str, char: str = "═") -> None:
        self.console.print()
        self.console.rule(title, characters=char)

    def _overall_progress(self) -> None:
        if not self.show_progress or self._total_videos <= 0:
            return
        bar = ProgressBar(total=self._total_videos, completed=self._completed_videos, width=30)
        self.console.print(bar)
        self._print(f"Overall progress: {self._completed_videos}/{self._total_videos}")

    def error(self, message: str, error: BaseException | str | None = None) -> None:
        if not self.enabled:
            return
        detail = f": {error}" if error else ""
        self._print(f"[ERROR] {message}{detail}", style="bold red")

    def warn(self, message: str) -> None:
        if not self.enabled:
            return
        self._print(f"[WARN] {message}", style="yellow")

    def init_batch(self, video_count: int) -> None:
        if not self.enabled:
            return
        self.reset()
        self._total_videos = video_count
        self._batch_started = time.monotonic()
        self._input_tokens = 0
        self._output_tokens = 0
        self._cost = 0.0
        self._rows = []
        if self.level == "minimal":
            return
        self._banner("[START] VIDEO ANALYSIS BATCH")
        table = Table("Total Videos", "Status")
        table.add_row(str(video_count), "Initializing")
        self.console.print(table)

    def update_video(
        self,
        video_path: str,
        status: str,
        stage: str,
        progress: float = 0.0,
        error: str | None = None,
    ) -> None:
        if not self.enabled:
            return
        existing = self._progress.get(video_path)
        entry = VideoProgress(
            video_path=video_path,
            status=status,
            stage=stage,
            progress=progress,
            error=error,
        )
        if existing is not None:
            entry.started = existing.started
        if status in ("completed", "failed"):
            entry.finished = time.monotonic()
        self._progress[video_path] = entry
        if self.level == "verbose":
            self._print(f"{_STATUS_PREFIX.get(status, status)} {display_name(video_path)}: {stage}")

    def complete_video(
        self,
        video_path: str,
        frames: int,
        input_tokens: int,
        output_tokens: int,
        model: str,
    ) -> None:
        if not self.enabled:
            return
        progress = self._progress.get(video_path)
        if progress is None:
            return
        self._completed_videos += 1
        elapsed = time.monotonic() - progress.started
        cost = self.pricing.calculate_cost(input_tokens, output_tokens, model)
        self._input_tokens += input_tokens
        self._output_tokens += output_tokens
        self._cost += cost
        self._rows.append(
            _BatchRow(
                name=display_name(video_path),
                elapsed=elapsed,
                model=model,
                frames=frames,
                input_tokens=input_tokens,
                output_tokens=output_tokens,
                cost=cost,
            )
        )
        if self.level == "verbose":
            self._print(
                f"[SUCCESS] {display_name(video_path)} completed "
                f"({self._completed_videos}/{self._total_videos})"
            )
            self._print(
                f"  └─ Duration: {format_duration(elapsed)} | Frames: {frames} | "
                f"Tokens: {input_tokens + output_tokens:,} | Cost: ${cost:.6f}"
            )
        if self.level != "minimal":
            self._overall_progress()

    def fail_video(self, video_path: str, error: BaseException | str) -> None:
        if not self.enabled:
            return
        progress = self._progress.get(video_path)
        elapsed = time.monotonic() - progress.started if progress else 0.0
        self._completed_videos += 1
        if self.level == "minimal":
            return
        self._banner(f"[FAILED] VIDEO {self._completed_videos}/{self._total_videos} FAILED", char="─")
        table = Table("File", "Duration", "Error")
        table.add_row(display_name(video_path), format_duration(elapsed), str(error))
        self.console.print(table)
        self._overall_progress()

    def complete_batch(self, succeeded: int, failed: int) -> None:
        if not self.enabled:
            return
        elapsed = time.monotonic() - self._batch_started
        self._banner("[END] BATCH ANALYSIS COMPLETE")
        table = Table(
            "File",
            "Duration",
            "Model",
            "Frames",
            "Input Tokens",
            "Output Tokens",
            "Total Tokens",
            "Cost",
        )
        for row in self._rows:
            table.add_row(
                row.name,
                format_duration(row.elapsed),
                row.model,
                str(row.frames),
                f"{row.input_tokens:,}",
                f"{row.output_tokens:,}",
                f"{row.input_tokens + row.output_tokens:,}",
                f"${row.cost:.6f}",
            )
        table.add_row(
            f"TOTAL ({succeeded} success, {failed} failed)",
            format_duration(elapsed),
            "-",
            "-",
            f"{self._input_tokens:,}",
            f"{self._output_tokens:,}",
            f"{self._input_tokens + self._output_tokens:,}",
            f"${self._cost:.6f}",
            style="bold",
        )
        self.console.print(table)
        self._rows = []

    def start_single_video(self, video_path: str) -> None:
        if not self.enabled or self.level == "minimal":
            return
        self._banner("[START] VIDEO ANALYSIS")
        table = Table("File")
        table.add_row(display_name(video_path))
        self.console.print(table)

    def log_frame_extraction(self, num_frames: int, quality: int, resolution: str) -> None:
        if not self.enabled or self.level == "minimal":
            return
        self._print(f"[EXTRACTION] Extracting {num_frames} frames ({resolution}, quality: {quality})...")

    def log_ai_analysis(self, num_frames: int, model: str) -> None:
        if not self.enabled or self.level == "minimal":
            return
        self._print(f"[ANALYSIS] Analyzing {num_frames} frames with {model}...")

    def display_estimate(self, estimates: Iterable, *, elapsed_seconds: float | None = None) -> None:
        """Render one row per video estimate plus a totals row."""
        if not self.should_show_estimate_tables():
            return
        estimates = list(estimates)
        self._banner("[ESTIMATE] TOKEN ESTIMATE")
        table = Table(
            "File", "Frames", "Model", "Tokens / Frame", "Total Tokens", "Est. Cost", "Input $/M", "Output $/M"
        )
        total_tokens = 0
        total_cost = 0.0
        for estimate in estimates:
            total_tokens += estimate.total.total_tokens
            total_cost += estimate.total.estimated_cost
            rates = self.pricing.get_model_pricing(estimate.model)
            table.add_row(
                display_name(estimate.video_path),
                str(estimate.num_partitions),
                estimate.model,
                f"{estimate.per_frame.total_tokens:,}",
                f"{estimate.total.total_tokens:,}",
                f"${estimate.total.estimated_cost:.6f}",
                f"${rates.input_cost_per_million:.3f}",
                f"${rates.output_cost_per_million:.3f}",
            )
        if len(estimates) > 1:
            table.add_row(
                f"TOTAL ({len(estimates)} videos)",
                "-",
                "-",
                "-",
                f"{total_tokens:,}",
                f"${total_cost:.6f}",
                "-",
                "-",
                style="bold",
            )
        self.console.print(table)
        if elapsed_seconds is not None:
            self._print(f"Estimated in {format_duration(elapsed_seconds)}")

    def display_models(self, pricing: PricingTable | None = None) -> None:
        table_source = pricing or self.pricing
        table = Table("Model", "Name", "Input $/1M", "Cached $/1M", "Output $/1M", "Image x")
        for config in table_source.get_models_by_cost():
            table.add_row(
                config.id,
                config.name,
                f"{config.pricing.input_cost_per_million:.3f}",
                f"{config.pricing.cached_input_cost_per_million:.3f}",
                f"{config.pricing.output_cost_per_million:.3f}",
                f"{config.image_token_multiplier:g}",
            )
        self.console.print(table)

    def reset(self) -> None:
        self._progress.clear()
        self._total_videos = 0
        self._completed_videos = 0

    def should_show_estimate_tables(self) -> bool:
        return self.enabled and self.show_estimate_tables
