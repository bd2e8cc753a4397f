import secrets
import time
from pathlib import Path


def ensure_dir(p: Path) -> Path:
    p.mkdir(parents=True, exist_ok=True)
    return p


def slugify(name: str) -> str:
    return "".join(ch if ch.isalnum() or ch in "-_." else "-" for ch in name).strip("-")


def unique_scratch_dir(root: Path, video_path: str | Path) -> Path:
    """Return a fresh, not-yet-created directory under *root* for one pipeline run."""
    stem = slugify(Path(video_path).stem) or "video"
    suffix = f"{int(time.time() * 1000)}-{secrets.token_hex(4)}"
    return Path(root) / f"{stem}-{suffix}"


def display_name(video_path: str | Path) -> str:
    return Path(str(video_path)).name or str(video_path)


def format_duration(seconds: float) -> str:
    if seconds < 60:
        return f"{seconds:.2f}s"
    minutes, remainder = divmod(seconds, 60)
    return f"{int(minutes)}m {remainder:.0f}s"
