from pathlib import Path

import pytest

from semantic_video.config import AppConfig
from semantic_video.constants import DEFAULT_MAX_FRAME_CONCURRENCY, DEFAULT_MODEL, SCRATCH_ROOT
from semantic_video.exceptions import ConfigError, MissingAPIKeyError

_ENV_VARS = (
    "SEMANTIC_VIDEO_CONFIG",
    "SEMANTIC_VIDEO_PROVIDER",
    "SEMANTIC_VIDEO_DEFAULT_MODEL",
    "SEMANTIC_VIDEO_FRAMES",
    "SEMANTIC_VIDEO_MAX_VIDEO_CONCURRENCY",
    "SEMANTIC_VIDEO_MAX_FRAME_CONCURRENCY",
    "SEMANTIC_VIDEO_REQUESTS_PER_MINUTE",
    "SEMANTIC_VIDEO_PRICING_FILE",
    "SEMANTIC_VIDEO_SCRATCH_DIR",
    "OPENAI_API_KEY",
    "GEMINI_API_KEY",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch, tmp_path):
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)


def test_defaults_without_config_file(monkeypatch):
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test")

    config = AppConfig.from_sources()

    assert config.api_key == "sk-test"
    assert config.provider == "openai"
    assert config.default_model == DEFAULT_MODEL
    assert config.max_frame_concurrency == DEFAULT_MAX_FRAME_CONCURRENCY
    assert config.requests_per_minute is None
    assert config.scratch_dir == SCRATCH_ROOT
    assert config.config_path is None


def test_missing_api_key_raises_unless_optional():
    with pytest.raises(MissingAPIKeyError):
        AppConfig.from_sources()

    assert AppConfig.from_sources(require_api_key=False).api_key is None


def test_config_file_in_working_directory_is_loaded(monkeypatch, tmp_path):
    monkeypatch.setenv("GEMINI_API_KEY", "g-key")
    (tmp_path / "semantic-video.yaml").write_text(
        "defaults:\n"
        "  provider: Gemini\n"
        "  model: gemini-2.5-flash\n"
        "analysis:\n"
        "  frames: 6\n"
        "  quality: 4\n"
        "  scale: -1\n"
        "  prompt: list the objects\n"
        "concurrency:\n"
        "  videos: 2\n"
        "  frames: 0\n"
        "  requests_per_minute: 30\n"
        "report:\n"
        "  enabled: yes\n"
        "  level: verbose\n"
        "pricing_file: prices.yaml\n"
        "scratch_dir: tmp-frames\n"
    )

    config = AppConfig.from_sources()

    assert config.provider == "gemini"
    assert config.api_key == "g-key"
    assert config.default_model == "gemini-2.5-flash"
    assert (config.num_partitions, config.quality, config.scale) == (6, 4, -1)
    assert config.prompt == "list the objects"
    assert config.max_video_concurrency == 2
    assert config.max_frame_concurrency == 1
    assert config.requests_per_minute == 30
    assert config.report_enabled is True
    assert config.report_level == "verbose"
    assert config.pricing_file == Path("prices.yaml")
    assert config.scratch_dir == Path("tmp-frames")
    assert config.config_path == Path("semantic-video.yaml")


def test_environment_overrides_file(monkeypatch, tmp_path):
    config_file = tmp_path / "custom.yaml"
    config_file.write_text("analysis:\n  frames: 6\nconcurrency:\n  videos: 2\n")
    monkeypatch.setenv("SEMANTIC_VIDEO_CONFIG", str(config_file))
    monkeypatch.setenv("SEMANTIC_VIDEO_FRAMES", "12")
    monkeypatch.setenv("SEMANTIC_VIDEO_MAX_VIDEO_CONCURRENCY", "7")
    monkeypatch.setenv("SEMANTIC_VIDEO_REQUESTS_PER_MINUTE", "90")
    monkeypatch.setenv("SEMANTIC_VIDEO_DEFAULT_MODEL", "gpt-5-mini")
    monkeypatch.setenv("SEMANTIC_VIDEO_SCRATCH_DIR", str(tmp_path / "scratch"))

    config = AppConfig.from_sources(require_api_key=False)

    assert config.config_path == config_file
    assert config.num_partitions == 12
    assert config.max_video_concurrency == 7
    assert config.requests_per_minute == 90
    assert config.default_model == "gpt-5-mini"
    assert config.scratch_dir == tmp_path / "scratch"


def test_explicit_missing_config_path_raises(tmp_path):
    with pytest.raises(FileNotFoundError):
        AppConfig.from_sources(tmp_path / "absent.yaml", require_api_key=False)


@pytest.mark.parametrize(
    "content",
    ["defaults: [unclosed", "- just\n- a list\n", "analysis:\n  frames: many\n", "defaults:\n  provider: claude\n"],
)
def test_invalid_config_raises_config_error(tmp_path, content):
    config_file = tmp_path / "bad.yaml"
    config_file.write_text(content)

    with pytest.raises(ConfigError):
        AppConfig.from_sources(config_file, require_api_key=False)


def test_negative_frame_count_is_rejected(monkeypatch):
    monkeypatch.setenv("SEMANTIC_VIDEO_FRAMES", "-2")

    with pytest.raises(ConfigError, match="SEMANTIC_VIDEO_FRAMES"):
        AppConfig.from_sources(require_api_key=False)


def test_unknown_report_level_falls_back_to_normal(tmp_path):
    config_file = tmp_path / "report.yaml"
    config_file.write_text("report:\n  level: chatty\n")

    assert AppConfig.from_sources(config_file, require_api_key=False).report_level == "normal"


def test_report_section_defaults_to_enabled(tmp_path):
    config_file = tmp_path / "plain.yaml"
    config_file.write_text("analysis:\n  frames: 4\n")

    config = AppConfig.from_sources(config_file, require_api_key=False)

    assert (config.report_enabled, config.report_level) == (True, "normal")
