import asyncio

import pytest

from conftest import FakeExtractor, FakeVisionClient
from semantic_video.client import SemanticVideoClient
from semantic_video.config import AppConfig
from semantic_video.constants import GPT_5_MINI, GPT_5_NANO
from semantic_video.core.types import VideoConfig
from semantic_video.exceptions import FrameProcessingError, MissingAPIKeyError
from semantic_video.providers import OpenAIVisionClient


@pytest.fixture
def client(tmp_path):
    return SemanticVideoClient(
        vision_client=FakeVisionClient(),
        extractor=FakeExtractor(duration=30.0),
        scratch_root=tmp_path / "scratch",
        default_model=GPT_5_MINI,
    )


def test_missing_key_without_vision_client_raises():
    with pytest.raises(MissingAPIKeyError):
        SemanticVideoClient()


def test_from_config_builds_provider_client(tmp_path):
    config = AppConfig(api_key="sk-test", requests_per_minute=20, scratch_dir=tmp_path / "frames")

    built = SemanticVideoClient.from_config(config, extractor=FakeExtractor())

    assert isinstance(built._vision_client, OpenAIVisionClient)
    assert built._scratch_root == tmp_path / "frames"


def test_analyze_video_registers_and_records_stats(client, video_file):
    frames = asyncio.run(client.analyze_video(video_file, num_partitions=3))

    assert len(frames) == 3
    video = client.get_video(video_file)
    assert video is not None
    assert video.get_tokens_used().model == GPT_5_MINI
    stats = client.get_stats()
    assert stats.total_videos == 1
    assert stats.total_frames == 3
    assert stats.total_tokens_used == 330
    assert stats.total_api_calls == 3


def test_failed_single_analysis_propagates_and_skips_stats(tmp_path, video_file):
    client = SemanticVideoClient(
        vision_client=FakeVisionClient(fail_frames={1}),
        extractor=FakeExtractor(),
        scratch_root=tmp_path / "scratch",
    )

    with pytest.raises(FrameProcessingError):
        asyncio.run(client.analyze_video(video_file, num_partitions=2))

    assert client.stats.tokens == 0


def test_create_video_replaces_previous_results(client, video_file):
    asyncio.run(client.analyze_video(video_file, num_partitions=2))

    fresh = client.create_video(video_file)

    assert client.get_video(video_file) is fresh
    assert fresh.get_frames_count() == 0


def test_batch_uses_default_model_and_shares_registry(client, make_video):
    paths = [str(make_video(name)) for name in ("a.mp4", "b.mp4")]

    outcomes = asyncio.run(
        client.analyze_multiple_videos([paths[0], {"video_path": paths[1], "num_partitions": 1}])
    )

    assert {outcome.model for outcome in outcomes} == {GPT_5_MINI}
    assert set(client.get_all_videos()) == set(paths)
    assert client.get_stats().total_frames == 10 + 1


def test_remove_and_clear(client, make_video):
    a = make_video("a.mp4")
    b = make_video("b.mp4")
    client.create_video(a)
    client.create_video(b)

    assert client.remove_video(a) is True
    assert client.remove_video(a) is False
    client.clear_all()
    assert client.get_all_videos() == {}


def test_estimates_default_to_client_model(client, make_video, monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    path = make_video("a.mp4")

    single = asyncio.run(client.estimate_video_tokens(path, num_partitions=4))
    multi = asyncio.run(client.estimate_multiple_videos_tokens([str(path)]))

    assert single.model == GPT_5_MINI
    assert single.total.total_tokens == single.per_frame.total_tokens * 4
    assert multi.videos[0].model == GPT_5_MINI


def test_zero_frame_limit_runs_one_frame_at_a_time(tmp_path, video_file):
    extractor = FakeExtractor(delay=0.01)
    vision = FakeVisionClient(delays={n: 0.01 for n in range(1, 9)})
    client = SemanticVideoClient(vision_client=vision, extractor=extractor, scratch_root=tmp_path / "scratch")

    frames = asyncio.run(client.analyze_video(video_file, num_partitions=8, max_frame_concurrency=0))

    assert len(frames) == 8
    assert extractor.max_active == 1
    assert vision.max_active == 1


def test_zero_video_limit_runs_one_video_at_a_time(tmp_path, make_video):
    extractor = FakeExtractor(delay=0.01)
    client = SemanticVideoClient(
        vision_client=FakeVisionClient(), extractor=extractor, scratch_root=tmp_path / "scratch"
    )
    configs = [{"video_path": str(make_video(f"v{i}.mp4")), "num_partitions": 1} for i in range(4)]

    outcomes = asyncio.run(client.analyze_multiple_videos(configs, max_video_concurrency=0))

    assert all(outcome.ok for outcome in outcomes)
    assert extractor.max_active == 1


def test_omitted_limits_use_client_settings(tmp_path, make_video):
    extractor = FakeExtractor(delay=0.01)
    client = SemanticVideoClient(
        vision_client=FakeVisionClient(),
        extractor=extractor,
        scratch_root=tmp_path / "scratch",
        max_video_concurrency=4,
    )
    configs = [{"video_path": str(make_video(f"v{i}.mp4")), "num_partitions": 1} for i in range(4)]

    asyncio.run(client.analyze_multiple_videos(configs))

    assert extractor.max_active == 4


def test_video_config_without_model_takes_client_default(client, make_video):
    explicit = VideoConfig(video_path=str(make_video("a.mp4")), num_partitions=1)
    pinned = VideoConfig(video_path=str(make_video("b.mp4")), num_partitions=1, model=GPT_5_NANO)

    outcomes = asyncio.run(client.analyze_multiple_videos([explicit, pinned]))

    models = {outcome.video_path: outcome.model for outcome in outcomes}
    assert models == {explicit.video_path: GPT_5_MINI, pinned.video_path: GPT_5_NANO}


def test_malformed_estimate_entry_is_skipped(client, make_video, monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    path = make_video("a.mp4")

    result = asyncio.run(client.estimate_multiple_videos_tokens([{"num_partitions": 2}, str(path)]))

    assert [estimate.video_path for estimate in result.videos] == [str(path)]
    assert result.videos[0].model == GPT_5_MINI
    assert len(result.warnings) == 1
    assert "Could not estimate" in result.warnings[0]
