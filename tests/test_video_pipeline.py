import asyncio

import pytest

from conftest import FakeExtractor, FakeVisionClient
from semantic_video.constants import GPT_5_MINI
from semantic_video.exceptions import ExtractionError, FrameProcessingError, VideoAnalysisError
from semantic_video.video import SemanticVideo, frame_timestamps


def _video(video_file, tmp_path, extractor=None, client=None) -> SemanticVideo:
    return SemanticVideo(
        video_file,
        client or FakeVisionClient(),
        extractor=extractor or FakeExtractor(),
        scratch_root=tmp_path / "scratch",
    )


def test_frame_timestamps_are_evenly_spaced():
    assert frame_timestamps(10.0, 4) == [0.0, 2.5, 5.0, 7.5]
    assert frame_timestamps(10.0, 0) == []


def test_analyze_returns_numbered_frames_with_timestamps(video_file, tmp_path):
    extractor = FakeExtractor(duration=20.0)
    video = _video(video_file, tmp_path, extractor=extractor)

    frames = asyncio.run(video.analyze(num_partitions=4, quality=5, scale=480, model=GPT_5_MINI))

    assert [f.frame_number for f in frames] == [1, 2, 3, 4]
    assert [f.timestamp for f in frames] == [0.0, 5.0, 10.0, 15.0]
    assert [f.description for f in frames] == ["frame 1", "frame 2", "frame 3", "frame 4"]
    assert all(f.image_data for f in frames)
    assert {(q, s) for _, _, q, s in extractor.extracted} == {(5, 480)}
    assert video.get_duration() == 20.0
    assert video.get_frames_count() == 4


def test_frames_keep_their_index_when_analysis_finishes_out_of_order(video_file, tmp_path):
    client = FakeVisionClient(delays={1: 0.05, 2: 0.0, 3: 0.02})
    video = _video(video_file, tmp_path, client=client)

    frames = asyncio.run(video.analyze(num_partitions=3, max_frame_concurrency=3))

    assert [f.description for f in frames] == ["frame 1", "frame 2", "frame 3"]


def test_tokens_are_summed_across_frames(video_file, tmp_path):
    client = FakeVisionClient(input_tokens=120, output_tokens=15)
    video = _video(video_file, tmp_path, client=client)

    asyncio.run(video.analyze(num_partitions=5, model=GPT_5_MINI))
    usage = video.get_tokens_used()

    assert usage.input_tokens == 600
    assert usage.output_tokens == 75
    assert usage.total_tokens == 675
    assert usage.model == GPT_5_MINI


def test_prompt_and_metadata_reach_the_vision_client(video_file, tmp_path):
    client = FakeVisionClient()
    video = _video(video_file, tmp_path, client=client)

    asyncio.run(video.analyze(num_partitions=2, prompt="what is shown?"))

    assert {call["prompt"] for call in client.calls} == {"what is shown?"}
    numbers = sorted(call["metadata"]["frame_number"] for call in client.calls)
    assert numbers == [1, 2]
    assert all(call["metadata"]["video_path"] == str(video_file) for call in client.calls)


def test_frame_concurrency_limits_are_respected(video_file, tmp_path):
    extractor = FakeExtractor(delay=0.01)
    client = FakeVisionClient(delays={i: 0.01 for i in range(1, 11)})
    video = _video(video_file, tmp_path, extractor=extractor, client=client)

    asyncio.run(video.analyze(num_partitions=10, max_frame_concurrency=2, max_extraction_concurrency=3))

    assert client.max_active == 2
    assert extractor.max_active == 3


def test_extraction_uses_default_frame_concurrency(video_file, tmp_path):
    extractor = FakeExtractor(delay=0.01)
    video = _video(video_file, tmp_path, extractor=extractor)

    asyncio.run(video.analyze(num_partitions=12))

    assert extractor.max_active == 5


def test_scratch_directory_is_removed_after_success(video_file, tmp_path):
    extractor = FakeExtractor()
    video = _video(video_file, tmp_path, extractor=extractor)

    asyncio.run(video.analyze(num_partitions=3))

    scratch_dirs = {path.parent for _, path, _, _ in extractor.extracted}
    assert len(scratch_dirs) == 1
    scratch = scratch_dirs.pop()
    assert scratch.parent == tmp_path / "scratch"
    assert scratch.name.startswith("clip-")
    assert not scratch.exists()


def test_analysis_failure_raises_and_keeps_previous_state(video_file, tmp_path):
    client = FakeVisionClient()
    extractor = FakeExtractor()
    video = _video(video_file, tmp_path, extractor=extractor, client=client)
    first = asyncio.run(video.analyze(num_partitions=2))

    client.fail_frames = {2, 3}
    with pytest.raises(FrameProcessingError) as excinfo:
        asyncio.run(video.analyze(num_partitions=4))

    error = excinfo.value
    assert error.frame_number == 2
    assert error.stage == "analysis"
    assert "frame 2" in str(error)
    assert isinstance(error, VideoAnalysisError)
    assert error.__cause__ is not None
    assert video.get_frames() == first
    assert video.get_tokens_used().input_tokens == 200
    assert not any(path.parent.exists() for _, path, _, _ in extractor.extracted)


def test_extraction_failure_names_the_frame(video_file, tmp_path):
    extractor = FakeExtractor(duration=8.0, fail_timestamps={4.0})
    client = FakeVisionClient()
    video = _video(video_file, tmp_path, extractor=extractor, client=client)

    with pytest.raises(FrameProcessingError) as excinfo:
        asyncio.run(video.analyze(num_partitions=4))

    assert excinfo.value.frame_number == 3
    assert excinfo.value.stage == "extraction"
    assert isinstance(excinfo.value.__cause__, ExtractionError)
    assert client.calls == []
    assert video.get_frames() == []


def test_probe_failure_is_reported_as_video_error(video_file, tmp_path):
    extractor = FakeExtractor(probe_error=ExtractionError("ffprobe exploded"))
    video = _video(video_file, tmp_path, extractor=extractor)

    with pytest.raises(VideoAnalysisError, match="ffprobe exploded"):
        asyncio.run(video.analyze())


def test_zero_partitions_yield_no_frames(video_file, tmp_path):
    extractor = FakeExtractor()
    client = FakeVisionClient()
    video = _video(video_file, tmp_path, extractor=extractor, client=client)

    frames = asyncio.run(video.analyze(num_partitions=0))

    assert frames == []
    assert client.calls == []
    assert extractor.extracted == []
    assert video.get_tokens_used().total_tokens == 0


def test_negative_partitions_are_rejected_before_work(video_file, tmp_path):
    extractor = FakeExtractor()
    video = _video(video_file, tmp_path, extractor=extractor)

    with pytest.raises(ValueError):
        asyncio.run(video.analyze(num_partitions=-1))
    assert extractor.probed == []


def test_missing_video_file_is_rejected(tmp_path):
    with pytest.raises(FileNotFoundError):
        SemanticVideo(tmp_path / "missing.mp4", FakeVisionClient())


def test_vision_client_is_required(video_file):
    with pytest.raises(ValueError):
        SemanticVideo(video_file, None)


def test_concurrent_pipelines_use_separate_scratch_dirs(make_video, tmp_path):
    extractor = FakeExtractor(delay=0.01)
    client = FakeVisionClient()
    first = SemanticVideo(make_video("a.mp4"), client, extractor=extractor, scratch_root=tmp_path / "s")
    second = SemanticVideo(make_video("b.mp4"), client, extractor=extractor, scratch_root=tmp_path / "s")

    async def _run_both():
        return await asyncio.gather(first.analyze(num_partitions=3), second.analyze(num_partitions=3))

    results = asyncio.run(_run_both())

    assert [len(frames) for frames in results] == [3, 3]
    assert len({path.parent for _, path, _, _ in extractor.extracted}) == 2


def test_frame_accessors(video_file, tmp_path):
    video = _video(video_file, tmp_path)
    asyncio.run(video.analyze(num_partitions=2))

    frame = video.get_frame(2)
    assert frame is not None and frame.frame_number == 2
    assert video.get_frame(9) is None
    assert video.get_frame_image_base64(1) == video.get_frame(1).image_base64()
    assert video.get_frame_image_data_url(1).startswith("data:image/jpeg;base64,")
    assert video.get_frame_image_base64(9) is None

    target = tmp_path / "out" / "frame.jpg"
    video.save_frame(1, target)
    assert target.read_bytes() == video.get_frame(1).image_data

    with pytest.raises(KeyError):
        video.save_frame(9, tmp_path / "nope.jpg")
