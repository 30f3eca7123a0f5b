import pytest

from conftest import FakeTranscoder
from studytree.services.frames import FrameExtractor


@pytest.mark.anyio
async def test_one_slide_per_successful_capture(uploads_root, tmp_path):
    transcoder = FakeTranscoder(failing_timestamps={60, 210})
    extractor = FrameExtractor(transcoder, concurrency=2)

    slides = await extractor.extract(
        tmp_path / "video.mp4", "abc", [0, 60, 135, 210, 270]
    )

    assert [s.timestamp for s in slides] == [0, 135, 270]
    assert sorted(transcoder.captured) == [0, 60, 135, 210, 270]
    assert slides[0].image == "/uploads/frames_abc/slide_001.png"
    assert slides[1].image == "/uploads/frames_abc/slide_003.png"
    assert (uploads_root / "frames_abc" / "slide_005.png").exists()


@pytest.mark.anyio
async def test_result_sorted_even_for_unsorted_input(uploads_root, tmp_path):
    slides = await FrameExtractor(FakeTranscoder()).extract(
        tmp_path / "video.mp4", "xyz", [300, 0, 100]
    )
    assert [s.timestamp for s in slides] == [0, 100, 300]


@pytest.mark.anyio
async def test_duplicate_timestamps_are_each_attempted(uploads_root, tmp_path):
    transcoder = FakeTranscoder()
    slides = await FrameExtractor(transcoder).extract(
        tmp_path / "video.mp4", "dup", [0, 0, 1]
    )
    assert transcoder.captured.count(0) == 2
    assert len(slides) == 3
    assert len({s.image for s in slides}) == 3


@pytest.mark.anyio
async def test_all_failures_give_empty_list(uploads_root, tmp_path):
    transcoder = FakeTranscoder(failing_timestamps={0, 10})
    slides = await FrameExtractor(transcoder).extract(tmp_path / "v.mp4", "none", [0, 10])
    assert slides == []
