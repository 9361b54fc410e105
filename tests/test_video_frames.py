import numpy as np
import pytest

from gradeshield.config import VideoConfig
from gradeshield.exceptions import GradeShieldError, VideoDurationError
from gradeshield.processors.video_frames import (
    VideoFrame,
    check_duration,
    extract_frames,
    filter_clear_frames,
    probe_duration,
)
from gradeshield.utils.image_utils import encode_image

from conftest import make_image


def flat_frame(index):
    image = np.full((240, 320, 3), 200, dtype=np.uint8)
    return VideoFrame(index=index, timestamp=float(index), image_bytes=encode_image(image, ".png"))


def sharp_frame(index):
    return VideoFrame(index=index, timestamp=float(index), image_bytes=make_image(320, 240, seed=index))


def test_check_duration_window():
    config = VideoConfig(min_duration_sec=3.0, max_duration_sec=90.0)

    check_duration(3.0, config)
    check_duration(90.0, config)
    with pytest.raises(VideoDurationError):
        check_duration(2.9, config)
    with pytest.raises(VideoDurationError) as exc:
        check_duration(91.0, config)
    assert exc.value.details["expected"] == "3-90s"


def test_unreadable_video():
    assert probe_duration(b"not a video") == 0.0
    with pytest.raises(GradeShieldError):
        extract_frames(b"not a video", VideoConfig())


def test_blurry_frames_are_dropped():
    frames = [sharp_frame(0), flat_frame(1), sharp_frame(2), sharp_frame(3)]

    clear = filter_clear_frames(frames, min_frames=3, threshold=100.0)

    assert [f.index for f in clear] == [0, 2, 3]
    assert frames[1].blurry


def test_least_blurry_frames_fill_minimum():
    frames = [flat_frame(0), sharp_frame(1), flat_frame(2), flat_frame(3)]

    clear = filter_clear_frames(frames, min_frames=3, threshold=100.0)

    assert len(clear) == 3
    assert [f.index for f in clear] == sorted(f.index for f in clear)
    assert 1 in [f.index for f in clear]
