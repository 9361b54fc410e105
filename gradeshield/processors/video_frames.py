"""
Frame sampling and blur filtering for screen recordings.

Frames are sampled at config.video.fps (1 fps by default), capped at
max_frames, downscaled to max_width and JPEG-encoded. Frames whose
Laplacian variance is below the blur threshold are dropped, but the
least blurry ones are kept to reach min_frames.
"""

from __future__ import annotations

import os
import tempfile
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Iterator, List, Optional

import cv2

from ..config import VideoConfig
from ..exceptions import EvidenceInsufficientError, VideoDurationError
from ..logger import get_logger
from ..utils.image_utils import decode_image, encode_image, laplacian_variance, resize_to_width

logger = get_logger(__name__)

BLUR_SAMPLE_WIDTH = 640


@dataclass
class VideoFrame:
    index: int
    timestamp: float
    image_bytes: bytes
    variance: float = -1.0
    blurry: bool = False


@contextmanager
def _video_file(video_bytes: bytes, suffix: str = ".mp4") -> Iterator[str]:
    # OpenCV only reads containers from disk
    fd, path = tempfile.mkstemp(prefix="gradeshield_", suffix=suffix)
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(video_bytes)
        yield path
    finally:
        try:
            os.unlink(path)
        except OSError:
            logger.debug(f"Could not remove temp video {path}")


def _duration(capture: cv2.VideoCapture) -> float:
    fps = capture.get(cv2.CAP_PROP_FPS) or 0.0
    frame_count = capture.get(cv2.CAP_PROP_FRAME_COUNT) or 0.0
    if fps <= 0 or frame_count <= 0:
        return 0.0
    return frame_count / fps


def probe_duration(video_bytes: bytes) -> float:
    """Duration of an encoded video in seconds (0.0 when unreadable)."""
    with _video_file(video_bytes) as path:
        capture = cv2.VideoCapture(path)
        try:
            if not capture.isOpened():
                return 0.0
            return _duration(capture)
        finally:
            capture.release()


def check_duration(duration_sec: float, config: VideoConfig) -> None:
    if duration_sec < config.min_duration_sec or duration_sec > config.max_duration_sec:
        raise VideoDurationError(duration_sec, config.min_duration_sec, config.max_duration_sec)


def extract_frames(video_bytes: bytes, config: Optional[VideoConfig] = None) -> List[VideoFrame]:
    """
    Sample frames from a screen recording.

    Raises:
        VideoDurationError: Recording outside the accepted window
        EvidenceInsufficientError: Container unreadable or no frame decoded
    """
    config = config or VideoConfig()
    frames: List[VideoFrame] = []

    with _video_file(video_bytes) as path:
        capture = cv2.VideoCapture(path)
        try:
            if not capture.isOpened():
                raise EvidenceInsufficientError("Video could not be decoded", reason="NO_FRAMES")

            duration = _duration(capture)
            check_duration(duration, config)
            logger.info(f"Video duration {duration:.1f}s, sampling at {config.fps:g} fps")

            for i in range(config.max_frames):
                timestamp = i / config.fps
                if timestamp > duration:
                    break
                capture.set(cv2.CAP_PROP_POS_MSEC, timestamp * 1000.0)
                ok, image = capture.read()
                if not ok or image is None:
                    break
                image = resize_to_width(image, config.max_width)
                frames.append(VideoFrame(
                    index=len(frames),
                    timestamp=timestamp,
                    image_bytes=encode_image(image, ".jpg", quality=90),
                ))
        finally:
            capture.release()

    if not frames:
        raise EvidenceInsufficientError("No frame could be extracted from the video", reason="NO_FRAMES")

    logger.info(f"Extracted {len(frames)} frames")
    return frames


def measure_blur(frame: VideoFrame, threshold: float) -> VideoFrame:
    image = decode_image(frame.image_bytes)
    if image is None:
        # Undecodable frames are kept; OCR decides whether they are usable
        frame.variance, frame.blurry = -1.0, False
        return frame
    frame.variance = round(laplacian_variance(resize_to_width(image, BLUR_SAMPLE_WIDTH)), 2)
    frame.blurry = frame.variance < threshold
    return frame


def filter_clear_frames(
    frames: List[VideoFrame],
    min_frames: int = 3,
    threshold: float = 100.0,
) -> List[VideoFrame]:
    """Drop blurry frames, topping up with the least blurry ones to min_frames. Keeps frame order."""
    measured = [measure_blur(f, threshold) for f in frames]
    clear = [f for f in measured if not f.blurry]
    blurry = sorted((f for f in measured if f.blurry), key=lambda f: f.variance, reverse=True)

    if len(clear) < min_frames and blurry:
        needed = min_frames - len(clear)
        clear.extend(blurry[:needed])
        logger.debug(f"Kept {min(needed, len(blurry))} least-blurry frames to reach minimum")

    logger.info(f"Clear frames {len(clear)}/{len(frames)}")
    return sorted(clear, key=lambda f: f.index)
