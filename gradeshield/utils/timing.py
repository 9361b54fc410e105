"""
Timing helpers for verification steps.
"""

from __future__ import annotations

import logging
import time
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Iterator, Optional


def format_duration(seconds: float) -> str:
    """Human readable duration: 850.0ms, 2.41s, 3m 12.0s."""
    if seconds < 1:
        return f"{seconds * 1000:.1f}ms"
    if seconds < 60:
        return f"{seconds:.2f}s"
    minutes, rest = divmod(seconds, 60)
    return f"{int(minutes)}m {rest:.1f}s"


@dataclass
class TimingResult:
    """Duration and outcome of one timed block."""
    name: str
    duration_sec: float = 0.0
    error: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.error is None

    def __str__(self) -> str:
        text = f"{self.name}: {format_duration(self.duration_sec)}"
        if self.error:
            text += f" (failed: {self.error})"
        return text


@contextmanager
def timed_operation(
    name: str,
    logger: Optional[logging.Logger] = None,
    log_level: int = logging.DEBUG
) -> Iterator[TimingResult]:
    """
    Time a block and log its duration when it exits, even on error.

    Usage:
        with timed_operation("Tamper detection", logger) as timing:
            report = detector.detect(image_bytes)
    """
    result = TimingResult(name=name)
    start = time.perf_counter()
    try:
        yield result
    except Exception as e:
        result.error = str(e)
        raise
    finally:
        result.duration_sec = time.perf_counter() - start
        if logger:
            logger.log(log_level, str(result))


class Timer:
    """
    Per-step stopwatch for one pipeline run.

    A step may be entered more than once (e.g. OCR_ANALYSIS per frame);
    its durations are summed.
    """

    def __init__(self):
        self._running: dict[str, float] = {}
        self._totals: dict[str, float] = {}

    def start(self, step: str) -> None:
        self._running[step] = time.perf_counter()

    def stop(self, step: str) -> float:
        """Stop a running step and return its duration; 0.0 if it was not running."""
        started = self._running.pop(step, None)
        if started is None:
            return 0.0
        duration = time.perf_counter() - started
        self._totals[step] = self._totals.get(step, 0.0) + duration
        return duration

    def summary(self) -> dict[str, float]:
        """Total seconds per step, rounded to milliseconds."""
        return {step: round(total, 3) for step, total in self._totals.items()}
