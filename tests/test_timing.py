import logging

import pytest

from gradeshield.utils.timing import Timer, format_duration, timed_operation


def test_format_duration():
    assert format_duration(0.25) == "250.0ms"
    assert format_duration(2.5) == "2.50s"
    assert format_duration(192.0) == "3m 12.0s"


def test_timer_sums_repeated_steps():
    timer = Timer()
    timer.start("OCR_ANALYSIS")
    timer.stop("OCR_ANALYSIS")
    timer.start("OCR_ANALYSIS")
    timer.stop("OCR_ANALYSIS")

    assert list(timer.summary()) == ["OCR_ANALYSIS"]
    assert timer.stop("never-started") == 0.0


def test_timed_operation_records_failure(caplog):
    logger = logging.getLogger("test.timing")
    caplog.set_level(logging.DEBUG, logger="test.timing")

    with pytest.raises(ValueError):
        with timed_operation("Tamper detection", logger) as timing:
            raise ValueError("bad image")

    assert not timing.success
    assert "failed: bad image" in caplog.text
