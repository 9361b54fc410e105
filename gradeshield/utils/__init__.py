"""
Utility functions for the grade verification engine.
"""

from .text_utils import (
    normalize_text,
    similarity,
    grade_tokens,
    parse_grade,
    round_half_up,
    percent,
)

from .image_utils import (
    decode_image,
    encode_image,
    image_hash,
    resize_to_width,
    laplacian_variance,
    preprocess_for_ocr,
)

from .timing import (
    format_duration,
    timed_operation,
    Timer,
)

from .voting import (
    half_bucket,
    majority_vote,
    VoteResult,
)

__all__ = [
    # Text utilities
    "normalize_text",
    "similarity",
    "grade_tokens",
    "parse_grade",
    "round_half_up",
    "percent",

    # Image utilities
    "decode_image",
    "encode_image",
    "image_hash",
    "resize_to_width",
    "laplacian_variance",
    "preprocess_for_ocr",

    # Timing utilities
    "format_duration",
    "timed_operation",
    "Timer",

    # Voting
    "half_bucket",
    "majority_vote",
    "VoteResult",
]
