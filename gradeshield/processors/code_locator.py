"""
Locate the one-time verification code inside OCR text.

OCR often drops dashes or splits the code over lines, so matching
degrades through tiers instead of failing outright.
"""

from __future__ import annotations

from typing import Iterable

from ..models import CodeMatch
from ..utils.text_utils import collapse_whitespace

EXACT = 100
NO_DASHES = 90
ALL_SEGMENTS = 75
SOME_SEGMENTS = 50


def find_verification_code(text: str, code: str) -> CodeMatch:
    """Best tier at which code appears in text."""
    if not text or not code:
        return CodeMatch()

    normalized = collapse_whitespace(text).upper()
    expected = code.strip().upper()

    if expected in normalized:
        return CodeMatch(found=True, exact=True, confidence=EXACT)

    if expected.replace("-", "") in normalized.replace("-", ""):
        return CodeMatch(found=True, confidence=NO_DASHES)

    segments = [s for s in expected.split("-") if s]
    present = sum(1 for s in segments if s in normalized)
    if segments and present == len(segments):
        return CodeMatch(found=True, confidence=ALL_SEGMENTS)
    if present >= 2:
        return CodeMatch(found=True, confidence=SOME_SEGMENTS)

    return CodeMatch()


def best_code_match(texts: Iterable[str], code: str) -> CodeMatch:
    """Highest-confidence match over several engines, frames or images."""
    best = CodeMatch()
    for text in texts:
        match = find_verification_code(text, code)
        if match.confidence > best.confidence:
            best = match
        if best.exact:
            break
    return best
