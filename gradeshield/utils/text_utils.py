"""
Text helpers shared by module resolution, grade extraction and code search.
"""

from __future__ import annotations

import math
import re
import unicodedata
from typing import Any, List, Optional

from rapidfuzz.distance import Levenshtein

_WHITESPACE_RE = re.compile(r"\s+")

# A grade token: "14.5", "14,25" or a bare "14"
GRADE_TOKEN_RE = re.compile(r"\b(\d{1,2}[.,]\d{1,2})\b|\b(\d{1,2})\b")


def strip_accents(text: str) -> str:
    decomposed = unicodedata.normalize("NFKD", text)
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch))


def normalize_text(text: str) -> str:
    """Lowercase, drop diacritics and collapse whitespace."""
    if not text:
        return ""
    return _WHITESPACE_RE.sub(" ", strip_accents(text).casefold()).strip()


def collapse_whitespace(text: str) -> str:
    return _WHITESPACE_RE.sub(" ", text or "")


def parse_grade(value: Any) -> Optional[float]:
    """Self-reported grade cell -> float. None, blank and non-numeric cells are missing."""
    if value is None:
        return None
    if isinstance(value, str):
        value = value.strip().replace(",", ".")
        if not value:
            return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def round_half_up(value: float, ndigits: int = 0) -> float:
    """Round with .5 going up (Python's round() is banker's rounding)."""
    factor = 10 ** ndigits
    return math.floor(value * factor + 0.5) / factor


def percent(part: float, whole: float) -> int:
    """Rounded integer percentage; 0 when whole is 0."""
    if not whole:
        return 0
    return int(round_half_up(part / whole * 100))


def similarity(a: str, b: str) -> int:
    """Similarity percentage 0-100 derived from edit distance."""
    a = a.lower().strip()
    b = b.lower().strip()
    return int(round_half_up(Levenshtein.normalized_similarity(a, b) * 100))


def grade_tokens(text: str) -> List[float]:
    """All numeric tokens in text, comma decimals converted."""
    values = []
    for match in GRADE_TOKEN_RE.finditer(text):
        token = match.group(1) or match.group(2)
        values.append(float(token.replace(",", ".")))
    return values
