"""
Grade text extractor.

Turns raw OCR text into per-module grades:
- Lines are matched to modules through the curriculum registry
- Numbers are read from the matched line and the two lines after it
- First value in [0, 20] is the exam grade, second is the TD grade
  (only for modules that have one)

The positional first/second rule is a known accuracy limit: a portal
that lists TD before exam, or prints the coefficient next to the name,
shifts the values. Layout-aware parsing would need the word boxes the
engines already return.
"""

from __future__ import annotations

import re
from typing import List, Optional

from ..logger import get_logger
from ..models import (
    DEFAULT_REGISTRY,
    CurriculumRegistry,
    GradeExtraction,
    ModuleGrades,
    PageType,
)
from ..utils.text_utils import grade_tokens, normalize_text

logger = get_logger(__name__)

CONTEXT_LINES = 2
MIN_GRADE = 0.0
MAX_GRADE = 20.0

# Matched on normalized (lowercase, accent-free) text
_EXAM_PAGE_RE = re.compile(r"relev[eé]s?\s+(de|des)\s+notes")
_ASSESSMENT_PAGE_RE = re.compile(r"fiches?\s+d\W?\s?evaluation|controle\s+continu")


def detect_page_type(text: str) -> PageType:
    """Which portal screen the text comes from."""
    normalized = normalize_text(text)
    has_exam = bool(_EXAM_PAGE_RE.search(normalized))
    has_assessment = bool(_ASSESSMENT_PAGE_RE.search(normalized))
    if has_exam and not has_assessment:
        return PageType.EXAM
    if has_assessment and not has_exam:
        return PageType.ASSESSMENT
    if has_exam and has_assessment:
        # Both titles visible (e.g. navigation menu): the earlier one is the page title
        exam_pos = _EXAM_PAGE_RE.search(normalized).start()
        assessment_pos = _ASSESSMENT_PAGE_RE.search(normalized).start()
        return PageType.EXAM if exam_pos < assessment_pos else PageType.ASSESSMENT
    return PageType.UNKNOWN


def _valid_grades(window: str) -> List[float]:
    return [v for v in grade_tokens(window) if MIN_GRADE <= v <= MAX_GRADE]


def extract_grades(text: str, registry: Optional[CurriculumRegistry] = None) -> GradeExtraction:
    """
    Parse OCR text into grades.

    Pure function: the same text always yields the same extraction.
    A module matched on several lines keeps the values of the last match.
    """
    registry = registry or DEFAULT_REGISTRY
    lines = [line.strip() for line in (text or "").splitlines()]
    lines = [line for line in lines if line]

    extraction = GradeExtraction(line_count=len(lines), page_type=detect_page_type(text or ""))

    for i, line in enumerate(lines):
        module = registry.resolve(line)
        if module is None:
            continue

        window = " ".join(lines[i:i + 1 + CONTEXT_LINES])
        values = _valid_grades(window)

        primary = values[0] if values else None
        secondary = values[1] if len(values) >= 2 and module.has_secondary_field else None

        extraction.grades[module.module_id] = ModuleGrades(
            primary=primary,
            secondary=secondary,
            coefficient=module.coefficient,
        )
        if module.module_id not in extraction.modules_found:
            extraction.modules_found.append(module.module_id)

        logger.debug(f"Matched {module.canonical_name}: exam={primary} td={secondary}")

    return extraction
