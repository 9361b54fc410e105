"""
Temporal aggregation across video frames.

Rules, applied in order:
1. Coverage: the exam screen and the assessment screen must both be seen.
2. Independence: their first sightings should be in different frames
   (diagnostic only).
3. Timing: first sightings at most 30 minutes apart.
4. Per module/field majority vote across frames, with consistency %.
5. Fluctuations between consecutive frames (> 2 points, > 5 suspicious).

Rules 1 and 3 block: no final grades are produced when they fail.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from ..logger import get_logger
from ..models import (
    FinalGrade,
    Fluctuation,
    FrameObservation,
    GradeFieldName,
    ModuleId,
    PageType,
)
from ..utils.text_utils import round_half_up
from ..utils.voting import majority_vote

logger = get_logger(__name__)

SCREEN_MISSING = "SCREEN_MISSING"
TIME_GAP_TOO_LARGE = "TIME_GAP_TOO_LARGE"
NO_FRAMES = "NO_FRAMES"

FLUCTUATION_DELTA = 2.0
SUSPICIOUS_DELTA = 5.0
MAX_PAGE_GAP_SEC = 1800.0

SCREEN_NAMES = {
    PageType.EXAM: "Relevé de Notes",
    PageType.ASSESSMENT: "Fiches d'Évaluation",
}


@dataclass
class TemporalResult:
    final_grades: Dict[ModuleId, FinalGrade] = field(default_factory=dict)
    consistency: int = 0
    fluctuations: List[Fluctuation] = field(default_factory=list)
    frames_analyzed: int = 0
    passed: bool = False
    reason: str = ""
    missing_screens: List[str] = field(default_factory=list)
    pages_independent: bool = False
    page_counts: Dict[str, int] = field(default_factory=dict)

    @property
    def blocked(self) -> bool:
        """Coverage or timing rule failed."""
        return not self.passed

    def to_dict(self) -> dict[str, Any]:
        return {
            "finalGrades": {mid.value: g.to_dict() for mid, g in self.final_grades.items()},
            "consistency": self.consistency,
            "fluctuations": [f.to_dict() for f in self.fluctuations],
            "framesAnalyzed": self.frames_analyzed,
            "passed": self.passed,
            "reason": self.reason,
            "missingScreens": list(self.missing_screens),
            "pagesIndependent": self.pages_independent,
            "pageCounts": dict(self.page_counts),
        }


def detect_fluctuations(
    module_id: ModuleId,
    grade_field: GradeFieldName,
    observations: Sequence[tuple[int, Optional[float]]],
) -> List[Fluctuation]:
    """Jumps between consecutive frames, observations given as (frame_index, value)."""
    valid = sorted(((frame, value) for frame, value in observations if value is not None), key=lambda o: o[0])
    fluctuations = []
    for (prev_frame, prev_value), (frame, value) in zip(valid, valid[1:]):
        delta = abs(value - prev_value)
        if delta > FLUCTUATION_DELTA:
            fluctuations.append(Fluctuation(
                module_id=module_id,
                grade_field=grade_field,
                from_frame=prev_frame,
                to_frame=frame,
                from_value=prev_value,
                to_value=value,
                delta=round(delta, 2),
                suspicious=delta > SUSPICIOUS_DELTA,
            ))
    return fluctuations


def aggregate_temporal(
    frames: Sequence[FrameObservation],
    max_page_gap_sec: float = MAX_PAGE_GAP_SEC,
) -> TemporalResult:
    """Reduce per-frame consensus into final grades for a recording."""
    result = TemporalResult(frames_analyzed=len(frames))
    if not frames:
        result.reason = NO_FRAMES
        return result

    first_seen: Dict[PageType, FrameObservation] = {}
    counts = {PageType.EXAM: 0, PageType.ASSESSMENT: 0}
    for frame in frames:
        if frame.page_type in counts:
            counts[frame.page_type] += 1
            first_seen.setdefault(frame.page_type, frame)
    result.page_counts = {page.value: n for page, n in counts.items()}

    missing = [SCREEN_NAMES[page] for page in (PageType.EXAM, PageType.ASSESSMENT) if page not in first_seen]
    if missing:
        result.reason = SCREEN_MISSING
        result.missing_screens = missing
        logger.info(f"Temporal coverage failed: missing {', '.join(missing)}")
        return result

    exam_frame = first_seen[PageType.EXAM]
    assessment_frame = first_seen[PageType.ASSESSMENT]
    result.pages_independent = exam_frame.index != assessment_frame.index

    gap = abs(exam_frame.timestamp - assessment_frame.timestamp)
    if gap > max_page_gap_sec:
        result.reason = TIME_GAP_TOO_LARGE
        logger.info(f"Temporal timing failed: gap={gap:.0f}s")
        return result

    result.passed = True

    observations: Dict[ModuleId, List[tuple[int, Optional[float], Optional[float]]]] = {}
    for frame in frames:
        for module_id, grade in frame.consensus.grades.items():
            observations.setdefault(module_id, []).append((frame.index, grade.primary, grade.secondary))

    module_consistencies = []
    for module_id, obs in observations.items():
        primary_vote = majority_vote(o[1] for o in obs)
        secondary_vote = majority_vote(o[2] for o in obs)

        result.final_grades[module_id] = FinalGrade(
            module_id=module_id,
            primary=primary_vote.value,
            secondary=secondary_vote.value,
            primary_consistency=primary_vote.consistency,
            secondary_consistency=secondary_vote.consistency,
            frames_found=len(obs),
        )

        # Only fields that were observed count toward the module's consistency
        field_scores = [v.consistency for v in (primary_vote, secondary_vote) if v.total]
        if field_scores:
            module_consistencies.append(sum(field_scores) / len(field_scores))
        else:
            module_consistencies.append(0.0)

        result.fluctuations.extend(detect_fluctuations(module_id, GradeFieldName.EXAM, [(o[0], o[1]) for o in obs]))
        result.fluctuations.extend(detect_fluctuations(module_id, GradeFieldName.TD, [(o[0], o[2]) for o in obs]))

    if module_consistencies:
        result.consistency = int(round_half_up(sum(module_consistencies) / len(module_consistencies)))

    logger.info(
        f"Temporal aggregation modules={len(result.final_grades)} frames={len(frames)} "
        f"consistency={result.consistency}% fluctuations={len(result.fluctuations)}"
    )
    return result
