"""
Credibility cross-check of extracted grades against self-reported grades.

One point per matching grade slot (+-0.5). Every slot is mandatory
except the Probabilités TD: a single mandatory mismatch rejects the
submission regardless of the total.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional, Sequence, Tuple

from ..logger import get_logger
from ..models import (
    DEFAULT_REGISTRY,
    CredibilityResult,
    CurriculumRegistry,
    GradeFieldName,
    GradeMap,
    ModuleId,
    PortalCrossCheck,
    SlotComparison,
)
from ..utils.text_utils import parse_grade

logger = get_logger(__name__)

TOLERANCE = 0.5
PASS_THRESHOLD = 14
SUSPICIOUS_DIFF = 3.0

StoredGrades = Mapping[str, Mapping[str, Optional[float]]]


@dataclass(frozen=True)
class GradeSlot:
    module_id: ModuleId
    grade_field: GradeFieldName
    mandatory: bool = True


_SLOT_ORDER: Tuple[ModuleId, ...] = (
    ModuleId.ANALYSIS,
    ModuleId.ALGEBRA,
    ModuleId.SFSD,
    ModuleId.ARCHITECTURE,
    ModuleId.ELECTRONICS,
    ModuleId.PROBABILITY,
    ModuleId.ECONOMICS,
    ModuleId.ENGLISH,
)

_TOLERATED: frozenset = frozenset({(ModuleId.PROBABILITY, GradeFieldName.TD)})


def build_grade_slots(registry: Optional[CurriculumRegistry] = None) -> Tuple[GradeSlot, ...]:
    registry = registry or DEFAULT_REGISTRY
    slots = []
    for module_id in _SLOT_ORDER:
        for grade_field in registry.get(module_id).fields:
            slots.append(GradeSlot(module_id, grade_field, (module_id, grade_field) not in _TOLERATED))
    return tuple(slots)


GRADE_SLOTS = build_grade_slots()


def _values_match(a: Optional[float], b: Optional[float]) -> bool:
    if a is None and b is None:
        return True
    if a is None or b is None:
        return False
    return abs(a - b) <= TOLERANCE


def compare_grades(
    extracted: GradeMap,
    stored: StoredGrades,
    slots: Sequence[GradeSlot] = GRADE_SLOTS,
    threshold: int = PASS_THRESHOLD,
    registry: Optional[CurriculumRegistry] = None,
) -> CredibilityResult:
    """
    Compare grades read from the evidence with grades the user entered.

    Args:
        extracted: Grades from OCR, keyed by ModuleId
        stored: Self-reported grades keyed by storage subject name,
            each {"exam": x, "td": y}
    """
    registry = registry or DEFAULT_REGISTRY
    score = 0
    details = []
    failures = []

    for slot in slots:
        module = registry.get(slot.module_id)
        module_grades = extracted.get(slot.module_id)
        ocr_value = module_grades.get(slot.grade_field) if module_grades else None
        stored_row = stored.get(module.storage_name) or {}
        user_value = parse_grade(stored_row.get(slot.grade_field.value))

        match = _values_match(ocr_value, user_value)
        if match:
            score += 1

        comparison = SlotComparison(
            module=module.canonical_name,
            storage_name=module.storage_name,
            grade_field=slot.grade_field.value,
            extracted=ocr_value,
            stored=user_value,
            match=match,
            mandatory=slot.mandatory,
        )
        details.append(comparison)
        if not match and slot.mandatory:
            failures.append(comparison)

    passed = score >= threshold and not failures
    result = CredibilityResult(
        score=score,
        total=len(slots),
        threshold=threshold,
        passed=passed,
        mandatory_failures=failures,
        details=details,
    )
    logger.info(f"Credibility {result.summary}")
    for failure in failures:
        logger.debug(
            f"Mandatory mismatch {failure.module} {failure.grade_field}: "
            f"ocr={failure.extracted} user={failure.stored}"
        )
    return result


def cross_check_portal(
    extracted: GradeMap,
    stored: StoredGrades,
    registry: Optional[CurriculumRegistry] = None,
) -> PortalCrossCheck:
    """
    Per-module report of recording grades versus portal entries.

    Modules only on one side go to missing (not_in_portal / not_in_video);
    a gap above 3 points on any field is also listed as suspicious.
    """
    registry = registry or DEFAULT_REGISTRY
    report = PortalCrossCheck()
    seen_storage = set()

    for module_id, grades in extracted.items():
        module = registry.get(module_id)
        seen_storage.add(module.storage_name)
        portal_row = stored.get(module.storage_name)
        entry: Dict[str, Any] = {"module": module.canonical_name, "extracted": grades.to_dict()}

        if portal_row is None:
            report.missing.append({**entry, "status": "not_in_portal"})
            continue

        portal = {"exam": parse_grade(portal_row.get("exam")), "td": parse_grade(portal_row.get("td"))}
        entry["portal"] = portal

        diffs = {}
        all_match = True
        for grade_field in module.fields:
            ours = grades.get(grade_field)
            theirs = portal[grade_field.value]
            if _values_match(ours, theirs):
                continue
            all_match = False
            if ours is not None and theirs is not None:
                diffs[grade_field.value] = round(abs(ours - theirs), 2)

        if all_match:
            report.matches.append(entry)
            continue

        for name, diff in diffs.items():
            entry[f"{name}Diff"] = diff
        report.mismatches.append(entry)
        if any(d > SUSPICIOUS_DIFF for d in diffs.values()):
            report.suspicious.append({**entry, "reason": "large_discrepancy"})

    for storage_name, row in stored.items():
        if storage_name not in seen_storage:
            report.missing.append({"module": storage_name, "status": "not_in_video", "portal": dict(row)})

    logger.info(
        f"Portal cross-check matches={len(report.matches)} mismatches={len(report.mismatches)} "
        f"missing={len(report.missing)} suspicious={len(report.suspicious)}"
    )
    return report
