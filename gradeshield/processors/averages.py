"""
Screenshot merging and average computation.

Module average = 0.4 * TD + 0.6 * exam (either grade alone when the
other is missing); semester average weights module averages by
coefficient.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from ..models import DEFAULT_REGISTRY, CurriculumRegistry, GradeMap, ModuleGrades, ModuleId
from ..utils.text_utils import parse_grade

TD_WEIGHT = 0.40
EXAM_WEIGHT = 0.60


def merge_screenshot_grades(
    td_grades: GradeMap,
    exam_grades: GradeMap,
    registry: Optional[CurriculumRegistry] = None,
) -> GradeMap:
    """
    Combine the TD screenshot and the exam screenshot.

    On the TD screen the first number of a module row is usually the TD
    grade, so td falls back to the primary value read there.
    """
    registry = registry or DEFAULT_REGISTRY
    merged: GradeMap = {}
    for module_id in list(dict.fromkeys([*td_grades.keys(), *exam_grades.keys()])):
        td_row = td_grades.get(module_id) or ModuleGrades()
        exam_row = exam_grades.get(module_id) or ModuleGrades()
        module = registry.get(module_id)

        td_value = td_row.secondary if td_row.secondary is not None else td_row.primary
        merged[module_id] = ModuleGrades(
            primary=exam_row.primary,
            secondary=td_value if module.has_secondary_field else None,
            coefficient=exam_row.coefficient or td_row.coefficient or module.coefficient,
        )
    return merged


@dataclass
class ModuleAverage:
    exam: Optional[float]
    td: Optional[float]
    average: Optional[float]
    coefficient: int

    def to_dict(self) -> dict[str, Any]:
        return {"exam": self.exam, "td": self.td, "average": self.average, "coefficient": self.coefficient}


@dataclass
class Averages:
    modules: Dict[ModuleId, ModuleAverage] = field(default_factory=dict)
    semester_average: Optional[float] = None
    total_coefficients: int = 0

    @property
    def modules_calculated(self) -> int:
        return sum(1 for m in self.modules.values() if m.average is not None)

    def to_dict(self, registry: Optional[CurriculumRegistry] = None) -> dict[str, Any]:
        registry = registry or DEFAULT_REGISTRY
        return {
            "modules": {registry.get(mid).canonical_name: m.to_dict() for mid, m in self.modules.items()},
            "semesterAverage": self.semester_average,
            "totalCoefficients": self.total_coefficients,
            "modulesCalculated": self.modules_calculated,
        }


def module_average(exam: Optional[float], td: Optional[float], has_td: bool) -> Optional[float]:
    if has_td and exam is not None and td is not None:
        return round(td * TD_WEIGHT + exam * EXAM_WEIGHT, 2)
    if exam is not None:
        return exam
    return td


def calculate_averages(grades: GradeMap, registry: Optional[CurriculumRegistry] = None) -> Averages:
    registry = registry or DEFAULT_REGISTRY
    result = Averages()
    weighted_sum = 0.0

    for module_id, module_grades in grades.items():
        module = registry.get(module_id)
        average = module_average(module_grades.primary, module_grades.secondary, module.has_secondary_field)
        result.modules[module_id] = ModuleAverage(
            exam=module_grades.primary,
            td=module_grades.secondary,
            average=average,
            coefficient=module.coefficient,
        )
        if average is not None:
            weighted_sum += average * module.coefficient
            result.total_coefficients += module.coefficient

    if result.total_coefficients:
        result.semester_average = round(weighted_sum / result.total_coefficients, 2)
    return result


def stored_to_grade_map(stored, registry: Optional[CurriculumRegistry] = None) -> GradeMap:
    """Self-reported rows keyed by storage name -> GradeMap. Unknown subjects are skipped."""
    registry = registry or DEFAULT_REGISTRY
    grades: GradeMap = {}
    for subject, row in stored.items():
        module_id = registry.lookup(subject)
        if module_id is None:
            continue
        grades[module_id] = ModuleGrades(
            primary=parse_grade(row.get("exam")),
            secondary=parse_grade(row.get("td")),
        )
    return grades
