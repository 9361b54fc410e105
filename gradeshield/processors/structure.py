"""
Structure validation of an extracted transcript against the curriculum.
"""

from __future__ import annotations

from typing import Mapping, Optional, Union

from ..models import (
    DEFAULT_REGISTRY,
    CurriculumRegistry,
    ModuleGrades,
    ModuleId,
    StructureIssue,
    StructureReport,
)

MISSING_MODULE_PENALTY = 12
EXTRA_MODULES_PENALTY = 15
OUT_OF_RANGE_PENALTY = 10
MISSING_FIELD_PENALTY = 5
COEFFICIENT_PENALTY = 8
VALID_THRESHOLD = 60


def validate_structure(
    grades: Mapping[Union[ModuleId, str], ModuleGrades],
    registry: Optional[CurriculumRegistry] = None,
) -> StructureReport:
    """
    Score a module set from 100 down.

    Keys that the registry cannot resolve are reported as extra modules.
    """
    registry = registry or DEFAULT_REGISTRY
    score = 100
    issues = []

    known: dict[ModuleId, ModuleGrades] = {}
    extra = []
    for key, module_grades in grades.items():
        module_id = registry.lookup(key)
        if module_id is None:
            extra.append(str(key))
        else:
            known[module_id] = module_grades

    missing = [m for m in registry if m.module_id not in known]
    if missing:
        score -= MISSING_MODULE_PENALTY * len(missing)
        issues.append(StructureIssue(
            type="MISSING_MODULES",
            severity="HIGH",
            message="Missing modules: " + ", ".join(m.canonical_name for m in missing),
            count=len(missing),
        ))

    if extra:
        score -= EXTRA_MODULES_PENALTY
        issues.append(StructureIssue(
            type="EXTRA_MODULES",
            severity="MEDIUM",
            message="Unrecognized modules: " + ", ".join(extra),
            count=len(extra),
        ))

    for module_id, module_grades in known.items():
        module = registry.get(module_id)
        for grade_field in module.fields:
            value = module_grades.get(grade_field)
            if value is None:
                if not registry.is_allowed_empty(module_id, grade_field):
                    score -= MISSING_FIELD_PENALTY
                    issues.append(StructureIssue(
                        type="MISSING_GRADE",
                        severity="MEDIUM",
                        message=f"{module.canonical_name}: {grade_field.value} grade missing",
                    ))
            elif not 0 <= value <= 20:
                score -= OUT_OF_RANGE_PENALTY
                issues.append(StructureIssue(
                    type="INVALID_GRADE_RANGE",
                    severity="HIGH",
                    message=f"{module.canonical_name}: {grade_field.value} grade {value} outside [0-20]",
                ))

        if module_grades.coefficient is not None and module_grades.coefficient != module.coefficient:
            score -= COEFFICIENT_PENALTY
            issues.append(StructureIssue(
                type="WRONG_COEFFICIENT",
                severity="HIGH",
                message=(
                    f"{module.canonical_name}: coefficient {module_grades.coefficient} "
                    f"instead of {module.coefficient}"
                ),
            ))

    score = max(0, score)
    return StructureReport(
        valid=score >= VALID_THRESHOLD,
        score=score,
        modules_expected=len(registry),
        modules_found=len(known) + len(extra),
        missing_modules=[m.canonical_name for m in missing],
        extra_modules=extra,
        issues=issues,
    )
