"""
Grade data models.

Represents grades as read by OCR engines, reduced per frame by
multi-engine consensus and reduced again across frames.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from .curriculum import DEFAULT_REGISTRY, CurriculumRegistry, GradeFieldName, ModuleId


class PageType(str, Enum):
    """Which portal screen a frame or image shows."""
    EXAM = "exam"              # "Relevé de Notes"
    ASSESSMENT = "assessment"  # "Fiches d'Évaluation"
    UNKNOWN = "unknown"


class Certainty(str, Enum):
    SINGLE_ENGINE = "single_engine"
    PARTIAL = "partial"
    CONSENSUS = "consensus"


@dataclass
class ModuleGrades:
    """Exam (primary) and TD (secondary) grades for one module."""
    primary: Optional[float] = None
    secondary: Optional[float] = None
    # Coefficient as displayed/claimed, checked by the structure validator
    coefficient: Optional[int] = None

    def get(self, field_name: GradeFieldName) -> Optional[float]:
        if field_name is GradeFieldName.EXAM:
            return self.primary
        return self.secondary

    @property
    def is_empty(self) -> bool:
        return self.primary is None and self.secondary is None

    def to_dict(self) -> dict[str, Any]:
        return {"exam": self.primary, "td": self.secondary}


GradeMap = Dict[ModuleId, ModuleGrades]


def grades_to_dict(
    grades: GradeMap, registry: Optional[CurriculumRegistry] = None
) -> dict[str, dict[str, Any]]:
    """Serialize a grade map keyed by canonical module name."""
    registry = registry or DEFAULT_REGISTRY
    out = {}
    for module_id, module_grades in grades.items():
        name = registry.get(module_id).canonical_name if module_id in registry else str(module_id)
        out[name] = module_grades.to_dict()
    return out


@dataclass
class GradeExtraction:
    """Result of parsing one OCR text."""
    grades: GradeMap = field(default_factory=dict)
    modules_found: List[ModuleId] = field(default_factory=list)
    page_type: PageType = PageType.UNKNOWN
    line_count: int = 0


@dataclass
class EngineExtraction:
    """Grades read by one OCR engine from one image or frame."""
    engine: str
    confidence: float
    raw_text: str
    grades: GradeMap = field(default_factory=dict)
    page_type: PageType = PageType.UNKNOWN

    def to_dict(self) -> dict[str, Any]:
        return {
            "engine": self.engine,
            "confidence": self.confidence,
            "pageType": self.page_type.value,
            "grades": {mid.value: g.to_dict() for mid, g in self.grades.items()},
        }


@dataclass
class ConsensusGrade:
    module_id: ModuleId
    primary: Optional[float] = None
    secondary: Optional[float] = None
    certainty: Certainty = Certainty.SINGLE_ENGINE
    sources: List[str] = field(default_factory=list)

    def as_module_grades(self) -> ModuleGrades:
        return ModuleGrades(primary=self.primary, secondary=self.secondary)

    def to_dict(self) -> dict[str, Any]:
        return {
            "exam": self.primary,
            "td": self.secondary,
            "certainty": self.certainty.value,
            "sources": list(self.sources),
        }


@dataclass
class Disagreement:
    module_id: ModuleId
    reason: str  # "single_engine" or "value_mismatch"
    values: Dict[str, dict] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {"module": self.module_id.value, "reason": self.reason, "values": self.values}


@dataclass
class FrameConsensus:
    """Consensus over all engines for a single frame or image."""
    grades: Dict[ModuleId, ConsensusGrade] = field(default_factory=dict)
    agreements: List[ModuleId] = field(default_factory=list)
    disagreements: List[Disagreement] = field(default_factory=list)
    confidence: int = 0

    def grade_map(self) -> GradeMap:
        return {mid: cg.as_module_grades() for mid, cg in self.grades.items()}

    def to_dict(self) -> dict[str, Any]:
        return {
            "grades": {mid.value: cg.to_dict() for mid, cg in self.grades.items()},
            "agreements": [mid.value for mid in self.agreements],
            "disagreements": [d.to_dict() for d in self.disagreements],
            "confidence": self.confidence,
        }


@dataclass
class FrameObservation:
    """One analyzed video frame handed to the temporal aggregator."""
    index: int
    timestamp: float
    page_type: PageType
    consensus: FrameConsensus


@dataclass
class FinalGrade:
    module_id: ModuleId
    primary: Optional[float] = None
    secondary: Optional[float] = None
    primary_consistency: int = 0
    secondary_consistency: int = 0
    frames_found: int = 0

    def as_module_grades(self) -> ModuleGrades:
        return ModuleGrades(primary=self.primary, secondary=self.secondary)

    def to_dict(self) -> dict[str, Any]:
        return {
            "exam": self.primary,
            "td": self.secondary,
            "examConsistency": self.primary_consistency,
            "tdConsistency": self.secondary_consistency,
            "framesFound": self.frames_found,
        }


@dataclass
class Fluctuation:
    """A large jump of one grade between consecutive frames. Kept for audit."""
    module_id: ModuleId
    grade_field: GradeFieldName
    from_frame: int
    to_frame: int
    from_value: float
    to_value: float
    delta: float
    suspicious: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "module": self.module_id.value,
            "field": self.grade_field.value,
            "fromFrame": self.from_frame,
            "toFrame": self.to_frame,
            "fromValue": self.from_value,
            "toValue": self.to_value,
            "delta": self.delta,
            "suspicious": self.suspicious,
        }
