"""
Data models for the grade verification engine.

These models represent the core data structures and are designed
to be easily serializable to JSON and mappable to SQL tables.
"""

from .curriculum import (
    ModuleId,
    GradeFieldName,
    CurriculumModule,
    CurriculumRegistry,
    DEFAULT_REGISTRY,
    S3_MODULES,
)
from .grades import (
    PageType,
    Certainty,
    ModuleGrades,
    GradeMap,
    GradeExtraction,
    EngineExtraction,
    ConsensusGrade,
    Disagreement,
    FrameConsensus,
    FrameObservation,
    FinalGrade,
    Fluctuation,
    grades_to_dict,
)
from .reports import (
    TamperSummary,
    TamperCheck,
    TamperingReport,
    CodeMatch,
    StructureIssue,
    StructureReport,
    SlotComparison,
    CredibilityResult,
    PortalCrossCheck,
    ScoreComponent,
    TrustScore,
)
from .job import (
    VerificationType,
    JobStatus,
    JobStep,
    VerificationJob,
    VerificationCode,
    can_transition,
    status_message,
    utcnow,
)

__all__ = [
    # Curriculum
    "ModuleId",
    "GradeFieldName",
    "CurriculumModule",
    "CurriculumRegistry",
    "DEFAULT_REGISTRY",
    "S3_MODULES",

    # Grades
    "PageType",
    "Certainty",
    "ModuleGrades",
    "GradeMap",
    "GradeExtraction",
    "EngineExtraction",
    "ConsensusGrade",
    "Disagreement",
    "FrameConsensus",
    "FrameObservation",
    "FinalGrade",
    "Fluctuation",
    "grades_to_dict",

    # Reports
    "TamperSummary",
    "TamperCheck",
    "TamperingReport",
    "CodeMatch",
    "StructureIssue",
    "StructureReport",
    "SlotComparison",
    "CredibilityResult",
    "PortalCrossCheck",
    "ScoreComponent",
    "TrustScore",

    # Jobs
    "VerificationType",
    "JobStatus",
    "JobStep",
    "VerificationJob",
    "VerificationCode",
    "can_transition",
    "status_message",
    "utcnow",
]
