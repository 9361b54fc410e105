"""
Verification job and verification code models.

A job moves through a closed set of steps. The allowed transitions
depend on the verification type; the orchestrator is the only writer
of status and current_step.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Optional


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _parse_dt(value: Any) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value).replace("Z", "+00:00"))


class VerificationType(str, Enum):
    SCREENSHOT = "screenshot"
    VIDEO = "video"


class JobStatus(str, Enum):
    PROCESSING = "PROCESSING"
    VERIFIED = "VERIFIED"
    PENDING = "PENDING"
    REJECTED = "REJECTED"
    FAILED = "FAILED"


class JobStep(str, Enum):
    UPLOADED = "UPLOADED"
    EXTRACTING_FRAMES = "EXTRACTING_FRAMES"
    OCR_ANALYSIS = "OCR_ANALYSIS"
    AGGREGATING_RESULTS = "AGGREGATING_RESULTS"
    TAMPERING_DETECTION = "TAMPERING_DETECTION"
    COMPARING_GRADES = "COMPARING_GRADES"
    PORTAL_CROSS_CHECK = "PORTAL_CROSS_CHECK"
    CALCULATING_SCORE = "CALCULATING_SCORE"
    COMPLETED = "COMPLETED"
    ERROR = "ERROR"


TERMINAL_STEPS: FrozenSet[JobStep] = frozenset({JobStep.COMPLETED, JobStep.ERROR})

_SCREENSHOT_TRANSITIONS: Dict[JobStep, FrozenSet[JobStep]] = {
    JobStep.UPLOADED: frozenset({JobStep.OCR_ANALYSIS}),
    JobStep.OCR_ANALYSIS: frozenset({JobStep.AGGREGATING_RESULTS}),
    JobStep.AGGREGATING_RESULTS: frozenset({JobStep.COMPARING_GRADES}),
    JobStep.COMPARING_GRADES: frozenset({JobStep.TAMPERING_DETECTION}),
    JobStep.TAMPERING_DETECTION: frozenset({JobStep.CALCULATING_SCORE}),
    JobStep.CALCULATING_SCORE: frozenset({JobStep.COMPLETED}),
}

_VIDEO_TRANSITIONS: Dict[JobStep, FrozenSet[JobStep]] = {
    JobStep.UPLOADED: frozenset({JobStep.EXTRACTING_FRAMES}),
    JobStep.EXTRACTING_FRAMES: frozenset({JobStep.OCR_ANALYSIS}),
    JobStep.OCR_ANALYSIS: frozenset({JobStep.AGGREGATING_RESULTS}),
    # Coverage/timing rule failures finish straight from aggregation
    JobStep.AGGREGATING_RESULTS: frozenset({JobStep.PORTAL_CROSS_CHECK, JobStep.COMPLETED}),
    JobStep.PORTAL_CROSS_CHECK: frozenset({JobStep.TAMPERING_DETECTION}),
    JobStep.TAMPERING_DETECTION: frozenset({JobStep.CALCULATING_SCORE}),
    JobStep.CALCULATING_SCORE: frozenset({JobStep.COMPLETED}),
}

TRANSITIONS: Dict[VerificationType, Dict[JobStep, FrozenSet[JobStep]]] = {
    VerificationType.SCREENSHOT: _SCREENSHOT_TRANSITIONS,
    VerificationType.VIDEO: _VIDEO_TRANSITIONS,
}


def can_transition(verification_type: VerificationType, from_step: JobStep, to_step: JobStep) -> bool:
    """Whether from_step -> to_step is allowed. Any non-terminal step may go to ERROR."""
    if from_step in TERMINAL_STEPS:
        return False
    if to_step is JobStep.ERROR:
        return True
    return to_step in TRANSITIONS[verification_type].get(from_step, frozenset())


STATUS_MESSAGES = {
    JobStatus.PROCESSING: "Verification in progress",
    JobStatus.VERIFIED: "Grades verified (confidence: {score}%)",
    JobStatus.PENDING: "Verification pending manual review (confidence: {score}%)",
    JobStatus.REJECTED: "Verification rejected, grades not confirmed (confidence: {score}%)",
    JobStatus.FAILED: "Verification failed",
}


def status_message(status: JobStatus, score: Optional[int] = None) -> str:
    return STATUS_MESSAGES[status].format(score=score if score is not None else 0)


@dataclass
class VerificationCode:
    """Single-use code the student must show on screen while capturing."""
    user_id: str
    code: str
    expires_at: datetime
    used: bool = False
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    created_at: datetime = field(default_factory=utcnow)

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        return (now or utcnow()) > self.expires_at

    @property
    def ttl_seconds(self) -> int:
        return int((self.expires_at - self.created_at) / timedelta(seconds=1))

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "code": self.code,
            "expires_at": _iso(self.expires_at),
            "used": self.used,
            "created_at": _iso(self.created_at),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "VerificationCode":
        return cls(
            id=data["id"],
            user_id=data["user_id"],
            code=data["code"],
            expires_at=_parse_dt(data["expires_at"]),
            used=bool(data.get("used", False)),
            created_at=_parse_dt(data.get("created_at")) or utcnow(),
        )


@dataclass
class VerificationJob:
    """
    Persistent record of one verification attempt.

    One job per user: a new submission replaces the previous record
    (same user, new id). Evidence holds blob keys, not bytes.
    """
    user_id: str
    verification_type: VerificationType
    code: str = ""
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    status: JobStatus = JobStatus.PROCESSING
    current_step: JobStep = JobStep.UPLOADED
    step_detail: str = ""

    trust_score: Optional[int] = None
    extracted_grades: Dict[str, Any] = field(default_factory=dict)
    tampering_probability: Optional[int] = None
    issues: List[str] = field(default_factory=list)
    score_breakdown: Dict[str, Any] = field(default_factory=dict)
    message: str = ""
    error_message: Optional[str] = None

    frames_analyzed: int = 0
    processing_time: Optional[float] = None
    image_hash: Optional[str] = None
    evidence: Dict[str, str] = field(default_factory=dict)

    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    @property
    def is_terminal(self) -> bool:
        return self.current_step in TERMINAL_STEPS

    def touch(self) -> None:
        self.updated_at = utcnow()

    def to_dict(self) -> dict[str, Any]:
        """Storage representation."""
        return {
            "id": self.id,
            "user_id": self.user_id,
            "verification_type": self.verification_type.value,
            "code": self.code,
            "status": self.status.value,
            "current_step": self.current_step.value,
            "step_detail": self.step_detail,
            "trust_score": self.trust_score,
            "extracted_grades": self.extracted_grades,
            "tampering_probability": self.tampering_probability,
            "issues": list(self.issues),
            "score_breakdown": self.score_breakdown,
            "message": self.message,
            "error_message": self.error_message,
            "frames_analyzed": self.frames_analyzed,
            "processing_time": self.processing_time,
            "image_hash": self.image_hash,
            "evidence": dict(self.evidence),
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "VerificationJob":
        return cls(
            id=data["id"],
            user_id=data["user_id"],
            verification_type=VerificationType(data["verification_type"]),
            code=data.get("code", ""),
            status=JobStatus(data.get("status", JobStatus.PROCESSING.value)),
            current_step=JobStep(data.get("current_step", JobStep.UPLOADED.value)),
            step_detail=data.get("step_detail", ""),
            trust_score=data.get("trust_score"),
            extracted_grades=data.get("extracted_grades") or {},
            tampering_probability=data.get("tampering_probability"),
            issues=list(data.get("issues") or []),
            score_breakdown=data.get("score_breakdown") or {},
            message=data.get("message", ""),
            error_message=data.get("error_message"),
            frames_analyzed=int(data.get("frames_analyzed") or 0),
            processing_time=data.get("processing_time"),
            image_hash=data.get("image_hash"),
            evidence=dict(data.get("evidence") or {}),
            created_at=_parse_dt(data.get("created_at")) or utcnow(),
            updated_at=_parse_dt(data.get("updated_at")) or utcnow(),
        )

    def projection(self) -> dict[str, Any]:
        """Client-facing view used by the status endpoint."""
        return {
            "jobId": self.id,
            "verificationType": self.verification_type.value,
            "status": self.status.value,
            "currentStep": self.current_step.value,
            "stepDetail": self.step_detail or None,
            "trustScore": self.trust_score,
            "extractedGrades": self.extracted_grades,
            "tamperingProbability": self.tampering_probability,
            "issues": list(self.issues),
            "scoreBreakdown": self.score_breakdown,
            "message": self.message,
            "errorMessage": self.error_message,
            "framesAnalyzed": self.frames_analyzed,
            "processingTime": self.processing_time,
            "createdAt": _iso(self.created_at),
            "updatedAt": _iso(self.updated_at),
        }
