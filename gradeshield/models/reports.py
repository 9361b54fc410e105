"""
Analysis report models.

Outputs of the structure validator, code locator, tamper detector,
credibility cross-checker and trust scoring. All are plain dataclasses
with to_dict() for the job record.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


class TamperSummary(str, Enum):
    CLEAN = "CLEAN"
    LOW_RISK = "LOW_RISK"
    SUSPICIOUS = "SUSPICIOUS"
    HIGH_RISK = "HIGH_RISK"

    @classmethod
    def from_probability(cls, probability: float) -> "TamperSummary":
        if probability < 20:
            return cls.CLEAN
        if probability < 50:
            return cls.LOW_RISK
        if probability < 75:
            return cls.SUSPICIOUS
        return cls.HIGH_RISK


@dataclass
class TamperCheck:
    """One forensic check; details carry "error" when the check itself failed."""
    name: str
    suspicion_score: int
    details: Dict[str, Any] = field(default_factory=dict)

    @property
    def failed(self) -> bool:
        return "error" in self.details

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "suspicionScore": self.suspicion_score, "details": self.details}


@dataclass
class TamperingReport:
    probability: int
    checks: List[TamperCheck] = field(default_factory=list)
    summary: TamperSummary = TamperSummary.CLEAN

    def to_dict(self) -> dict[str, Any]:
        return {
            "tamperingProbability": self.probability,
            "summary": self.summary.value,
            "checks": [c.to_dict() for c in self.checks],
        }


@dataclass
class CodeMatch:
    found: bool = False
    exact: bool = False
    confidence: int = 0
    expired: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "found": self.found,
            "exact": self.exact,
            "confidence": self.confidence,
            "expired": self.expired,
        }


@dataclass
class StructureIssue:
    type: str
    severity: str
    message: str
    count: Optional[int] = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"type": self.type, "severity": self.severity, "message": self.message}
        if self.count is not None:
            data["count"] = self.count
        return data


@dataclass
class StructureReport:
    valid: bool
    score: int
    modules_expected: int
    modules_found: int
    missing_modules: List[str] = field(default_factory=list)
    extra_modules: List[str] = field(default_factory=list)
    issues: List[StructureIssue] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "valid": self.valid,
            "structureScore": self.score,
            "modulesExpected": self.modules_expected,
            "modulesFound": self.modules_found,
            "missingModules": list(self.missing_modules),
            "extraModules": list(self.extra_modules),
            "issues": [i.to_dict() for i in self.issues],
        }


@dataclass
class SlotComparison:
    module: str
    storage_name: str
    grade_field: str
    extracted: Optional[float]
    stored: Optional[float]
    match: bool
    mandatory: bool

    def to_dict(self) -> dict[str, Any]:
        return {
            "module": self.module,
            "dbSubject": self.storage_name,
            "type": self.grade_field,
            "ocrValue": self.extracted,
            "userValue": self.stored,
            "match": self.match,
            "mandatory": self.mandatory,
        }


@dataclass
class CredibilityResult:
    score: int
    total: int
    threshold: int
    passed: bool
    mandatory_failures: List[SlotComparison] = field(default_factory=list)
    details: List[SlotComparison] = field(default_factory=list)

    @property
    def summary(self) -> str:
        text = f"{self.score}/{self.total} {'passed' if self.passed else 'rejected'}"
        if self.mandatory_failures:
            text += f" ({len(self.mandatory_failures)} mandatory grade(s) mismatched)"
        return text

    def to_dict(self) -> dict[str, Any]:
        return {
            "score": self.score,
            "total": self.total,
            "threshold": self.threshold,
            "passed": self.passed,
            "summary": self.summary,
            "mandatoryFailures": [d.to_dict() for d in self.mandatory_failures],
            "details": [d.to_dict() for d in self.details],
        }


@dataclass
class PortalCrossCheck:
    """Extracted grades versus the grades the student entered on the portal."""
    matches: List[dict] = field(default_factory=list)
    mismatches: List[dict] = field(default_factory=list)
    missing: List[dict] = field(default_factory=list)
    suspicious: List[dict] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "matches": self.matches,
            "mismatches": self.mismatches,
            "missing": self.missing,
            "suspicious": self.suspicious,
        }


@dataclass
class ScoreComponent:
    score: int
    max: int
    details: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {"score": self.score, "max": self.max, "details": self.details}


@dataclass
class TrustScore:
    """Weighted score, decision and the breakdown that produced it."""
    score: int
    status: str
    components: Dict[str, ScoreComponent] = field(default_factory=dict)
    penalties: int = 0
    issues: List[str] = field(default_factory=list)
    overrides: List[str] = field(default_factory=list)

    def breakdown(self) -> dict[str, Any]:
        data: dict[str, Any] = {name: c.to_dict() for name, c in self.components.items()}
        data["penalties"] = self.penalties
        if self.overrides:
            data["overrides"] = list(self.overrides)
        return data
