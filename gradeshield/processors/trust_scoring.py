"""
Trust scoring.

Screenshot profile (100 points):
    verification code 40, structure 25, module coverage 20, tampering 15

Video profile (100 points, then penalties):
    OCR agreement 50, arithmetic of averages 30, temporal consistency 20
    penalties for tampering and for a missing, expired or partial code

Status: >= 85 VERIFIED, >= 60 PENDING, else REJECTED. Hard policy
overrides are applied afterwards and recorded in the breakdown.
"""

from __future__ import annotations

from typing import Optional

from ..models import (
    DEFAULT_REGISTRY,
    CodeMatch,
    CredibilityResult,
    CurriculumRegistry,
    GradeMap,
    JobStatus,
    ScoreComponent,
    StructureReport,
    TrustScore,
)
from .averages import calculate_averages

VERIFIED_THRESHOLD = 85
PENDING_THRESHOLD = 60
UNKNOWN_TAMPER_PROBABILITY = 50


def status_for_score(score: int) -> JobStatus:
    if score >= VERIFIED_THRESHOLD:
        return JobStatus.VERIFIED
    if score >= PENDING_THRESHOLD:
        return JobStatus.PENDING
    return JobStatus.REJECTED


def screenshot_trust_score(
    code: CodeMatch,
    structure: StructureReport,
    modules_found: int,
    tampering_probability: Optional[int],
    modules_expected: int = 8,
) -> TrustScore:
    issues = []

    if code.expired:
        code_score = 0
        issues.append("Verification code expired")
    elif code.found and code.exact:
        code_score = 40
    elif code.found and code.confidence >= 75:
        code_score = 30
    elif code.found and code.confidence >= 50:
        code_score = 20
    else:
        code_score = 0
        issues.append("Verification code not found in the image")

    if structure.valid and structure.score >= 80:
        structure_score = 25
    elif structure.score >= 60:
        structure_score = 18
    elif structure.score >= 40:
        structure_score = 10
    else:
        structure_score = 0
        issues.append("Grade structure invalid or incomplete")

    ratio = modules_found / modules_expected if modules_expected else 0.0
    if ratio >= 1.0:
        module_score = 20
    elif ratio >= 0.75:
        module_score = 15
    elif ratio >= 0.5:
        module_score = 10
    else:
        module_score = int(round(ratio * 10))
        issues.append(f"Only {modules_found}/{modules_expected} modules found")

    probability = UNKNOWN_TAMPER_PROBABILITY if tampering_probability is None else tampering_probability
    if probability < 20:
        tamper_score = 15
    elif probability < 40:
        tamper_score = 10
    elif probability < 60:
        tamper_score = 5
        issues.append(f"Possible image manipulation: {probability}%")
    else:
        tamper_score = 0
        issues.append(f"Likely image manipulation: {probability}%")

    total = code_score + structure_score + module_score + tamper_score
    return TrustScore(
        score=total,
        status=status_for_score(total).value,
        components={
            "verificationCode": ScoreComponent(code_score, 40, code.to_dict()),
            "ocrStructure": ScoreComponent(structure_score, 25, {"structureScore": structure.score}),
            "moduleMatching": ScoreComponent(
                module_score, 20,
                {"found": modules_found, "expected": modules_expected, "ratio": round(ratio, 3)},
            ),
            "tampering": ScoreComponent(tamper_score, 15, {"probability": probability}),
        },
        issues=issues,
    )


def _ocr_agreement_score(confidence: int) -> int:
    if confidence >= 90:
        return 50
    if confidence >= 75:
        return 40
    if confidence >= 60:
        return 30
    if confidence >= 40:
        return 20
    if confidence >= 20:
        return 10
    return 0


def _arithmetic_score(diff: float) -> int:
    if diff <= 0.5:
        return 30
    if diff <= 1.0:
        return 22
    if diff <= 2.0:
        return 15
    if diff <= 3.0:
        return 8
    return 0


def video_trust_score(
    ocr_confidence: int,
    disagreements: int,
    extracted: GradeMap,
    stored: Optional[GradeMap],
    temporal_consistency: int,
    fluctuations: int,
    tampering_probability: Optional[int],
    code: CodeMatch,
    registry: Optional[CurriculumRegistry] = None,
) -> TrustScore:
    registry = registry or DEFAULT_REGISTRY
    issues = []

    # OCR agreement
    ocr_score = _ocr_agreement_score(ocr_confidence)
    if ocr_score == 0:
        issues.append(f"Low OCR agreement: {ocr_confidence}%")
    if disagreements > 3:
        ocr_score = max(0, ocr_score - min(15, disagreements * 3))
        issues.append(f"{disagreements} modules disagreed between OCR engines")

    # Arithmetic of averages
    extracted_avg = None
    stored_avg = None
    if extracted and stored:
        extracted_avg = calculate_averages(extracted, registry).semester_average
        stored_avg = calculate_averages(stored, registry).semester_average
        if extracted_avg is not None and stored_avg is not None:
            diff = abs(extracted_avg - stored_avg)
            arithmetic_score = _arithmetic_score(diff)
            if arithmetic_score <= 8:
                issues.append(f"Semester average differs by {diff:.2f} points")
        else:
            arithmetic_score = 10
            issues.append("Could not compute a complete semester average")
    else:
        arithmetic_score = 0
        issues.append("Grades not available for comparison")

    # Temporal consistency
    if temporal_consistency >= 90 and fluctuations == 0:
        temporal_score = 20
    elif temporal_consistency >= 75:
        temporal_score = 15
    elif temporal_consistency >= 60:
        temporal_score = 10
    elif temporal_consistency >= 40:
        temporal_score = 5
    else:
        temporal_score = 0
        issues.append(f"Low temporal consistency: {temporal_consistency}%")
    if fluctuations > 0:
        temporal_score = max(0, temporal_score - min(10, fluctuations * 3))
        issues.append(f"{fluctuations} grade fluctuation(s) between frames")

    # Penalties
    penalties = 0
    probability = tampering_probability or 0
    if probability >= 60:
        penalties += 20
        issues.append(f"Likely image manipulation: {probability}%")
    elif probability >= 40:
        penalties += 10
        issues.append(f"Possible image manipulation: {probability}%")
    elif probability >= 25:
        penalties += 5

    if not code.found:
        penalties += 15
        issues.append("Verification code not found in the recording")
    elif code.expired:
        penalties += 20
        issues.append("Verification code expired")
    elif not code.exact and code.confidence < 70:
        penalties += 8
        issues.append("Verification code only partially detected")

    raw = ocr_score + arithmetic_score + temporal_score
    total = max(0, min(100, raw - penalties))
    return TrustScore(
        score=total,
        status=status_for_score(total).value,
        components={
            "ocrAgreement": ScoreComponent(
                ocr_score, 50, {"confidence": ocr_confidence, "disagreements": disagreements}
            ),
            "arithmeticAccuracy": ScoreComponent(
                arithmetic_score, 30,
                {"extractedAverage": extracted_avg, "storedAverage": stored_avg, "extractedModules": len(extracted)},
            ),
            "temporalConsistency": ScoreComponent(
                temporal_score, 20, {"consistency": temporal_consistency, "fluctuations": fluctuations}
            ),
        },
        penalties=penalties,
        issues=issues,
    )


def apply_overrides(
    trust: TrustScore,
    credibility: Optional[CredibilityResult] = None,
    blocked_reason: Optional[str] = None,
) -> TrustScore:
    """Force REJECTED for policy failures; the numeric score is kept."""
    if blocked_reason:
        trust.overrides.append(blocked_reason)
    if credibility is not None and not credibility.passed:
        trust.overrides.append("CREDIBILITY_CHECK_FAILED")
        trust.issues.append(f"Grades do not match the self-reported grades ({credibility.summary})")
    if trust.overrides:
        trust.status = JobStatus.REJECTED.value
    return trust
