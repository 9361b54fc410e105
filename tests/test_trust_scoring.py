from gradeshield.models import CodeMatch, CredibilityResult, JobStatus, StructureReport
from gradeshield.processors.averages import stored_to_grade_map
from gradeshield.processors.trust_scoring import (
    apply_overrides,
    screenshot_trust_score,
    status_for_score,
    video_trust_score,
)

from conftest import STORED_GRADES

EXACT = CodeMatch(found=True, exact=True, confidence=100)


def structure(score=100):
    return StructureReport(valid=score >= 60, score=score, modules_expected=8, modules_found=8)


def test_status_thresholds():
    assert status_for_score(100) is JobStatus.VERIFIED
    assert status_for_score(85) is JobStatus.VERIFIED
    assert status_for_score(84) is JobStatus.PENDING
    assert status_for_score(60) is JobStatus.PENDING
    assert status_for_score(59) is JobStatus.REJECTED


def test_screenshot_perfect_score():
    trust = screenshot_trust_score(EXACT, structure(), modules_found=8, tampering_probability=0)

    assert trust.score == 100
    assert trust.status == "VERIFIED"
    assert trust.issues == []
    assert set(trust.breakdown()) == {"verificationCode", "ocrStructure", "moduleMatching", "tampering", "penalties"}


def test_screenshot_code_tiers():
    partial = CodeMatch(found=True, confidence=75)
    weak = CodeMatch(found=True, confidence=50)

    assert screenshot_trust_score(partial, structure(), 8, 0).components["verificationCode"].score == 30
    assert screenshot_trust_score(weak, structure(), 8, 0).components["verificationCode"].score == 20
    assert screenshot_trust_score(CodeMatch(), structure(), 8, 0).components["verificationCode"].score == 0


def test_screenshot_without_code_and_manipulated():
    trust = screenshot_trust_score(CodeMatch(), structure(), modules_found=8, tampering_probability=70)

    assert trust.score == 45
    assert trust.status == "REJECTED"
    assert "Verification code not found in the image" in trust.issues


def test_screenshot_partial_coverage():
    trust = screenshot_trust_score(EXACT, structure(64), modules_found=6, tampering_probability=30)

    # 40 + 18 + 15 + 10
    assert trust.score == 83
    assert trust.status == "PENDING"


def test_unknown_tampering_counts_as_possible():
    trust = screenshot_trust_score(EXACT, structure(), modules_found=8, tampering_probability=None)
    assert trust.components["tampering"].score == 5


def test_video_perfect_score():
    grades = stored_to_grade_map(STORED_GRADES)
    trust = video_trust_score(100, 0, grades, grades, 100, 0, 0, EXACT)

    assert trust.score == 100
    assert trust.penalties == 0
    assert trust.status == "VERIFIED"


def test_video_fluctuations_reduce_temporal_component():
    grades = stored_to_grade_map(STORED_GRADES)
    trust = video_trust_score(100, 0, grades, grades, 100, 2, 0, EXACT)

    assert trust.components["temporalConsistency"].score == 9
    assert trust.score == 89


def test_video_penalties():
    grades = stored_to_grade_map(STORED_GRADES)

    missing_code = video_trust_score(100, 0, grades, grades, 100, 0, 0, CodeMatch())
    assert missing_code.penalties == 15
    assert missing_code.score == 85

    partial_code = video_trust_score(100, 0, grades, grades, 100, 0, 0, CodeMatch(found=True, confidence=50))
    assert partial_code.penalties == 8

    tampered = video_trust_score(100, 0, grades, grades, 100, 0, 65, EXACT)
    assert tampered.penalties == 20
    assert tampered.score == 80


def test_video_without_stored_grades():
    grades = stored_to_grade_map(STORED_GRADES)
    trust = video_trust_score(100, 5, grades, {}, 30, 0, 0, EXACT)

    # 50 - 15 disagreements, no arithmetic, no temporal
    assert trust.components["ocrAgreement"].score == 35
    assert trust.components["arithmeticAccuracy"].score == 0
    assert trust.score == 35


def test_overrides_force_rejection():
    trust = screenshot_trust_score(EXACT, structure(), 8, 0)
    credibility = CredibilityResult(score=12, total=15, threshold=14, passed=False)

    trust = apply_overrides(trust, credibility=credibility)

    assert trust.score == 100
    assert trust.status == "REJECTED"
    assert trust.breakdown()["overrides"] == ["CREDIBILITY_CHECK_FAILED"]


def test_passing_credibility_keeps_status():
    trust = screenshot_trust_score(EXACT, structure(), 8, 0)
    credibility = CredibilityResult(score=15, total=15, threshold=14, passed=True)

    assert apply_overrides(trust, credibility=credibility).status == "VERIFIED"
