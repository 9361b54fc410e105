import copy
from datetime import timedelta

import pytest

from gradeshield.exceptions import (
    CodeExpiredError,
    InputValidationError,
    InvalidCodeError,
    JobNotFoundError,
    VideoDurationError,
)
from gradeshield.models import JobStatus, JobStep
from gradeshield.processors.video_frames import VideoFrame

from conftest import PORTAL_ROWS, STORED_GRADES, make_image, transcript


@pytest.fixture
def student(repository):
    repository.save_profile("student-1", student_id="212131234567", grades=STORED_GRADES)
    return "student-1"


@pytest.fixture
def frames():
    return [VideoFrame(index=i, timestamp=float(i), image_bytes=make_image(seed=10 + i, ext=".jpg")) for i in range(3)]


@pytest.fixture
def video_upload(monkeypatch, frames):
    monkeypatch.setattr("gradeshield.service.probe_duration", lambda data: 12.0)
    monkeypatch.setattr("gradeshield.pipeline.video.extract_frames", lambda data, config: frames)
    return b"screen-recording"


@pytest.mark.regression
def test_screenshot_verified(service, repository, fake_ocr, audit_log, student):
    code = service.issue_code(student).code
    fake_ocr.default = transcript(code)

    job = service.submit_screenshots(student, code, exam_screenshot=make_image())

    assert job.status is JobStatus.VERIFIED
    assert job.current_step is JobStep.COMPLETED
    assert job.trust_score == 100
    assert job.tampering_probability == 0
    assert job.extracted_grades["Analyse 03"] == {"exam": 14.5, "td": 12.0}
    assert job.extracted_grades["Anglais 02"] == {"exam": 16.0, "td": None}
    assert job.score_breakdown["verificationCode"]["score"] == 40
    assert job.score_breakdown["credibility"]["passed"]
    assert job.message == "Grades verified (confidence: 100%)"
    assert job.image_hash

    assert repository.is_verified(student)
    assert repository.get_job_by_user(student).status is JobStatus.VERIFIED
    assert repository.load_evidence(f"{job.id}/exam_screenshot") is None
    assert [e["status"] for e in audit_log.read_all()] == ["VERIFIED"]


@pytest.mark.regression
def test_screenshot_pair_merges_td_screen(service, repository, fake_ocr, student):
    code = service.issue_code(student).code
    td_image, exam_image = make_image(seed=1), make_image(seed=2)
    fake_ocr.texts[td_image] = transcript(code, title="Fiches d'Évaluation", rows=PORTAL_ROWS[:2])
    fake_ocr.texts[exam_image] = transcript(code)

    job = service.submit_screenshots(student, code, td_screenshot=td_image, exam_screenshot=exam_image)

    assert job.frames_analyzed == 2
    assert job.extracted_grades["Analyse 03"] == {"exam": 14.5, "td": 12.0}
    # Modules missing on the TD screen keep only their exam grade
    assert job.extracted_grades["SFSD"] == {"exam": 11.5, "td": None}
    assert job.status is JobStatus.REJECTED


@pytest.mark.regression
def test_screenshot_mismatch_with_self_reported_grades(service, repository, fake_ocr, student):
    stored = copy.deepcopy(STORED_GRADES)
    stored["Analyse 03"]["exam"] = 18.0
    repository.save_profile(student, grades=stored)
    code = service.issue_code(student).code
    fake_ocr.default = transcript(code)

    job = service.submit_screenshots(student, code, exam_screenshot=make_image())

    assert job.trust_score == 100
    assert job.status is JobStatus.REJECTED
    assert job.score_breakdown["overrides"] == ["CREDIBILITY_CHECK_FAILED"]
    assert not repository.is_verified(student)


def test_screenshot_without_text_fails(service, repository, fake_ocr, student):
    code = service.issue_code(student).code
    fake_ocr.default = ""

    job = service.submit_screenshots(student, code, exam_screenshot=make_image())

    assert job.status is JobStatus.FAILED
    assert job.current_step is JobStep.ERROR
    assert job.issues == ["NO_TEXT: No OCR engine returned usable text"]
    # Engines are released on failure too
    assert fake_ocr.built and all(engine.closed for engine in fake_ocr.built)
    assert job.trust_score is None
    assert repository.get_job_by_user(student).status is JobStatus.FAILED


def test_screenshot_too_small_fails(service, fake_ocr, student):
    code = service.issue_code(student).code
    fake_ocr.default = transcript(code)

    job = service.submit_screenshots(student, code, exam_screenshot=make_image(width=120, height=80))

    assert job.status is JobStatus.FAILED
    assert job.issues[0].startswith("LOW_RESOLUTION")
    assert fake_ocr.calls == 0


def test_submission_input_errors(service, student):
    code = service.issue_code(student).code

    with pytest.raises(InputValidationError):
        service.submit_screenshots(student, code)
    with pytest.raises(InputValidationError):
        service.submit_screenshots(student, "", exam_screenshot=make_image())
    with pytest.raises(InputValidationError):
        service.submit_screenshots(student, code, exam_screenshot=b"not an image")
    with pytest.raises(InvalidCodeError):
        service.submit_screenshots(student, "AG-S3-00000", exam_screenshot=make_image())
    assert repository_job(service, student) is None


def test_code_cannot_be_reused(service, fake_ocr, student):
    code = service.issue_code(student).code
    fake_ocr.default = transcript(code)
    service.submit_screenshots(student, code, exam_screenshot=make_image())

    with pytest.raises(InvalidCodeError):
        service.submit_screenshots(student, code, exam_screenshot=make_image())


def test_expired_code(service, student):
    code = service.issue_code(student)
    record = service.repository.find_code(student, code.code)
    record.expires_at = record.created_at - timedelta(seconds=1)
    service.repository.save_code(record)

    with pytest.raises(CodeExpiredError):
        service.submit_screenshots(student, code.code, exam_screenshot=make_image())


def test_status_lookup(service, fake_ocr, student):
    code = service.issue_code(student).code
    fake_ocr.default = transcript(code)
    job = service.submit_screenshots(student, code, exam_screenshot=make_image())

    assert service.get_status(student).id == job.id
    assert service.get_status(student, job.id).status is JobStatus.VERIFIED
    with pytest.raises(JobNotFoundError):
        service.get_status("someone-else", job.id)
    with pytest.raises(JobNotFoundError):
        service.get_status("someone-else")


def test_new_submission_replaces_previous_job(service, fake_ocr, student):
    first_code = service.issue_code(student).code
    fake_ocr.default = ""
    first = service.submit_screenshots(student, first_code, exam_screenshot=make_image())

    second_code = service.issue_code(student).code
    fake_ocr.default = transcript(second_code)
    second = service.submit_screenshots(student, second_code, exam_screenshot=make_image())

    assert first.id != second.id
    assert service.repository.get_job(first.id) is None
    assert service.get_status(student).id == second.id


@pytest.mark.regression
def test_video_verified(service, repository, fake_ocr, frames, video_upload, student):
    code = service.issue_code(student).code
    fake_ocr.texts[frames[0].image_bytes] = transcript(code)
    fake_ocr.texts[frames[1].image_bytes] = transcript(code)
    fake_ocr.texts[frames[2].image_bytes] = transcript(code, title="Fiches d'Évaluation")

    job = service.submit_video(student, code, video_upload)

    assert job.status is JobStatus.VERIFIED
    assert job.trust_score == 100
    assert job.frames_analyzed == 3
    assert job.extracted_grades["SFSD"] == {"exam": 11.5, "td": 16.0}
    assert job.score_breakdown["temporal"]["passed"]
    assert job.score_breakdown["temporal"]["pagesIndependent"]
    assert job.score_breakdown["portalCrossCheck"]["mismatches"] == []
    assert repository.is_verified(student)


def test_video_with_blank_stored_grade_is_scored(service, repository, fake_ocr, frames, video_upload):
    stored = copy.deepcopy(STORED_GRADES)
    stored["Anglais 02"]["td"] = ""
    repository.save_profile("student-2", grades=stored)
    code = service.issue_code("student-2").code
    fake_ocr.default = transcript(code)
    fake_ocr.texts[frames[2].image_bytes] = transcript(code, title="Fiches d'Évaluation")

    job = service.submit_video("student-2", code, video_upload)

    assert job.status is JobStatus.VERIFIED
    assert job.trust_score == 100
    assert job.error_message is None


@pytest.mark.regression
def test_video_missing_assessment_screen(service, repository, fake_ocr, frames, video_upload, student):
    code = service.issue_code(student).code
    fake_ocr.default = transcript(code)

    job = service.submit_video(student, code, video_upload)

    assert job.status is JobStatus.REJECTED
    assert job.current_step is JobStep.COMPLETED
    assert job.trust_score == 0
    assert job.extracted_grades == {}
    assert job.frames_analyzed == 3
    assert job.score_breakdown["overrides"] == ["SCREEN_MISSING"]
    assert job.issues[0].startswith("SCREEN_MISSING")
    assert not repository.is_verified(student)


def test_video_duration_rejected(service, monkeypatch, student):
    monkeypatch.setattr("gradeshield.service.probe_duration", lambda data: 120.0)
    code = service.issue_code(student).code

    with pytest.raises(VideoDurationError):
        service.submit_video(student, code, b"long-recording")
    # The attempt burned the code
    with pytest.raises(InvalidCodeError):
        service.submit_video(student, code, b"long-recording")


def repository_job(service, user_id):
    return service.repository.get_job_by_user(user_id)
