from gradeshield.models import JobStatus, JobStep, VerificationJob, VerificationType
from gradeshield.pipeline import WorkerPool
from gradeshield.service import VerificationService

from conftest import STORED_GRADES, make_image, transcript


class RecordingOrchestrator:

    def __init__(self):
        self.jobs = []

    def run(self, job):
        self.jobs.append((job.id, job.current_step))
        job.current_step = JobStep.COMPLETED
        return job


def test_pool_runs_submitted_jobs(repository, config, orchestrator, fake_ocr):
    repository.save_profile("student-1", grades=STORED_GRADES)
    pool = WorkerPool(orchestrator, repository, workers=2)
    service = VerificationService(repository=repository, config=config, orchestrator=orchestrator, pool=pool)
    pool.start()
    try:
        code = service.issue_code("student-1").code
        fake_ocr.default = transcript(code)

        job = service.submit_screenshots("student-1", code, exam_screenshot=make_image())
        assert job.status is JobStatus.PROCESSING

        pool.join()
        assert service.get_status("student-1", job.id).status is JobStatus.VERIFIED
    finally:
        service.shutdown()
    assert not pool.running


def test_recover_requeues_unfinished_jobs(repository):
    interrupted = VerificationJob(user_id="u1", verification_type=VerificationType.SCREENSHOT)
    interrupted.current_step = JobStep.TAMPERING_DETECTION
    finished = VerificationJob(user_id="u2", verification_type=VerificationType.SCREENSHOT)
    finished.current_step = JobStep.COMPLETED
    repository.save_job(interrupted)
    repository.save_job(finished)

    orchestrator = RecordingOrchestrator()
    pool = WorkerPool(orchestrator, repository, workers=1)
    pool.start()
    try:
        pool.join()
    finally:
        pool.stop()

    # Interrupted jobs restart from the first step
    assert orchestrator.jobs == [(interrupted.id, JobStep.UPLOADED)]


def test_unknown_job_is_skipped(repository):
    orchestrator = RecordingOrchestrator()
    pool = WorkerPool(orchestrator, repository, workers=1)
    pool.start(recover=False)
    try:
        pool.submit("does-not-exist")
        pool.join()
    finally:
        pool.stop()

    assert orchestrator.jobs == []
