"""
Verification service facade.

Entry point used by the HTTP API and the CLI:
- issue_code(user_id)
- submit_screenshots(user_id, code, td_screenshot, exam_screenshot)
- submit_video(user_id, code, video)
- get_status(user_id, job_id=None)

Input errors are raised before any job record exists. Accepted
submissions replace the user's previous job and are handed to the
worker pool (or run inline when no pool is attached).
"""

from __future__ import annotations

import io
from typing import Optional

from PIL import Image, UnidentifiedImageError

from .codes import CodeIssuer
from .config import Config, get_config
from .exceptions import InputValidationError, JobNotFoundError
from .logger import get_logger
from .models import VerificationCode, VerificationJob, VerificationType
from .persistence import VerificationRepository, create_repository
from .pipeline import EXAM_SCREENSHOT, TD_SCREENSHOT, VIDEO, JobOrchestrator, WorkerPool
from .processors.video_frames import check_duration, probe_duration

logger = get_logger(__name__)


def _check_image(name: str, data: bytes) -> None:
    try:
        with Image.open(io.BytesIO(data)) as img:
            img.verify()
    except (UnidentifiedImageError, OSError, SyntaxError) as e:
        raise InputValidationError(f"{name} is not a readable image: {e}", field_name=name, expected="PNG or JPEG")


class VerificationService:
    """
    Args:
        repository: Storage backend (default: from STORAGE_BACKEND)
        config: Application configuration
        orchestrator: Job runner (default: built from config)
        pool: Worker pool; when None, jobs run inline in submit_*
    """

    def __init__(
        self,
        repository: Optional[VerificationRepository] = None,
        config: Optional[Config] = None,
        orchestrator: Optional[JobOrchestrator] = None,
        pool: Optional[WorkerPool] = None,
    ):
        self.config = config or get_config()
        self.repository = repository or create_repository(self.config)
        self.orchestrator = orchestrator or JobOrchestrator(self.repository, self.config)
        self.pool = pool
        self.codes = CodeIssuer(self.repository, self.config.code)

    @classmethod
    def with_workers(cls, config: Optional[Config] = None, **kwargs) -> "VerificationService":
        """Service with a started worker pool sized by VERIFY_WORKERS."""
        service = cls(config=config, **kwargs)
        service.pool = WorkerPool(service.orchestrator, service.repository, service.config.worker.workers)
        service.pool.start()
        return service

    def issue_code(self, user_id: str) -> VerificationCode:
        return self.codes.issue(user_id)

    def submit_screenshots(
        self,
        user_id: str,
        code: str,
        td_screenshot: Optional[bytes] = None,
        exam_screenshot: Optional[bytes] = None,
    ) -> VerificationJob:
        """
        Raises:
            InputValidationError: Missing code or screenshots, unreadable image
            InvalidCodeError / CodeExpiredError: Code rejected
        """
        uploads = {
            name: data for name, data in ((TD_SCREENSHOT, td_screenshot), (EXAM_SCREENSHOT, exam_screenshot)) if data
        }
        if not (code or "").strip() or not uploads:
            raise InputValidationError(
                "Verification code and at least one screenshot are required",
                field_name="tdScreenshot/examScreenshot",
            )
        for name, data in uploads.items():
            _check_image(name, data)

        record = self.codes.consume(user_id, code)
        return self._create_job(user_id, VerificationType.SCREENSHOT, record.code, uploads)

    def submit_video(self, user_id: str, code: str, video: Optional[bytes]) -> VerificationJob:
        """
        Raises:
            InputValidationError: Missing code or video
            InvalidCodeError / CodeExpiredError: Code rejected
            VideoDurationError: Recording outside 3-90 s
        """
        if not (code or "").strip() or not video:
            raise InputValidationError("Verification code and a video are required", field_name="video")

        record = self.codes.consume(user_id, code)
        duration = probe_duration(video)
        check_duration(duration, self.config.video)
        return self._create_job(user_id, VerificationType.VIDEO, record.code, {VIDEO: video})

    def _create_job(
        self,
        user_id: str,
        verification_type: VerificationType,
        code: str,
        uploads: dict,
    ) -> VerificationJob:
        job = VerificationJob(user_id=user_id, verification_type=verification_type, code=code)
        for name, data in uploads.items():
            job.evidence[name] = self.repository.save_evidence(job.id, name, data)

        previous = self.repository.get_job_by_user(user_id)
        self.repository.save_job(job)
        if previous is not None and previous.id != job.id:
            self.repository.delete_evidence(previous.id)
        logger.info(f"Job {job.id} created ({verification_type.value}) for user {user_id}")

        if self.pool is not None:
            self.pool.submit(job.id)
            return job
        return self.orchestrator.run(job)

    def get_status(self, user_id: str, job_id: Optional[str] = None) -> VerificationJob:
        """
        Raises:
            JobNotFoundError: No job, or the job belongs to another user
        """
        if job_id:
            job = self.repository.get_job(job_id)
            if job is None or job.user_id != user_id:
                raise JobNotFoundError(job_id=job_id)
            return job
        job = self.repository.get_job_by_user(user_id)
        if job is None:
            raise JobNotFoundError(user_id=user_id)
        return job

    def shutdown(self) -> None:
        if self.pool is not None:
            self.pool.stop()
