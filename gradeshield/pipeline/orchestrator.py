"""
Verification job orchestrator.

Sole writer of a job's status, current step and final fields. Runs the
pipeline matching the job type, then records the terminal state:

    COMPLETED + VERIFIED | PENDING | REJECTED
    ERROR + FAILED (any exception, with error_message)

On VERIFIED it flips the user's verified flag, the only write to the
external user record. Every finished job is appended to the audit log.
"""

from __future__ import annotations

import time
from typing import Callable, List, Optional

from ..config import Config, get_config
from ..exceptions import GradeShieldError
from ..logger import get_logger, log_timing
from ..models import JobStatus, JobStep, VerificationJob, VerificationType, status_message
from ..persistence import AuditLog, VerificationRepository
from ..processors.ocr_engines import KeyRotation, OCREngine, build_engines
from ..processors.tamper_detector import TamperDetector
from .base import BasePipeline, JobContext, VerificationOutcome
from .screenshot import ScreenshotPipeline
from .video import VideoPipeline

logger = get_logger(__name__)

PIPELINES = {
    VerificationType.SCREENSHOT: ScreenshotPipeline,
    VerificationType.VIDEO: VideoPipeline,
}


class JobOrchestrator:
    """
    Runs verification jobs to a terminal state.

    Args:
        repository: Job, evidence and user-record storage
        config: Application configuration (default: global config)
        engine_factory: Builds the OCR engines for one job; one set is
            created per job and reused for all of its frames
        tamper_detector: Shared detector (stateless between calls)
        audit_log: Audit log (default: config.audit_log_path)
    """

    def __init__(
        self,
        repository: VerificationRepository,
        config: Optional[Config] = None,
        engine_factory: Optional[Callable[[], List[OCREngine]]] = None,
        tamper_detector: Optional[TamperDetector] = None,
        audit_log: Optional[AuditLog] = None,
    ):
        self.repository = repository
        self.config = config or get_config()
        self._keys = KeyRotation(self.config.ocr.ocr_space_keys)
        self.engine_factory = engine_factory or (lambda: build_engines(self.config.ocr, self._keys))
        self.tamper_detector = tamper_detector or TamperDetector(self.config.tamper)
        self.audit_log = audit_log or AuditLog(self.config.audit_log_path)

    def build_context(self, job: VerificationJob) -> JobContext:
        return JobContext(
            config=self.config,
            job=job,
            repository=self.repository,
            engines=self.engine_factory(),
            tamper_detector=self.tamper_detector,
        )

    def run(self, job: VerificationJob) -> VerificationJob:
        """
        Process a job to COMPLETED or ERROR. Never raises.

        Returns:
            The job in its final state
        """
        start = time.monotonic()
        context: Optional[JobContext] = None
        try:
            context = self.build_context(job)
            pipeline: BasePipeline = PIPELINES[job.verification_type](context)
            outcome = pipeline.run()
            self._complete(context, outcome)
        except GradeShieldError as e:
            logger.warning(f"Job {job.id} failed: {e}")
            self._fail(job, e.message, e.details)
        except Exception as e:
            logger.error(f"Job {job.id} crashed: {e}", exc_info=self.config.debug)
            self._fail(job, str(e) or e.__class__.__name__, {"type": e.__class__.__name__})
        finally:
            if context is not None:
                for engine in context.engines:
                    engine.close()

        job.processing_time = round(time.monotonic() - start, 2)
        log_timing(logger, f"Job {job.id} ({job.verification_type.value})", job.processing_time)
        self._persist(context, job)
        self.repository.delete_evidence(job.id)
        if not (context and context.superseded):
            self._audit(job)
        return job

    def _complete(self, context: JobContext, outcome: VerificationOutcome) -> None:
        job = context.job
        trust = outcome.trust

        job.status = outcome.status
        job.trust_score = trust.score
        job.extracted_grades = outcome.extracted_grades
        job.tampering_probability = outcome.tampering_probability
        job.issues = list(trust.issues)
        job.score_breakdown = {**trust.breakdown(), **outcome.breakdown_extra}
        job.frames_analyzed = outcome.frames_analyzed
        job.image_hash = outcome.image_hash
        job.message = status_message(job.status, trust.score)
        context.advance(JobStep.COMPLETED)

        if job.status is JobStatus.VERIFIED and not context.superseded:
            self.repository.set_verified(job.user_id, True)
            logger.info(f"User {job.user_id} verified by job {job.id}")

        logger.info(f"Job {job.id} {job.status.value} score={trust.score}")

    def _fail(self, job: VerificationJob, message: str, details: dict) -> None:
        job.status = JobStatus.FAILED
        job.current_step = JobStep.ERROR
        job.error_message = message
        job.message = status_message(JobStatus.FAILED)
        reason = details.get("reason")
        job.issues = [f"{reason}: {message}"] if reason else [message]

    def _persist(self, context: Optional[JobContext], job: VerificationJob) -> None:
        if context is not None:
            context.persist()
        elif not self.repository.update_job(job):
            logger.info(f"Job {job.id} replaced by a newer submission; final write dropped")

    def _audit(self, job: VerificationJob) -> None:
        try:
            self.audit_log.record(job)
        except GradeShieldError as e:
            logger.warning(f"Audit log write failed for job {job.id}: {e}")
