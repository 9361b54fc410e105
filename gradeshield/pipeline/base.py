"""
Base pipeline class and job context.

Provides common functionality for the screenshot and video pipelines
including step transitions, progress persistence, deadline checks,
logging and timing.
"""

from __future__ import annotations

import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from ..config import Config
from ..exceptions import InvalidTransitionError, JobTimeoutError
from ..logger import get_logger
from ..models import (
    DEFAULT_REGISTRY,
    CurriculumRegistry,
    EngineExtraction,
    FrameConsensus,
    JobStatus,
    JobStep,
    PageType,
    TrustScore,
    VerificationJob,
    can_transition,
)
from ..persistence import VerificationRepository
from ..processors.consensus import build_frame_consensus, frame_page_type
from ..processors.grade_extractor import extract_grades
from ..processors.ocr_engines import MultiOCRRunner, OCREngine
from ..processors.tamper_detector import TamperDetector
from ..utils.timing import Timer


@dataclass
class JobContext:
    """
    Everything one running job needs.

    Contains:
    - Configuration and collaborators (repository, OCR engines, detector)
    - The job record being advanced
    - Wall-clock deadline
    """

    config: Config
    job: VerificationJob
    repository: VerificationRepository
    engines: List[OCREngine] = field(default_factory=list)
    tamper_detector: Optional[TamperDetector] = None
    registry: CurriculumRegistry = DEFAULT_REGISTRY
    started_at: float = field(default_factory=time.monotonic)
    superseded: bool = False

    def __post_init__(self):
        if self.tamper_detector is None:
            self.tamper_detector = TamperDetector(self.config.tamper)

    @property
    def ocr(self) -> MultiOCRRunner:
        return MultiOCRRunner(self.engines)

    @property
    def elapsed(self) -> float:
        return time.monotonic() - self.started_at

    def check_deadline(self) -> None:
        limit = self.config.worker.job_timeout_sec
        if self.elapsed > limit:
            raise JobTimeoutError(self.elapsed, limit, step=self.job.current_step.value)

    def persist(self) -> None:
        if not self.repository.update_job(self.job):
            if not self.superseded:
                get_logger(__name__).info(
                    f"Job {self.job.id} replaced by a newer submission; further writes dropped"
                )
            self.superseded = True

    def advance(self, step: JobStep, detail: str = "") -> None:
        """Move the job to the next step and persist it for polling clients."""
        job = self.job
        if not can_transition(job.verification_type, job.current_step, step):
            raise InvalidTransitionError(job.current_step.value, step.value, job.verification_type.value)
        self.check_deadline()
        job.current_step = step
        job.step_detail = detail
        self.persist()

    def progress(self, detail: str) -> None:
        """Sub-step progress within the current step (e.g. OCR "3/8")."""
        self.check_deadline()
        self.job.step_detail = detail
        self.persist()


@dataclass
class VerificationOutcome:
    """What a pipeline hands back to the orchestrator."""
    trust: TrustScore
    extracted_grades: Dict[str, Any] = field(default_factory=dict)
    tampering_probability: Optional[int] = None
    frames_analyzed: int = 0
    image_hash: Optional[str] = None
    breakdown_extra: Dict[str, Any] = field(default_factory=dict)

    @property
    def status(self) -> JobStatus:
        return JobStatus(self.trust.status)


@dataclass
class ImageAnalysis:
    """OCR, extraction and consensus of one image or frame."""
    extractions: List[EngineExtraction] = field(default_factory=list)
    consensus: FrameConsensus = field(default_factory=FrameConsensus)
    page_type: PageType = PageType.UNKNOWN

    @property
    def texts(self) -> List[str]:
        return [e.raw_text for e in self.extractions]

    @property
    def has_text(self) -> bool:
        return bool(self.extractions)


class BasePipeline(ABC):
    """
    Abstract base class for verification pipelines.

    Provides:
    - Consistent logging
    - Timing instrumentation
    - Step transitions through the job context
    """

    # Pipeline name for logging (override in subclass)
    name: str = "BasePipeline"

    def __init__(self, context: JobContext):
        self.context = context
        self.config = context.config
        self.logger = get_logger(f"gradeshield.pipeline.{self.name}")
        self._timer = Timer()

    @property
    def debug_mode(self) -> bool:
        return self.config.debug

    @property
    def job(self) -> VerificationJob:
        return self.context.job

    def log_debug(self, message: str, **kwargs: Any) -> None:
        """Log debug message (only in debug mode)."""
        if self.debug_mode:
            extra = " ".join(f"{k}={v}" for k, v in kwargs.items())
            self.logger.debug(f"{message} {extra}".strip())

    def log_info(self, message: str, **kwargs: Any) -> None:
        extra = " ".join(f"{k}={v}" for k, v in kwargs.items())
        self.logger.info(f"{message} {extra}".strip())

    def log_warning(self, message: str, **kwargs: Any) -> None:
        extra = " ".join(f"{k}={v}" for k, v in kwargs.items())
        self.logger.warning(f"{message} {extra}".strip())

    def log_error(self, message: str, error: Optional[Exception] = None) -> None:
        if error:
            self.logger.error(f"{message}: {error}", exc_info=self.debug_mode)
        else:
            self.logger.error(message)

    def step(self, step: JobStep, detail: str = "") -> None:
        """Advance the job and start timing the new step."""
        self._timer.stop(self.job.current_step.value)
        self.context.advance(step, detail)
        self.log_debug("Step", job=self.job.id, step=step.value)
        if step not in (JobStep.COMPLETED, JobStep.ERROR):
            self._timer.start(step.value)

    def evidence(self, name: str) -> Optional[bytes]:
        key = self.job.evidence.get(name)
        if not key:
            return None
        return self.context.repository.load_evidence(key)

    @abstractmethod
    def process(self) -> VerificationOutcome:
        """
        Run every step of the pipeline up to (not including) COMPLETED.

        Raises:
            GradeShieldError: Evidence or policy problems the orchestrator
                turns into FAILED
        """
        pass

    def run(self) -> VerificationOutcome:
        """Run the pipeline with timing."""
        self.log_info(f"Starting {self.name}", job=self.job.id, user=self.job.user_id)
        self._timer = Timer()
        outcome = self.process()
        for name, total in self._timer.summary().items():
            self.log_debug("Step timing", step=name, duration=f"{total:.2f}s")
        self.log_info(
            f"Completed {self.name}",
            job=self.job.id,
            score=outcome.trust.score,
            status=outcome.trust.status,
            duration=f"{self.context.elapsed:.2f}s",
        )
        return outcome

    def analyze_image(self, image_bytes: bytes, runner: MultiOCRRunner) -> ImageAnalysis:
        """Run every OCR engine on one image and build the per-image consensus."""
        results = runner.run_all(image_bytes)
        extractions = []
        for result in results:
            parsed = extract_grades(result.text, self.context.registry)
            extractions.append(EngineExtraction(
                engine=result.engine,
                confidence=result.confidence,
                raw_text=result.text,
                grades=parsed.grades,
                page_type=parsed.page_type,
            ))
            self.log_debug(
                "OCR extraction",
                engine=result.engine,
                modules=len(parsed.modules_found),
                page=parsed.page_type.value,
            )
        return ImageAnalysis(
            extractions=extractions,
            consensus=build_frame_consensus(extractions),
            page_type=frame_page_type(extractions),
        )
