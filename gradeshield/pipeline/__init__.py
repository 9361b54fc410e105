"""
Verification pipelines and job execution:
- ScreenshotPipeline / VideoPipeline: the per-type step sequences
- JobOrchestrator: runs a job to a terminal state
- WorkerPool: background execution with restart recovery
"""

from .base import BasePipeline, JobContext, VerificationOutcome, ImageAnalysis
from .screenshot import ScreenshotPipeline, TD_SCREENSHOT, EXAM_SCREENSHOT
from .video import VideoPipeline, VIDEO
from .orchestrator import JobOrchestrator
from .worker import WorkerPool

__all__ = [
    "BasePipeline",
    "JobContext",
    "VerificationOutcome",
    "ImageAnalysis",
    "ScreenshotPipeline",
    "VideoPipeline",
    "JobOrchestrator",
    "WorkerPool",
    "TD_SCREENSHOT",
    "EXAM_SCREENSHOT",
    "VIDEO",
]
