"""
Background job execution.

Submissions only enqueue a job id; daemon worker threads load the job
and hand it to the orchestrator. Jobs still PROCESSING when the pool
starts (e.g. after a restart) are re-enqueued.
"""

from __future__ import annotations

import queue
import threading
from typing import List, Optional

from ..logger import get_logger
from ..models import JobStep, VerificationJob
from ..persistence import VerificationRepository
from .orchestrator import JobOrchestrator

logger = get_logger(__name__)

_STOP = object()


class WorkerPool:
    """
    Fixed pool of worker threads fed by a FIFO queue.

    Usage:
        pool = WorkerPool(orchestrator, repository, workers=2)
        pool.start()
        pool.submit(job.id)
        ...
        pool.stop()
    """

    def __init__(self, orchestrator: JobOrchestrator, repository: VerificationRepository, workers: int = 2):
        self.orchestrator = orchestrator
        self.repository = repository
        self.workers = max(1, workers)
        self._queue: "queue.Queue[object]" = queue.Queue()
        self._threads: List[threading.Thread] = []

    @property
    def running(self) -> bool:
        return any(t.is_alive() for t in self._threads)

    def start(self, recover: bool = True) -> None:
        if self.running:
            return
        self._threads = [
            threading.Thread(target=self._loop, name=f"verify-worker-{i + 1}", daemon=True)
            for i in range(self.workers)
        ]
        for thread in self._threads:
            thread.start()
        logger.info(f"Started {self.workers} verification worker(s)")
        if recover:
            self.recover()

    def recover(self) -> int:
        """Re-enqueue jobs left PROCESSING by a previous process."""
        recovered = 0
        for job in self.repository.list_processing_jobs():
            self.submit(job.id)
            recovered += 1
        if recovered:
            logger.info(f"Re-enqueued {recovered} unfinished job(s)")
        return recovered

    def submit(self, job_id: str) -> None:
        self._queue.put(job_id)

    def join(self) -> None:
        """Block until every submitted job has been processed."""
        self._queue.join()

    def stop(self, timeout: Optional[float] = 5.0) -> None:
        for _ in self._threads:
            self._queue.put(_STOP)
        for thread in self._threads:
            thread.join(timeout)
        self._threads = []

    def _loop(self) -> None:
        while True:
            item = self._queue.get()
            try:
                if item is _STOP:
                    return
                self._process(str(item))
            except Exception as e:
                # A worker must survive any job
                logger.error(f"Worker error on job {item}: {e}", exc_info=True)
            finally:
                self._queue.task_done()

    def _process(self, job_id: str) -> None:
        job: Optional[VerificationJob] = self.repository.get_job(job_id)
        if job is None:
            logger.info(f"Job {job_id} no longer exists, skipping")
            return
        if job.is_terminal:
            return
        if job.current_step is not JobStep.UPLOADED:
            # Interrupted mid-run: restart from the beginning with the stored evidence
            job.current_step = JobStep.UPLOADED
            job.step_detail = ""
        self.orchestrator.run(job)
