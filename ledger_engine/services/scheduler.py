"""In-process periodic scheduler for tracked jobs"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Set

from ledger_engine.domain.models import JobResult
from ledger_engine.services.job_tracker import JobFn, JobTracker, RetryPolicy

logger = logging.getLogger(__name__)


@dataclass
class ScheduledJob:
    name: str
    interval_seconds: float
    fn: JobFn
    retry: Optional[RetryPolicy] = None


class JobScheduler:
    """
    Runs registered jobs on fixed intervals through the JobTracker.

    Job bodies are synchronous and run in worker threads. At most one
    invocation per job name runs at a time within this process; a trigger
    that overlaps a running invocation is skipped. Nothing coordinates across
    processes: the store's uniqueness constraints are the real guard there.
    """

    def __init__(self, tracker: JobTracker):
        self.tracker = tracker
        self._jobs: Dict[str, ScheduledJob] = {}
        self._running: Set[str] = set()
        self._stop = asyncio.Event()

    def register(self, job: ScheduledJob) -> None:
        if job.name in self._jobs:
            raise ValueError(f"Job '{job.name}' is already registered")
        if job.interval_seconds <= 0:
            raise ValueError(f"Job '{job.name}' needs a positive interval")
        self._jobs[job.name] = job
        logger.info("Job registered", extra={"job_name": job.name, "interval_seconds": job.interval_seconds})

    @property
    def job_names(self) -> List[str]:
        return list(self._jobs)

    def is_running(self, job_name: str) -> bool:
        return job_name in self._running

    async def trigger(self, job_name: str) -> Optional[JobResult]:
        """Run a job now; returns None when an invocation of it is already in flight"""
        job = self._jobs.get(job_name)
        if job is None:
            raise KeyError(f"Unknown job '{job_name}'")

        if job_name in self._running:
            logger.warning("Job still running, trigger skipped", extra={"job_name": job_name})
            return None

        self._running.add(job_name)
        try:
            return await asyncio.to_thread(self.tracker.run_tracked, job.name, job.fn, job.retry)
        finally:
            self._running.discard(job_name)

    async def run_forever(self) -> None:
        """Run every registered job on its interval until stop() is called"""
        logger.info("Scheduler started", extra={"jobs": self.job_names})
        await asyncio.gather(*(self._loop(job) for job in self._jobs.values()))
        logger.info("Scheduler stopped")

    def stop(self) -> None:
        self._stop.set()

    async def _loop(self, job: ScheduledJob) -> None:
        while not self._stop.is_set():
            try:
                await self.trigger(job.name)
            except Exception as e:
                logger.error(f"Scheduler loop error: {e}", extra={"job_name": job.name}, exc_info=True)

            try:
                await asyncio.wait_for(self._stop.wait(), timeout=job.interval_seconds)
            except asyncio.TimeoutError:
                pass
