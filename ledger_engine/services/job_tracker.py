"""Job execution tracker: durable bookkeeping around scheduled maintenance routines"""

import logging
import time
import traceback
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session

from ledger_engine.config import settings
from ledger_engine.domain.exceptions import JobAlreadyFinalizedError, JobExecutionNotFoundError
from ledger_engine.domain.models import JobReport, JobResult, JobStatus
from ledger_engine.infrastructure.database.models import JobExecution
from ledger_engine.infrastructure.database.repositories import JobExecutionRepository
from ledger_engine.infrastructure.observability.logging import log_job_outcome
from ledger_engine.infrastructure.observability.metrics import job_consecutive_failures_gauge, record_job
from ledger_engine.services.audit import AuditService
from ledger_engine.utils.date_utils import utcnow

logger = logging.getLogger(__name__)

TRANSIENT_ERRORS = (OperationalError, TimeoutError, ConnectionError)

FAILURE_WINDOW = 5
FAILURE_THRESHOLD = 3

JobFn = Callable[[], Optional[JobReport]]


@dataclass
class RetryPolicy:
    """Exponential backoff for transient failures inside one tracked execution"""

    max_attempts: int = 1
    backoff_base: float = 0.0
    multiplier: float = 2.0

    def delay(self, attempt: int) -> float:
        """Seconds to wait after the given (1-based) failed attempt"""
        return self.backoff_base * (self.multiplier ** (attempt - 1))

    @classmethod
    def from_settings(cls) -> "RetryPolicy":
        return cls(
            max_attempts=settings.job_max_retries,
            backoff_base=settings.job_backoff_base,
            multiplier=settings.job_backoff_multiplier,
        )


NO_RETRY = RetryPolicy(max_attempts=1)


def execution_as_dict(execution: JobExecution) -> Dict[str, Any]:
    return {
        "id": str(execution.id),
        "job_name": execution.job_name,
        "status": execution.status,
        "started_at": execution.started_at.isoformat() if execution.started_at else None,
        "finished_at": execution.finished_at.isoformat() if execution.finished_at else None,
        "duration_ms": execution.duration_ms,
        "notifications_created": execution.notifications_created,
        "notifications_updated": execution.notifications_updated,
        "error_message": execution.error_message,
        "metadata": execution.metadata_ or {},
    }


class JobTracker:
    """
    Wraps job functions so every run leaves a JobExecution row.

    Each bookkeeping step uses its own short-lived session from session_factory,
    so the running row is committed before the job starts and survives a job
    that fails halfway through its own transaction.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        retry: Optional[RetryPolicy] = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.session_factory = session_factory
        self.retry = retry or NO_RETRY
        self.sleep = sleep
        self.clock = clock

    def run_tracked(self, job_name: str, fn: JobFn, retry: Optional[RetryPolicy] = None) -> JobResult:
        """
        Run fn and persist its outcome.

        Failures raised by fn are recorded on the execution row (message and
        stack trace) and logged; they are never re-raised, so a failing job
        cannot take down the scheduler. Transient storage errors are retried
        according to the retry policy before the run counts as failed.

        Returns:
            JobResult mirroring the persisted JobExecution
        """
        policy = retry or self.retry

        try:
            execution_id, started_at = self._start(job_name)
        except SQLAlchemyError as e:
            logger.error(f"Could not record job start: {e}", extra={"job_name": job_name}, exc_info=True)
            return JobResult(
                execution_id=None, job_name=job_name, status=JobStatus.ERROR, duration_ms=0, error_message=str(e)
            )

        attempt = 0
        try:
            while True:
                attempt += 1
                try:
                    report = fn() or JobReport()
                    break
                except TRANSIENT_ERRORS as e:
                    if attempt >= policy.max_attempts:
                        raise
                    delay = policy.delay(attempt)
                    logger.warning(
                        f"Transient job failure, retrying in {delay:.1f}s: {e}",
                        extra={"job_name": job_name, "execution_id": str(execution_id), "attempt": attempt},
                    )
                    self.sleep(delay)
        except Exception as e:
            logger.error(
                f"Job failed: {e}",
                extra={"job_name": job_name, "execution_id": str(execution_id), "attempt": attempt},
                exc_info=True,
            )
            result = self._finalize_safely(
                execution_id,
                JobStatus.ERROR,
                error_message=str(e) or type(e).__name__,
                error_stack=traceback.format_exc(),
                metadata={"attempts": attempt},
            )
        else:
            result = self._finalize_safely(
                execution_id,
                JobStatus.SUCCESS,
                report=report,
                metadata={**report.metadata, "attempts": attempt},
            )

        if result is None:
            # finalization failed; the running row is left for reconcile_stale_executions
            return JobResult(
                execution_id=execution_id,
                job_name=job_name,
                status=JobStatus.RUNNING,
                duration_ms=int((self.clock() - started_at).total_seconds() * 1000),
            )

        self._check_consecutive_failures(job_name)
        return result

    def finalize(
        self,
        execution_id: uuid.UUID,
        status: JobStatus,
        report: Optional[JobReport] = None,
        error_message: Optional[str] = None,
        error_stack: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> JobResult:
        """Close a running execution exactly once"""
        with self.session_factory() as db:
            execution = JobExecutionRepository(db).get(execution_id)
            if execution is None:
                raise JobExecutionNotFoundError(f"Job execution {execution_id} not found")
            result = self._finalize_row(db, execution, status, report, error_message, error_stack, metadata)
            db.commit()

        self._report(result)
        return result

    def get_job_history(self, job_name: str, limit: int = 10) -> List[Dict[str, Any]]:
        with self.session_factory() as db:
            return [execution_as_dict(row) for row in JobExecutionRepository(db).recent(job_name, limit=limit)]

    def get_last_executions(self) -> Dict[str, Dict[str, Any]]:
        """Most recent execution of each job name"""
        with self.session_factory() as db:
            latest = JobExecutionRepository(db).latest_per_job()
            return {name: execution_as_dict(row) for name, row in latest.items()}

    def get_job_stats(self) -> Dict[str, Any]:
        with self.session_factory() as db:
            repo = JobExecutionRepository(db)
            by_status = repo.count_by_status()
            average = repo.average_success_duration()

        total = sum(by_status.values())
        successes = by_status.get(JobStatus.SUCCESS.value, 0)
        finished = successes + by_status.get(JobStatus.ERROR.value, 0)
        return {
            "total_executions": total,
            "by_status": by_status,
            "success_rate": round(successes / finished * 100, 2) if finished else 0.0,
            "average_duration_ms": round(average, 2),
        }

    def reconcile_stale_executions(self, older_than_hours: Optional[int] = None) -> int:
        """Finalize running rows older than the threshold as crashed; returns how many were closed"""
        hours = settings.stale_job_hours if older_than_hours is None else older_than_hours
        cutoff = self.clock() - timedelta(hours=hours)
        results = []

        with self.session_factory() as db:
            for execution in JobExecutionRepository(db).list_running_started_before(cutoff):
                results.append(
                    self._finalize_row(
                        db,
                        execution,
                        JobStatus.ERROR,
                        error_message=f"Presumed crashed: still running after {hours} hours",
                        metadata={"reconciled": True},
                    )
                )
            db.commit()

        for result in results:
            self._report(result)
        if results:
            logger.warning("Stale job executions reconciled", extra={"count": len(results), "older_than_hours": hours})
        return len(results)

    def _start(self, job_name: str):
        with self.session_factory() as db:
            execution = JobExecutionRepository(db).start(job_name, self.clock())
            db.commit()
            return execution.id, execution.started_at

    def _finalize_safely(self, execution_id: uuid.UUID, status: JobStatus, **kwargs) -> Optional[JobResult]:
        try:
            return self.finalize(execution_id, status, **kwargs)
        except (SQLAlchemyError, JobAlreadyFinalizedError) as e:
            logger.error(
                f"Could not finalize job execution: {e}",
                extra={"execution_id": str(execution_id), "job_status": status.value},
                exc_info=True,
            )
            return None

    def _finalize_row(
        self,
        db: Session,
        execution: JobExecution,
        status: JobStatus,
        report: Optional[JobReport] = None,
        error_message: Optional[str] = None,
        error_stack: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> JobResult:
        if execution.status != JobStatus.RUNNING.value:
            raise JobAlreadyFinalizedError(f"Job execution {execution.id} already finalized as {execution.status}")

        finished_at = self.clock()
        if finished_at <= execution.started_at:
            finished_at = execution.started_at + timedelta(microseconds=1)
        duration_ms = int((finished_at - execution.started_at).total_seconds() * 1000)
        report = report or JobReport()

        execution.status = status.value
        execution.finished_at = finished_at
        execution.duration_ms = duration_ms
        execution.notifications_created = report.notifications_created
        execution.notifications_updated = report.notifications_updated
        execution.error_message = error_message
        execution.error_stack = error_stack
        execution.metadata_ = metadata or {}

        AuditService.record(
            db,
            action="run_job",
            resource_type="job_execution",
            resource_id=execution.id,
            outcome=status.value,
            details={"job_name": execution.job_name, "duration_ms": duration_ms},
        )

        return JobResult(
            execution_id=execution.id,
            job_name=execution.job_name,
            status=status,
            duration_ms=duration_ms,
            notifications_created=report.notifications_created,
            notifications_updated=report.notifications_updated,
            error_message=error_message,
            metadata=metadata or {},
        )

    def _report(self, result: JobResult) -> None:
        record_job(result.job_name, result.status.value, result.duration_ms)
        log_job_outcome(
            execution_id=str(result.execution_id),
            job_name=result.job_name,
            status=result.status.value,
            duration_ms=result.duration_ms,
            notifications_created=result.notifications_created,
            notifications_updated=result.notifications_updated,
        )

    def _check_consecutive_failures(self, job_name: str) -> None:
        """Warn when most of the recent runs of a job failed"""
        try:
            with self.session_factory() as db:
                recent = JobExecutionRepository(db).recent(job_name, limit=FAILURE_WINDOW)
                failures = sum(1 for row in recent if row.status == JobStatus.ERROR.value)
        except SQLAlchemyError as e:
            logger.error(f"Could not check job failure streak: {e}", extra={"job_name": job_name})
            return

        job_consecutive_failures_gauge.labels(job_name=job_name).set(failures)
        if failures >= FAILURE_THRESHOLD:
            logger.warning(
                "Job failing repeatedly",
                extra={"job_name": job_name, "failures": failures, "window": FAILURE_WINDOW},
            )
