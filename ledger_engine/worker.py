"""Worker process: runs the scheduled job catalogue and exposes Prometheus metrics"""

import asyncio
import logging
import signal

from prometheus_client import start_http_server

from ledger_engine.config import settings
from ledger_engine.infrastructure.database.models import Base
from ledger_engine.infrastructure.database.session import SessionLocal, engine
from ledger_engine.infrastructure.observability.logging import setup_logging
from ledger_engine.services.job_tracker import JobTracker
from ledger_engine.services.jobs import build_default_jobs
from ledger_engine.services.scheduler import JobScheduler

logger = logging.getLogger(__name__)


def build_scheduler() -> JobScheduler:
    tracker = JobTracker(SessionLocal)
    scheduler = JobScheduler(tracker)
    for job in build_default_jobs(tracker, SessionLocal, settings):
        scheduler.register(job)
    return scheduler


async def _serve(scheduler: JobScheduler) -> None:
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, scheduler.stop)
    await scheduler.run_forever()


def main() -> None:
    setup_logging(settings.log_level)

    if settings.auto_create_schema:
        Base.metadata.create_all(bind=engine)

    start_http_server(settings.metrics_port)
    logger.info("Worker starting", extra={"metrics_port": settings.metrics_port})

    asyncio.run(_serve(build_scheduler()))


if __name__ == "__main__":
    main()
