"""Structured JSON logging for the ledger engine"""

import logging
import sys
from typing import Any, Dict, TextIO
from pythonjsonlogger import jsonlogger

from ledger_engine.config import settings
from ledger_engine.utils.date_utils import utcnow


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    """Custom JSON formatter with timestamp and service metadata"""

    def add_fields(self, log_record: Dict[str, Any], record: logging.LogRecord, message_dict: Dict[str, Any]) -> None:
        super().add_fields(log_record, record, message_dict)
        log_record["timestamp"] = utcnow().isoformat()
        log_record["level"] = record.levelname
        log_record["service"] = settings.service_name


def setup_logging(level: str = "INFO", stream: TextIO = sys.stdout) -> None:
    """Route every logger through one JSON handler; SQL echo stays at WARNING"""
    root = logging.getLogger()
    root.setLevel(level)
    root.handlers.clear()

    handler = logging.StreamHandler(stream)
    handler.setFormatter(CustomJsonFormatter("%(timestamp)s %(level)s %(name)s %(message)s"))
    root.addHandler(handler)

    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)


def log_job_outcome(
    execution_id: str,
    job_name: str,
    status: str,
    duration_ms: int,
    notifications_created: int,
    notifications_updated: int,
) -> None:
    """Log structured job outcome for monitoring"""
    log = logging.info if status == "success" else logging.error
    log(
        "Job finished",
        extra={
            "execution_id": execution_id,
            "job_name": job_name,
            "step": "job_complete",
            "job_status": status,
            "duration_ms": duration_ms,
            "notifications_created": notifications_created,
            "notifications_updated": notifications_updated,
        },
    )
