"""Audit sink for ledger mutations, manual overrides and job runs."""

from typing import Any

from sqlalchemy.orm import Session

from ledger_engine.infrastructure.database.models import AuditLog

SYSTEM_ACTOR = "system"


class AuditService:
    """Write-only audit log.

    Rows are added to the caller's session and committed with the operation
    they describe, so an audited action and its record succeed or fail together.
    """

    @staticmethod
    def record(
        db: Session,
        action: str,
        resource_type: str,
        resource_id: Any = None,
        outcome: str = "success",
        actor: str | None = None,
        details: dict | None = None,
    ) -> AuditLog:
        """Create audit log entry.

        Args:
            db: Database session
            action: Action performed ("apply_payment", "cancel_instance", ...)
            resource_type: Type of resource ("financing", "job_execution", ...)
            resource_id: Identifier of the resource (stringified)
            outcome: "success" or "error"
            actor: User or process that performed the action (defaults to system)
            details: Optional JSON snapshot of relevant values

        Returns:
            Created AuditLog object
        """
        entry = AuditLog(
            actor=actor or SYSTEM_ACTOR,
            action=action,
            resource_type=resource_type,
            resource_id=str(resource_id) if resource_id is not None else None,
            outcome=outcome,
            details=details,
        )
        db.add(entry)
        return entry


__all__ = ["AuditService", "SYSTEM_ACTOR"]
