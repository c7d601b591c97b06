"""Notification producer: jobs ask for notifications here, delivery happens elsewhere"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Optional, Tuple

from sqlalchemy.orm import Session

from ledger_engine.config import settings
from ledger_engine.domain.models import RelatedEntity
from ledger_engine.infrastructure.database.models import Notification
from ledger_engine.infrastructure.database.repositories import NotificationRepository
from ledger_engine.infrastructure.observability.metrics import notification_counter
from ledger_engine.utils.date_utils import utcnow

logger = logging.getLogger(__name__)


class NotificationPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


def classify_due(
    days_until_due: int, soon_days: int = 3, reminder_days: Optional[int] = None
) -> Optional[Tuple[str, NotificationPriority]]:
    """
    Map days-until-due onto a notification kind and priority.

    Returns None when the date is outside every window, i.e. nothing should be sent.
    """
    if days_until_due < 0:
        return "overdue", NotificationPriority.URGENT
    if days_until_due == 0:
        return "due_today", NotificationPriority.HIGH
    if days_until_due <= soon_days:
        return "due", NotificationPriority.MEDIUM
    if reminder_days is not None and days_until_due == reminder_days:
        return "reminder", NotificationPriority.LOW
    return None


@dataclass
class EmitResult:
    notification: Notification
    created: bool


class NotificationProducer:
    """Creates notifications, refreshing a recent one for the same subject instead of duplicating it"""

    def __init__(self, db: Session, dedupe_hours: Optional[int] = None):
        self.db = db
        self.notifications = NotificationRepository(db)
        self.dedupe_window = timedelta(
            hours=settings.notification_dedupe_hours if dedupe_hours is None else dedupe_hours
        )

    def emit(
        self,
        user_id: str,
        notification_type: str,
        title: str,
        message: str,
        priority: NotificationPriority,
        related: RelatedEntity,
        now: Optional[datetime] = None,
    ) -> EmitResult:
        """
        Request a notification for user_id about a related entity.

        A notification with the same user, type and related entity created
        within the dedupe window is updated in place (title, message,
        priority) and reported as not created. The caller commits.
        """
        now = now or utcnow()
        existing = self.notifications.find_recent(user_id, notification_type, related, now - self.dedupe_window)

        if existing is not None:
            existing.title = title
            existing.message = message
            existing.priority = priority.value
            existing.updated_at = now
            self.db.flush()
            notification_counter.labels(action="updated").inc()
            return EmitResult(notification=existing, created=False)

        notification = self.notifications.create(
            user_id=user_id,
            notification_type=notification_type,
            title=title,
            message=message,
            priority=priority.value,
            related=related,
        )
        notification_counter.labels(action="created").inc()
        logger.debug(
            "Notification created",
            extra={"user_id": user_id, "type": notification_type, "related_kind": related.kind},
        )
        return EmitResult(notification=notification, created=True)
