import logging
from datetime import datetime, timezone
from threading import Lock
from typing import List, Optional
from uuid import uuid4

from app.models import NotificationRecord

logger = logging.getLogger(__name__)

MAX_NOTIFICATIONS_PER_USER = 100


class NotificationStore:
    """In-memory, fire-and-forget notification feed for marketplace events."""

    def __init__(self):
        self._lock = Lock()
        self._notifications: List[NotificationRecord] = []

    def create(
        self,
        user_id: str,
        title: str,
        body: str,
        category: str = "system",
        deep_link: Optional[str] = None,
    ) -> NotificationRecord:
        record = NotificationRecord(
            id=f"ntf_{uuid4().hex[:10]}",
            user_id=user_id,
            title=title,
            body=body,
            category=category,  # type: ignore[arg-type]
            read=False,
            created_at=datetime.now(timezone.utc).isoformat(),
            deep_link=deep_link,
        )
        with self._lock:
            self._notifications.insert(0, record)
        logger.debug("notification %s queued for %s (%s)", record.id, user_id, category)
        return record

    def dispatch(self, user_id: str, title: str, body: str, category: str, deep_link: Optional[str] = None) -> None:
        try:
            self.create(user_id=user_id, title=title, body=body, category=category, deep_link=deep_link)
        except Exception:
            logger.exception("Notification dispatch failed for %s", user_id)

    def list_for_user(self, user_id: str, unread_only: bool = False) -> List[NotificationRecord]:
        with self._lock:
            rows = [n for n in self._notifications if n.user_id == user_id]
            if unread_only:
                rows = [n for n in rows if not n.read]
            return rows[:MAX_NOTIFICATIONS_PER_USER]

    def mark_read(self, user_id: str, notification_id: str) -> Optional[NotificationRecord]:
        with self._lock:
            for idx, row in enumerate(self._notifications):
                if row.id == notification_id and row.user_id == user_id:
                    updated = row.model_copy(update={"read": True})
                    self._notifications[idx] = updated
                    return updated
        return None

    def forget_user(self, user_id: str) -> int:
        with self._lock:
            before = len(self._notifications)
            self._notifications = [n for n in self._notifications if n.user_id != user_id]
            return before - len(self._notifications)


notification_store = NotificationStore()
