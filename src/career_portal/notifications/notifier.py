"""Candidate-facing notices.

Delivery (email, push) is handled elsewhere; the engine only records what
should be delivered in the ``notifications`` collection, which candidate
dashboards read through a live view.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from career_portal.config import settings
from career_portal.core.models import Notification, utcnow
from career_portal.store.base import Collections, EntityStore, call_with_timeout
from career_portal.utils.logging import get_logger

logger = get_logger(__name__)


class Notifier(ABC):
    """Hands candidate-facing notices to the delivery layer."""

    @abstractmethod
    async def notify(
        self,
        candidate_id: str,
        message: str,
        category: str = "info",
        data: Optional[Dict[str, Any]] = None,
    ) -> Notification:
        ...


class StoreNotifier(Notifier):
    """Records notifications as documents for the delivery layer to pick up."""

    def __init__(self, store: EntityStore, timeout: Optional[float] = None):
        self.logger = logger.bind(component="store_notifier")
        self.store = store
        self.timeout = timeout or settings.store_timeout_seconds

    async def notify(
        self,
        candidate_id: str,
        message: str,
        category: str = "info",
        data: Optional[Dict[str, Any]] = None,
    ) -> Notification:
        notification = Notification(
            candidate_id=candidate_id,
            category=category,
            message=message,
            data=data or {},
        )
        await call_with_timeout(
            self.store.create(Collections.NOTIFICATIONS, notification.model_dump(), notification.id),
            self.timeout,
            "notify",
        )
        self.logger.info(
            "Notification recorded",
            candidate_id=candidate_id,
            category=category,
            notification_id=notification.id
        )
        return notification

    async def list_for_candidate(self, candidate_id: str, unread_only: bool = False) -> List[Notification]:
        filters = [("candidate_id", "==", candidate_id)]
        if unread_only:
            filters.append(("read", "==", False))
        documents = await call_with_timeout(
            self.store.query(Collections.NOTIFICATIONS, filters, order_by=[("created_at", True)]),
            self.timeout,
            "list_notifications",
        )
        return [Notification.model_validate(doc) for doc in documents]

    async def mark_as_read(self, notification_id: str) -> None:
        await call_with_timeout(
            self.store.update(Collections.NOTIFICATIONS, notification_id, {"read": True, "read_at": utcnow()}),
            self.timeout,
            "mark_notification_read",
        )

    async def mark_all_as_read(self, candidate_id: str) -> int:
        """Mark every unread notification of a candidate; returns how many changed."""
        unread = await self.list_for_candidate(candidate_id, unread_only=True)
        for notification in unread:
            await self.mark_as_read(notification.id)
        return len(unread)
