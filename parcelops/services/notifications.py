"""
Notification Center.

Bounded, newest-first list of in-app alerts persisted in the local cache.
Branch-targeted notifications reach the staff of that branch; untargeted
ones are global and only reach SUPER_ADMIN.
"""

from __future__ import annotations

import threading
import uuid
from datetime import datetime, timezone
from typing import Optional

from parcelops.database import DatabaseManager
from parcelops.logger import StructuredLogger
from parcelops.models.enums import NotificationType
from parcelops.models.notification import AppNotification
from parcelops.models.parcel import Parcel
from parcelops.models.service_models import ServiceResult
from parcelops.models.user import User
from parcelops.repositories.notification_repository import NotificationRepository
from parcelops.services.base_service import BaseService
from parcelops.services.visibility import can_view_notification, visible_notifications


class NotificationCenter(BaseService):
    """Emits and reads notifications.

    ``emit`` is called from the UI thread and, through SMS callbacks, from
    worker threads; the read-modify-write of the collection is serialized
    by ``self._lock``.  With a *db* that lock is the database write lock,
    so an emit inside a ``batch_write`` cannot deadlock against it.
    """

    def __init__(
        self,
        repo: NotificationRepository,
        logger: StructuredLogger,
        db: Optional[DatabaseManager] = None,
    ) -> None:
        super().__init__(logger)
        self._repo = repo
        self._lock = db.write_lock if db is not None else threading.RLock()

    def emit(
        self,
        title: str,
        message: str,
        type: NotificationType = NotificationType.INFO,
        target_branch: Optional[str] = None,
        parcel: Optional[Parcel] = None,
    ) -> AppNotification:
        notification = AppNotification(
            id=uuid.uuid4().hex,
            title=title,
            message=message,
            type=type,
            created_at=datetime.now(timezone.utc),
            read=False,
            target_branch=target_branch,
            parcel_id=parcel.id if parcel else None,
            tracking_code=parcel.tracking_code if parcel else None,
        )
        with self._lock:
            self._repo.add(notification)
        self._logger.info(
            "Notification emitted: %s -> %s", title, target_branch or "global",
        )
        return notification

    def mark_read(self, notification_id: str) -> ServiceResult:
        with self._lock:
            notification = self._repo.get_by_id(notification_id)
            if notification is None:
                return self._not_found("Notification not found.")
            if not notification.read:
                notification.read = True
                self._repo.update(notification)
        return ServiceResult.ok(notification)

    def mark_all_read(self, actor: User) -> int:
        """Mark every notification *actor* can see as read.

        Returns the number of notifications that changed.
        """
        with self._lock:
            records = self._repo.get_all()
            changed = 0
            for notification in records:
                if not notification.read and can_view_notification(actor, notification):
                    notification.read = True
                    changed += 1
            if changed:
                self._repo.replace_all(records)
        return changed

    def list_for(self, actor: User) -> list[AppNotification]:
        return visible_notifications(actor, self._repo.get_all())

    def unread_count(self, actor: User) -> int:
        return sum(1 for n in self.list_for(actor) if not n.read)
