"""In-app notification model."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from parcelops.models.base import RecordModel
from parcelops.models.enums import NotificationType


class AppNotification(RecordModel):
    """Alert shown in the notification dropdown.

    ``target_branch`` of ``None`` marks a global notification, visible to
    SUPER_ADMIN only.
    """

    id: str
    title: str
    message: str
    type: NotificationType = NotificationType.INFO
    created_at: datetime
    read: bool = False
    target_branch: Optional[str] = None
    parcel_id: Optional[str] = None
    tracking_code: Optional[str] = None
