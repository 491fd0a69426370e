"""
Data Models Package.

Re-exports every model so callers can write ``from parcelops.models import Parcel``.
"""

from __future__ import annotations

from parcelops.models.customer import Customer
from parcelops.models.enums import (
    NotificationType,
    ParcelStatus,
    PaymentMethod,
    PaymentStatus,
    SyncStatus,
    UserRole,
)
from parcelops.models.notification import AppNotification
from parcelops.models.parcel import Parcel, StatusEvent
from parcelops.models.service_models import (
    CustomerInput,
    DashboardStats,
    HistoryReport,
    HistoryRow,
    ParcelInput,
    ServiceResult,
    UserInput,
)
from parcelops.models.snapshot import PushReceipt, Snapshot
from parcelops.models.user import User

__all__ = [
    "AppNotification",
    "Customer",
    "CustomerInput",
    "DashboardStats",
    "HistoryReport",
    "HistoryRow",
    "NotificationType",
    "Parcel",
    "ParcelInput",
    "ParcelStatus",
    "PaymentMethod",
    "PaymentStatus",
    "PushReceipt",
    "ServiceResult",
    "Snapshot",
    "StatusEvent",
    "SyncStatus",
    "User",
    "UserInput",
    "UserRole",
]
