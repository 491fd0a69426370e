"""
Repository Layer Package.

One repository per entity type, each backed by a collection in the local
cache.  Services never touch the cache directly.

Usage:
    from parcelops.repositories.parcel_repository import ParcelRepository
"""

from parcelops.repositories.base_repository import BaseRepository
from parcelops.repositories.customer_repository import CustomerRepository
from parcelops.repositories.notification_repository import NotificationRepository
from parcelops.repositories.parcel_repository import ParcelRepository
from parcelops.repositories.user_repository import UserRepository

__all__ = [
    "BaseRepository",
    "CustomerRepository",
    "NotificationRepository",
    "ParcelRepository",
    "UserRepository",
]
