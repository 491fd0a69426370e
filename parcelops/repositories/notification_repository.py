"""
Notification Repository.

Notifications are local to the device: they are never pushed to the record
store.  The collection is kept newest first and capped at ``limit`` entries.
"""

from __future__ import annotations

from parcelops.logger import StructuredLogger
from parcelops.models.notification import AppNotification
from parcelops.repositories.base_repository import BaseRepository
from parcelops.storage.local_cache import CacheKey, LocalCache


class NotificationRepository(BaseRepository[AppNotification]):
    KEY = CacheKey.NOTIFICATIONS
    MODEL = AppNotification
    NEWEST_FIRST = True

    def __init__(self, cache: LocalCache, logger: StructuredLogger, limit: int = 50) -> None:
        super().__init__(cache, logger)
        self._limit = limit

    @property
    def limit(self) -> int:
        return self._limit

    def add(self, record: AppNotification) -> AppNotification:
        records = self._load()
        records.insert(0, record)
        self._save(records[: self._limit])
        return record

    def replace_all(self, records: list[AppNotification]) -> None:
        self._save(records[: self._limit])
