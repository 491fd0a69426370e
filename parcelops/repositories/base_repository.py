"""
Base Repository.

Provides shared infrastructure for all repositories:
- LocalCache reference (one JSON collection per repository)
- Logger reference
- Typed load/save of the whole collection through the pydantic model

Every write lands in the local cache immediately; reconciling it with the
record store is the sync reconciler's job, not the repository's.
"""

from __future__ import annotations

from typing import ClassVar, Generic, Optional, TypeVar

from pydantic import ValidationError

from parcelops.logger import StructuredLogger
from parcelops.models.base import RecordModel
from parcelops.storage.local_cache import CacheKey, LocalCache

M = TypeVar("M", bound=RecordModel)


class BaseRepository(Generic[M]):
    """Base class for all repositories. Receives dependencies via __init__.

    Subclasses set ``KEY`` (the cache key holding the collection) and
    ``MODEL`` (the record type).  ``NEWEST_FIRST`` controls whether
    :meth:`add` prepends or appends.
    """

    KEY: ClassVar[CacheKey]
    MODEL: ClassVar[type[RecordModel]]
    NEWEST_FIRST: ClassVar[bool] = False

    def __init__(self, cache: LocalCache, logger: StructuredLogger) -> None:
        self._cache = cache
        self._logger = logger

    @property
    def is_seeded(self) -> bool:
        """``True`` once the collection exists in the cache (even empty)."""
        return self._cache.has(self.KEY)

    def get_all(self) -> list[M]:
        return self._load()

    def get_by_id(self, record_id: str) -> Optional[M]:
        return next((r for r in self._load() if r.id == record_id), None)

    def add(self, record: M) -> M:
        records = self._load()
        if self.NEWEST_FIRST:
            records.insert(0, record)
        else:
            records.append(record)
        self._save(records)
        return record

    def update(self, record: M) -> bool:
        """Replace the stored record with the same id.  ``False`` if absent."""
        records = self._load()
        for index, existing in enumerate(records):
            if existing.id == record.id:
                records[index] = record
                self._save(records)
                return True
        return False

    def delete(self, record_id: str) -> bool:
        records = self._load()
        kept = [r for r in records if r.id != record_id]
        if len(kept) == len(records):
            return False
        self._save(kept)
        return True

    def replace_all(self, records: list[M]) -> None:
        """Overwrite the whole collection (used by pull and seeding)."""
        self._save(records)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _load(self) -> list[M]:
        raw = self._cache.get(self.KEY)
        if not isinstance(raw, list):
            return []
        records: list[M] = []
        for item in raw:
            try:
                records.append(self.MODEL.model_validate(item))
            except ValidationError as exc:
                self._logger.warning(
                    "Skipping invalid %s record in local cache: %s",
                    self.MODEL.__name__,
                    exc,
                )
        return records

    def _save(self, records: list[M]) -> None:
        self._cache.put(self.KEY, [r.to_wire() for r in records])
