"""
Storage backends.

- :class:`LocalCache`: per-device key-value store of JSON snapshots.
- :class:`RecordStore`: protocol for the authoritative relational store,
  with :class:`SqliteRecordStore` and :class:`SupabaseRecordStore`
  implementations.
"""

from parcelops.storage.local_cache import CacheKey, LocalCache
from parcelops.storage.record_store import (
    RecordStore,
    RecordStoreError,
    SqliteRecordStore,
    StaleSnapshotError,
)
from parcelops.storage.supabase_record_store import SupabaseRecordStore

__all__ = [
    "CacheKey",
    "LocalCache",
    "RecordStore",
    "RecordStoreError",
    "SqliteRecordStore",
    "StaleSnapshotError",
    "SupabaseRecordStore",
]
