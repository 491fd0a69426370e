"""
Local Cache.

Durable per-device key-value store.  Each key holds one JSON document,
usually a whole collection snapshot.  Writes always succeed locally (or
raise on a broken disk); the record store is reconciled later by the
sync reconciler.
"""

from __future__ import annotations

import json
import sqlite3
from enum import StrEnum
from typing import Optional

from parcelops.database import DatabaseManager
from parcelops.logger import StructuredLogger
from parcelops.utils.string_helpers import JsonValue


class CacheKey(StrEnum):
    """Keys persisted in the local cache."""

    USER = "user"
    USERS = "users"
    CUSTOMERS = "customers"
    PARCELS = "parcels"
    NOTIFICATIONS = "notifications"
    CLIENT_ID = "client_id"
    SYNC_SEQUENCE = "sync_sequence"


class LocalCache:
    """Key-value facade over the ``local_cache`` table."""

    TABLE: str = "local_cache"

    def __init__(self, db: DatabaseManager, logger: StructuredLogger) -> None:
        self._db = db
        self._logger = logger

    def get(self, key: CacheKey) -> Optional[JsonValue]:
        """Return the decoded document under *key*, or ``None`` if absent.

        A corrupt document is logged and reported as absent so that the
        caller falls back to seed or server data.
        """
        row = self._db.sqlite.execute(
            f"SELECT payload FROM {self.TABLE} WHERE key = ?", (str(key),)
        ).fetchone()
        if row is None:
            return None
        try:
            return json.loads(row["payload"])
        except (json.JSONDecodeError, TypeError) as exc:
            self._logger.error("Corrupt local cache entry '%s': %s", key, exc)
            return None

    def has(self, key: CacheKey) -> bool:
        row = self._db.sqlite.execute(
            f"SELECT 1 FROM {self.TABLE} WHERE key = ?", (str(key),)
        ).fetchone()
        return row is not None

    def put(self, key: CacheKey, value: JsonValue) -> None:
        """Replace the document under *key*."""
        payload = json.dumps(value, ensure_ascii=False, default=str)
        with self._db.write_lock:
            self._db.sqlite.execute(
                f"""
                INSERT INTO {self.TABLE} (key, payload, updated_at)
                VALUES (?, ?, CURRENT_TIMESTAMP)
                ON CONFLICT(key) DO UPDATE SET
                    payload = excluded.payload,
                    updated_at = CURRENT_TIMESTAMP
                """,
                (str(key), payload),
            )
            self._commit()

    def delete(self, key: CacheKey) -> None:
        with self._db.write_lock:
            self._db.sqlite.execute(
                f"DELETE FROM {self.TABLE} WHERE key = ?", (str(key),)
            )
            self._commit()

    def _commit(self) -> None:
        if not self._db.in_batch:
            try:
                self._db.sqlite.commit()
            except sqlite3.Error:
                self._db.sqlite.rollback()
                raise
