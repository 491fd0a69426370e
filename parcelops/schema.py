"""
Centralized SQLite Schema Initialization.

Two databases, two schemas:

- :func:`initialize_local_schema`: the per-device cache: one key-value
  table holding JSON snapshots (``user``, ``users``, ``customers``,
  ``parcels``, ``notifications``) plus the local ``audit_log``.
- :func:`initialize_record_store_schema`: the relational record store
  used by :class:`~parcelops.storage.record_store.SqliteRecordStore`.
  The Postgres equivalent for Supabase lives in
  ``supabase/migrations/0001_record_store.sql``.

Both are idempotent.  A single-row ``schema_version`` table records the
applied version; DDL and the version bump share one transaction so a
failed start-up rolls back cleanly and is retried on the next launch.
"""

from __future__ import annotations

import sqlite3

from parcelops.logger import StructuredLogger

__all__ = [
    "LOCAL_SCHEMA_VERSION",
    "RECORD_STORE_SCHEMA_VERSION",
    "initialize_local_schema",
    "initialize_record_store_schema",
]

LOCAL_SCHEMA_VERSION: int = 1
RECORD_STORE_SCHEMA_VERSION: int = 1

_VERSION_TABLE: str = """
    CREATE TABLE IF NOT EXISTS schema_version (
        id INTEGER PRIMARY KEY CHECK (id = 1),
        version INTEGER NOT NULL,
        applied_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )
"""

# ---------------------------------------------------------------------------
# Local cache
# ---------------------------------------------------------------------------
_LOCAL_TABLES: list[str] = [
    """
    CREATE TABLE IF NOT EXISTS local_cache (
        key TEXT PRIMARY KEY,
        payload TEXT NOT NULL,
        updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS audit_log (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        timestamp TEXT NOT NULL,
        action TEXT NOT NULL,
        entity_type TEXT NOT NULL,
        entity_id TEXT NOT NULL,
        user_id TEXT NOT NULL,
        details TEXT DEFAULT '{}',
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )
    """,
]

_LOCAL_INDEXES: list[str] = [
    "CREATE INDEX IF NOT EXISTS idx_audit_log_entity ON audit_log(entity_type, entity_id)",
]

# ---------------------------------------------------------------------------
# Record store
# ---------------------------------------------------------------------------
_RECORD_STORE_TABLES: list[str] = [
    """
    CREATE TABLE IF NOT EXISTS users (
        id TEXT PRIMARY KEY,
        name TEXT NOT NULL,
        email TEXT NOT NULL UNIQUE,
        role TEXT NOT NULL CHECK (role IN ('SUPER_ADMIN', 'ADMIN', 'OPERATOR')),
        branch TEXT NOT NULL,
        password_hash TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS customers (
        id TEXT PRIMARY KEY,
        full_name TEXT NOT NULL,
        phone TEXT NOT NULL,
        address TEXT NOT NULL,
        dni TEXT NOT NULL UNIQUE,
        email TEXT
    )
    """,
    # sender_id is deliberately not a foreign key: deleted customers leave
    # orphaned senders that resolve to "N/A".
    """
    CREATE TABLE IF NOT EXISTS parcels (
        id TEXT PRIMARY KEY,
        tracking_code TEXT NOT NULL UNIQUE,
        sender_id TEXT NOT NULL,
        receiver_name TEXT NOT NULL,
        receiver_phone TEXT NOT NULL,
        receiver_address TEXT NOT NULL,
        weight REAL NOT NULL,
        type TEXT NOT NULL,
        cost REAL NOT NULL DEFAULT 0,
        status TEXT NOT NULL,
        payment_method TEXT NOT NULL,
        payment_status TEXT NOT NULL,
        origin TEXT NOT NULL,
        destination TEXT NOT NULL,
        created_at TEXT NOT NULL,
        branch TEXT NOT NULL,
        created_by_id TEXT NOT NULL,
        created_by_name TEXT NOT NULL DEFAULT ''
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS tracking_history (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        parcel_id TEXT NOT NULL,
        status TEXT NOT NULL,
        note TEXT NOT NULL DEFAULT '',
        updated_by TEXT,
        updated_at TEXT NOT NULL,
        event_key TEXT NOT NULL UNIQUE,
        FOREIGN KEY (parcel_id) REFERENCES parcels(id) ON DELETE CASCADE
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS sync_state (
        client_id TEXT PRIMARY KEY,
        last_sequence INTEGER NOT NULL,
        updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )
    """,
]

_RECORD_STORE_INDEXES: list[str] = [
    "CREATE INDEX IF NOT EXISTS idx_parcels_origin ON parcels(origin)",
    "CREATE INDEX IF NOT EXISTS idx_parcels_destination ON parcels(destination)",
    "CREATE INDEX IF NOT EXISTS idx_tracking_history_parcel ON tracking_history(parcel_id)",
]


def initialize_local_schema(conn: sqlite3.Connection, logger: StructuredLogger) -> None:
    """Create the local cache tables if they do not exist yet."""
    _apply_schema(
        conn, logger, "local cache", _LOCAL_TABLES, _LOCAL_INDEXES, LOCAL_SCHEMA_VERSION,
    )


def initialize_record_store_schema(conn: sqlite3.Connection, logger: StructuredLogger) -> None:
    """Create the record store tables if they do not exist yet."""
    _apply_schema(
        conn,
        logger,
        "record store",
        _RECORD_STORE_TABLES,
        _RECORD_STORE_INDEXES,
        RECORD_STORE_SCHEMA_VERSION,
    )


def _apply_schema(
    conn: sqlite3.Connection,
    logger: StructuredLogger,
    label: str,
    tables: list[str],
    indexes: list[str],
    target_version: int,
) -> None:
    conn.execute(_VERSION_TABLE)
    row = conn.execute("SELECT version FROM schema_version WHERE id = 1").fetchone()
    current = int(row[0]) if row else 0

    if current >= target_version:
        logger.debug("%s schema already at version %d.", label, current)
        return

    try:
        for ddl in tables:
            conn.execute(ddl)
        for ddl in indexes:
            conn.execute(ddl)
        conn.execute(
            """
            INSERT INTO schema_version (id, version) VALUES (1, ?)
            ON CONFLICT(id) DO UPDATE SET version = excluded.version,
                                          applied_at = CURRENT_TIMESTAMP
            """,
            (target_version,),
        )
        conn.commit()
    except sqlite3.Error:
        conn.rollback()
        logger.error("Failed to initialise %s schema.", label, exc_info=True)
        raise

    logger.info("%s schema initialised at version %d.", label, target_version)
