"""
Database Connection Layer.

Two stores back the application:

- **Local cache (SQLite)**: the per-device replica.  Every mutation lands
  here first, so the back office keeps working while the record store is
  unreachable.
- **Record store**: the authoritative relational store, reached either
  through a second SQLite/relational connection or through Supabase.
  See :mod:`parcelops.storage.record_store`.

This module only manages raw *connections* and transactions; it contains
no query logic.

Usage::

    db = DatabaseManager(
        sqlite_path=Path("parcelops_local.db"),
        logger=StructuredLogger(name="database"),
        supabase_url=config.SUPABASE_URL,
        supabase_key=config.SUPABASE_ANON_KEY.get_secret_value(),
    )
"""

from __future__ import annotations

import sqlite3
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Generator, Optional

from supabase import Client as SupabaseClient
from supabase import create_client

from parcelops.logger import StructuredLogger


def open_sqlite(path: Path, logger: StructuredLogger) -> sqlite3.Connection:
    """Open (or create) a SQLite database with ``sqlite3.Row`` rows.

    Raises
    ------
    PermissionError
        If the OS denies access to the file or its directory.  The message
        is rewritten so that it can be shown to the operator as is.
    """
    try:
        conn = sqlite3.connect(str(path), check_same_thread=False)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode=WAL;")
        conn.execute("PRAGMA foreign_keys = ON;")
        logger.info("SQLite database opened at %s", path)
        return conn
    except PermissionError as exc:
        msg = (
            f"Cannot open the database at '{path}'. "
            "The file or its directory may be read-only or locked by "
            "another process."
        )
        logger.error(msg)
        raise PermissionError(msg) from exc


class DatabaseManager:
    """Owns the local SQLite connection and the optional Supabase client.

    When ``supabase_url`` or ``supabase_key`` is empty no Supabase client
    is created; the ``supabase`` property then raises ``RuntimeError``,
    which callers treat like any other connectivity failure.

    Parameters
    ----------
    sqlite_path:
        Filesystem path of the local cache database.
    logger:
        Structured logger.
    supabase_url, supabase_key:
        Supabase project URL and key.  Optional.
    """

    def __init__(
        self,
        sqlite_path: Path,
        logger: StructuredLogger,
        supabase_url: str = "",
        supabase_key: str = "",
    ) -> None:
        self._logger: StructuredLogger = logger
        self._write_lock: threading.RLock = threading.RLock()
        self._in_batch: bool = False
        self._closed: bool = False

        self._supabase: Optional[SupabaseClient] = None
        if supabase_url and supabase_key:
            try:
                self._supabase = create_client(supabase_url, supabase_key)
                self._logger.info("Supabase client initialized.")
            except Exception as exc:
                self._logger.warning(
                    "Supabase initialization failed: %s. Running on local cache only.",
                    exc,
                )

        self._sqlite_conn: sqlite3.Connection = open_sqlite(sqlite_path, logger)

    # ------------------------------------------------------------------
    # Public properties
    # ------------------------------------------------------------------

    @property
    def supabase(self) -> SupabaseClient:
        """Return the Supabase client.

        Raises
        ------
        RuntimeError
            If no client was configured.
        """
        if self._supabase is None:
            raise RuntimeError(
                "Supabase client is not initialised. Running on local cache only."
            )
        return self._supabase

    @property
    def has_supabase(self) -> bool:
        return self._supabase is not None

    @property
    def sqlite(self) -> sqlite3.Connection:
        return self._sqlite_conn

    @property
    def write_lock(self) -> threading.RLock:
        """Lock every local write must hold::

            with db.write_lock:
                db.sqlite.execute("INSERT ...")
                db.sqlite.commit()
        """
        return self._write_lock

    @property
    def in_batch(self) -> bool:
        """``True`` while a :meth:`batch_write` block is active."""
        return self._in_batch

    @contextmanager
    def batch_write(self) -> Generator[None, None, None]:
        """Defer commits until the block exits; roll back on exception.

        Re-entrant: a nested ``batch_write`` joins the outer one.

        Example::

            with db.batch_write():
                cache.put("parcels", parcels)
                cache.put("notifications", notifications)
        """
        with self._write_lock:
            if self._in_batch:
                yield
                return

            self._in_batch = True
            try:
                yield
                self._sqlite_conn.commit()
                self._logger.debug("Batch write committed.")
            except Exception:
                self._sqlite_conn.rollback()
                self._logger.error(
                    "Batch write rolled back due to exception.", exc_info=True,
                )
                raise
            finally:
                self._in_batch = False

    def close(self) -> None:
        """Close the local connection.  Safe to call more than once."""
        with self._write_lock:
            if self._closed:
                return
            try:
                self._sqlite_conn.close()
                self._logger.info("SQLite connection closed.")
            except sqlite3.ProgrammingError:
                pass
            self._closed = True
