"""
Record Store.

The authoritative relational persistence for users, customers, parcels
and their tracking history.  The sync reconciler only talks to the
:class:`RecordStore` protocol; :class:`SqliteRecordStore` implements it
on a SQLite file and :class:`~parcelops.storage.supabase_record_store.SupabaseRecordStore`
on a Supabase (Postgres) project.

Push semantics shared by every implementation:

- One push is one all-or-nothing transaction.
- Rows are upserted by primary key (last write wins); nothing is deleted.
- A pushed customer or user whose DNI / email already belongs to a stored
  row under another id is merged into that row.  The receipt lists the
  id the store kept so the device can adopt it.
- A pushed parcel whose tracking code already belongs to another stored
  parcel is skipped, together with its history, and listed in the
  receipt as rejected.
- History rows are keyed by :func:`history_event_key`, so re-sending the
  same history is a no-op.
- Each client sends a monotonically increasing ``sequence``.  A push whose
  sequence is not greater than the last applied one for that client is
  rejected with :class:`StaleSnapshotError` and changes nothing.
- Password values not already hashed are hashed before storage.
"""

from __future__ import annotations

import hashlib
import sqlite3
import threading
from collections import defaultdict
from pathlib import Path
from typing import Optional, Protocol, runtime_checkable

from parcelops.database import open_sqlite
from parcelops.logger import StructuredLogger
from parcelops.models.customer import Customer
from parcelops.models.parcel import Parcel, StatusEvent
from parcelops.models.snapshot import PushReceipt, Snapshot
from parcelops.models.user import User
from parcelops.schema import initialize_record_store_schema
from parcelops.utils.passwords import ensure_hashed

__all__ = [
    "RecordStore",
    "RecordStoreError",
    "SqliteRecordStore",
    "StaleSnapshotError",
    "history_event_key",
]


class RecordStoreError(Exception):
    """The record store is unreachable or a push transaction failed."""


class StaleSnapshotError(RecordStoreError):
    """A push arrived with a sequence number already superseded."""

    def __init__(self, client_id: str, sequence: int, last_sequence: int) -> None:
        super().__init__(
            f"Push {sequence} from client {client_id} is stale "
            f"(last applied: {last_sequence})."
        )
        self.client_id = client_id
        self.sequence = sequence
        self.last_sequence = last_sequence


@runtime_checkable
class RecordStore(Protocol):
    """Contract between the sync reconciler and the authoritative store."""

    def fetch_snapshot(self) -> Snapshot:
        """Return every parcel (with history), customer and user.

        Raises:
            RecordStoreError: When the store cannot be reached.
        """
        ...

    def apply_snapshot(
        self, snapshot: Snapshot, *, client_id: str, sequence: int
    ) -> PushReceipt:
        """Upsert *snapshot* in one transaction.

        Raises:
            StaleSnapshotError: When *sequence* is not newer than the last
                push applied for *client_id*.
            RecordStoreError: On any other failure; nothing is applied.
        """
        ...

    def find_user_by_email(self, email: str) -> Optional[User]:
        """Return the user with *email* (case-insensitive), hash included."""
        ...


def history_event_key(parcel_id: str, event: StatusEvent) -> str:
    """Idempotency key of one history row."""
    raw = f"{parcel_id}|{event.status.value}|{event.date.isoformat()}"
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()


class SqliteRecordStore:
    """:class:`RecordStore` on a SQLite database.

    The connection is shared between the UI thread and the sync worker, so
    every access goes through ``self._lock``.
    """

    def __init__(
        self,
        conn: sqlite3.Connection,
        logger: StructuredLogger,
        default_password: str,
    ) -> None:
        self._conn = conn
        self._logger = logger
        self._default_password = default_password
        self._lock = threading.Lock()

    @classmethod
    def open(
        cls,
        path: Path,
        logger: StructuredLogger,
        default_password: str,
    ) -> "SqliteRecordStore":
        """Open the database at *path* and make sure its schema exists."""
        conn = open_sqlite(path, logger)
        initialize_record_store_schema(conn, logger)
        return cls(conn, logger, default_password)

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    # ------------------------------------------------------------------
    # Pull
    # ------------------------------------------------------------------

    def fetch_snapshot(self) -> Snapshot:
        try:
            with self._lock:
                users = self._conn.execute("SELECT * FROM users").fetchall()
                customers = self._conn.execute("SELECT * FROM customers").fetchall()
                parcels = self._conn.execute(
                    "SELECT * FROM parcels ORDER BY created_at DESC"
                ).fetchall()
                history = self._conn.execute(
                    """
                    SELECT parcel_id, status, note, updated_by, updated_at
                    FROM tracking_history
                    ORDER BY updated_at ASC, id ASC
                    """
                ).fetchall()
        except sqlite3.Error as exc:
            raise RecordStoreError(f"Could not read snapshot: {exc}") from exc

        events: dict[str, list[StatusEvent]] = defaultdict(list)
        for row in history:
            events[row["parcel_id"]].append(
                StatusEvent(
                    status=row["status"],
                    date=row["updated_at"],
                    note=row["note"],
                    updated_by=row["updated_by"],
                )
            )

        return Snapshot(
            users=[User(**dict(row)) for row in users],
            customers=[Customer(**dict(row)) for row in customers],
            parcels=[
                Parcel(**dict(row), history=events.get(row["id"], []))
                for row in parcels
            ],
        )

    def find_user_by_email(self, email: str) -> Optional[User]:
        try:
            with self._lock:
                row = self._conn.execute(
                    "SELECT * FROM users WHERE lower(email) = lower(?)",
                    (email.strip(),),
                ).fetchone()
        except sqlite3.Error as exc:
            raise RecordStoreError(f"Could not look up user: {exc}") from exc
        return User(**dict(row)) if row else None

    # ------------------------------------------------------------------
    # Push
    # ------------------------------------------------------------------

    def apply_snapshot(
        self, snapshot: Snapshot, *, client_id: str, sequence: int
    ) -> PushReceipt:
        with self._lock:
            try:
                self._conn.execute("BEGIN IMMEDIATE")
                last = self._last_sequence(client_id)
                if last is not None and sequence <= last:
                    raise StaleSnapshotError(client_id, sequence, last)

                merged_customers: dict[str, str] = {}
                for customer in snapshot.customers:
                    stored_id = self._id_holding("customers", "dni", customer.dni, customer.id)
                    if stored_id is not None:
                        merged_customers[customer.id] = stored_id
                        customer = customer.model_copy(update={"id": stored_id})
                    self._upsert_customer(customer)

                merged_users: dict[str, str] = {}
                for user in snapshot.users:
                    stored_id = self._id_holding("users", "email", user.email.lower(), user.id)
                    if stored_id is not None:
                        merged_users[user.id] = stored_id
                        user = user.model_copy(update={"id": stored_id})
                    self._upsert_user(user)

                history_rows = 0
                rejected: list[str] = []
                for parcel in snapshot.parcels:
                    if self._id_holding("parcels", "tracking_code", parcel.tracking_code, parcel.id):
                        rejected.append(parcel.id)
                        continue
                    parcel = parcel.model_copy(update={
                        "sender_id": merged_customers.get(parcel.sender_id, parcel.sender_id),
                        "created_by_id": merged_users.get(parcel.created_by_id, parcel.created_by_id),
                    })
                    self._upsert_parcel(parcel)
                    history_rows += self._insert_history(parcel)

                self._conn.execute(
                    """
                    INSERT INTO sync_state (client_id, last_sequence, updated_at)
                    VALUES (?, ?, CURRENT_TIMESTAMP)
                    ON CONFLICT(client_id) DO UPDATE SET
                        last_sequence = excluded.last_sequence,
                        updated_at = CURRENT_TIMESTAMP
                    """,
                    (client_id, sequence),
                )
                self._conn.commit()
            except StaleSnapshotError:
                self._conn.rollback()
                raise
            except sqlite3.Error as exc:
                self._conn.rollback()
                self._logger.error(
                    "Push %d from %s rolled back: %s", sequence, client_id, exc,
                )
                raise RecordStoreError(f"Push rolled back: {exc}") from exc

        self._logger.info(
            "Push %d from %s applied: %d customers, %d users, %d parcels, "
            "%d new history rows.",
            sequence,
            client_id,
            len(snapshot.customers),
            len(snapshot.users),
            len(snapshot.parcels),
            history_rows,
        )
        if merged_customers or merged_users:
            self._logger.info(
                "Push %d from %s merged re-created records: customers %s, users %s.",
                sequence, client_id, merged_customers, merged_users,
            )
        if rejected:
            self._logger.warning(
                "Push %d from %s skipped parcels with taken tracking codes: %s",
                sequence, client_id, rejected,
            )
        return PushReceipt(
            applied=True,
            sequence=sequence,
            last_sequence=sequence,
            customers=len(snapshot.customers),
            users=len(snapshot.users),
            parcels=len(snapshot.parcels) - len(rejected),
            history_rows=history_rows,
            merged_customers=merged_customers,
            merged_users=merged_users,
            rejected_parcels=rejected,
        )

    def _last_sequence(self, client_id: str) -> Optional[int]:
        row = self._conn.execute(
            "SELECT last_sequence FROM sync_state WHERE client_id = ?", (client_id,)
        ).fetchone()
        return int(row["last_sequence"]) if row else None

    def _id_holding(self, table: str, column: str, value: str, pushed_id: str) -> Optional[str]:
        """Id of the stored row, other than *pushed_id*, whose unique *column* is *value*."""
        row = self._conn.execute(
            f"SELECT id FROM {table} WHERE {column} = ? AND id != ?", (value, pushed_id)
        ).fetchone()
        return row["id"] if row else None

    def _upsert_customer(self, customer: Customer) -> None:
        self._conn.execute(
            """
            INSERT INTO customers (id, full_name, phone, address, dni, email)
            VALUES (?, ?, ?, ?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET
                full_name = excluded.full_name,
                phone = excluded.phone,
                address = excluded.address,
                email = excluded.email
            """,
            (
                customer.id,
                customer.full_name,
                customer.phone,
                customer.address,
                customer.dni,
                customer.email,
            ),
        )

    def _upsert_user(self, user: User) -> None:
        self._conn.execute(
            """
            INSERT INTO users (id, name, email, role, branch, password_hash)
            VALUES (?, ?, ?, ?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET
                name = excluded.name,
                role = excluded.role,
                branch = excluded.branch,
                password_hash = excluded.password_hash
            """,
            (
                user.id,
                user.name,
                user.email.lower(),
                str(user.role),
                user.branch,
                ensure_hashed(user.password_hash, self._default_password),
            ),
        )

    def _upsert_parcel(self, parcel: Parcel) -> None:
        self._conn.execute(
            """
            INSERT INTO parcels (
                id, tracking_code, sender_id, receiver_name, receiver_phone,
                receiver_address, weight, type, cost, status, payment_method,
                payment_status, origin, destination, created_at, branch,
                created_by_id, created_by_name
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET
                status = excluded.status,
                payment_status = excluded.payment_status,
                cost = excluded.cost,
                weight = excluded.weight
            """,
            (
                parcel.id,
                parcel.tracking_code,
                parcel.sender_id,
                parcel.receiver_name,
                parcel.receiver_phone,
                parcel.receiver_address,
                parcel.weight,
                parcel.type,
                parcel.cost,
                str(parcel.status),
                str(parcel.payment_method),
                str(parcel.payment_status),
                parcel.origin,
                parcel.destination,
                parcel.created_at.isoformat(),
                parcel.branch,
                parcel.created_by_id,
                parcel.created_by_name,
            ),
        )

    def _insert_history(self, parcel: Parcel) -> int:
        inserted = 0
        for event in parcel.history:
            cursor = self._conn.execute(
                """
                INSERT OR IGNORE INTO tracking_history
                    (parcel_id, status, note, updated_by, updated_at, event_key)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (
                    parcel.id,
                    str(event.status),
                    event.note or "",
                    event.updated_by,
                    event.date.isoformat(),
                    history_event_key(parcel.id, event),
                ),
            )
            inserted += cursor.rowcount
        return inserted
