"""
Supabase Record Store.

:class:`~parcelops.storage.record_store.RecordStore` backed by a Supabase
(Postgres) project.  Pulls are plain table selects.  Pushes go through the
``sync_snapshot`` Postgres function (see
``supabase/migrations/0001_record_store.sql``) so that the whole snapshot
lands in one server-side transaction, including the stale-sequence check.

Passwords are hashed client-side before they leave the device.
"""

from __future__ import annotations

from collections import defaultdict
from typing import Any, Optional

from supabase import Client as SupabaseClient

from parcelops.logger import StructuredLogger
from parcelops.models.customer import Customer
from parcelops.models.parcel import Parcel, StatusEvent
from parcelops.models.snapshot import PushReceipt, Snapshot
from parcelops.models.user import User
from parcelops.storage.record_store import (
    RecordStoreError,
    StaleSnapshotError,
    history_event_key,
)
from parcelops.utils.passwords import ensure_hashed


class SupabaseRecordStore:
    """Record store on Supabase tables ``users``, ``customers``, ``parcels``
    and ``tracking_history``."""

    SYNC_FUNCTION: str = "sync_snapshot"

    def __init__(
        self,
        client: SupabaseClient,
        logger: StructuredLogger,
        default_password: str,
    ) -> None:
        self._client = client
        self._logger = logger
        self._default_password = default_password

    def fetch_snapshot(self) -> Snapshot:
        try:
            users = self._client.table("users").select("*").execute().data or []
            customers = self._client.table("customers").select("*").execute().data or []
            parcels = (
                self._client.table("parcels")
                .select("*")
                .order("created_at", desc=True)
                .execute()
                .data
                or []
            )
            history = (
                self._client.table("tracking_history")
                .select("parcel_id, status, note, updated_by, updated_at")
                .order("updated_at")
                .order("id")
                .execute()
                .data
                or []
            )
        except Exception as exc:
            raise RecordStoreError(f"Supabase pull failed: {exc}") from exc

        events: dict[str, list[StatusEvent]] = defaultdict(list)
        for row in history:
            events[row["parcel_id"]].append(
                StatusEvent(
                    status=row["status"],
                    date=row["updated_at"],
                    note=row.get("note") or "",
                    updated_by=row.get("updated_by"),
                )
            )

        return Snapshot(
            users=[User(**row) for row in users],
            customers=[Customer(**row) for row in customers],
            parcels=[Parcel(**row, history=events.get(row["id"], [])) for row in parcels],
        )

    def find_user_by_email(self, email: str) -> Optional[User]:
        try:
            response = (
                self._client.table("users")
                .select("*")
                .ilike("email", email.strip())
                .limit(1)
                .execute()
            )
        except Exception as exc:
            raise RecordStoreError(f"Supabase user lookup failed: {exc}") from exc
        rows = response.data or []
        return User(**rows[0]) if rows else None

    def apply_snapshot(
        self, snapshot: Snapshot, *, client_id: str, sequence: int
    ) -> PushReceipt:
        payload = {
            "p_client_id": client_id,
            "p_sequence": sequence,
            "p_customers": [self._customer_row(c) for c in snapshot.customers],
            "p_users": [self._user_row(u) for u in snapshot.users],
            "p_parcels": [self._parcel_row(p) for p in snapshot.parcels],
            "p_history": [
                self._history_row(p.id, event)
                for p in snapshot.parcels
                for event in p.history
            ],
        }
        try:
            response = self._client.rpc(self.SYNC_FUNCTION, payload).execute()
        except Exception as exc:
            raise RecordStoreError(f"Supabase push failed: {exc}") from exc

        result: dict[str, Any] = response.data or {}
        if not result.get("applied", False):
            raise StaleSnapshotError(
                client_id, sequence, int(result.get("last_sequence") or sequence)
            )

        self._logger.info(
            "Supabase push %d from %s applied (%s new history rows).",
            sequence,
            client_id,
            result.get("history_rows", 0),
        )
        return PushReceipt(
            applied=True,
            sequence=sequence,
            last_sequence=sequence,
            customers=len(snapshot.customers),
            users=len(snapshot.users),
            parcels=len(snapshot.parcels) - len(result.get("rejected_parcels") or []),
            history_rows=int(result.get("history_rows") or 0),
            merged_customers=result.get("merged_customers") or {},
            merged_users=result.get("merged_users") or {},
            rejected_parcels=result.get("rejected_parcels") or [],
        )

    # ------------------------------------------------------------------
    # Row shaping (snake_case columns)
    # ------------------------------------------------------------------

    @staticmethod
    def _customer_row(customer: Customer) -> dict[str, Any]:
        return customer.model_dump(mode="json")

    def _user_row(self, user: User) -> dict[str, Any]:
        row = user.model_dump(mode="json")
        row["email"] = user.email.lower()
        row["password_hash"] = ensure_hashed(user.password_hash, self._default_password)
        return row

    @staticmethod
    def _parcel_row(parcel: Parcel) -> dict[str, Any]:
        return parcel.model_dump(mode="json", exclude={"history"})

    @staticmethod
    def _history_row(parcel_id: str, event: StatusEvent) -> dict[str, Any]:
        return {
            "parcel_id": parcel_id,
            "status": str(event.status),
            "note": event.note or "",
            "updated_by": event.updated_by,
            "updated_at": event.date.isoformat(),
            "event_key": history_event_key(parcel_id, event),
        }
