"""
Sync Reconciler Service.

Keeps the local cache and the record store in step:

- :meth:`SyncReconcilerService.pull` runs at start-up.  Missing local
  collections are seeded first; then every collection the record store
  returns non-empty replaces its local copy.  An empty collection never
  erases local data, and an unreachable store leaves the local cache
  authoritative.
- :meth:`SyncReconcilerService.push` sends the full local snapshot.
  Pushes are serialized by ``_push_lock`` and stamped with a per-device
  ``client_id`` and a monotonically increasing sequence, both persisted in
  the local cache.  The record store rejects out-of-order pushes.  After
  a push the cache adopts the ids the store kept for re-created customers
  and users, and re-codes parcels whose tracking code was already taken.

A daemon thread pushes every ``SYNC_INTERVAL_S`` seconds and whenever
:meth:`request_push` wakes it.  A failed cycle is simply retried on the
next one; there is no backoff and no permanent failure state.

Thread Safety
-------------
Local cache writes go through ``DatabaseManager.write_lock``; status
listeners are called on whichever thread ran the attempt.
"""

from __future__ import annotations

import random
import threading
import uuid
from typing import Callable, Optional, TypeVar

from parcelops.config import AppConfig
from parcelops.database import DatabaseManager
from parcelops.logger import StructuredLogger
from parcelops.models.base import RecordModel
from parcelops.models.enums import SyncStatus
from parcelops.models.snapshot import PushReceipt, Snapshot
from parcelops.repositories.customer_repository import CustomerRepository
from parcelops.repositories.parcel_repository import ParcelRepository
from parcelops.repositories.user_repository import UserRepository
from parcelops.seed import seed_customers, seed_parcels, seed_users
from parcelops.services.base_service import BaseService
from parcelops.services.parcel_workflow import TrackingCodeExhaustedError, allocate_tracking_code
from parcelops.storage.local_cache import CacheKey, LocalCache
from parcelops.storage.record_store import RecordStore, RecordStoreError, StaleSnapshotError

StatusListener = Callable[[SyncStatus], None]
R = TypeVar("R", bound=RecordModel)


def _adopt_ids(records: list[R], merged: dict[str, str]) -> list[R]:
    # a local record already holding a target id is superseded by the merged one
    targets = set(merged.values())
    adopted: list[R] = []
    for record in records:
        if record.id in merged:
            adopted.append(record.model_copy(update={"id": merged[record.id]}))
        elif record.id not in targets:
            adopted.append(record)
    return adopted


class SyncReconcilerService(BaseService):
    """Pull/push reconciliation plus the periodic push worker.

    Parameters
    ----------
    record_store:
        Authoritative store, or ``None`` when none is configured (every
        attempt then reports ``offline``).
    cache:
        Local cache holding ``client_id`` and ``sync_sequence``.
    rng:
        Source for re-drawn tracking codes; injectable for tests.
    """

    def __init__(
        self,
        record_store: Optional[RecordStore],
        cache: LocalCache,
        user_repo: UserRepository,
        customer_repo: CustomerRepository,
        parcel_repo: ParcelRepository,
        db: DatabaseManager,
        config: AppConfig,
        logger: StructuredLogger,
        rng: Optional[random.Random] = None,
    ) -> None:
        super().__init__(logger, db)
        self._store = record_store
        self._cache = cache
        self._users = user_repo
        self._customers = customer_repo
        self._parcels = parcel_repo
        self._config = config
        self._rng = rng or random.Random()

        self._push_lock = threading.Lock()
        self._listeners: list[StatusListener] = []
        self._listeners_lock = threading.Lock()
        self._last_status: SyncStatus = SyncStatus.IDLE
        self._last_receipt: Optional[PushReceipt] = None

        self._thread: Optional[threading.Thread] = None
        self._stop_event = threading.Event()
        self._wake_event = threading.Event()

    # ------------------------------------------------------------------
    # Status signal
    # ------------------------------------------------------------------

    def add_status_listener(self, listener: StatusListener) -> None:
        with self._listeners_lock:
            self._listeners.append(listener)

    @property
    def last_status(self) -> SyncStatus:
        return self._last_status

    @property
    def last_receipt(self) -> Optional[PushReceipt]:
        """Receipt of the last applied push."""
        return self._last_receipt

    def _publish(self, status: SyncStatus) -> None:
        self._last_status = status
        with self._listeners_lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(status)
            except Exception:
                self._logger.warning("Sync status listener failed.", exc_info=True)

    # ------------------------------------------------------------------
    # Identity and sequencing
    # ------------------------------------------------------------------

    @property
    def client_id(self) -> str:
        """Stable id of this device, created on first use."""
        with self._db.write_lock:
            value = self._cache.get(CacheKey.CLIENT_ID)
            if isinstance(value, str) and value:
                return value
            value = uuid.uuid4().hex
            self._cache.put(CacheKey.CLIENT_ID, value)
            return value

    def _next_sequence(self) -> int:
        with self._db.write_lock:
            current = self._cache.get(CacheKey.SYNC_SEQUENCE)
            sequence = (current if isinstance(current, int) else 0) + 1
            self._cache.put(CacheKey.SYNC_SEQUENCE, sequence)
            return sequence

    def _fast_forward_sequence(self, last_applied: int) -> None:
        with self._db.write_lock:
            current = self._cache.get(CacheKey.SYNC_SEQUENCE)
            if not isinstance(current, int) or current < last_applied:
                self._cache.put(CacheKey.SYNC_SEQUENCE, last_applied)

    # ------------------------------------------------------------------
    # Pull
    # ------------------------------------------------------------------

    def seed_missing(self) -> None:
        """Write seed data into every collection the cache does not hold."""
        with self._db.batch_write():
            if not self._users.is_seeded:
                self._users.replace_all(seed_users())
            if not self._customers.is_seeded:
                self._customers.replace_all(seed_customers())
            if not self._parcels.is_seeded:
                self._parcels.replace_all(seed_parcels())

    def pull(self) -> SyncStatus:
        """Refresh the local cache from the record store."""
        self.seed_missing()
        if self._store is None:
            self._logger.info("No record store configured; using local cache.")
            self._publish(SyncStatus.OFFLINE)
            return SyncStatus.OFFLINE

        self._publish(SyncStatus.SYNCING)
        try:
            snapshot = self._store.fetch_snapshot()
        except RecordStoreError as exc:
            self._logger.warning("Record store unavailable, using local cache: %s", exc)
            self._publish(SyncStatus.OFFLINE)
            return SyncStatus.OFFLINE

        with self._db.batch_write():
            if snapshot.parcels:
                self._parcels.replace_all(snapshot.parcels)
            if snapshot.customers:
                self._customers.replace_all(snapshot.customers)
            if snapshot.users:
                self._users.replace_all(snapshot.users)

        self._logger.info(
            "Pulled %d parcels, %d customers, %d users from the record store.",
            len(snapshot.parcels),
            len(snapshot.customers),
            len(snapshot.users),
        )
        self._publish(SyncStatus.SUCCESS)
        return SyncStatus.SUCCESS

    # ------------------------------------------------------------------
    # Push
    # ------------------------------------------------------------------

    def local_snapshot(self) -> Snapshot:
        return Snapshot(
            parcels=self._parcels.get_all(),
            customers=self._customers.get_all(),
            users=self._users.get_all(),
        )

    def push(self) -> SyncStatus:
        """Send the full local snapshot to the record store.

        A stale push is skipped rather than failed: the local sequence is
        fast-forwarded and ``idle`` is reported.
        """
        if self._store is None:
            self._publish(SyncStatus.OFFLINE)
            return SyncStatus.OFFLINE

        with self._push_lock:
            client_id = self.client_id
            sequence = self._next_sequence()
            snapshot = self.local_snapshot()
            self._publish(SyncStatus.SYNCING)
            try:
                receipt = self._store.apply_snapshot(
                    snapshot, client_id=client_id, sequence=sequence,
                )
            except StaleSnapshotError as exc:
                self._logger.info("Push skipped: %s", exc)
                self._fast_forward_sequence(exc.last_sequence)
                self._publish(SyncStatus.IDLE)
                return SyncStatus.IDLE
            except RecordStoreError as exc:
                self._logger.warning("Push %d failed: %s", sequence, exc)
                self._publish(SyncStatus.ERROR)
                return SyncStatus.ERROR

            self._last_receipt = receipt
            if receipt.needs_local_fixup:
                self._apply_receipt(receipt)
        self._publish(SyncStatus.SUCCESS)
        return SyncStatus.SUCCESS

    def _apply_receipt(self, receipt: PushReceipt) -> None:
        """Bring the cache in line with what the record store kept.

        Merged customers and users take the id the store already had for
        their DNI / email, and every parcel reference follows.  Parcels
        the store refused for a taken tracking code get a fresh code and
        go out with the next push.
        """
        customer_ids = receipt.merged_customers
        user_ids = receipt.merged_users
        with self._db.batch_write():
            if customer_ids:
                self._customers.replace_all(_adopt_ids(self._customers.get_all(), customer_ids))
            if user_ids:
                self._users.replace_all(_adopt_ids(self._users.get_all(), user_ids))
            if customer_ids or user_ids:
                parcels = self._parcels.get_all()
                for parcel in parcels:
                    parcel.sender_id = customer_ids.get(parcel.sender_id, parcel.sender_id)
                    parcel.created_by_id = user_ids.get(parcel.created_by_id, parcel.created_by_id)
                self._parcels.replace_all(parcels)
                self._logger.info(
                    "Adopted record store ids: customers %s, users %s.", customer_ids, user_ids,
                )
            recoded = self._recode_parcels(receipt.rejected_parcels)
        if recoded:
            self.request_push()

    def _recode_parcels(self, parcel_ids: list[str]) -> int:
        recoded = 0
        for parcel_id in parcel_ids:
            parcel = self._parcels.get_by_id(parcel_id)
            if parcel is None:
                continue
            try:
                code = allocate_tracking_code(
                    self._config, self._parcels.tracking_code_exists, self._rng,
                )
            except TrackingCodeExhaustedError as exc:
                self._logger.error("Parcel %s keeps a taken tracking code: %s", parcel_id, exc)
                continue
            self._logger.warning(
                "Tracking code %s is taken in the record store; parcel %s is now %s.",
                parcel.tracking_code, parcel_id, code,
            )
            parcel.tracking_code = code
            self._parcels.update(parcel)
            recoded += 1
        return recoded

    def request_push(self) -> None:
        """Ask the worker for a push as soon as possible.

        Without a running worker the request is recorded and served by
        the next :meth:`start` or explicit :meth:`push`.
        """
        self._wake_event.set()

    # ------------------------------------------------------------------
    # Worker lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Start the push worker on a daemon thread.

        Idempotent: calling ``start()`` while running is a no-op.
        """
        if self._thread is not None and self._thread.is_alive():
            self._logger.debug("Sync reconciler already running.")
            return

        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._run_loop, name="SyncReconciler", daemon=True,
        )
        self._thread.start()
        self._logger.info(
            "Sync reconciler started (interval %.0fs).", self._config.SYNC_INTERVAL_S,
        )

    def stop(self) -> None:
        """Signal the worker to stop and wait for it to exit."""
        if self._thread is None:
            return

        self._stop_event.set()
        self._wake_event.set()
        self._thread.join(timeout=self._config.SYNC_STOP_TIMEOUT_S)

        if self._thread.is_alive():
            self._logger.warning(
                "Sync reconciler thread did not terminate within %.0f s.",
                self._config.SYNC_STOP_TIMEOUT_S,
            )
        else:
            self._logger.info("Sync reconciler stopped.")
        self._thread = None

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def _run_loop(self) -> None:
        try:
            while not self._stop_event.is_set():
                self._wake_event.wait(timeout=self._config.SYNC_INTERVAL_S)
                if self._stop_event.is_set():
                    break
                self._wake_event.clear()
                try:
                    self.push()
                except Exception:
                    self._logger.warning("Sync cycle failed", exc_info=True)
                    self._publish(SyncStatus.ERROR)
        except Exception:
            self._logger.error(
                "Sync reconciler thread terminated due to unhandled exception.",
                exc_info=True,
            )
