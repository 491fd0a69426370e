import random
import threading

import pytest

from parcelops.models import Customer, ParcelStatus, PaymentStatus, Snapshot, SyncStatus, UserRole
from parcelops.seed import seed_customers, seed_parcels, seed_users
from parcelops.services.sync_reconciler import SyncReconcilerService
from parcelops.storage import CacheKey, RecordStoreError


@pytest.fixture
def build_reconciler(cache, user_repo, customer_repo, parcel_repo, db, config, logger):
    def _build(store, rng=None, **overrides):
        return SyncReconcilerService(
            record_store=store,
            cache=cache,
            user_repo=user_repo,
            customer_repo=customer_repo,
            parcel_repo=parcel_repo,
            db=db,
            config=config.model_copy(update=overrides) if overrides else config,
            logger=logger,
            rng=rng,
        )

    return _build


def _dump(records, exclude=None):
    return {r.id: r.model_dump(mode="json", exclude=exclude) for r in records}


class _UnreachableStore:
    def fetch_snapshot(self):
        raise RecordStoreError("connection refused")

    def apply_snapshot(self, snapshot, *, client_id, sequence):
        raise RecordStoreError("connection refused")

    def find_user_by_email(self, email):
        raise RecordStoreError("connection refused")


def test_offline_pull_seeds_local_cache(build_reconciler, user_repo, customer_repo, parcel_repo):
    reconciler = build_reconciler(None)

    assert reconciler.pull() == SyncStatus.OFFLINE

    assert [u.id for u in user_repo.get_all()] == ["u-1", "u-2", "u-3", "u-4"]
    assert [c.id for c in customer_repo.get_all()] == ["1", "2"]
    assert [p.id for p in parcel_repo.get_all()] == ["p1"]


def test_unreachable_store_keeps_local_data(build_reconciler, parcel_repo, make_parcel):
    parcel_repo.replace_all([make_parcel()])
    reconciler = build_reconciler(_UnreachableStore())

    assert reconciler.pull() == SyncStatus.OFFLINE

    assert [p.id for p in parcel_repo.get_all()] == ["t1"]


def test_seeding_skips_collections_already_cached(build_reconciler, customer_repo):
    customer_repo.replace_all([])
    reconciler = build_reconciler(None)

    reconciler.pull()

    assert customer_repo.get_all() == []


def test_empty_store_never_erases_local_data(build_reconciler, record_store, parcel_repo, make_parcel):
    parcel_repo.replace_all([make_parcel(), make_parcel()])
    reconciler = build_reconciler(record_store)

    assert reconciler.pull() == SyncStatus.SUCCESS

    assert len(parcel_repo.get_all()) == 2


def test_pull_replaces_only_non_empty_collections(build_reconciler, record_store, parcel_repo,
                                                  customer_repo, make_parcel):
    remote = Customer(id="9", full_name="Remota", phone="+240", address="Luba", dni="X-9")
    record_store.apply_snapshot(Snapshot(customers=[remote]), client_id="other", sequence=1)
    parcel_repo.replace_all([make_parcel()])
    reconciler = build_reconciler(record_store)

    reconciler.pull()

    assert [c.id for c in customer_repo.get_all()] == ["9"]
    assert [p.id for p in parcel_repo.get_all()] == ["t1"]


def test_push_then_pull_round_trip(build_reconciler, record_store, parcel_repo, user_repo):
    pusher = build_reconciler(record_store)
    pusher.seed_missing()
    parcel = parcel_repo.get_by_id("p1")
    parcel.record_status(ParcelStatus.DELIVERED, "Entregado", "Admin Malabo")
    parcel.cost = 6500.0
    parcel.weight = 3.0
    parcel.payment_status = PaymentStatus.PENDING
    parcel_repo.update(parcel)

    assert pusher.push() == SyncStatus.SUCCESS
    assert pusher.last_receipt.history_rows == 2

    local = pusher.local_snapshot()
    pulled = record_store.fetch_snapshot()
    assert _dump(pulled.customers) == _dump(local.customers)
    assert _dump(pulled.users, exclude={"password_hash"}) == _dump(local.users, exclude={"password_hash"})
    assert _dump(pulled.parcels) == _dump(local.parcels)
    stored = pulled.parcels[0]
    assert stored.status == ParcelStatus.DELIVERED
    assert stored.payment_status == PaymentStatus.PENDING
    assert stored.cost == 6500.0
    assert [e.status for e in stored.history] == [ParcelStatus.RECEIVED, ParcelStatus.DELIVERED]

    user_repo.replace_all([])
    pusher.pull()
    assert _dump(pusher.local_snapshot().users) == _dump(pulled.users)


def test_sequence_increases_with_every_push(build_reconciler, record_store, cache):
    reconciler = build_reconciler(record_store)
    reconciler.seed_missing()

    reconciler.push()
    reconciler.push()

    assert cache.get(CacheKey.SYNC_SEQUENCE) == 2
    assert reconciler.last_receipt.sequence == 2


def test_client_id_is_stable(build_reconciler, record_store):
    first = build_reconciler(record_store).client_id
    second = build_reconciler(record_store).client_id

    assert first == second


def test_stale_push_is_skipped_and_sequence_fast_forwarded(build_reconciler, record_store, cache):
    reconciler = build_reconciler(record_store)
    reconciler.seed_missing()
    record_store.apply_snapshot(Snapshot(), client_id=reconciler.client_id, sequence=10)

    assert reconciler.push() == SyncStatus.IDLE
    assert cache.get(CacheKey.SYNC_SEQUENCE) == 10

    assert reconciler.push() == SyncStatus.SUCCESS
    assert reconciler.last_receipt.sequence == 11


def test_failed_push_reports_error(build_reconciler):
    reconciler = build_reconciler(_UnreachableStore())

    assert reconciler.push() == SyncStatus.ERROR
    assert reconciler.last_status == SyncStatus.ERROR


def test_push_without_store_is_offline(build_reconciler):
    assert build_reconciler(None).push() == SyncStatus.OFFLINE


def test_listeners_receive_each_status(build_reconciler, record_store):
    reconciler = build_reconciler(record_store)
    seen = []
    reconciler.add_status_listener(seen.append)

    reconciler.pull()
    reconciler.push()

    assert seen == [SyncStatus.SYNCING, SyncStatus.SUCCESS, SyncStatus.SYNCING, SyncStatus.SUCCESS]


def test_failing_listener_does_not_break_sync(build_reconciler, record_store):
    reconciler = build_reconciler(record_store)

    def broken(status):
        raise ValueError("boom")

    reconciler.add_status_listener(broken)

    assert reconciler.pull() == SyncStatus.SUCCESS


def test_worker_pushes_on_request(build_reconciler, record_store):
    reconciler = build_reconciler(record_store, SYNC_INTERVAL_S=3600.0)
    reconciler.seed_missing()
    pushed = threading.Event()
    reconciler.add_status_listener(lambda s: s == SyncStatus.SUCCESS and pushed.set())

    reconciler.start()
    try:
        assert reconciler.is_running
        reconciler.request_push()
        assert pushed.wait(timeout=5)
    finally:
        reconciler.stop()

    assert not reconciler.is_running
    assert {p.id for p in record_store.fetch_snapshot().parcels} == {"p1"}


def test_pending_request_is_served_on_start(build_reconciler, record_store):
    reconciler = build_reconciler(record_store, SYNC_INTERVAL_S=3600.0)
    reconciler.seed_missing()
    reconciler.request_push()
    pushed = threading.Event()
    reconciler.add_status_listener(lambda s: s == SyncStatus.SUCCESS and pushed.set())

    reconciler.start()
    try:
        assert pushed.wait(timeout=5)
    finally:
        reconciler.stop()


def test_start_is_idempotent(build_reconciler, record_store):
    reconciler = build_reconciler(record_store, SYNC_INTERVAL_S=3600.0)

    reconciler.start()
    thread = reconciler._thread
    reconciler.start()

    assert reconciler._thread is thread
    reconciler.stop()
    reconciler.stop()


def test_seed_data_round_trips_through_store(build_reconciler, record_store, user_repo):
    reconciler = build_reconciler(record_store)
    reconciler.seed_missing()
    reconciler.push()
    user_repo.replace_all([])

    reconciler.pull()

    assert {u.id for u in user_repo.get_all()} == {u.id for u in seed_users()}
    assert len(record_store.fetch_snapshot().customers) == len(seed_customers())
    assert len(record_store.fetch_snapshot().parcels) == len(seed_parcels())


def test_recreated_user_keeps_syncing(services, record_store, user_repo, admin_malabo):
    reconciler = services["sync_reconciler"]
    users = services["user_service"]
    assert reconciler.push() == SyncStatus.SUCCESS

    assert users.delete_user("u-4", admin_malabo).success
    created = users.create_user(
        {"name": "Operador Nuevo", "email": "operador@sm-global.com", "password": "nueva",
         "role": UserRole.OPERATOR, "branch": "Malabo"},
        admin_malabo,
    ).data
    assert created.id != "u-4"

    assert [reconciler.push() for _ in range(3)] == [SyncStatus.SUCCESS] * 3

    assert reconciler.last_receipt.merged_users == {}
    stored = [u for u in record_store.fetch_snapshot().users if u.email == "operador@sm-global.com"]
    assert [u.id for u in stored] == ["u-4"]
    assert stored[0].name == "Operador Nuevo"
    local = user_repo.get_by_email("operador@sm-global.com")
    assert local.id == "u-4"
    assert user_repo.get_by_id(created.id) is None


def test_recreated_customer_keeps_syncing(services, record_store, customer_repo, parcel_repo,
                                          admin_bata, parcel_input):
    reconciler = services["sync_reconciler"]
    customers = services["customer_service"]
    reconciler.push()

    assert customers.delete_customer("1", admin_bata).success
    created = customers.create_customer(
        {"fullName": "Juan Obiang Nsue", "phone": "+240 222 000 999",
         "address": "Bata, Centro", "dni": "1234567-A"},
        admin_bata,
    ).data
    parcel_input["sender_id"] = created.id
    parcel = services["parcel_workflow_service"].create_parcel(parcel_input, admin_bata).data

    assert reconciler.push() == SyncStatus.SUCCESS
    assert reconciler.last_receipt.merged_customers == {created.id: "1"}
    assert reconciler.push() == SyncStatus.SUCCESS
    assert reconciler.last_receipt.merged_customers == {}

    pulled = record_store.fetch_snapshot()
    assert {c.id for c in pulled.customers} == {"1", "2"}
    assert next(c for c in pulled.customers if c.id == "1").full_name == "Juan Obiang Nsue"
    assert {p.sender_id for p in pulled.parcels} == {"1"}
    assert [c.id for c in customer_repo.get_all() if c.dni == "1234567-A"] == ["1"]
    assert parcel_repo.get_by_id(parcel.id).sender_id == "1"


def test_taken_tracking_code_is_redrawn(build_reconciler, record_store, parcel_repo, make_parcel):
    remote = make_parcel(id="remote", tracking_code="SM-2025-7777")
    record_store.apply_snapshot(Snapshot(parcels=[remote]), client_id="other", sequence=1)
    parcel_repo.replace_all([make_parcel(id="local", tracking_code="SM-2025-7777")])
    reconciler = build_reconciler(record_store, rng=random.Random(7))

    assert reconciler.push() == SyncStatus.SUCCESS
    assert reconciler.last_receipt.rejected_parcels == ["local"]
    recoded = parcel_repo.get_by_id("local").tracking_code
    assert recoded != "SM-2025-7777"
    assert recoded.startswith("SM-")
    # the re-coded parcel is queued for the next push
    assert reconciler._wake_event.is_set()

    assert reconciler.push() == SyncStatus.SUCCESS
    assert reconciler.last_receipt.rejected_parcels == []
    stored = {p.id: p.tracking_code for p in record_store.fetch_snapshot().parcels}
    assert stored == {"remote": "SM-2025-7777", "local": recoded}
