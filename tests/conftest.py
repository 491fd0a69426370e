import os
import tempfile
import threading
from datetime import datetime, timezone
from pathlib import Path

import pytest

os.environ.setdefault("LOG_FILE", str(Path(tempfile.gettempdir()) / "parcelops-tests.log"))

from parcelops.auth import SessionManager  # noqa: E402
from parcelops.config import AppConfig  # noqa: E402
from parcelops.database import DatabaseManager  # noqa: E402
from parcelops.logger import StructuredLogger  # noqa: E402
from parcelops.models import Parcel, ParcelStatus, StatusEvent, User, UserRole  # noqa: E402
from parcelops.repositories import (  # noqa: E402
    CustomerRepository,
    NotificationRepository,
    ParcelRepository,
    UserRepository,
)
from parcelops.schema import initialize_local_schema  # noqa: E402
from parcelops.seed import seed_users  # noqa: E402
from parcelops.services import create_services  # noqa: E402
from parcelops.services.sms_service import SmsDeliveryError  # noqa: E402
from parcelops.storage import LocalCache, SqliteRecordStore  # noqa: E402


class RecordingSmsGateway:
    """Collects messages instead of calling Twilio."""

    def __init__(self):
        self.sent = []
        self.fail = False
        self.attempted = threading.Event()
        self._lock = threading.Lock()

    def send(self, to, body):
        try:
            if self.fail:
                raise SmsDeliveryError("gateway down")
            with self._lock:
                self.sent.append((to, body))
                return f"SM{len(self.sent):04d}"
        finally:
            self.attempted.set()


@pytest.fixture
def logger():
    return StructuredLogger(name="parcelops.tests")


@pytest.fixture
def config():
    return AppConfig(_env_file=None)


@pytest.fixture
def db(tmp_path, logger):
    manager = DatabaseManager(sqlite_path=tmp_path / "local.db", logger=logger)
    initialize_local_schema(manager.sqlite, logger)
    yield manager
    manager.close()


@pytest.fixture
def cache(db, logger):
    return LocalCache(db=db, logger=logger)


@pytest.fixture
def record_store(tmp_path, logger):
    store = SqliteRecordStore.open(tmp_path / "records.db", logger, "123")
    yield store
    store.close()


@pytest.fixture
def sms_gateway():
    return RecordingSmsGateway()


@pytest.fixture
def session(cache):
    return SessionManager(cache)


@pytest.fixture
def services(db, config, session, record_store, sms_gateway):
    container = create_services(
        db=db,
        config=config,
        session=session,
        record_store=record_store,
        sms_gateway=sms_gateway,
    )
    container["sync_reconciler"].seed_missing()
    return container


@pytest.fixture
def workflow(services):
    return services["parcel_workflow_service"]


@pytest.fixture
def notifications(services):
    return services["notification_center"]


@pytest.fixture
def reconciler(services):
    return services["sync_reconciler"]


@pytest.fixture
def parcel_repo(cache, logger):
    return ParcelRepository(cache=cache, logger=logger)


@pytest.fixture
def customer_repo(cache, logger):
    return CustomerRepository(cache=cache, logger=logger)


@pytest.fixture
def user_repo(cache, logger):
    return UserRepository(cache=cache, logger=logger)


@pytest.fixture
def notification_repo(cache, logger, config):
    return NotificationRepository(cache=cache, logger=logger, limit=config.NOTIFICATION_LIMIT)


@pytest.fixture
def seeded_users():
    return {u.id: u for u in seed_users()}


@pytest.fixture
def super_admin(seeded_users):
    return seeded_users["u-1"]


@pytest.fixture
def admin_malabo(seeded_users):
    return seeded_users["u-2"]


@pytest.fixture
def admin_bata(seeded_users):
    return seeded_users["u-3"]


@pytest.fixture
def operator_malabo(seeded_users):
    return seeded_users["u-4"]


@pytest.fixture
def parcel_input():
    return {
        "sender_id": "1",
        "receiver_name": "Carlos Mba",
        "receiver_phone": "+240 222 999 888",
        "receiver_address": "Malabo, Paraíso",
        "destination": "Malabo",
        "origin": "Bata",
        "weight": 2.5,
        "type": "Caja Mediana (2-10kg)",
        "cost": 5000,
    }


@pytest.fixture
def make_parcel():
    counter = {"n": 0}

    def _make(origin="Bata", destination="Malabo", cost=1000.0, status=ParcelStatus.RECEIVED, **extra):
        counter["n"] += 1
        now = datetime.now(timezone.utc)
        fields = dict(
            id=f"t{counter['n']}",
            tracking_code=f"SM-2025-{1000 + counter['n']}",
            sender_id="1",
            receiver_name="Receptor",
            receiver_phone="+240 000 000 000",
            receiver_address="Calle 1",
            weight=1.0,
            type="Documentos",
            cost=cost,
            status=status,
            origin=origin,
            destination=destination,
            created_at=now,
            branch=origin,
            created_by_id="u-1",
            created_by_name="Super Admin",
            history=[StatusEvent(status=status, date=now, note="", updated_by="Super Admin")],
        )
        fields.update(extra)
        return Parcel(**fields)

    return _make


@pytest.fixture
def make_user():
    def _make(role=UserRole.ADMIN, branch="Malabo", user_id="x-1"):
        return User(id=user_id, name=f"{role} {branch}", email=f"{user_id}@example.com",
                    role=role, branch=branch)

    return _make
