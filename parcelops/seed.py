"""
Seed data.

The seed collections are written to the local cache the first time the
application starts without a reachable record store, so that a fresh
install can log in (password ``123``) and try the workflow.
"""

from __future__ import annotations

from datetime import datetime, timezone

from parcelops.models.customer import Customer
from parcelops.models.enums import ParcelStatus, PaymentMethod, PaymentStatus, UserRole
from parcelops.models.parcel import Parcel, StatusEvent
from parcelops.models.user import User

SEED_PASSWORD: str = "123"


def seed_users() -> list[User]:
    return [
        User(id="u-1", name="Super Admin", email="admin@sm-global.com",
             role=UserRole.SUPER_ADMIN, branch="Sede Central", password=SEED_PASSWORD),
        User(id="u-2", name="Admin Malabo", email="malabo@sm-global.com",
             role=UserRole.ADMIN, branch="Malabo", password=SEED_PASSWORD),
        User(id="u-3", name="Admin Bata", email="bata@sm-global.com",
             role=UserRole.ADMIN, branch="Bata", password=SEED_PASSWORD),
        User(id="u-4", name="Operador Logístico", email="operador@sm-global.com",
             role=UserRole.OPERATOR, branch="Malabo", password=SEED_PASSWORD),
    ]


def seed_customers() -> list[Customer]:
    return [
        Customer(id="1", full_name="Juan Obiang", phone="+240 222 000 111",
                 address="Bata, Plaza de la Libertad", dni="1234567-A"),
        Customer(id="2", full_name="Maria Nchama", phone="+240 555 123 456",
                 address="Malabo, Calle Kenia", dni="9876543-B"),
    ]


def seed_parcels() -> list[Parcel]:
    now = datetime.now(timezone.utc)
    return [
        Parcel(
            id="p1",
            tracking_code="GE-2023-A001",
            sender_id="1",
            receiver_name="Carlos Mba",
            receiver_phone="+240 222 999 888",
            receiver_address="Malabo, Paraíso",
            weight=2.5,
            type="Caja Mediana (2-10kg)",
            cost=5000,
            status=ParcelStatus.RECEIVED,
            payment_method=PaymentMethod.CASH,
            payment_status=PaymentStatus.PAID,
            origin="Bata",
            destination="Malabo",
            created_at=now,
            branch="Bata",
            created_by_id="u-1",
            created_by_name="Super Admin",
            history=[
                StatusEvent(
                    status=ParcelStatus.RECEIVED,
                    date=now,
                    note="Paquete recibido en oficina central",
                    updated_by="Super Admin",
                )
            ],
        )
    ]
