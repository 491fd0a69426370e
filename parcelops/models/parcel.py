"""
Parcel Model.

A parcel's ``history`` is append-only and its last entry always carries
the parcel's current ``status``.  Use :meth:`Parcel.record_status` for
every transition so the two never drift apart.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Optional

from pydantic import Field

from parcelops.models.base import RecordModel
from parcelops.models.enums import ParcelStatus, PaymentMethod, PaymentStatus

PARCEL_TYPES: tuple[str, ...] = (
    "Documentos",
    "Paquete Pequeño (<2kg)",
    "Caja Mediana (2-10kg)",
    "Caja Grande (>10kg)",
    "Electrónicos",
    "Frágil",
)


class StatusEvent(RecordModel):
    """One entry of a parcel's tracking history."""

    status: ParcelStatus
    date: datetime
    note: str = ""
    updated_by: Optional[str] = None


class Parcel(RecordModel):
    id: str
    tracking_code: str
    sender_id: str
    receiver_name: str
    receiver_phone: str
    receiver_address: str
    weight: float
    type: str
    cost: float = 0.0
    status: ParcelStatus = ParcelStatus.RECEIVED
    payment_method: PaymentMethod = PaymentMethod.CASH
    payment_status: PaymentStatus = PaymentStatus.PENDING
    origin: str
    destination: str
    created_at: datetime
    branch: str
    created_by_id: str
    created_by_name: str = ""
    history: list[StatusEvent] = Field(default_factory=list)

    def record_status(
        self,
        status: ParcelStatus,
        note: str,
        updated_by: str,
        at: Optional[datetime] = None,
    ) -> StatusEvent:
        """Append a history entry and move the parcel to *status*.

        Entry dates are strictly increasing, so two entries never share a
        timestamp even when the clock does not advance between calls.
        """
        when = at or datetime.now(timezone.utc)
        if self.history and when <= self.history[-1].date:
            when = self.history[-1].date + timedelta(microseconds=1)
        event = StatusEvent(
            status=status,
            date=when,
            note=note,
            updated_by=updated_by,
        )
        self.history.append(event)
        self.status = status
        return event
