"""
Snapshot models exchanged between the sync reconciler and the record store.
"""

from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, Field

from parcelops.models.customer import Customer
from parcelops.models.parcel import Parcel
from parcelops.models.user import User


class Snapshot(BaseModel):
    """Full copy of the replicated collections at a point in time."""

    parcels: list[Parcel] = Field(default_factory=list)
    customers: list[Customer] = Field(default_factory=list)
    users: list[User] = Field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not (self.parcels or self.customers or self.users)

    def to_wire(self) -> dict[str, Any]:
        return {
            "parcels": [p.to_wire() for p in self.parcels],
            "customers": [c.to_wire() for c in self.customers],
            "users": [u.to_wire() for u in self.users],
        }


class PushReceipt(BaseModel):
    """What the record store reports back after a push."""

    applied: bool
    sequence: int
    last_sequence: Optional[int] = None
    customers: int = 0
    users: int = 0
    parcels: int = 0
    history_rows: int = 0
    # pushed id -> id the store already holds for the same DNI / email
    merged_customers: dict[str, str] = Field(default_factory=dict)
    merged_users: dict[str, str] = Field(default_factory=dict)
    # parcels skipped because their tracking code belongs to another parcel
    rejected_parcels: list[str] = Field(default_factory=list)

    @property
    def needs_local_fixup(self) -> bool:
        return bool(self.merged_customers or self.merged_users or self.rejected_parcels)
