"""Customer (sender) model."""

from __future__ import annotations

from typing import Optional

from parcelops.models.base import RecordModel


class Customer(RecordModel):
    """A registered sender.  ``dni`` is the unique identity document."""

    id: str
    full_name: str
    phone: str
    address: str
    dni: str
    email: Optional[str] = None
