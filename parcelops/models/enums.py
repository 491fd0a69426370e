"""
Shared Enumerations.

StrEnum values compare equal to their string equivalents, so the values
stored in the cache and the record store (``"Recibido"``, ``"Pagado"``...)
round-trip without a mapping table.
"""

from __future__ import annotations

from enum import StrEnum


class UserRole(StrEnum):
    """Staff roles.

    ``SUPER_ADMIN`` has global scope and cannot be deleted.  ``ADMIN`` manages
    its own branch.  ``OPERATOR`` may only move parcels through the workflow.
    """

    SUPER_ADMIN = "SUPER_ADMIN"
    ADMIN = "ADMIN"
    OPERATOR = "OPERATOR"


class ParcelStatus(StrEnum):
    """Parcel lifecycle, in forward order."""

    RECEIVED = "Recibido"
    IN_TRANSIT = "En tránsito"
    IN_WAREHOUSE = "En almacén"
    DELIVERED = "Entregado"

    @property
    def rank(self) -> int:
        return list(ParcelStatus).index(self)


class PaymentMethod(StrEnum):
    CASH = "Efectivo"
    TRANSFER = "Transferencia"
    MOBILE_MONEY = "Muni Money / Getesa Money"


class PaymentStatus(StrEnum):
    PAID = "Pagado"
    PENDING = "Pendiente"


class NotificationType(StrEnum):
    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"


class SyncStatus(StrEnum):
    """Signal published by the sync reconciler after every attempt."""

    IDLE = "idle"
    SYNCING = "syncing"
    SUCCESS = "success"
    ERROR = "error"
    OFFLINE = "offline"
