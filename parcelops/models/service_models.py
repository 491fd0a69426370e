"""
Service Layer Data Transfer Objects.

Pydantic models for validated input/output at service boundaries.
"""

from __future__ import annotations

from typing import Generic, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field, field_validator

from parcelops.models.enums import ParcelStatus, PaymentMethod, PaymentStatus, UserRole
from parcelops.models.parcel import PARCEL_TYPES, Parcel
from parcelops.utils.string_helpers import to_camel_case

T = TypeVar("T")

__all__ = [
    "CustomerInput",
    "DashboardStats",
    "HistoryReport",
    "HistoryRow",
    "ParcelInput",
    "ServiceResult",
    "UserInput",
]


class _InputModel(BaseModel):
    """Inputs accept both snake_case and the camelCase form field names."""

    model_config = ConfigDict(
        alias_generator=to_camel_case,
        populate_by_name=True,
        str_strip_whitespace=True,
    )


# ---------------------------------------------------------------------------
# Inputs
# ---------------------------------------------------------------------------

class ParcelInput(_InputModel):
    """Validated form data for a new parcel.

    ``origin`` is only honoured for actors at headquarters; branch staff
    always ship from their own branch.
    """

    sender_id: str = Field(min_length=1)
    receiver_name: str = Field(min_length=1)
    receiver_phone: str = Field(min_length=1)
    receiver_address: str = Field(min_length=1)
    destination: str = Field(min_length=1)
    origin: Optional[str] = None
    weight: float = Field(gt=0)
    type: str = Field(min_length=1)
    cost: float = Field(default=0.0, ge=0)
    payment_method: PaymentMethod = PaymentMethod.CASH
    payment_status: PaymentStatus = PaymentStatus.PENDING

    @field_validator("type")
    @classmethod
    def _known_parcel_type(cls, value: str) -> str:
        if value not in PARCEL_TYPES:
            raise ValueError(f"must be one of: {', '.join(PARCEL_TYPES)}")
        return value


class CustomerInput(_InputModel):
    full_name: str = Field(min_length=1)
    phone: str = Field(min_length=1)
    address: str = Field(min_length=1)
    dni: str = Field(min_length=1)
    email: Optional[str] = None

    @field_validator("email")
    @classmethod
    def _blank_email_is_none(cls, value: Optional[str]) -> Optional[str]:
        return value or None


class UserInput(_InputModel):
    name: str = Field(min_length=1)
    email: str = Field(min_length=3)
    password: str = Field(min_length=1, repr=False)
    role: UserRole = UserRole.OPERATOR
    branch: str = Field(min_length=1)

    @field_validator("email")
    @classmethod
    def _normalize_email(cls, value: str) -> str:
        if "@" not in value:
            raise ValueError("email must contain '@'")
        return value.lower()


# ---------------------------------------------------------------------------
# Outputs
# ---------------------------------------------------------------------------

class DashboardStats(BaseModel):
    """Figures for the dashboard cards.

    ``revenue`` is ``None`` when the actor is not allowed to see it.
    """

    scope: str
    total_parcels: int
    delivered: int
    pending: int
    by_status: dict[ParcelStatus, int]
    revenue: Optional[float] = None


class HistoryRow(BaseModel):
    parcel: Parcel
    sender_name: str


class HistoryReport(BaseModel):
    rows: list[HistoryRow]
    total_shipments: int
    total_collected: float


# ---------------------------------------------------------------------------
# Generic service envelope
# ---------------------------------------------------------------------------

class ServiceResult(BaseModel, Generic[T]):
    """
    Standard service return envelope.

    Every service method returns this instead of raising, so the caller
    can branch on ``success`` / ``status_code`` without catching
    exceptions.
    """

    success: bool
    data: Optional[T] = None
    error: Optional[str] = None
    status_code: int = 200

    @classmethod
    def ok(cls, data: Optional[T] = None, status_code: int = 200) -> "ServiceResult[T]":
        return cls(success=True, data=data, status_code=status_code)

    @classmethod
    def fail(cls, error: str, status_code: int) -> "ServiceResult[T]":
        return cls(success=False, error=error, status_code=status_code)
