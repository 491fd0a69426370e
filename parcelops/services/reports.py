"""
Reporting Service.

Dashboard figures and the shipment history ledger.  All figures are
scoped through the visibility filter: branch staff count what their branch
ships or receives, and revenue is attributed to the origin branch only.

Operators never receive a revenue figure.
"""

from __future__ import annotations

from collections import Counter
from datetime import date, datetime, time, timedelta, timezone
from typing import Optional, Union

from parcelops.logger import StructuredLogger
from parcelops.models.enums import ParcelStatus
from parcelops.models.service_models import (
    DashboardStats,
    HistoryReport,
    HistoryRow,
    ServiceResult,
)
from parcelops.models.user import User
from parcelops.repositories.customer_repository import CustomerRepository
from parcelops.repositories.parcel_repository import ParcelRepository
from parcelops.services.base_service import BaseService
from parcelops.services.visibility import revenue_total, visible_parcels
from parcelops.utils.string_helpers import matches_search

MISSING_SENDER = "N/A"
NETWORK_SCOPE = "Red Global"


class ReportService(BaseService):
    """
    Service layer for dashboard and history reports.

    All public methods receive the acting user explicitly.
    """

    def __init__(
        self,
        parcel_repo: ParcelRepository,
        customer_repo: CustomerRepository,
        logger: StructuredLogger,
    ) -> None:
        super().__init__(logger)
        self._parcels = parcel_repo
        self._customers = customer_repo

    def dashboard_stats(self, actor: User) -> DashboardStats:
        parcels = self._parcels.get_all()
        scoped = visible_parcels(actor, parcels)
        counts = Counter(p.status for p in scoped)
        delivered = counts.get(ParcelStatus.DELIVERED, 0)

        return DashboardStats(
            scope=NETWORK_SCOPE if actor.is_super_admin else actor.branch,
            total_parcels=len(scoped),
            delivered=delivered,
            pending=len(scoped) - delivered,
            by_status={status: counts.get(status, 0) for status in ParcelStatus},
            revenue=revenue_total(actor, parcels),
        )

    def shipment_history(
        self,
        actor: User,
        search: Optional[str] = None,
        status: Optional[Union[ParcelStatus, str]] = None,
        branch: Optional[str] = None,
        date_start: Optional[date] = None,
        date_end: Optional[date] = None,
    ) -> ServiceResult:
        """
        Network-wide shipment ledger, SUPER_ADMIN only.

        Args:
            search: Substring of tracking code, receiver or sender name.
            status: Keep only parcels in this status.
            branch: Keep parcels whose origin or destination is *branch*.
            date_start, date_end: Inclusive creation-date bounds (UTC days).

        Returns:
            ServiceResult wrapping a ``HistoryReport``, or 400/403.
        """
        if not actor.is_super_admin:
            return self._forbidden("Shipment history is restricted to SUPER_ADMIN.")

        wanted: Optional[ParcelStatus] = None
        if status:
            try:
                wanted = ParcelStatus(status)
            except ValueError:
                return ServiceResult.fail(f"Unknown parcel status '{status}'.", status_code=400)

        start = (
            datetime.combine(date_start, time.min, tzinfo=timezone.utc)
            if date_start else None
        )
        end = (
            datetime.combine(date_end + timedelta(days=1), time.min, tzinfo=timezone.utc)
            if date_end else None
        )

        names = {c.id: c.full_name for c in self._customers.get_all()}
        rows: list[HistoryRow] = []
        for parcel in self._parcels.get_all():
            sender_name = names.get(parcel.sender_id, MISSING_SENDER)
            if not matches_search(search, parcel.tracking_code, parcel.receiver_name, sender_name):
                continue
            if wanted is not None and parcel.status != wanted:
                continue
            if branch and branch not in (parcel.origin, parcel.destination):
                continue
            created = _as_utc(parcel.created_at)
            if start is not None and created < start:
                continue
            if end is not None and created >= end:
                continue
            rows.append(HistoryRow(parcel=parcel, sender_name=sender_name))

        return ServiceResult.ok(
            HistoryReport(
                rows=rows,
                total_shipments=len(rows),
                total_collected=float(sum(r.parcel.cost for r in rows)),
            )
        )


def _as_utc(moment: datetime) -> datetime:
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)
