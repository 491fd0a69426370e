"""
Visibility Filter.

Pure functions deciding which records an actor may see.  Branch staff see
what their branch ships or receives; SUPER_ADMIN sees everything.

Revenue is attributed to the origin branch only, so a parcel shipped from
Bata to Malabo counts once, for Bata.
"""

from __future__ import annotations

from typing import Iterable, Optional

from parcelops.models.enums import UserRole
from parcelops.models.notification import AppNotification
from parcelops.models.parcel import Parcel
from parcelops.models.user import User

_MANAGER_ROLES: frozenset[UserRole] = frozenset({UserRole.ADMIN, UserRole.SUPER_ADMIN})


# ---------------------------------------------------------------------------
# Parcels
# ---------------------------------------------------------------------------

def can_view_parcel(actor: User, parcel: Parcel) -> bool:
    if actor.is_super_admin:
        return True
    return parcel.origin == actor.branch or parcel.destination == actor.branch


def visible_parcels(actor: User, parcels: Iterable[Parcel]) -> list[Parcel]:
    return [p for p in parcels if can_view_parcel(actor, p)]


def revenue_parcels(actor: User, parcels: Iterable[Parcel]) -> list[Parcel]:
    """Parcels whose cost counts toward *actor*'s revenue figure."""
    if actor.is_super_admin:
        return list(parcels)
    return [p for p in parcels if p.origin == actor.branch]


def revenue_total(actor: User, parcels: Iterable[Parcel]) -> Optional[float]:
    """Sum of ``cost`` over :func:`revenue_parcels`; ``None`` for operators."""
    if actor.role == UserRole.OPERATOR:
        return None
    return float(sum(p.cost for p in revenue_parcels(actor, parcels)))


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------

def can_view_user(actor: User, user: User) -> bool:
    if actor.is_super_admin:
        return True
    if actor.role == UserRole.ADMIN:
        return user.branch == actor.branch
    return False


def visible_users(actor: User, users: Iterable[User]) -> list[User]:
    return [u for u in users if can_view_user(actor, u)]


# ---------------------------------------------------------------------------
# Capabilities
# ---------------------------------------------------------------------------

def can_manage_customers(actor: User) -> bool:
    return actor.role in _MANAGER_ROLES


def can_create_parcels(actor: User) -> bool:
    return actor.role in _MANAGER_ROLES


def can_manage_users(actor: User) -> bool:
    return actor.role in _MANAGER_ROLES


# ---------------------------------------------------------------------------
# Notifications
# ---------------------------------------------------------------------------

def can_view_notification(actor: User, notification: AppNotification) -> bool:
    """Global notifications (no target branch) are for SUPER_ADMIN only."""
    if actor.is_super_admin:
        return True
    return notification.target_branch == actor.branch


def visible_notifications(
    actor: User, notifications: Iterable[AppNotification]
) -> list[AppNotification]:
    return [n for n in notifications if can_view_notification(actor, n)]
