"""
Parcel Workflow Service.

Parcel intake and status transitions with their side effects:

- intake: tracking code allocation, the first history entry and an
  "incoming parcel" notification for the destination branch;
- ``En tránsito``: warning to the destination branch;
- ``En almacén``: SMS to the receiver (fire-and-forget) and a notification
  to the acting branch;
- ``Entregado``: success notification to the origin branch.

Every method returns a ``ServiceResult``.  A mutation, its notification
and its audit row are committed to the local cache as one batch and then
announced to the sync reconciler through ``on_change``.
"""

from __future__ import annotations

import random
import uuid
from datetime import datetime, timezone
from typing import Any, Callable, Optional, Union

from pydantic import ValidationError

from parcelops.config import AppConfig
from parcelops.database import DatabaseManager
from parcelops.logger import StructuredLogger
from parcelops.models.enums import NotificationType, ParcelStatus
from parcelops.models.parcel import Parcel
from parcelops.models.service_models import ParcelInput, ServiceResult
from parcelops.models.user import User
from parcelops.repositories.customer_repository import CustomerRepository
from parcelops.repositories.parcel_repository import ParcelRepository
from parcelops.services.base_service import BaseService
from parcelops.services.notifications import NotificationCenter
from parcelops.services.sms_service import SmsService
from parcelops.services.visibility import (
    can_create_parcels,
    can_view_parcel,
    visible_parcels,
)
from parcelops.utils.string_helpers import matches_search


class TrackingCodeExhaustedError(RuntimeError):
    """No free tracking code was found within the configured attempts."""


def allocate_tracking_code(
    config: AppConfig,
    exists: Callable[[str], bool],
    rng: random.Random,
) -> str:
    """Draw ``PREFIX-YEAR-NNNN`` codes until *exists* rejects one."""
    year = datetime.now(timezone.utc).year
    for _ in range(config.TRACKING_CODE_MAX_ATTEMPTS):
        code = f"{config.TRACKING_CODE_PREFIX}-{year}-{rng.randint(1000, 9999)}"
        if not exists(code):
            return code
    raise TrackingCodeExhaustedError(
        f"Could not allocate a unique tracking code after "
        f"{config.TRACKING_CODE_MAX_ATTEMPTS} attempts."
    )


class ParcelWorkflowService(BaseService):
    """Service handling parcel intake, status transitions and lookups.

    Dependencies are injected via __init__.  ``rng`` exists so tests can
    force tracking-code collisions.
    """

    def __init__(
        self,
        parcel_repo: ParcelRepository,
        customer_repo: CustomerRepository,
        notifications: NotificationCenter,
        sms: SmsService,
        config: AppConfig,
        logger: StructuredLogger,
        db: Optional[DatabaseManager] = None,
        on_change: Optional[Callable[[], None]] = None,
        rng: Optional[random.Random] = None,
    ) -> None:
        super().__init__(logger, db)
        self._parcels = parcel_repo
        self._customers = customer_repo
        self._notifications = notifications
        self._sms = sms
        self._config = config
        self._on_change = on_change
        self._rng = rng or random.Random()

    # ------------------------------------------------------------------
    # Public: create_parcel
    # ------------------------------------------------------------------

    def create_parcel(
        self,
        data: Union[ParcelInput, dict[str, Any]],
        actor: User,
    ) -> ServiceResult:
        """
        Register a new parcel at the actor's branch.

        Staff at headquarters have no shipping branch of their own and must
        name the origin explicitly; everybody else ships from their branch.

        Returns:
            ServiceResult with the new ``Parcel`` (201), or 400/403/409.
        """
        if not can_create_parcels(actor):
            return self._forbidden("Only ADMIN or SUPER_ADMIN users can register parcels.")

        try:
            payload = data if isinstance(data, ParcelInput) else ParcelInput.model_validate(data)
        except ValidationError as exc:
            return self._invalid(exc)

        try:
            if self._customers.get_by_id(payload.sender_id) is None:
                return ServiceResult.fail(
                    f"Sender '{payload.sender_id}' does not exist.", status_code=400,
                )

            if actor.branch == self._config.HEADQUARTERS_BRANCH:
                if not payload.origin:
                    return ServiceResult.fail(
                        "An origin branch is required when registering from headquarters.",
                        status_code=400,
                    )
                origin = payload.origin
            else:
                origin = actor.branch

            try:
                tracking_code = allocate_tracking_code(
                    self._config, self._parcels.tracking_code_exists, self._rng,
                )
            except TrackingCodeExhaustedError as exc:
                self._logger.error(str(exc))
                return ServiceResult.fail(str(exc), status_code=409)

            now = datetime.now(timezone.utc)
            parcel = Parcel(
                id=uuid.uuid4().hex,
                tracking_code=tracking_code,
                sender_id=payload.sender_id,
                receiver_name=payload.receiver_name,
                receiver_phone=payload.receiver_phone,
                receiver_address=payload.receiver_address,
                weight=payload.weight,
                type=payload.type,
                cost=payload.cost,
                payment_method=payload.payment_method,
                payment_status=payload.payment_status,
                origin=origin,
                destination=payload.destination,
                created_at=now,
                branch=actor.branch,
                created_by_id=actor.id,
                created_by_name=actor.name,
            )
            parcel.record_status(
                ParcelStatus.RECEIVED,
                f"Registrado en sucursal {actor.branch}",
                actor.name,
                at=now,
            )
            with self._unit_of_work():
                self._parcels.add(parcel)
                self._notifications.emit(
                    title="Nuevo Envío Entrante",
                    message=(
                        f"Nuevo envío {parcel.tracking_code} registrado desde "
                        f"{parcel.origin} con destino a {parcel.destination}."
                    ),
                    type=NotificationType.INFO,
                    target_branch=parcel.destination,
                    parcel=parcel,
                )
                self._audit(
                    "CREATE_PARCEL",
                    "Parcel",
                    parcel.id,
                    actor.id,
                    {
                        "tracking_code": parcel.tracking_code,
                        "origin": parcel.origin,
                        "destination": parcel.destination,
                    },
                )
            self._request_push()
            return ServiceResult.ok(parcel, status_code=201)
        except Exception as exc:
            return self._unexpected("create_parcel", exc)

    # ------------------------------------------------------------------
    # Public: update_status
    # ------------------------------------------------------------------

    def update_status(
        self,
        parcel_id: str,
        new_status: Union[ParcelStatus, str],
        actor: User,
    ) -> ServiceResult:
        """
        Move a parcel to *new_status* and fire the matching side effects.

        Any status may follow any other unless ``STRICT_STATUS_TRANSITIONS``
        is set, in which case backward moves are rejected with 409.
        Re-applying the current status records a new history entry and
        repeats its notification.

        Returns:
            ServiceResult with the updated ``Parcel``, or 400/403/404/409.
        """
        try:
            status = ParcelStatus(new_status)
        except ValueError:
            return ServiceResult.fail(f"Unknown parcel status '{new_status}'.", status_code=400)

        try:
            parcel = self._parcels.get_by_id(parcel_id)
            if parcel is None:
                return self._not_found(f"Parcel '{parcel_id}' not found.")
            if not can_view_parcel(actor, parcel):
                return self._forbidden("This parcel does not belong to your branch.")

            if self._config.STRICT_STATUS_TRANSITIONS and status.rank < parcel.status.rank:
                return ServiceResult.fail(
                    f"Cannot move parcel {parcel.tracking_code} back from "
                    f"'{parcel.status}' to '{status}'.",
                    status_code=409,
                )

            previous = parcel.status
            parcel.record_status(
                status,
                f"Estado actualizado en {actor.branch} por {actor.name}",
                actor.name,
            )
            with self._unit_of_work():
                self._parcels.update(parcel)
                self._fire_side_effects(parcel, status, actor)
                self._audit(
                    "UPDATE_STATUS",
                    "Parcel",
                    parcel.id,
                    actor.id,
                    {
                        "tracking_code": parcel.tracking_code,
                        "from": str(previous),
                        "to": str(status),
                        "branch": actor.branch,
                    },
                )
            # the SMS goes out only after the batch has committed
            if status == ParcelStatus.IN_WAREHOUSE:
                self._notify_receiver(parcel, actor)
            self._request_push()
            return ServiceResult.ok(parcel)
        except Exception as exc:
            return self._unexpected("update_status", exc)

    # ------------------------------------------------------------------
    # Public: lookups
    # ------------------------------------------------------------------

    def list_parcels(self, actor: User, search: Optional[str] = None) -> list[Parcel]:
        """Visible parcels, newest first, filtered by code or receiver name."""
        parcels = visible_parcels(actor, self._parcels.get_all())
        parcels = [
            p for p in parcels
            if matches_search(search, p.tracking_code, p.receiver_name)
        ]
        return sorted(parcels, key=lambda p: p.created_at, reverse=True)

    def get_parcel(self, parcel_id: str, actor: User) -> ServiceResult:
        parcel = self._parcels.get_by_id(parcel_id)
        if parcel is None:
            return self._not_found(f"Parcel '{parcel_id}' not found.")
        if not can_view_parcel(actor, parcel):
            return self._forbidden("This parcel does not belong to your branch.")
        return ServiceResult.ok(parcel)

    def track(self, tracking_code: str) -> ServiceResult:
        """Public tracking lookup; no authentication involved."""
        code = (tracking_code or "").strip()
        if not code:
            return ServiceResult.fail("A tracking code is required.", status_code=400)
        parcel = self._parcels.get_by_tracking_code(code)
        if parcel is None:
            return self._not_found(f"No parcel found with code {code.upper()}.")
        return ServiceResult.ok(parcel)

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _fire_side_effects(self, parcel: Parcel, status: ParcelStatus, actor: User) -> None:
        if status == ParcelStatus.IN_TRANSIT:
            self._notifications.emit(
                title="Paquete en Camino",
                message=(
                    f"El paquete {parcel.tracking_code} ha sido despachado desde "
                    f"{actor.branch} hacia {parcel.destination}."
                ),
                type=NotificationType.WARNING,
                target_branch=parcel.destination,
                parcel=parcel,
            )
        elif status == ParcelStatus.IN_WAREHOUSE:
            self._notifications.emit(
                title="Paquete en Almacén",
                message=(
                    f"El paquete {parcel.tracking_code} ha llegado al almacén de "
                    f"{actor.branch}."
                ),
                type=NotificationType.INFO,
                target_branch=actor.branch,
                parcel=parcel,
            )
        elif status == ParcelStatus.DELIVERED:
            self._notifications.emit(
                title="Paquete Entregado",
                message=(
                    f"El paquete {parcel.tracking_code} enviado desde {parcel.origin} "
                    f"ha sido entregado en {actor.branch}."
                ),
                type=NotificationType.SUCCESS,
                target_branch=parcel.origin,
                parcel=parcel,
            )

    def _notify_receiver(self, parcel: Parcel, actor: User) -> None:
        if not parcel.receiver_phone:
            return
        self._sms.send_async(
            parcel.receiver_phone,
            f"SM Global Express: Hola {parcel.receiver_name}, su paquete "
            f"{parcel.tracking_code} ya está disponible en el almacén de "
            f"{actor.branch} para su recogida.",
        )

    def _request_push(self) -> None:
        if self._on_change is None:
            return
        try:
            self._on_change()
        except Exception as exc:
            self._logger.warning("Could not schedule sync push: %s", exc)
