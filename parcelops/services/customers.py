"""
Customer Management Service.

Senders registry.  Only ADMIN and SUPER_ADMIN may change it; everybody may
read it, because operators still need sender names on parcel screens.
Deleting a customer leaves that customer's parcels untouched.
"""

from __future__ import annotations

import uuid
from typing import Any, Callable, Optional, Union

from pydantic import ValidationError

from parcelops.database import DatabaseManager
from parcelops.logger import StructuredLogger
from parcelops.models.customer import Customer
from parcelops.models.enums import NotificationType
from parcelops.models.service_models import CustomerInput, ServiceResult
from parcelops.models.user import User
from parcelops.repositories.customer_repository import CustomerRepository
from parcelops.services.base_service import BaseService
from parcelops.services.notifications import NotificationCenter
from parcelops.services.visibility import can_manage_customers
from parcelops.utils.string_helpers import matches_search

_FORBIDDEN = "Only ADMIN or SUPER_ADMIN users can manage customers."


class CustomerService(BaseService):
    def __init__(
        self,
        repo: CustomerRepository,
        notifications: NotificationCenter,
        logger: StructuredLogger,
        db: Optional[DatabaseManager] = None,
        on_change: Optional[Callable[[], None]] = None,
    ) -> None:
        super().__init__(logger, db)
        self._repo = repo
        self._notifications = notifications
        self._on_change = on_change

    def list_customers(self, search: Optional[str] = None) -> list[Customer]:
        """Customers whose name, DNI or phone contains *search*."""
        return [
            c for c in self._repo.get_all()
            if matches_search(search, c.full_name, c.dni, c.phone)
        ]

    def create_customer(
        self, data: Union[CustomerInput, dict[str, Any]], actor: User
    ) -> ServiceResult:
        if not can_manage_customers(actor):
            return self._forbidden(_FORBIDDEN)
        try:
            payload = data if isinstance(data, CustomerInput) else CustomerInput.model_validate(data)
        except ValidationError as exc:
            return self._invalid(exc)

        try:
            if self._repo.get_by_dni(payload.dni) is not None:
                return ServiceResult.fail(
                    f"A customer with DNI {payload.dni} already exists.", status_code=409,
                )

            customer = Customer(id=uuid.uuid4().hex, **payload.model_dump())
            with self._unit_of_work():
                self._repo.add(customer)
                # Untargeted: only SUPER_ADMIN sees new-customer alerts.
                self._notifications.emit(
                    title="Nuevo Cliente Registrado",
                    message=(
                        f"Se ha registrado un nuevo cliente: {customer.full_name} "
                        f"en la sucursal {actor.branch}."
                    ),
                    type=NotificationType.SUCCESS,
                )
                self._audit(
                    "CREATE_CUSTOMER", "Customer", customer.id, actor.id,
                    {"dni": customer.dni, "branch": actor.branch},
                )
            self._request_push()
            return ServiceResult.ok(customer, status_code=201)
        except Exception as exc:
            return self._unexpected("create_customer", exc)

    def update_customer(
        self,
        customer_id: str,
        data: Union[CustomerInput, dict[str, Any]],
        actor: User,
    ) -> ServiceResult:
        if not can_manage_customers(actor):
            return self._forbidden(_FORBIDDEN)
        try:
            payload = data if isinstance(data, CustomerInput) else CustomerInput.model_validate(data)
        except ValidationError as exc:
            return self._invalid(exc)

        try:
            existing = self._repo.get_by_id(customer_id)
            if existing is None:
                return self._not_found(f"Customer '{customer_id}' not found.")
            clash = self._repo.get_by_dni(payload.dni)
            if clash is not None and clash.id != customer_id:
                return ServiceResult.fail(
                    f"A customer with DNI {payload.dni} already exists.", status_code=409,
                )

            updated = Customer(id=customer_id, **payload.model_dump())
            self._repo.update(updated)
            self._audit(
                "UPDATE_CUSTOMER", "Customer", customer_id, actor.id,
                {"full_name": updated.full_name},
            )
            self._request_push()
            return ServiceResult.ok(updated)
        except Exception as exc:
            return self._unexpected("update_customer", exc)

    def delete_customer(self, customer_id: str, actor: User) -> ServiceResult:
        """Remove a customer from the local registry.

        The record store never deletes rows, so the customer reappears on
        the next pull unless it is also removed there.
        """
        if not can_manage_customers(actor):
            return self._forbidden(_FORBIDDEN)
        try:
            if not self._repo.delete(customer_id):
                return self._not_found(f"Customer '{customer_id}' not found.")
            self._audit("DELETE_CUSTOMER", "Customer", customer_id, actor.id)
            return ServiceResult.ok({"deleted": customer_id})
        except Exception as exc:
            return self._unexpected("delete_customer", exc)

    def _request_push(self) -> None:
        if self._on_change is not None:
            self._on_change()
