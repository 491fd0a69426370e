"""
User Management Service.

Staff accounts.  SUPER_ADMIN manages everybody; an ADMIN manages the
accounts of its own branch and can never create or remove a SUPER_ADMIN.
SUPER_ADMIN accounts cannot be deleted at all.
"""

from __future__ import annotations

import uuid
from typing import Any, Callable, Optional, Union

from pydantic import ValidationError

from parcelops.database import DatabaseManager
from parcelops.logger import StructuredLogger
from parcelops.models.enums import UserRole
from parcelops.models.service_models import ServiceResult, UserInput
from parcelops.models.user import User
from parcelops.repositories.user_repository import UserRepository
from parcelops.services.base_service import BaseService
from parcelops.services.visibility import can_manage_users, visible_users
from parcelops.utils.passwords import hash_password
from parcelops.utils.string_helpers import matches_search


class UserService(BaseService):
    """Service layer for admin user management operations."""

    def __init__(
        self,
        repo: UserRepository,
        logger: StructuredLogger,
        db: Optional[DatabaseManager] = None,
        on_change: Optional[Callable[[], None]] = None,
    ) -> None:
        super().__init__(logger, db)
        self._repo = repo
        self._on_change = on_change

    def list_users(self, actor: User, search: Optional[str] = None) -> list[User]:
        """Users visible to *actor* matching *search* on name or email.

        Password hashes are stripped.
        """
        return [
            u.public_view()
            for u in visible_users(actor, self._repo.get_all())
            if matches_search(search, u.name, u.email)
        ]

    def create_user(self, data: Union[UserInput, dict[str, Any]], actor: User) -> ServiceResult:
        if not can_manage_users(actor):
            return self._forbidden("Only ADMIN or SUPER_ADMIN users can manage users.")
        try:
            payload = data if isinstance(data, UserInput) else UserInput.model_validate(data)
        except ValidationError as exc:
            return self._invalid(exc)

        if not actor.is_super_admin:
            if payload.role == UserRole.SUPER_ADMIN:
                return self._forbidden("Only a SUPER_ADMIN can create another SUPER_ADMIN.")
            if payload.branch != actor.branch:
                return self._forbidden("Admins can only create users for their own branch.")

        try:
            if self._repo.get_by_email(payload.email) is not None:
                return ServiceResult.fail(
                    f"A user with email {payload.email} already exists.", status_code=409,
                )

            user = User(
                id=f"u-{uuid.uuid4().hex[:12]}",
                name=payload.name,
                email=payload.email,
                role=payload.role,
                branch=payload.branch,
                password_hash=hash_password(payload.password),
            )
            self._repo.add(user)
            self._audit(
                "CREATE_USER", "User", user.id, actor.id,
                {"role": str(user.role), "branch": user.branch},
            )
            if self._on_change is not None:
                self._on_change()
            return ServiceResult.ok(user.public_view(), status_code=201)
        except Exception as exc:
            return self._unexpected("create_user", exc)

    def delete_user(self, user_id: str, actor: User) -> ServiceResult:
        try:
            target = self._repo.get_by_id(user_id)
            if target is None:
                return self._not_found(f"User '{user_id}' not found.")
            if target.is_super_admin:
                return self._forbidden("A SUPER_ADMIN account cannot be deleted.")
            if not can_manage_users(actor):
                return self._forbidden("Only ADMIN or SUPER_ADMIN users can manage users.")
            if not actor.is_super_admin and target.branch != actor.branch:
                return self._forbidden("Admins can only delete users of their own branch.")
            if target.id == actor.id:
                return ServiceResult.fail("You cannot delete your own account.", status_code=409)

            self._repo.delete(user_id)
            self._audit(
                "DELETE_USER", "User", user_id, actor.id,
                {"role": str(target.role), "branch": target.branch},
            )
            return ServiceResult.ok({"deleted": user_id})
        except Exception as exc:
            return self._unexpected("delete_user", exc)
