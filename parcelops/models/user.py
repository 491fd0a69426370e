"""
User Model.

Staff account scoped to a branch.  ``password_hash`` also accepts the
legacy ``password`` key found in older cached snapshots.
"""

from __future__ import annotations

from typing import Optional

from pydantic import AliasChoices, Field

from parcelops.models.base import RecordModel
from parcelops.models.enums import UserRole


class User(RecordModel):
    id: str
    name: str
    email: str
    role: UserRole
    branch: str
    password_hash: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("passwordHash", "password_hash", "password"),
        serialization_alias="passwordHash",
        repr=False,
    )

    @property
    def is_super_admin(self) -> bool:
        return self.role == UserRole.SUPER_ADMIN

    def public_view(self) -> "User":
        """Copy without the password hash, safe to hand to the UI layer."""
        return self.model_copy(update={"password_hash": None})
