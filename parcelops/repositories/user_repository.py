"""
User Repository.

Cached staff accounts.  Passwords are stored as werkzeug hashes, except for
legacy seed values which stay plain until the record store hashes them.
"""

from __future__ import annotations

from typing import Optional

from parcelops.models.user import User
from parcelops.repositories.base_repository import BaseRepository
from parcelops.storage.local_cache import CacheKey


class UserRepository(BaseRepository[User]):
    """Data access layer for User entities."""

    KEY = CacheKey.USERS
    MODEL = User

    def get_by_email(self, email: str) -> Optional[User]:
        """Case-insensitive lookup; email is the login identity."""
        normalized = email.strip().lower()
        return next((u for u in self._load() if u.email.lower() == normalized), None)
