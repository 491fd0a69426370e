"""
Authentication & Session State.

Provides an injectable ``SessionManager`` that holds the authenticated
user for the lifetime of a back-office session.  The user is mirrored to
the ``user`` key of the local cache so that a restart resumes the session.

Usage::

    session = SessionManager(cache)
    session.set_current_user(user)
    actor = session.get_current_user()
"""

from __future__ import annotations

import threading
from typing import Optional

from pydantic import ValidationError

from parcelops.models.user import User
from parcelops.storage.local_cache import CacheKey, LocalCache


class SessionManager:
    """Injectable holder for the current authenticated user.

    Pass a single ``SessionManager`` through the composition root so every
    component shares the same session.  The stored copy never carries the
    password hash.
    """

    def __init__(self, cache: Optional[LocalCache] = None) -> None:
        self._lock: threading.RLock = threading.RLock()
        self._cache = cache
        self._current_user: Optional[User] = None

    def set_current_user(self, user: User) -> None:
        """Record *user* as the authenticated session user."""
        public = user.public_view()
        with self._lock:
            self._current_user = public
            if self._cache is not None:
                self._cache.put(CacheKey.USER, public.to_wire())

    def get_current_user(self) -> User:
        """Return the authenticated user.

        Raises:
            RuntimeError: If no user is currently authenticated.
        """
        with self._lock:
            if self._current_user is None:
                raise RuntimeError(
                    "No user is currently authenticated. Login required."
                )
            return self._current_user

    def restore(self) -> Optional[User]:
        """Reload the persisted session user, if any."""
        if self._cache is None:
            return None
        raw = self._cache.get(CacheKey.USER)
        if not isinstance(raw, dict):
            return None
        try:
            user = User.model_validate(raw)
        except ValidationError:
            self._cache.delete(CacheKey.USER)
            return None
        with self._lock:
            self._current_user = user
        return user

    def clear(self) -> None:
        """Remove the current user, ending the session."""
        with self._lock:
            self._current_user = None
            if self._cache is not None:
                self._cache.delete(CacheKey.USER)

    @property
    def is_authenticated(self) -> bool:
        """``True`` when a user is currently logged in."""
        with self._lock:
            return self._current_user is not None
