"""
Authentication Service.

Login checks the record store first and falls back to the users cached
on this device when the store is unreachable or does not know the
account.  Stored passwords are werkzeug hashes; legacy seed values that
are still plain text are compared in constant time.
"""

from __future__ import annotations

from typing import Optional

from parcelops.auth import SessionManager
from parcelops.logger import StructuredLogger
from parcelops.models.service_models import ServiceResult
from parcelops.models.user import User
from parcelops.repositories.user_repository import UserRepository
from parcelops.services.base_service import BaseService
from parcelops.storage.record_store import RecordStore, RecordStoreError
from parcelops.utils.passwords import verify_password

_BAD_CREDENTIALS = "Incorrect email or password."


class AuthService(BaseService):
    def __init__(
        self,
        session: SessionManager,
        user_repo: UserRepository,
        logger: StructuredLogger,
        record_store: Optional[RecordStore] = None,
    ) -> None:
        super().__init__(logger)
        self._session = session
        self._users = user_repo
        self._store = record_store

    @staticmethod
    def normalize_email(email: str) -> str:
        return email.strip().lower()

    def login(self, email: str, password: str) -> ServiceResult:
        """Authenticate and open a session.

        Returns:
            ServiceResult with the public ``User`` view, or 400/401.
        """
        email = self.normalize_email(email or "")
        if not email or not password:
            return ServiceResult.fail("Email and password are required.", status_code=400)

        user = self._online_login(email, password)
        offline = user is None
        if user is None:
            user = self._offline_login(email, password)
        if user is None:
            self._logger.warning("Failed login for %s.", email)
            return ServiceResult.fail(_BAD_CREDENTIALS, status_code=401)

        self._session.set_current_user(user)
        self._logger.info(
            "User authenticated: %s (role: %s)",
            user.name,
            user.role,
            extra={
                "event": "OFFLINE_LOGIN" if offline else "LOGIN",
                "email": user.email,
                "user_id": user.id,
            },
        )
        return ServiceResult.ok(user.public_view())

    def logout(self) -> None:
        user_email = "unknown"
        if self._session.is_authenticated:
            user_email = self._session.get_current_user().email
        self._session.clear()
        self._logger.info("User logged out: %s", user_email, extra={"event": "LOGOUT"})

    def restore_session(self) -> Optional[User]:
        """Resume the session persisted by a previous run, if any."""
        user = self._session.restore()
        if user is not None:
            self._logger.info("Session restored for %s.", user.email)
        return user

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _online_login(self, email: str, password: str) -> Optional[User]:
        if self._store is None:
            return None
        try:
            user = self._store.find_user_by_email(email)
        except RecordStoreError as exc:
            self._logger.warning("Record store unavailable for login: %s", exc)
            return None
        if user is not None and verify_password(user.password_hash, password):
            return user
        return None

    def _offline_login(self, email: str, password: str) -> Optional[User]:
        user = self._users.get_by_email(email)
        if user is not None and verify_password(user.password_hash, password):
            return user
        return None
