"""
Base Service Class.

Standardizes the logger, the audit trail and the failure envelopes shared
by every service.  Services extend this and add their own repository
dependencies via __init__.
"""

from __future__ import annotations

from contextlib import AbstractContextManager, nullcontext
from typing import Optional

from pydantic import ValidationError

from parcelops.database import DatabaseManager
from parcelops.logger import StructuredLogger
from parcelops.models.service_models import ServiceResult
from parcelops.utils.audit import DetailValue, log_audit_event


class BaseService:
    """Base class for all service classes. Provides a logger.

    When *db* is given, audit events are also persisted to the local
    ``audit_log`` table.
    """

    def __init__(self, logger: StructuredLogger, db: Optional[DatabaseManager] = None) -> None:
        self._logger: StructuredLogger = logger
        self._db: Optional[DatabaseManager] = db

    def _audit(
        self,
        action: str,
        entity_type: str,
        entity_id: str,
        user_id: str,
        details: Optional[dict[str, DetailValue]] = None,
    ) -> None:
        if self._db is None:
            log_audit_event(self._logger, action, entity_type, entity_id, user_id, details)
            return
        with self._db.write_lock:
            log_audit_event(
                self._logger,
                action,
                entity_type,
                entity_id,
                user_id,
                details,
                conn=self._db.sqlite,
                commit=not self._db.in_batch,
            )

    def _unit_of_work(self) -> AbstractContextManager[None]:
        """One local commit for everything written inside the block."""
        if self._db is None:
            return nullcontext()
        return self._db.batch_write()

    @staticmethod
    def _forbidden(message: str) -> ServiceResult:
        return ServiceResult.fail(message, status_code=403)

    @staticmethod
    def _not_found(message: str) -> ServiceResult:
        return ServiceResult.fail(message, status_code=404)

    def _unexpected(self, operation: str, exc: Exception) -> ServiceResult:
        """Log *exc* with its traceback and wrap it in a 500 result."""
        self._logger.error("Unexpected error in %s: %s", operation, exc, exc_info=True)
        return ServiceResult.fail(f"Unexpected error: {exc}", status_code=500)

    @staticmethod
    def _invalid(exc: ValidationError) -> ServiceResult:
        """Turn a pydantic ``ValidationError`` into a 400 result."""
        problems = "; ".join(
            f"{'.'.join(str(part) for part in error['loc']) or 'input'}: {error['msg']}"
            for error in exc.errors()
        )
        return ServiceResult.fail(f"Invalid input: {problems}", status_code=400)
