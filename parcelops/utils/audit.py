"""
Structured Audit Logging Utility.

Every parcel, customer and user state change is logged as a structured
JSON object and, when a connection is supplied, persisted to the local
``audit_log`` table.
"""

from __future__ import annotations

import json
import sqlite3
from datetime import datetime, timezone
from typing import Optional, Union

from pydantic import BaseModel, Field

from parcelops.logger import StructuredLogger

__all__ = ["AuditEvent", "log_audit_event", "persist_audit_event"]

# Flat scalars only; nested structures belong in a dedicated model.
DetailValue = Union[str, int, float, bool, None]


class AuditEvent(BaseModel):
    """Schema-validated representation of a single audit trail entry."""

    timestamp: str
    action: str
    entity_type: str
    entity_id: str
    user_id: str
    details: dict[str, DetailValue] = Field(default_factory=dict)


def log_audit_event(
    logger: StructuredLogger,
    action: str,
    entity_type: str,
    entity_id: str,
    user_id: str,
    details: Optional[dict[str, DetailValue]] = None,
    conn: Optional[sqlite3.Connection] = None,
    commit: bool = True,
) -> AuditEvent:
    """Log a structured audit event, with optional SQLite persistence.

    Persistence errors are logged and swallowed: a broken audit table must
    never undo a parcel status change that already happened.

    Args:
        logger: Destination logger.
        action: What happened (``"CREATE_PARCEL"``, ``"UPDATE_STATUS"``...).
        entity_type: ``"Parcel"``, ``"Customer"``, ``"User"``.
        entity_id: Primary key of the affected entity.
        user_id: ID of the acting user (``"system"`` for background jobs).
        details: Optional flat context (old/new values, branch...).
        conn: When given, the event is also written to ``audit_log``.
        commit: Commit the insert.  Pass ``False`` inside a ``batch_write``
            so the event lands with the rest of the batch.
    """
    event = AuditEvent(
        timestamp=datetime.now(timezone.utc).isoformat(),
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        user_id=user_id,
        details=details or {},
    )
    logger.info("AUDIT: %s", json.dumps(event.model_dump(), default=str))

    if conn is not None:
        try:
            persist_audit_event(conn, event, commit=commit)
        except sqlite3.Error as db_err:
            logger.warning("Failed to persist audit event to SQLite: %s", db_err)

    return event


def persist_audit_event(
    conn: sqlite3.Connection, event: AuditEvent, commit: bool = True
) -> None:
    """Insert a validated :class:`AuditEvent` into ``audit_log``."""
    conn.execute(
        """
        INSERT INTO audit_log (timestamp, action, entity_type, entity_id, user_id, details)
        VALUES (?, ?, ?, ?, ?, ?)
        """,
        (
            event.timestamp,
            event.action,
            event.entity_type,
            event.entity_id,
            event.user_id,
            json.dumps(event.details, default=str),
        ),
    )
    if commit:
        conn.commit()
