# Overview: Audit sink for ledger mutations; best-effort side channel.

"""
Audit Log Invariants

- Append-only: entries are never updated or deleted.
- No domain/business logic in the sink itself.
- Entries are written after the ledger transaction commits, in their own
  transaction; a failing sink never rolls back the ledger operation.
"""

from __future__ import annotations

import json
import logging

from sqlalchemy.exc import SQLAlchemyError

from ..models import AuditLog


logger = logging.getLogger(__name__)


class AuditSink:
    """Interface: record(action, entity_type, entity_id, details)."""

    def record(self, action: str, entity_type: str, entity_id: int, details: dict | None = None) -> None:
        raise NotImplementedError


class NullAuditSink(AuditSink):
    def record(self, action: str, entity_type: str, entity_id: int, details: dict | None = None) -> None:
        return None


class DatabaseAuditSink(AuditSink):
    """Writes AuditLog rows through the given session."""

    def __init__(self, session, user_id: str | None = None):
        self.session = session
        self.user_id = user_id

    def record(self, action: str, entity_type: str, entity_id: int, details: dict | None = None) -> None:
        entry = AuditLog(
            action=action,
            entity_type=entity_type,
            entity_id=entity_id,
            user_id=self.user_id,
            details=json.dumps(details, sort_keys=True, default=str) if details else None,
        )
        try:
            self.session.add(entry)
            self.session.commit()
        except SQLAlchemyError:
            self.session.rollback()
            raise


def list_audit_log(session, *, limit: int = 100, entity_type: str | None = None,
                   entity_id: int | None = None) -> list[AuditLog]:
    """Newest entries first."""
    query = session.query(AuditLog)
    if entity_type:
        query = query.filter(AuditLog.entity_type == entity_type)
    if entity_id is not None:
        query = query.filter(AuditLog.entity_id == entity_id)
    return query.order_by(AuditLog.id.desc()).limit(limit).all()


def record_safely(sink: AuditSink, action: str, entity_type: str, entity_id: int,
                  details: dict | None = None) -> bool:
    """
    Fire-and-forget wrapper around a sink.

    Failures are logged with full context and reported as False; they never
    reach the caller of the ledger operation.
    """
    try:
        sink.record(action, entity_type, entity_id, details)
        return True
    except Exception:
        logger.exception("Audit record failed: %s %s %s", action, entity_type, entity_id)
        return False
