"""Append-only audit trail.

``record_event()`` adds an ``AuditLogEntry`` inside the caller's
transaction.  If the write fails, ``AuditWriteError`` is raised and the
caller must roll back: a state change is never committed without its
audit entry.

Entries are read back in append order (``id``), never by timestamp.

Safety: ``details`` are persisted but never logged, only action, actor and
entity id.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.audit.events import SYSTEM_ACTOR, VALID_ACTIONS
from app.core.clock import Clock, SystemClock
from app.core.errors import AuditWriteError, ValidationError
from app.db.models import AuditLogEntry

logger = logging.getLogger(__name__)

_default_clock = SystemClock()


@dataclass(slots=True)
class AuditFilter:
    entity_type: str | None = None
    entity_id: str | None = None
    actor: str | None = None
    since: datetime | None = None
    until: datetime | None = None
    limit: int = 500


def record_event(
    db_session: Session,
    action: str,
    actor: str = SYSTEM_ACTOR,
    entity_type: str | None = None,
    entity_id: str | int | None = None,
    details: dict | None = None,
    ip_address: str | None = None,
    user_agent: str | None = None,
    clock: Clock | None = None,
) -> AuditLogEntry:
    """Create and flush an immutable ``AuditLogEntry``.

    Raises ``ValidationError`` for invalid inputs and ``AuditWriteError``
    when the store rejects the write.  Does **not** commit.
    """
    if action not in VALID_ACTIONS:
        raise ValidationError(
            f"Invalid action {action!r}; must be one of {sorted(VALID_ACTIONS)}"
        )

    if not actor or not actor.strip():
        raise ValidationError("actor must be a non-empty string")

    entry = AuditLogEntry(
        action=action,
        actor=actor,
        entity_type=entity_type,
        entity_id=str(entity_id) if entity_id is not None else None,
        details=details,
        ip_address=ip_address,
        user_agent=user_agent,
        created_at=(clock or _default_clock).now(),
    )
    try:
        db_session.add(entry)
        db_session.flush()
    except SQLAlchemyError as exc:
        logger.error(
            "Audit write failed: action=%s actor=%s entity=%s:%s",
            action, actor, entity_type, entry.entity_id,
        )
        raise AuditWriteError(f"Could not persist audit entry for {action}") from exc

    logger.info(
        "Audit entry recorded: seq=%s action=%s actor=%s entity=%s:%s",
        entry.id, action, actor, entity_type, entry.entity_id,
    )
    return entry


def query_entries(db_session: Session, audit_filter: AuditFilter) -> list[AuditLogEntry]:
    """Return entries matching *audit_filter* in append order."""
    if audit_filter.since and audit_filter.until and audit_filter.since > audit_filter.until:
        raise ValidationError("since must not be after until")

    stmt = select(AuditLogEntry)
    if audit_filter.entity_type is not None:
        stmt = stmt.where(AuditLogEntry.entity_type == audit_filter.entity_type)
    if audit_filter.entity_id is not None:
        stmt = stmt.where(AuditLogEntry.entity_id == str(audit_filter.entity_id))
    if audit_filter.actor is not None:
        stmt = stmt.where(AuditLogEntry.actor == audit_filter.actor)
    if audit_filter.since is not None:
        stmt = stmt.where(AuditLogEntry.created_at >= audit_filter.since)
    if audit_filter.until is not None:
        stmt = stmt.where(AuditLogEntry.created_at <= audit_filter.until)
    stmt = stmt.order_by(AuditLogEntry.id.asc()).limit(audit_filter.limit)
    return list(db_session.execute(stmt).scalars().all())


def get_entity_history(
    db_session: Session,
    entity_type: str,
    entity_id: str | int,
) -> list[AuditLogEntry]:
    """Return every entry for one entity, in append order."""
    return query_entries(
        db_session,
        AuditFilter(entity_type=entity_type, entity_id=str(entity_id), limit=10_000),
    )
