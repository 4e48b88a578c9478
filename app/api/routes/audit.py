"""Audit trail routes — GET /audit, GET /audit/notifications/{id}/history."""
from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Depends, Query

from app.api.deps import get_current_user_id, get_notification_service
from app.audit.audit_log import AuditFilter
from app.audit.events import ENTITY_NOTIFICATION
from app.db.models import AuditLogEntry
from app.lifecycle.service import NotificationService

router = APIRouter(prefix="/audit", tags=["audit"])


def _serialize_entry(entry: AuditLogEntry) -> dict:
    return {
        "sequence": entry.id,
        "action": entry.action,
        "actor": entry.actor,
        "entity_type": entry.entity_type,
        "entity_id": entry.entity_id,
        "details": entry.details,
        "ip_address": entry.ip_address,
        "user_agent": entry.user_agent,
        "created_at": entry.created_at.isoformat() if entry.created_at else None,
    }


@router.get("", summary="Query the audit trail in append order")
def get_audit_trail(
    notification_id: int | None = None,
    since: datetime | None = None,
    until: datetime | None = None,
    limit: int = Query(default=500, ge=1, le=1000),
    user_id: str = Depends(get_current_user_id),
    service: NotificationService = Depends(get_notification_service),
):
    # Scoped to one owned notification, or else to the caller's own actions.
    if notification_id is not None:
        service.get_notification(notification_id, user_id)
        audit_filter = AuditFilter(
            entity_type=ENTITY_NOTIFICATION,
            entity_id=str(notification_id),
            since=since,
            until=until,
            limit=limit,
        )
    else:
        audit_filter = AuditFilter(actor=user_id, since=since, until=until, limit=limit)
    return [_serialize_entry(e) for e in service.get_audit_trail(audit_filter)]


@router.get("/notifications/{notification_id}/history", summary="Full audit history of a notification")
def get_history(
    notification_id: int,
    user_id: str = Depends(get_current_user_id),
    service: NotificationService = Depends(get_notification_service),
):
    return [_serialize_entry(e) for e in service.get_history(notification_id, user_id)]
