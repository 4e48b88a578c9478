"""Owner alerts — GET /alerts, POST /alerts/{id}/read."""
from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException

from app.api.deps import get_current_user_id, get_notification_service
from app.db.models import SystemAlert
from app.lifecycle.service import NotificationService

router = APIRouter(prefix="/alerts", tags=["alerts"])


def _serialize_alert(alert: SystemAlert) -> dict:
    return {
        "id": alert.id,
        "alert_type": alert.alert_type,
        "title": alert.title,
        "message": alert.message,
        "related_entity_type": alert.related_entity_type,
        "related_entity_id": alert.related_entity_id,
        "is_read": alert.is_read,
        "read_at": alert.read_at.isoformat() if alert.read_at else None,
        "created_at": alert.created_at.isoformat() if alert.created_at else None,
    }


@router.get("", summary="List the caller's alerts")
def list_alerts(
    unread_only: bool = False,
    user_id: str = Depends(get_current_user_id),
    service: NotificationService = Depends(get_notification_service),
):
    return [_serialize_alert(a) for a in service.list_alerts(user_id, unread_only=unread_only)]


@router.post("/{alert_id}/read", summary="Mark an alert as read")
def mark_alert_read(
    alert_id: int,
    user_id: str = Depends(get_current_user_id),
    service: NotificationService = Depends(get_notification_service),
):
    try:
        alert = service.mark_alert_read(alert_id, user_id)
    except KeyError:
        raise HTTPException(status_code=404, detail=f"Alert {alert_id} not found")
    return _serialize_alert(alert)
