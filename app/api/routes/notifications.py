"""Notification routes — create, edit, send, read receipt, certificate.

Every state change goes through ``NotificationService``; request bodies are
the validated command types, so unknown fields (``status``,
``document_hash`` …) are rejected with 422.
"""
from __future__ import annotations

import logging

from fastapi import APIRouter, BackgroundTasks, Depends, Query, Request
from pydantic import BaseModel
from sqlalchemy.orm import Session

from app.api.deps import (
    get_current_user_id,
    get_db,
    get_notification_service,
    get_orchestrator,
    get_request_context,
)
from app.db.models import Notification
from app.delivery.orchestrator import DeliveryOrchestrator
from app.lifecycle.commands import (
    CreateNotificationCommand,
    EditNotificationCommand,
    ReadReceiptCommand,
    RequestContext,
    SendNotificationCommand,
)
from app.lifecycle.service import NotificationService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/notifications", tags=["notifications"])

_RECIPIENT_ACTOR = "recipient"


class CreatedResponse(BaseModel):
    id: int
    status: str
    document_hash: str | None


def serialize_notification(n: Notification) -> dict:
    return {
        "id": n.id,
        "owner_id": n.owner_id,
        "recipient_name": n.recipient_name,
        "recipient_email": n.recipient_email,
        "recipient_phone": n.recipient_phone,
        "recipient_address": n.recipient_address,
        "subject": n.subject,
        "content": n.content,
        "certification_level": n.certification_level,
        "document_hash": n.document_hash,
        "timestamp_token": n.timestamp_token,
        "timestamp_url": n.timestamp_url,
        "certificate_url": n.certificate_url,
        "status": n.status,
        "scheduled_for": n.scheduled_for.isoformat() if n.scheduled_for else None,
        "sent_at": n.sent_at.isoformat() if n.sent_at else None,
        "read_at": n.read_at.isoformat() if n.read_at else None,
        "failure_reason": n.failure_reason,
        "external_service_id": n.external_service_id,
        "external_service_name": n.external_service_name,
        "created_at": n.created_at.isoformat() if n.created_at else None,
    }


@router.post("", status_code=201, summary="Create a notification", response_model=CreatedResponse)
def create_notification(
    command: CreateNotificationCommand,
    context: RequestContext = Depends(get_request_context),
    service: NotificationService = Depends(get_notification_service),
):
    notification_id = service.create_notification(command, context)
    notification = service.get_notification(notification_id, context.actor)
    return CreatedResponse(
        id=notification_id, status=notification.status, document_hash=notification.document_hash
    )


@router.get("", summary="List the caller's notifications")
def list_notifications(
    limit: int = Query(default=50, ge=1, le=200),
    user_id: str = Depends(get_current_user_id),
    service: NotificationService = Depends(get_notification_service),
):
    return [serialize_notification(n) for n in service.list_notifications(user_id, limit=limit)]


@router.get("/stats", summary="Notification counts per status")
def get_stats(
    user_id: str = Depends(get_current_user_id),
    service: NotificationService = Depends(get_notification_service),
):
    return service.get_stats(user_id)


@router.get("/{notification_id}", summary="Get one notification")
def get_notification(
    notification_id: int,
    user_id: str = Depends(get_current_user_id),
    service: NotificationService = Depends(get_notification_service),
):
    return serialize_notification(service.get_notification(notification_id, user_id))


@router.patch("/{notification_id}", summary="Edit a draft or scheduled notification")
def edit_notification(
    notification_id: int,
    command: EditNotificationCommand,
    context: RequestContext = Depends(get_request_context),
    service: NotificationService = Depends(get_notification_service),
):
    return serialize_notification(service.edit_notification(notification_id, command, context))


@router.post("/{notification_id}/send", status_code=202, summary="Send a notification now")
def send_notification(
    notification_id: int,
    background_tasks: BackgroundTasks,
    context: RequestContext = Depends(get_request_context),
    db: Session = Depends(get_db),
    service: NotificationService = Depends(get_notification_service),
    orchestrator: DeliveryOrchestrator = Depends(get_orchestrator),
):
    notification = service.request_immediate_send(notification_id, SendNotificationCommand(), context)
    body = {"id": notification.id, "status": notification.status}
    # The claim must be visible to the orchestrator's own sessions.
    db.commit()
    background_tasks.add_task(orchestrator.dispatch, notification_id)
    logger.info("Notification %s queued for immediate dispatch", notification_id)
    return body


@router.post("/{notification_id}/read-receipt", summary="Record the recipient's first read")
def record_read_receipt(
    notification_id: int,
    request: Request,
    token: str = Query(min_length=1, max_length=128),
    service: NotificationService = Depends(get_notification_service),
):
    # No caller identity here; the token from the emailed link is the credential.
    context = RequestContext(
        actor=_RECIPIENT_ACTOR,
        ip_address=request.client.host if request.client else None,
        user_agent=request.headers.get("user-agent"),
    )
    command = ReadReceiptCommand(
        read_token=token,
        ip_address=context.ip_address,
        user_agent=context.user_agent,
        location=request.headers.get("x-client-location"),
    )
    notification = service.record_read_receipt(notification_id, command, context)
    return {"id": notification.id, "status": notification.status}


@router.get("/{notification_id}/certificate", summary="Evidence bundle for a sent notification")
def get_certificate(
    notification_id: int,
    user_id: str = Depends(get_current_user_id),
    service: NotificationService = Depends(get_notification_service),
):
    certificate = service.get_certificate(notification_id, user_id)
    for key in ("sent_at", "read_at"):
        if certificate[key] is not None:
            certificate[key] = certificate[key].isoformat()
    return certificate
