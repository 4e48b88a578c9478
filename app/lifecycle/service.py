"""Notification service — the operations the HTTP layer consumes.

Thin, request-scoped wrapper around the state machine that adds owner
checks and read models (listing, stats, certificate).  Flushes but does
not commit; the caller owns the transaction.
"""
from __future__ import annotations

from sqlalchemy.orm import Session

from app.audit.audit_log import AuditFilter, get_entity_history, query_entries
from app.audit.events import ENTITY_NOTIFICATION
from app.core.clock import Clock, SystemClock
from app.core.errors import StateViolation
from app.core.fingerprint import HASH_ALGORITHM, verify
from app.core.policies import requirements_for
from app.db.models import AuditLogEntry, Notification, SystemAlert
from app.db.repositories import NotificationRepository, SystemAlertRepository
from app.lifecycle.commands import (
    CreateNotificationCommand,
    EditNotificationCommand,
    ReadReceiptCommand,
    RequestContext,
    SendNotificationCommand,
)
from app.lifecycle.state_machine import (
    READ,
    SENT,
    STATUSES,
    TRIGGER_MANUAL,
    NotificationStateMachine,
)


class NotificationService:
    def __init__(self, db_session: Session, clock: Clock | None = None) -> None:
        self.db = db_session
        self.clock = clock or SystemClock()
        self.machine = NotificationStateMachine(db_session, self.clock)
        self.notifications = NotificationRepository(db_session)
        self.alerts = SystemAlertRepository(db_session)

    # -- lifecycle operations -------------------------------------------------

    def create_notification(self, command: CreateNotificationCommand, context: RequestContext) -> int:
        return self.machine.create(command, context).id

    def edit_notification(
        self,
        notification_id: int,
        command: EditNotificationCommand,
        context: RequestContext,
    ) -> Notification:
        self.get_notification(notification_id, context.actor)
        return self.machine.edit(notification_id, command, context)

    def request_immediate_send(
        self,
        notification_id: int,
        command: SendNotificationCommand,
        context: RequestContext,
    ) -> Notification:
        """Move the notification to ``sending``; dispatch is the orchestrator's job."""
        self.get_notification(notification_id, context.actor)
        return self.machine.begin_sending(notification_id, context, trigger=TRIGGER_MANUAL)

    def record_read_receipt(
        self,
        notification_id: int,
        command: ReadReceiptCommand,
        context: RequestContext,
    ) -> Notification:
        return self.machine.record_read_receipt(notification_id, command, context)

    def get_audit_trail(self, audit_filter: AuditFilter) -> list[AuditLogEntry]:
        return query_entries(self.db, audit_filter)

    # -- read models ------------------------------------------------------------

    def get_notification(self, notification_id: int, owner_id: str) -> Notification:
        notification = self.machine.get(notification_id)
        if notification.owner_id != owner_id:
            raise PermissionError(f"Notification {notification_id} belongs to another user")
        return notification

    def list_notifications(self, owner_id: str, limit: int = 50) -> list[Notification]:
        return self.notifications.list_for_owner(owner_id, limit=limit)

    def get_stats(self, owner_id: str) -> dict[str, int]:
        counts = self.notifications.status_counts(owner_id)
        stats = {status: counts.get(status, 0) for status in sorted(STATUSES)}
        stats["total"] = sum(counts.values())
        return stats

    def get_history(self, notification_id: int, owner_id: str) -> list[AuditLogEntry]:
        self.get_notification(notification_id, owner_id)
        return get_entity_history(self.db, ENTITY_NOTIFICATION, notification_id)

    def get_certificate(self, notification_id: int, owner_id: str) -> dict[str, object]:
        """Evidence bundle for a sent notification, re-verifying the stored hash."""
        notification = self.get_notification(notification_id, owner_id)
        if notification.status not in (SENT, READ):
            raise StateViolation(
                f"Notification {notification_id} has no certificate yet (status {notification.status!r})",
                current=notification.status,
            )

        requirements = requirements_for(notification.certification_level)
        return {
            "notification_id": notification.id,
            "certification_level": notification.certification_level,
            "evidence_steps": sorted(requirements.steps()),
            "hash_algorithm": HASH_ALGORITHM,
            "document_hash": notification.document_hash,
            "hash_verified": verify(notification.content.encode("utf-8"), notification.document_hash or ""),
            "timestamp_token": notification.timestamp_token,
            "timestamp_url": notification.timestamp_url,
            "certificate_url": notification.certificate_url,
            "external_service_id": notification.external_service_id,
            "external_service_name": notification.external_service_name,
            "sent_at": notification.sent_at,
            "read_at": notification.read_at,
            "status": notification.status,
        }

    # -- alerts -----------------------------------------------------------------

    def list_alerts(self, owner_id: str, unread_only: bool = False) -> list[SystemAlert]:
        return self.alerts.list_for_owner(owner_id, unread_only=unread_only)

    def mark_alert_read(self, alert_id: int, owner_id: str) -> SystemAlert:
        alert = self.alerts.get(alert_id)
        if alert is None:
            raise KeyError(alert_id)
        if alert.owner_id != owner_id:
            raise PermissionError(f"Alert {alert_id} belongs to another user")
        return self.alerts.mark_read(alert, self.clock.now())
