"""Notification status state machine.

Owns ``Notification.status`` and its legal transitions:

    draft ─┬─► scheduled ─┬─► sending ─┬─► sent ─► read
           │      ▲  │    │            └─► failed
           │      └──┘    │
           └──────────────┘
    (draft → draft and scheduled → scheduled are edits)

Every transition is a compare-and-swap on ``(id, status, version)`` and
appends exactly one audit entry in the same transaction.  A transition
that is not in the table, or that loses a race, raises ``StateViolation``.
"""
from __future__ import annotations

import hmac
import logging
import secrets

from sqlalchemy.orm import Session

from app.audit.audit_log import record_event
from app.audit.events import (
    ACTION_CREATE,
    ACTION_FAILED,
    ACTION_READ,
    ACTION_SCHEDULE,
    ACTION_SEND,
    ACTION_SENT,
    ACTION_UPDATE,
    ENTITY_NOTIFICATION,
)
from app.core.clock import Clock, SystemClock, as_utc
from app.core.errors import NotificationNotFound, StateViolation, ValidationError
from app.core.fingerprint import fingerprint_text
from app.db.models import Notification
from app.db.repositories import NotificationRepository
from app.lifecycle.commands import (
    CreateNotificationCommand,
    EditNotificationCommand,
    ReadReceiptCommand,
    RequestContext,
)

logger = logging.getLogger(__name__)

DRAFT = "draft"
SCHEDULED = "scheduled"
SENDING = "sending"
SENT = "sent"
READ = "read"
FAILED = "failed"

STATUSES: frozenset[str] = frozenset({DRAFT, SCHEDULED, SENDING, SENT, READ, FAILED})
TERMINAL_STATUSES: frozenset[str] = frozenset({READ, FAILED})
EDITABLE_STATUSES: frozenset[str] = frozenset({DRAFT, SCHEDULED})

TRIGGER_MANUAL = "manual"
TRIGGER_SCHEDULE = "schedule"

# Allowed transitions: current_status → {valid target statuses}
_TRANSITIONS: dict[str, frozenset[str]] = {
    DRAFT: frozenset({DRAFT, SCHEDULED, SENDING}),
    SCHEDULED: frozenset({SCHEDULED, SENDING}),
    SENDING: frozenset({SENT, FAILED}),
    SENT: frozenset({READ}),
}

# Map target status → audit action
_STATUS_ACTION_MAP: dict[str, str] = {
    DRAFT: ACTION_UPDATE,
    SCHEDULED: ACTION_SCHEDULE,
    SENDING: ACTION_SEND,
    SENT: ACTION_SENT,
    FAILED: ACTION_FAILED,
    READ: ACTION_READ,
}


class NotificationStateMachine:
    """Apply lifecycle transitions to notifications with audit logging."""

    def __init__(self, db_session: Session, clock: Clock | None = None) -> None:
        self.db = db_session
        self.clock = clock or SystemClock()
        self.notifications = NotificationRepository(db_session)

    # -- queries ------------------------------------------------------------

    def can_transition(self, current_status: str, to_status: str) -> bool:
        """Return whether *current_status* → *to_status* is allowed."""
        return to_status in _TRANSITIONS.get(current_status, frozenset())

    def get(self, notification_id: int) -> Notification:
        notification = self.notifications.get(notification_id)
        if notification is None:
            raise NotificationNotFound(notification_id)
        return notification

    # -- core transition ----------------------------------------------------

    def transition(
        self,
        notification: Notification,
        to_status: str,
        context: RequestContext,
        values: dict[str, object] | None = None,
        details: dict | None = None,
    ) -> Notification:
        """Move *notification* to *to_status* if the edge exists and nobody else moved it first."""
        current = notification.status
        if not self.can_transition(current, to_status):
            raise StateViolation(
                f"Invalid transition {current!r} → {to_status!r} for notification {notification.id}",
                current=current,
                target=to_status,
            )

        applied = self.notifications.compare_and_set(
            notification.id,
            expected_status=current,
            expected_version=notification.version,
            status=to_status,
            **(values or {}),
        )
        if not applied:
            self.db.refresh(notification)
            raise StateViolation(
                f"Notification {notification.id} changed concurrently "
                f"(expected {current!r}, found {notification.status!r})",
                current=notification.status,
                target=to_status,
            )
        self.db.refresh(notification)

        record_event(
            self.db,
            action=_STATUS_ACTION_MAP[to_status],
            actor=context.actor,
            entity_type=ENTITY_NOTIFICATION,
            entity_id=notification.id,
            details={"from": current, "to": to_status, **(details or {})},
            ip_address=context.ip_address,
            user_agent=context.user_agent,
            clock=self.clock,
        )
        logger.info("Notification %s: %s → %s", notification.id, current, to_status)
        return notification

    # -- operations ---------------------------------------------------------

    def create(self, command: CreateNotificationCommand, context: RequestContext) -> Notification:
        """Insert a ``draft`` notification; schedule it when ``scheduled_for`` is given."""
        now = self.clock.now()
        if command.scheduled_for is not None and command.scheduled_for <= now:
            raise ValidationError("scheduled_for must be in the future")

        document_hash = fingerprint_text(command.content)
        notification = self.notifications.create(
            owner_id=context.actor,
            recipient_name=command.recipient_name,
            recipient_email=command.recipient_email,
            recipient_phone=command.recipient_phone,
            recipient_address=command.recipient_address,
            subject=command.subject,
            content=command.content,
            certification_level=command.certification_level.value,
            document_hash=document_hash,
            read_token=secrets.token_urlsafe(32),
            status=DRAFT,
            version=1,
            created_at=now,
            updated_at=now,
        )
        record_event(
            self.db,
            action=ACTION_CREATE,
            actor=context.actor,
            entity_type=ENTITY_NOTIFICATION,
            entity_id=notification.id,
            details={
                "certification_level": notification.certification_level,
                "document_hash": document_hash,
            },
            ip_address=context.ip_address,
            user_agent=context.user_agent,
            clock=self.clock,
        )

        if command.scheduled_for is not None:
            self.transition(
                notification,
                SCHEDULED,
                context,
                values={"scheduled_for": command.scheduled_for},
                details={"scheduled_for": command.scheduled_for.isoformat()},
            )
        return notification

    def edit(
        self,
        notification_id: int,
        command: EditNotificationCommand,
        context: RequestContext,
    ) -> Notification:
        """Apply an edit while the notification is still ``draft`` or ``scheduled``.

        Content can change only in ``draft`` (the hash is recomputed);
        once scheduled the fingerprinted content is fixed, and edits are
        accepted only before the due time.
        """
        notification = self.get(notification_id)
        current = notification.status
        if current not in EDITABLE_STATUSES:
            raise StateViolation(
                f"Notification {notification_id} can no longer be edited (status {current!r})",
                current=current,
            )

        now = self.clock.now()
        changes = dict(command.changes())

        if current == SCHEDULED:
            if "content" in changes:
                raise StateViolation(
                    f"Content of notification {notification_id} is fixed once scheduled",
                    current=current,
                )
            if as_utc(notification.scheduled_for) <= now:
                raise StateViolation(
                    f"Notification {notification_id} is already due and can no longer be edited",
                    current=current,
                )

        if "scheduled_for" in changes and changes["scheduled_for"] <= now:
            raise ValidationError("scheduled_for must be in the future")

        details: dict[str, object] = {"fields": sorted(changes)}
        if "content" in changes:
            changes["document_hash"] = fingerprint_text(changes["content"])
            details["document_hash"] = changes["document_hash"]
        if "scheduled_for" in changes:
            details["scheduled_for"] = changes["scheduled_for"].isoformat()

        target = SCHEDULED if current == SCHEDULED or "scheduled_for" in changes else DRAFT
        return self.transition(notification, target, context, values=changes, details=details)

    def begin_sending(
        self,
        notification_id: int,
        context: RequestContext,
        trigger: str = TRIGGER_MANUAL,
    ) -> Notification:
        """Move a notification into ``sending``.

        Immediate sends (``trigger="manual"``) and due schedules
        (``trigger="schedule"``) share this single transition.
        """
        notification = self.get(notification_id)
        if trigger == TRIGGER_SCHEDULE:
            if notification.status != SCHEDULED:
                raise StateViolation(
                    f"Notification {notification_id} is no longer scheduled (status {notification.status!r})",
                    current=notification.status,
                    target=SENDING,
                )
            if as_utc(notification.scheduled_for) > self.clock.now():
                raise StateViolation(
                    f"Notification {notification_id} is not due yet",
                    current=notification.status,
                    target=SENDING,
                )
        elif trigger != TRIGGER_MANUAL:
            raise ValidationError(f"Unknown send trigger {trigger!r}")

        return self.transition(
            notification,
            SENDING,
            context,
            values={"failure_reason": None, "dispatch_attempts": 0},
            details={"trigger": trigger, "document_hash": notification.document_hash},
        )

    def mark_sent(
        self,
        notification: Notification,
        context: RequestContext,
        evidence: dict[str, object],
    ) -> Notification:
        return self.transition(
            notification,
            SENT,
            context,
            values=evidence,
            details={"certificate_url": evidence.get("certificate_url")},
        )

    def mark_failed(
        self,
        notification: Notification,
        context: RequestContext,
        reason: str,
        dispatch_attempts: int = 0,
    ) -> Notification:
        if not reason or not reason.strip():
            raise ValidationError("failure_reason must be a non-empty string")
        return self.transition(
            notification,
            FAILED,
            context,
            values={"failure_reason": reason, "dispatch_attempts": dispatch_attempts},
            details={"failure_reason": reason, "dispatch_attempts": dispatch_attempts},
        )

    def record_read_receipt(
        self,
        notification_id: int,
        command: ReadReceiptCommand,
        context: RequestContext,
    ) -> Notification:
        """Record the first read of a ``sent`` notification.

        Read telemetry is write-once: a second receipt raises
        ``StateViolation`` because ``read`` is terminal.  The caller must
        present the notification's ``read_token`` (delivered only inside
        the email); a mismatch raises ``PermissionError``.
        """
        notification = self.get(notification_id)
        if not notification.read_token or not hmac.compare_digest(
            notification.read_token.encode(), command.read_token.encode()
        ):
            raise PermissionError(f"Invalid read token for notification {notification_id}")
        read_at = self.clock.now()
        return self.transition(
            notification,
            READ,
            context,
            values={
                "read_at": read_at,
                "read_ip": command.ip_address,
                "read_user_agent": command.user_agent,
                "read_location": command.location,
            },
            details={"read_at": read_at.isoformat()},
        )
