"""Delivery orchestrator.

Drives a ``sending`` notification to ``sent`` or ``failed``:

1. consult the certification policy for the notification's level;
2. if a timestamp is required, request one for ``document_hash``;
3. deliver by email;
4. if external delivery is required, register with the receipt service;
5. write the evidence and move ``sending → sent``.

Transient collaborator errors are retried with exponential back-off
(1, 2, 4 … seconds by default) up to ``max_attempts`` per step.  A
permanent error, or an exhausted budget, moves the notification to
``failed`` with a readable ``failure_reason``.  Transient errors never
reach the caller.

Collaborator calls run outside any database transaction; each recorded
step commits its own audit entry.
"""
from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field, replace
from typing import TypeVar

from sqlalchemy.orm import Session, sessionmaker

from app.audit.audit_log import record_event
from app.audit.events import (
    ACTION_DELIVER,
    ACTION_DISPATCH_RETRY,
    ACTION_TIMESTAMP,
    ENTITY_NOTIFICATION,
    SYSTEM_ACTOR,
)
from app.core.clock import Clock, SystemClock
from app.core.errors import (
    PermanentCollaboratorError,
    StateViolation,
    TransientCollaboratorError,
)
from app.core.policies import requirements_for
from app.db.models import Notification
from app.db.repositories import SystemAlertRepository
from app.delivery.channels import DeliveryChannel, DeliveryConfirmation, DeliveryRequest
from app.delivery.timestamp_client import TimestampAuthorityClient, TimestampToken
from app.lifecycle.commands import RequestContext
from app.lifecycle.state_machine import FAILED, SENDING, SENT, NotificationStateMachine

logger = logging.getLogger(__name__)

T = TypeVar("T")

_MAX_ATTEMPTS = 3
_BACKOFF_BASE = 1.0  # seconds: 1, 2, 4

_SYSTEM = RequestContext(actor=SYSTEM_ACTOR)


@dataclass
class _DispatchJob:
    """Snapshot of the fields a dispatch needs, detached from any session."""

    notification_id: int
    owner_id: str
    certification_level: str
    document_hash: str
    request: DeliveryRequest
    attempts: int = 0
    evidence: dict[str, object] = field(default_factory=dict)

    @classmethod
    def from_notification(cls, notification: Notification, read_receipt_url: str | None = None) -> _DispatchJob:
        return cls(
            notification_id=notification.id,
            owner_id=notification.owner_id,
            certification_level=notification.certification_level,
            document_hash=notification.document_hash,
            request=DeliveryRequest(
                notification_id=notification.id,
                recipient_name=notification.recipient_name,
                recipient_email=notification.recipient_email,
                recipient_phone=notification.recipient_phone,
                recipient_address=notification.recipient_address,
                subject=notification.subject,
                content=notification.content,
                certification_level=notification.certification_level,
                document_hash=notification.document_hash,
                read_receipt_url=read_receipt_url,
            ),
        )


class _RetriesExhausted(Exception):
    def __init__(self, step: str, attempts: int, last_error: TransientCollaboratorError) -> None:
        super().__init__(f"{step} failed after {attempts} attempts: {last_error}")
        self.step = step
        self.attempts = attempts
        self.last_error = last_error


class DeliveryOrchestrator:
    """Coordinate timestamping and delivery for notifications in ``sending``."""

    def __init__(
        self,
        session_factory: sessionmaker,
        timestamp_client: TimestampAuthorityClient,
        email_channel: DeliveryChannel,
        receipt_channel: DeliveryChannel | None = None,
        *,
        certificate_base_url: str = "https://notificaai.local/certificates",
        read_receipt_base_url: str = "https://notificaai.local/notifications",
        clock: Clock | None = None,
        max_attempts: int = _MAX_ATTEMPTS,
        backoff_base: float = _BACKOFF_BASE,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.session_factory = session_factory
        self.timestamp_client = timestamp_client
        self.email_channel = email_channel
        self.receipt_channel = receipt_channel
        self.certificate_base_url = certificate_base_url.rstrip("/")
        self.read_receipt_base_url = read_receipt_base_url.rstrip("/")
        self.clock = clock or SystemClock()
        self.max_attempts = max_attempts
        self.backoff_base = backoff_base
        self.sleep = sleep

    # -- public API ---------------------------------------------------------

    def dispatch(self, notification_id: int) -> str:
        """Run the required evidentiary steps and return the final status.

        Raises ``StateViolation`` if the notification is not ``sending``.
        """
        job = self._load_job(notification_id)
        requirements = requirements_for(job.certification_level)
        logger.info(
            "Dispatching notification %s (level=%s timestamp=%s external=%s)",
            notification_id,
            job.certification_level,
            requirements.needs_timestamp,
            requirements.needs_external_delivery,
        )

        try:
            if requirements.needs_timestamp:
                token = self._call_with_retry(
                    job, "timestamp", lambda: self.timestamp_client.request_timestamp(job.document_hash)
                )
                self._record_timestamp(job, token)

            confirmation = self._call_with_retry(
                job, self.email_channel.name, lambda: self.email_channel.deliver(job.request)
            )
            self._record_delivery(job, confirmation)

            if requirements.needs_external_delivery:
                if self.receipt_channel is None:
                    raise PermanentCollaboratorError(
                        "No third-party delivery service is configured for qualified notifications",
                        collaborator="receipt_service",
                    )
                receipt_channel = self.receipt_channel
                receipt = self._call_with_retry(
                    job, receipt_channel.name, lambda: receipt_channel.deliver(job.request)
                )
                self._record_delivery(job, receipt)
                job.evidence["external_service_id"] = receipt.confirmation_id
                job.evidence["external_service_name"] = receipt_channel.name
        except PermanentCollaboratorError as exc:
            return self._finish_failed(job, f"{_step_label(exc.collaborator)} failed permanently: {exc}")
        except _RetriesExhausted as exc:
            return self._finish_failed(
                job, f"{_step_label(exc.step)} failed after {exc.attempts} attempts: {exc.last_error}"
            )

        return self._finish_sent(job)

    # -- steps --------------------------------------------------------------

    def _load_job(self, notification_id: int) -> _DispatchJob:
        with self.session_factory() as db:
            machine = NotificationStateMachine(db, self.clock)
            notification = machine.get(notification_id)
            if notification.status != SENDING:
                raise StateViolation(
                    f"Notification {notification_id} is not sending (status {notification.status!r})",
                    current=notification.status,
                    target=SENT,
                )
            read_receipt_url = (
                self.read_receipt_url(notification_id, notification.read_token) if notification.read_token else None
            )
            return _DispatchJob.from_notification(notification, read_receipt_url)

    def _call_with_retry(self, job: _DispatchJob, step: str, call: Callable[[], T]) -> T:
        last_error: TransientCollaboratorError | None = None
        for attempt in range(1, self.max_attempts + 1):
            job.attempts += 1
            try:
                return call()
            except TransientCollaboratorError as exc:
                last_error = exc
                logger.warning(
                    "Transient %s error for notification %s attempt %d: %s",
                    step, job.notification_id, attempt, exc,
                )
                self._audit(
                    job,
                    ACTION_DISPATCH_RETRY,
                    {"step": step, "attempt": attempt, "error": str(exc), "kind": exc.kind},
                )
                if attempt < self.max_attempts:
                    self.sleep(self.backoff_base * (2 ** (attempt - 1)))

        logger.error(
            "%s failed for notification %s after %d attempts", step, job.notification_id, self.max_attempts
        )
        raise _RetriesExhausted(step, self.max_attempts, last_error)

    def _record_timestamp(self, job: _DispatchJob, token: TimestampToken) -> None:
        job.evidence["timestamp_token"] = token.token
        job.evidence["timestamp_url"] = token.url
        job.request = _with_token(job.request, token.token)
        self._audit(job, ACTION_TIMESTAMP, {"timestamp_url": token.url, "document_hash": job.document_hash})

    def _record_delivery(self, job: _DispatchJob, confirmation: DeliveryConfirmation) -> None:
        self._audit(
            job,
            ACTION_DELIVER,
            {
                "channel": confirmation.channel,
                "confirmation_id": confirmation.confirmation_id,
                "delivered_at": confirmation.delivered_at.isoformat(),
            },
        )

    def _finish_sent(self, job: _DispatchJob) -> str:
        now = self.clock.now()
        evidence = {
            **job.evidence,
            "sent_at": now,
            "certificate_url": self.certificate_url(job.notification_id, job.document_hash),
            "dispatch_attempts": job.attempts,
        }
        with self.session_factory.begin() as db:
            machine = NotificationStateMachine(db, self.clock)
            notification = machine.get(job.notification_id)
            machine.mark_sent(notification, _SYSTEM, evidence)
            self._raise_alert(
                db,
                job,
                "notification_sent",
                "Notification sent",
                f"Notification #{job.notification_id} was sent with {job.certification_level} certification.",
            )
        logger.info("Notification %s sent after %d collaborator calls", job.notification_id, job.attempts)
        return SENT

    def _finish_failed(self, job: _DispatchJob, reason: str) -> str:
        with self.session_factory.begin() as db:
            machine = NotificationStateMachine(db, self.clock)
            notification = machine.get(job.notification_id)
            machine.mark_failed(notification, _SYSTEM, reason, dispatch_attempts=job.attempts)
            self._raise_alert(
                db,
                job,
                "notification_failed",
                "Notification failed",
                f"Notification #{job.notification_id} could not be sent: {reason}",
            )
        logger.error("Notification %s failed: %s", job.notification_id, reason)
        return FAILED

    # -- helpers ------------------------------------------------------------

    def certificate_url(self, notification_id: int, document_hash: str) -> str:
        return f"{self.certificate_base_url}/{notification_id}/{document_hash}"

    def read_receipt_url(self, notification_id: int, read_token: str) -> str:
        return f"{self.read_receipt_base_url}/{notification_id}/read-receipt?token={read_token}"

    def _audit(self, job: _DispatchJob, action: str, details: dict) -> None:
        with self.session_factory.begin() as db:
            record_event(
                db,
                action=action,
                actor=SYSTEM_ACTOR,
                entity_type=ENTITY_NOTIFICATION,
                entity_id=job.notification_id,
                details=details,
                clock=self.clock,
            )

    def _raise_alert(self, db: Session, job: _DispatchJob, alert_type: str, title: str, message: str) -> None:
        SystemAlertRepository(db).create(
            owner_id=job.owner_id,
            alert_type=alert_type,
            title=title,
            message=message,
            related_entity_type=ENTITY_NOTIFICATION,
            related_entity_id=str(job.notification_id),
            created_at=self.clock.now(),
        )


def _with_token(request: DeliveryRequest, token: str) -> DeliveryRequest:
    return replace(request, timestamp_token=token)


def _step_label(step: str) -> str:
    return {
        "timestamp": "Trusted timestamp",
        "timestamp_authority": "Trusted timestamp",
        "email": "Email delivery",
        "receipt_service": "Third-party delivery",
    }.get(step, f"Delivery via {step}")

