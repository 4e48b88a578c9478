"""Shared builders and collaborator fakes for lifecycle tests."""
from __future__ import annotations

from datetime import datetime

from app.core.policies import CertificationLevel
from app.delivery.channels import DeliveryConfirmation
from app.delivery.timestamp_client import TimestampToken
from app.lifecycle.commands import CreateNotificationCommand, RequestContext
from app.lifecycle.state_machine import NotificationStateMachine

OWNER = "user-1"
OWNER_CONTEXT = RequestContext(actor=OWNER, ip_address="203.0.113.7", user_agent="pytest")


def create_command(
    *,
    level: CertificationLevel | str = CertificationLevel.SIMPLE,
    content: str = "Fica V.Sa. notificada do vencimento do contrato.",
    scheduled_for: datetime | None = None,
) -> CreateNotificationCommand:
    return CreateNotificationCommand(
        recipient_name="Maria Souza",
        recipient_email="Maria.Souza@Example.com",
        recipient_phone="(11) 98765-4321",
        subject="Notificação extrajudicial",
        content=content,
        certification_level=level,
        scheduled_for=scheduled_for,
    )


def create_notification(db_session, clock, **kwargs):
    """Insert a notification through the state machine and commit it."""
    machine = NotificationStateMachine(db_session, clock)
    notification = machine.create(create_command(**kwargs), OWNER_CONTEXT)
    db_session.commit()
    return notification


# ---------------------------------------------------------------------------
# Collaborator fakes: one queued outcome per call, exceptions are raised
# ---------------------------------------------------------------------------

class FakeTimestampAuthority:
    def __init__(self, *outcomes):
        self.outcomes = list(outcomes)
        self.calls: list[str] = []

    def request_timestamp(self, document_hash: str) -> TimestampToken:
        self.calls.append(document_hash)
        outcome = self.outcomes.pop(0) if self.outcomes else None
        if isinstance(outcome, Exception):
            raise outcome
        return TimestampToken(token=f"tsa-token-{len(self.calls)}", url="https://tsa.example/v/1")


class FakeChannel:
    def __init__(self, name: str, *outcomes):
        self.name = name
        self.outcomes = list(outcomes)
        self.requests = []

    def deliver(self, request) -> DeliveryConfirmation:
        self.requests.append(request)
        outcome = self.outcomes.pop(0) if self.outcomes else None
        if isinstance(outcome, Exception):
            raise outcome
        return DeliveryConfirmation(channel=self.name, confirmation_id=f"{self.name}-{len(self.requests)}")
