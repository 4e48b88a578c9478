"""Delivery channels.

``SmtpEmailChannel`` delivers every notification by email through the
configured SMTP relay.  ``ReceiptServiceChannel`` hands qualified
notifications to a third-party registered-delivery service (AR Online or
similar) that issues its own receipt.

Each channel makes a single attempt per call; retries belong to the
orchestrator.

Safety: recipient addresses are never logged — only notification ids.
"""
from __future__ import annotations

import logging
import smtplib
from dataclasses import dataclass, field
from datetime import datetime, timezone
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import make_msgid
from typing import Protocol

import httpx

from app.core.errors import PermanentCollaboratorError, TransientCollaboratorError

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Contract
# ---------------------------------------------------------------------------

class InvalidAddress(PermanentCollaboratorError):
    """The channel refused the recipient address."""


class Bounced(PermanentCollaboratorError):
    """The message was accepted for relay but definitively rejected."""


class ProviderError(TransientCollaboratorError):
    """The channel provider failed in a way that may succeed on retry."""


@dataclass(frozen=True, slots=True)
class DeliveryRequest:
    notification_id: int
    recipient_name: str
    recipient_email: str
    subject: str
    content: str
    certification_level: str
    document_hash: str
    recipient_phone: str | None = None
    recipient_address: str | None = None
    timestamp_token: str | None = None
    read_receipt_url: str | None = None


@dataclass(frozen=True, slots=True)
class DeliveryConfirmation:
    channel: str
    confirmation_id: str
    delivered_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class DeliveryChannel(Protocol):
    name: str

    def deliver(self, request: DeliveryRequest) -> DeliveryConfirmation:
        ...


# ---------------------------------------------------------------------------
# SmtpEmailChannel
# ---------------------------------------------------------------------------

class SmtpEmailChannel:
    """Send the notification content as an HTML email via SMTP."""

    name = "email"

    def __init__(
        self,
        smtp_host: str,
        smtp_port: int = 587,
        mail_from: str = "noreply@notificaai.local",
        timeout_s: float = 30.0,
    ) -> None:
        self.smtp_host = smtp_host
        self.smtp_port = smtp_port
        self.mail_from = mail_from
        self.timeout_s = timeout_s

    def _build_message(self, request: DeliveryRequest) -> MIMEMultipart:
        msg = MIMEMultipart("alternative")
        msg["Subject"] = request.subject
        msg["From"] = self.mail_from
        msg["To"] = request.recipient_email
        msg["Message-ID"] = make_msgid(domain=self.mail_from.partition("@")[2] or None)
        msg["X-Notification-Id"] = str(request.notification_id)
        msg["X-Document-Hash"] = request.document_hash
        msg["X-Certification-Level"] = request.certification_level
        if request.read_receipt_url:
            msg["X-Read-Receipt-Url"] = request.read_receipt_url
        msg.attach(MIMEText(request.content, "html", "utf-8"))
        return msg

    def deliver(self, request: DeliveryRequest) -> DeliveryConfirmation:
        msg = self._build_message(request)
        nid = request.notification_id

        try:
            with smtplib.SMTP(self.smtp_host, self.smtp_port, timeout=self.timeout_s) as server:
                server.sendmail(msg["From"], [request.recipient_email], msg.as_string())
        except smtplib.SMTPRecipientsRefused as exc:
            raise InvalidAddress(
                "Recipient address was refused by the mail server", collaborator=self.name
            ) from exc
        except smtplib.SMTPResponseException as exc:
            if exc.smtp_code >= 500:
                raise Bounced(
                    f"Mail server rejected the message ({exc.smtp_code})", collaborator=self.name
                ) from exc
            raise ProviderError(
                f"Mail server deferred the message ({exc.smtp_code})", collaborator=self.name
            ) from exc
        except (smtplib.SMTPException, OSError) as exc:
            raise ProviderError(f"SMTP error: {exc}", collaborator=self.name) from exc

        logger.info("Email delivered for notification %s", nid)
        return DeliveryConfirmation(channel=self.name, confirmation_id=msg["Message-ID"])


# ---------------------------------------------------------------------------
# ReceiptServiceChannel
# ---------------------------------------------------------------------------

class ReceiptServiceChannel:
    """Register the notification with a third-party delivery-receipt service."""

    def __init__(self, url: str, name: str = "AR Online", timeout_s: float = 15.0) -> None:
        self.url = url
        self.name = name
        self.timeout_s = timeout_s

    def deliver(self, request: DeliveryRequest) -> DeliveryConfirmation:
        payload = {
            "reference": str(request.notification_id),
            "recipient": {
                "name": request.recipient_name,
                "email": request.recipient_email,
                "phone": request.recipient_phone,
                "address": request.recipient_address,
            },
            "subject": request.subject,
            "content": request.content,
            "document_hash": request.document_hash,
            "certification_level": request.certification_level,
            "timestamp_token": request.timestamp_token,
        }
        try:
            response = httpx.post(self.url, json=payload, timeout=self.timeout_s)
        except httpx.TimeoutException as exc:
            raise ProviderError(
                f"{self.name} timed out after {self.timeout_s}s", collaborator=self.name
            ) from exc
        except httpx.HTTPError as exc:
            raise ProviderError(f"{self.name} unreachable: {exc}", collaborator=self.name) from exc

        status = response.status_code
        if status >= 500 or status == 429:
            raise ProviderError(f"{self.name} returned HTTP {status}", collaborator=self.name)
        if status in (400, 422):
            raise InvalidAddress(
                f"{self.name} refused the recipient data (HTTP {status})", collaborator=self.name
            )
        if status >= 400:
            raise Bounced(f"{self.name} rejected the delivery (HTTP {status})", collaborator=self.name)

        try:
            data = response.json()
        except ValueError as exc:
            raise ProviderError(f"{self.name} returned a non-JSON body", collaborator=self.name) from exc

        confirmation_id = data.get("id") if isinstance(data, dict) else None
        if not confirmation_id:
            raise ProviderError(f"{self.name} response lacks a delivery id", collaborator=self.name)

        logger.info("%s registered notification %s", self.name, request.notification_id)
        return DeliveryConfirmation(channel=self.name, confirmation_id=str(confirmation_id))
