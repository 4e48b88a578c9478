"""FastAPI dependency injection — sessions, caller identity and service factories."""
from __future__ import annotations

from collections.abc import Generator

from fastapi import Depends, Header, HTTPException, Request
from sqlalchemy.orm import Session, sessionmaker

from app.core.clock import Clock, SystemClock
from app.core.settings import get_settings
from app.db.session import get_session_factory
from app.delivery.channels import ReceiptServiceChannel, SmtpEmailChannel
from app.delivery.orchestrator import DeliveryOrchestrator
from app.delivery.timestamp_client import HttpTimestampAuthorityClient
from app.lifecycle.commands import RequestContext
from app.lifecycle.service import NotificationService

_clock = SystemClock()


def get_clock() -> Clock:
    return _clock


def get_sessionmaker() -> sessionmaker:
    return get_session_factory()


def get_db(factory: sessionmaker = Depends(get_sessionmaker)) -> Generator[Session, None, None]:
    """Yield a SQLAlchemy session; commit on success, rollback on error."""
    db = factory()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def get_current_user_id(x_user_id: str | None = Header(default=None)) -> str:
    """Caller identity, asserted by the upstream authentication layer."""
    if not x_user_id or not x_user_id.strip():
        raise HTTPException(status_code=401, detail="X-User-Id header is required")
    return x_user_id.strip()


def get_request_context(
    request: Request,
    user_id: str = Depends(get_current_user_id),
) -> RequestContext:
    return RequestContext(
        actor=user_id,
        ip_address=request.client.host if request.client else None,
        user_agent=request.headers.get("user-agent"),
    )


def get_notification_service(
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
) -> NotificationService:
    return NotificationService(db, clock)


def build_orchestrator(factory: sessionmaker, clock: Clock) -> DeliveryOrchestrator:
    settings = get_settings()
    return DeliveryOrchestrator(
        factory,
        HttpTimestampAuthorityClient(settings.tsa_url, timeout_s=settings.tsa_timeout_seconds),
        SmtpEmailChannel(settings.smtp_host, settings.smtp_port, mail_from=settings.mail_from),
        ReceiptServiceChannel(
            settings.receipt_service_url,
            name=settings.receipt_service_name,
            timeout_s=settings.receipt_service_timeout_seconds,
        ),
        certificate_base_url=settings.certificate_base_url,
        read_receipt_base_url=settings.read_receipt_base_url,
        clock=clock,
        max_attempts=settings.dispatch_max_attempts,
        backoff_base=settings.dispatch_backoff_base_seconds,
    )


def get_orchestrator(
    factory: sessionmaker = Depends(get_sessionmaker),
    clock: Clock = Depends(get_clock),
) -> DeliveryOrchestrator:
    return build_orchestrator(factory, clock)
