from __future__ import annotations

from datetime import datetime

from sqlalchemy import JSON, Boolean, DateTime, Index, Integer, String, Text, func, text as sql_text
from sqlalchemy.orm import Mapped, mapped_column

from app.db.base import Base


class Notification(Base):
    """A legally-binding notification owned by its creating user.

    ``document_hash`` is fixed once the notification leaves ``draft``;
    ``version`` increments on every write and backs compare-and-swap
    updates between the scheduler and request handlers.
    """

    __tablename__ = "notifications"
    __table_args__ = (
        Index("ix_notifications_owner_id", "owner_id"),
        Index("ix_notifications_status_scheduled_for", "status", "scheduled_for"),
        Index("ix_notifications_recipient_email", "recipient_email"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    owner_id: Mapped[str] = mapped_column(String(128), nullable=False)

    recipient_name: Mapped[str] = mapped_column(Text, nullable=False)
    recipient_email: Mapped[str] = mapped_column(String(320), nullable=False)
    recipient_phone: Mapped[str | None] = mapped_column(String(20), nullable=True)
    recipient_address: Mapped[str | None] = mapped_column(Text, nullable=True)
    subject: Mapped[str] = mapped_column(Text, nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)

    certification_level: Mapped[str] = mapped_column(
        String(16), nullable=False, default="simple", server_default=sql_text("'simple'")
    )
    document_hash: Mapped[str | None] = mapped_column(String(128), nullable=True)
    timestamp_token: Mapped[str | None] = mapped_column(Text, nullable=True)
    timestamp_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    certificate_url: Mapped[str | None] = mapped_column(Text, nullable=True)

    status: Mapped[str] = mapped_column(
        String(16), nullable=False, default="draft", server_default=sql_text("'draft'")
    )
    scheduled_for: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    sent_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    read_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    failure_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    read_ip: Mapped[str | None] = mapped_column(String(45), nullable=True)
    read_user_agent: Mapped[str | None] = mapped_column(Text, nullable=True)
    read_location: Mapped[str | None] = mapped_column(Text, nullable=True)
    read_token: Mapped[str | None] = mapped_column(String(64), nullable=True)

    external_service_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    external_service_name: Mapped[str | None] = mapped_column(String(100), nullable=True)
    dispatch_attempts: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0, server_default=sql_text("0")
    )

    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1, server_default=sql_text("1"))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now()
    )


class AuditLogEntry(Base):
    """Append-only audit log.

    ``id`` is the append sequence and the only ordering key.  The subject is
    referenced by type and id without a foreign key so that entries outlive
    the entities they describe.
    """

    __tablename__ = "audit_log_entries"
    __table_args__ = (
        Index("ix_audit_log_entries_entity", "entity_type", "entity_id"),
        Index("ix_audit_log_entries_actor", "actor"),
        Index("ix_audit_log_entries_created_at", "created_at"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    actor: Mapped[str] = mapped_column(
        String(128), nullable=False, default="system", server_default=sql_text("'system'"),
    )
    action: Mapped[str] = mapped_column(String(100), nullable=False)
    entity_type: Mapped[str | None] = mapped_column(String(50), nullable=True)
    entity_id: Mapped[str | None] = mapped_column(String(128), nullable=True)
    details: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    ip_address: Mapped[str | None] = mapped_column(String(45), nullable=True)
    user_agent: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now(),
    )


class SystemAlert(Base):
    """Owner-facing alert raised when a notification reaches a final send outcome."""

    __tablename__ = "system_alerts"
    __table_args__ = (Index("ix_system_alerts_owner_read", "owner_id", "is_read"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    owner_id: Mapped[str] = mapped_column(String(128), nullable=False)
    alert_type: Mapped[str] = mapped_column(String(32), nullable=False)
    title: Mapped[str] = mapped_column(Text, nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    related_entity_type: Mapped[str | None] = mapped_column(String(50), nullable=True)
    related_entity_id: Mapped[str | None] = mapped_column(String(128), nullable=True)
    is_read: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default=sql_text("false"))
    read_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
