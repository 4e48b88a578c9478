"""Initial schema

Revision ID: 0001_initial
Revises:
Create Date: 2026-10-19

"""

from collections.abc import Sequence

from alembic import op
import sqlalchemy as sa


revision: str = "0001_initial"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    op.create_table(
        "notifications",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("owner_id", sa.String(length=128), nullable=False),
        sa.Column("recipient_name", sa.Text(), nullable=False),
        sa.Column("recipient_email", sa.String(length=320), nullable=False),
        sa.Column("recipient_phone", sa.String(length=20), nullable=True),
        sa.Column("recipient_address", sa.Text(), nullable=True),
        sa.Column("subject", sa.Text(), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("certification_level", sa.String(length=16), server_default=sa.text("'simple'"), nullable=False),
        sa.Column("document_hash", sa.String(length=128), nullable=True),
        sa.Column("timestamp_token", sa.Text(), nullable=True),
        sa.Column("timestamp_url", sa.Text(), nullable=True),
        sa.Column("certificate_url", sa.Text(), nullable=True),
        sa.Column("status", sa.String(length=16), server_default=sa.text("'draft'"), nullable=False),
        sa.Column("scheduled_for", sa.DateTime(timezone=True), nullable=True),
        sa.Column("sent_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("read_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("failure_reason", sa.Text(), nullable=True),
        sa.Column("read_ip", sa.String(length=45), nullable=True),
        sa.Column("read_user_agent", sa.Text(), nullable=True),
        sa.Column("read_location", sa.Text(), nullable=True),
        sa.Column("external_service_id", sa.String(length=255), nullable=True),
        sa.Column("external_service_name", sa.String(length=100), nullable=True),
        sa.Column("dispatch_attempts", sa.Integer(), server_default=sa.text("0"), nullable=False),
        sa.Column("version", sa.Integer(), server_default=sa.text("1"), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.CheckConstraint(
            "status IN ('draft', 'scheduled', 'sending', 'sent', 'read', 'failed')",
            name="ck_notifications_status",
        ),
        sa.CheckConstraint(
            "certification_level IN ('simple', 'advanced', 'qualified')",
            name="ck_notifications_certification_level",
        ),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "audit_log_entries",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("actor", sa.String(length=128), server_default=sa.text("'system'"), nullable=False),
        sa.Column("action", sa.String(length=100), nullable=False),
        sa.Column("entity_type", sa.String(length=50), nullable=True),
        sa.Column("entity_id", sa.String(length=128), nullable=True),
        sa.Column("details", sa.JSON(), nullable=True),
        sa.Column("ip_address", sa.String(length=45), nullable=True),
        sa.Column("user_agent", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "system_alerts",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("owner_id", sa.String(length=128), nullable=False),
        sa.Column("alert_type", sa.String(length=32), nullable=False),
        sa.Column("title", sa.Text(), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("related_entity_type", sa.String(length=50), nullable=True),
        sa.Column("related_entity_id", sa.String(length=128), nullable=True),
        sa.Column("is_read", sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column("read_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_index("ix_notifications_owner_id", "notifications", ["owner_id"])
    op.create_index("ix_notifications_status_scheduled_for", "notifications", ["status", "scheduled_for"])
    op.create_index("ix_notifications_recipient_email", "notifications", ["recipient_email"])
    op.create_index("ix_audit_log_entries_entity", "audit_log_entries", ["entity_type", "entity_id"])
    op.create_index("ix_audit_log_entries_actor", "audit_log_entries", ["actor"])
    op.create_index("ix_audit_log_entries_created_at", "audit_log_entries", ["created_at"])
    op.create_index("ix_system_alerts_owner_read", "system_alerts", ["owner_id", "is_read"])


def downgrade() -> None:
    op.drop_index("ix_system_alerts_owner_read", table_name="system_alerts")
    op.drop_index("ix_audit_log_entries_created_at", table_name="audit_log_entries")
    op.drop_index("ix_audit_log_entries_actor", table_name="audit_log_entries")
    op.drop_index("ix_audit_log_entries_entity", table_name="audit_log_entries")
    op.drop_index("ix_notifications_recipient_email", table_name="notifications")
    op.drop_index("ix_notifications_status_scheduled_for", table_name="notifications")
    op.drop_index("ix_notifications_owner_id", table_name="notifications")

    op.drop_table("system_alerts")
    op.drop_table("audit_log_entries")
    op.drop_table("notifications")
