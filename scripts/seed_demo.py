#!/usr/bin/env python3
"""Seed demo data: notifications in draft and scheduled state, with audit entries.

Usage:
    python scripts/seed_demo.py          # uses DATABASE_URL from env / .env
    DATABASE_URL=... python scripts/seed_demo.py
"""
from __future__ import annotations

import sys
from datetime import datetime, timedelta, timezone

from sqlalchemy import create_engine
from sqlalchemy.orm import Session

# Ensure project root is on sys.path
sys.path.insert(0, ".")

from app.core.settings import get_settings
from app.db.base import Base
from app.lifecycle.commands import CreateNotificationCommand, RequestContext
from app.lifecycle.state_machine import NotificationStateMachine

DEMO_OWNER = RequestContext(actor="demo-user", user_agent="seed_demo")


def seed(session: Session) -> None:
    """Insert demo notifications through the state machine."""

    now = datetime.now(timezone.utc)
    machine = NotificationStateMachine(session)

    demo_notifications = [
        # (name, email, phone, level, hours until due or None for draft)
        ("Ana Lima", "ana.lima@example.com.br", "+5511987650001", "simple", None),
        ("Bruno Costa", "bruno.costa@example.com.br", "+5521987650002", "advanced", None),
        ("Carla Mendes", "carla.mendes@example.com.br", None, "qualified", None),
        ("Diego Rocha", "diego.rocha@example.com.br", "+5531987650004", "advanced", 2),
        ("Elisa Prado", "elisa.prado@example.com.br", "+5541987650005", "qualified", 24),
    ]

    for name, email, phone, level, due_in_hours in demo_notifications:
        command = CreateNotificationCommand(
            recipient_name=name,
            recipient_email=email,
            recipient_phone=phone,
            subject="Notificação extrajudicial de cobrança",
            content=(
                f"<p>Prezado(a) {name},</p>"
                "<p>Fica V.Sa. notificada do débito em aberto referente ao contrato nº 2026/001.</p>"
            ),
            certification_level=level,
            scheduled_for=now + timedelta(hours=due_in_hours) if due_in_hours else None,
        )
        machine.create(command, DEMO_OWNER)

    session.commit()
    print(f"Seeded {len(demo_notifications)} notifications for {DEMO_OWNER.actor}.")


def main() -> None:
    settings = get_settings()
    engine = create_engine(settings.database_url)
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        seed(session)


if __name__ == "__main__":
    main()
