"""Scheduling processor — recurring sweep of due notifications.

Each sweep selects ``scheduled`` notifications with ``scheduled_for`` at or
before the processor's clock, claims each one with the
``scheduled → sending`` compare-and-swap, commits the claim, and hands the
id to the delivery orchestrator.

Overlapping sweeps (two workers, or a sweep racing a manual send) are safe:
a notification that is no longer ``scheduled`` when claimed raises
``StateViolation`` inside the claim and is skipped, so it is moved to
``sending`` exactly once.

Clock skew: due-ness is judged only against this processor's clock, and a
notification may become due up to one sweep interval before it is picked
up.  That window is accepted; the interval bounds the delay.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from app.audit.events import SYSTEM_ACTOR
from app.core.clock import Clock, SystemClock
from app.core.errors import AuditWriteError, NotificationNotFound, StateViolation
from app.db.repositories import NotificationRepository
from app.delivery.orchestrator import DeliveryOrchestrator
from app.lifecycle.commands import RequestContext
from app.lifecycle.state_machine import FAILED, SENT, TRIGGER_SCHEDULE, NotificationStateMachine

logger = logging.getLogger(__name__)

_SCHEDULER = RequestContext(actor=SYSTEM_ACTOR, user_agent="scheduling-processor")


@dataclass
class SweepResult:
    selected: int = 0
    claimed: list[int] = field(default_factory=list)
    sent: list[int] = field(default_factory=list)
    failed: list[int] = field(default_factory=list)
    errors: list[int] = field(default_factory=list)


class SchedulingProcessor:
    """Promote due ``scheduled`` notifications to ``sending`` and dispatch them."""

    def __init__(
        self,
        session_factory: sessionmaker,
        orchestrator: DeliveryOrchestrator,
        *,
        clock: Clock | None = None,
        interval_seconds: float = 30.0,
        batch_size: int = 100,
    ) -> None:
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")
        self.session_factory = session_factory
        self.orchestrator = orchestrator
        self.clock = clock or SystemClock()
        self.interval_seconds = interval_seconds
        self.batch_size = batch_size

    def select_due(self) -> list[int]:
        """Ids of notifications due at the current clock reading, oldest first."""
        with self.session_factory() as db:
            return NotificationRepository(db).list_due_ids(self.clock.now(), limit=self.batch_size)

    def claim(self, notification_id: int) -> bool:
        """Move one due notification to ``sending``; ``False`` if someone else already did."""
        try:
            with self.session_factory.begin() as db:
                NotificationStateMachine(db, self.clock).begin_sending(
                    notification_id, _SCHEDULER, trigger=TRIGGER_SCHEDULE
                )
        except (StateViolation, NotificationNotFound) as exc:
            logger.debug("Skipping notification %s: %s", notification_id, exc)
            return False
        return True

    def sweep(self) -> SweepResult:
        """Run one pass over due notifications."""
        result = SweepResult()
        due = self.select_due()
        result.selected = len(due)

        for notification_id in due:
            try:
                claimed = self.claim(notification_id)
            except (AuditWriteError, SQLAlchemyError):
                # Claim rolled back; still ``scheduled`` for the next sweep.
                logger.exception("Claim of notification %s failed", notification_id)
                result.errors.append(notification_id)
                continue
            if not claimed:
                continue
            result.claimed.append(notification_id)
            try:
                status = self.orchestrator.dispatch(notification_id)
            except (AuditWriteError, SQLAlchemyError, StateViolation):
                # Left in ``sending``; the audit trail shows the last completed step.
                logger.exception("Dispatch of notification %s did not complete", notification_id)
                result.errors.append(notification_id)
                continue
            if status == SENT:
                result.sent.append(notification_id)
            elif status == FAILED:
                result.failed.append(notification_id)

        if result.selected:
            logger.info(
                "Sweep: selected=%d claimed=%d sent=%d failed=%d errors=%d",
                result.selected,
                len(result.claimed),
                len(result.sent),
                len(result.failed),
                len(result.errors),
            )
        return result

    async def run_forever(self, stop_event: asyncio.Event | None = None) -> None:
        """Sweep every ``interval_seconds`` until *stop_event* is set or the task is cancelled."""
        stop_event = stop_event or asyncio.Event()
        logger.info("Scheduling processor started (interval=%ss)", self.interval_seconds)
        while not stop_event.is_set():
            try:
                await asyncio.to_thread(self.sweep)
            except Exception:
                logger.exception("Scheduling sweep failed; retrying next interval")
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=self.interval_seconds)
            except asyncio.TimeoutError:
                pass
        logger.info("Scheduling processor stopped")
