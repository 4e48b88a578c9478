from __future__ import annotations

from datetime import datetime
from typing import Generic, TypeVar

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from app.db import models

ModelT = TypeVar("ModelT")


class BaseRepository(Generic[ModelT]):
    model: type[ModelT]

    def __init__(self, db: Session):
        self.db = db

    def create(self, **kwargs) -> ModelT:
        entity = self.model(**kwargs)
        self.db.add(entity)
        self.db.flush()
        return entity

    def get(self, entity_id: int) -> ModelT | None:
        return self.db.get(self.model, entity_id)


class NotificationRepository(BaseRepository[models.Notification]):
    model = models.Notification

    def compare_and_set(
        self,
        notification_id: int,
        *,
        expected_status: str,
        expected_version: int,
        **values,
    ) -> bool:
        """Apply *values* only if the row is still at *expected_status*/*expected_version*.

        Returns ``False`` when another writer got there first.  Bumps
        ``version`` on success.
        """
        stmt = (
            update(models.Notification)
            .where(
                models.Notification.id == notification_id,
                models.Notification.status == expected_status,
                models.Notification.version == expected_version,
            )
            .values(version=models.Notification.version + 1, **values)
            .execution_options(synchronize_session=False)
        )
        result = self.db.execute(stmt)
        return result.rowcount == 1

    def list_due_ids(self, now: datetime, limit: int = 100) -> list[int]:
        """Ids of ``scheduled`` notifications whose ``scheduled_for`` is at or before *now*."""
        stmt = (
            select(models.Notification.id)
            .where(
                models.Notification.status == "scheduled",
                models.Notification.scheduled_for <= now,
            )
            .order_by(models.Notification.scheduled_for.asc(), models.Notification.id.asc())
            .limit(limit)
        )
        return list(self.db.execute(stmt).scalars().all())

    def list_for_owner(self, owner_id: str, limit: int = 50) -> list[models.Notification]:
        stmt = (
            select(models.Notification)
            .where(models.Notification.owner_id == owner_id)
            .order_by(models.Notification.created_at.desc(), models.Notification.id.desc())
            .limit(limit)
        )
        return list(self.db.execute(stmt).scalars().all())

    def status_counts(self, owner_id: str) -> dict[str, int]:
        stmt = (
            select(models.Notification.status, func.count())
            .where(models.Notification.owner_id == owner_id)
            .group_by(models.Notification.status)
        )
        return {status: count for status, count in self.db.execute(stmt).all()}


class SystemAlertRepository(BaseRepository[models.SystemAlert]):
    model = models.SystemAlert

    def list_for_owner(self, owner_id: str, unread_only: bool = False) -> list[models.SystemAlert]:
        stmt = select(models.SystemAlert).where(models.SystemAlert.owner_id == owner_id)
        if unread_only:
            stmt = stmt.where(models.SystemAlert.is_read.is_(False))
        stmt = stmt.order_by(models.SystemAlert.created_at.desc(), models.SystemAlert.id.desc())
        return list(self.db.execute(stmt).scalars().all())

    def mark_read(self, alert: models.SystemAlert, read_at: datetime) -> models.SystemAlert:
        if not alert.is_read:
            alert.is_read = True
            alert.read_at = read_at
            self.db.flush()
        return alert
