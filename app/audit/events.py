"""Audit action tags.

Canonical ``action`` values for the append-only audit trail.
"""
from __future__ import annotations

ENTITY_NOTIFICATION = "notification"

ACTION_CREATE = "notification.create"
ACTION_UPDATE = "notification.update"
ACTION_SCHEDULE = "notification.schedule"
ACTION_SEND = "notification.send"
ACTION_TIMESTAMP = "notification.timestamp"
ACTION_DISPATCH_RETRY = "notification.dispatch_retry"
ACTION_DELIVER = "notification.deliver"
ACTION_SENT = "notification.sent"
ACTION_FAILED = "notification.failed"
ACTION_READ = "notification.read"

VALID_ACTIONS: frozenset[str] = frozenset({
    ACTION_CREATE,
    ACTION_UPDATE,
    ACTION_SCHEDULE,
    ACTION_SEND,
    ACTION_TIMESTAMP,
    ACTION_DISPATCH_RETRY,
    ACTION_DELIVER,
    ACTION_SENT,
    ACTION_FAILED,
    ACTION_READ,
})

# Actions that record a status change; the rest are evidence of steps
# taken while a notification is ``sending``.
TRANSITION_ACTIONS: frozenset[str] = frozenset({
    ACTION_CREATE,
    ACTION_UPDATE,
    ACTION_SCHEDULE,
    ACTION_SEND,
    ACTION_SENT,
    ACTION_FAILED,
    ACTION_READ,
})

SYSTEM_ACTOR = "system"
