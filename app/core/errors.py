"""Error taxonomy for the notification lifecycle.

- ``ValidationError``: malformed caller input; never retried.
- ``StateViolation``: illegal or lost-race transition; never retried and
  never coerced to another state.
- ``TransientCollaboratorError``: timeout / 5xx from the timestamp
  authority or a delivery channel; retried inside the orchestrator only.
- ``PermanentCollaboratorError``: explicit rejection; ends the notification
  in ``failed`` with the message as ``failure_reason``.
- ``AuditWriteError``: the audit store refused the entry; the triggering
  transaction must be rolled back.
"""
from __future__ import annotations


class ValidationError(ValueError):
    """Raised for malformed commands or inputs."""


class StateViolation(ValueError):
    """Raised when a transition is not allowed from the current state."""

    def __init__(self, message: str, *, current: str | None = None, target: str | None = None) -> None:
        super().__init__(message)
        self.current = current
        self.target = target


class NotificationNotFound(KeyError):
    """Raised when a notification id does not exist."""

    def __str__(self) -> str:
        return f"Notification {self.args[0]} not found"


class CollaboratorError(RuntimeError):
    """Base class for timestamp authority and delivery channel failures."""

    kind: str = "collaborator_error"

    def __init__(self, message: str, *, collaborator: str) -> None:
        super().__init__(message)
        self.collaborator = collaborator


class TransientCollaboratorError(CollaboratorError):
    kind = "transient"


class PermanentCollaboratorError(CollaboratorError):
    kind = "permanent"


class AuditWriteError(RuntimeError):
    """Raised when an audit entry cannot be persisted."""
