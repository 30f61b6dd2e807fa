"""
Error taxonomy for the engagement engine.

Every error carries a stable machine-readable ``kind`` and a human-readable
message. Callers (HTTP routes, the relay) render them with ``to_dict()``.
None of these are retried by the engine itself.
"""

from __future__ import annotations

from typing import Any


class JadwaError(Exception):
    """Base class for all engine errors."""

    kind: str = "error"
    http_status: int = 500
    retryable: bool = False

    def __init__(self, message: str, *, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind,
            "message": self.message,
            "details": self.details,
        }

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.message!r})"


class ValidationError(JadwaError):
    """Malformed or missing required input."""

    kind = "validation"
    http_status = 400


class AuthorizationError(JadwaError):
    """Actor lacks the role or ownership required for the operation."""

    kind = "authorization"
    http_status = 403


class NotFoundError(JadwaError):
    """Referenced engagement, payment, request or message does not exist."""

    kind = "not_found"
    http_status = 404


class PreconditionFailed(JadwaError):
    """A required prior state is missing (wrong order of operations)."""

    kind = "precondition_failed"
    http_status = 409


class InvalidTransition(JadwaError):
    """Requested status is not reachable from the current status."""

    kind = "invalid_transition"
    http_status = 409

    def __init__(self, entity: str, current: str, target: str):
        super().__init__(
            f"Cannot move {entity} from '{current}' to '{target}'",
            details={"entity": entity, "current": current, "target": target},
        )
        self.current = current
        self.target = target


class ConflictError(JadwaError):
    """Row changed between read and write; re-read and retry."""

    kind = "conflict"
    http_status = 409
    retryable = True


class PersistenceError(JadwaError):
    """The durable store failed."""

    kind = "persistence"
    http_status = 503
