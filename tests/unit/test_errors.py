"""Tests for jadwa.errors - error taxonomy."""

import pytest

from jadwa.errors import (
    AuthorizationError,
    ConflictError,
    InvalidTransition,
    JadwaError,
    NotFoundError,
    PersistenceError,
    PreconditionFailed,
    ValidationError,
)


@pytest.mark.parametrize(
    "error_cls, kind, status",
    [
        (ValidationError, "validation", 400),
        (AuthorizationError, "authorization", 403),
        (NotFoundError, "not_found", 404),
        (PreconditionFailed, "precondition_failed", 409),
        (ConflictError, "conflict", 409),
        (PersistenceError, "persistence", 503),
    ],
)
def test_kinds_and_statuses(error_cls, kind, status):
    err = error_cls("boom")
    assert isinstance(err, JadwaError)
    assert err.kind == kind
    assert err.http_status == status
    assert err.to_dict() == {"kind": kind, "message": "boom", "details": {}}


def test_invalid_transition_carries_states():
    err = InvalidTransition("consultation", "completed", "in_progress")

    assert err.kind == "invalid_transition"
    assert err.current == "completed"
    assert err.target == "in_progress"
    assert err.to_dict()["details"] == {
        "entity": "consultation",
        "current": "completed",
        "target": "in_progress",
    }


def test_only_conflicts_are_retryable():
    assert ConflictError("x").retryable is True
    assert PreconditionFailed("x").retryable is False
    assert ValidationError("x").retryable is False
