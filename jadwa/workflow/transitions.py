"""
Engagement state machines.

Consultation: pending -> confirmed -> in_progress -> completed,
cancelled reachable from pending or confirmed.
Study request: pending -> quoted -> approved -> completed,
rejected reachable from pending or quoted; quoted -> quoted is a re-quote.
"""

from __future__ import annotations

from typing import Dict, Set

from jadwa.errors import InvalidTransition
from jadwa.models import ConsultationStatus, StudyStatus


def _closure(graph: Dict[str, Set[str]], start: str) -> Set[str]:
    seen: Set[str] = set()
    frontier = list(graph.get(start, set()))
    while frontier:
        state = frontier.pop()
        if state in seen:
            continue
        seen.add(state)
        frontier.extend(graph.get(state, set()))
    return seen


class ConsultationStateValidator:
    """Validates consultation status changes."""

    VALID_TRANSITIONS: Dict[str, Set[str]] = {
        ConsultationStatus.PENDING.value: {
            ConsultationStatus.CONFIRMED.value,
            ConsultationStatus.CANCELLED.value,
        },
        ConsultationStatus.CONFIRMED.value: {
            ConsultationStatus.IN_PROGRESS.value,
            ConsultationStatus.CANCELLED.value,
        },
        ConsultationStatus.IN_PROGRESS.value: {
            ConsultationStatus.COMPLETED.value,
        },
        # Terminal states (no transitions allowed)
        ConsultationStatus.COMPLETED.value: set(),
        ConsultationStatus.CANCELLED.value: set(),
    }

    # Statuses at or past confirmation; entering one requires a settled payment
    ENGAGED_STATUSES: Set[str] = {
        ConsultationStatus.CONFIRMED.value,
        ConsultationStatus.IN_PROGRESS.value,
        ConsultationStatus.COMPLETED.value,
    }

    @classmethod
    def is_valid_transition(cls, current_status: str, new_status: str, is_admin: bool = False) -> bool:
        """Direct edges for everyone; admins may also skip forward."""
        if new_status in cls.VALID_TRANSITIONS.get(current_status, set()):
            return True
        if is_admin:
            return new_status in _closure(cls.VALID_TRANSITIONS, current_status)
        return False

    @classmethod
    def validate(cls, current_status: str, new_status: str, is_admin: bool = False) -> None:
        if new_status not in cls.VALID_TRANSITIONS:
            raise InvalidTransition("consultation", current_status, new_status)
        if not cls.is_valid_transition(current_status, new_status, is_admin=is_admin):
            raise InvalidTransition("consultation", current_status, new_status)

    @classmethod
    def get_valid_transitions(cls, current_status: str) -> Set[str]:
        return cls.VALID_TRANSITIONS.get(current_status, set())

    @classmethod
    def is_terminal_state(cls, status: str) -> bool:
        return len(cls.VALID_TRANSITIONS.get(status, set())) == 0


class StudyStateValidator:
    """Validates study request status changes."""

    VALID_TRANSITIONS: Dict[str, Set[str]] = {
        StudyStatus.PENDING.value: {
            StudyStatus.QUOTED.value,
            StudyStatus.REJECTED.value,
        },
        StudyStatus.QUOTED.value: {
            StudyStatus.QUOTED.value,  # Re-quote
            StudyStatus.APPROVED.value,
            StudyStatus.REJECTED.value,
        },
        StudyStatus.APPROVED.value: {
            StudyStatus.COMPLETED.value,
        },
        StudyStatus.COMPLETED.value: set(),
        StudyStatus.REJECTED.value: set(),
    }

    @classmethod
    def is_valid_transition(cls, current_status: str, new_status: str) -> bool:
        return new_status in cls.VALID_TRANSITIONS.get(current_status, set())

    @classmethod
    def validate(cls, current_status: str, new_status: str) -> None:
        if not cls.is_valid_transition(current_status, new_status):
            raise InvalidTransition("study request", current_status, new_status)

    @classmethod
    def is_terminal_state(cls, status: str) -> bool:
        return len(cls.VALID_TRANSITIONS.get(status, set())) == 0
