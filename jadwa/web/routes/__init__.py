"""Jadwa Web Route Modules.

Each module exports a ``router`` (APIRouter instance) that ``create_app``
includes; shared dependencies live in jadwa.web.dependencies and request
bodies in jadwa.web.schemas.
"""

from jadwa.web.routes import (
    admin,
    consultations,
    health,
    messages,
    payments,
    realtime,
    study_requests,
)

__all__ = [
    "consultations",
    "payments",
    "admin",
    "study_requests",
    "messages",
    "realtime",  # WebSocket relay endpoint
    "health",
]
