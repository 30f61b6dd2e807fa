"""Database layer for Jadwa with async SQLAlchemy."""

from jadwa.db.connection import get_session, init_db
from jadwa.db.models import (
    AdminLogModel,
    Base,
    ConsultationModel,
    MessageModel,
    NotificationModel,
    PaymentModel,
    StudyRequestModel,
    UserModel,
)

__all__ = [
    "get_session",
    "init_db",
    "Base",
    "UserModel",
    "ConsultationModel",
    "StudyRequestModel",
    "PaymentModel",
    "MessageModel",
    "NotificationModel",
    "AdminLogModel",
]
