"""In-app notifications for engagement participants.

Delivery to devices (push/SMS/email) happens elsewhere; the engine only
records the notification and optionally mirrors it to Slack.
"""

from __future__ import annotations

from typing import Protocol
from uuid import UUID

import structlog
from sqlalchemy.orm import sessionmaker

from jadwa.config import NotificationsConfig
from jadwa.db.connection import get_session_factory, session_scope
from jadwa.db.models import NotificationModel
from jadwa.notifications.slack import send_slack_notification

logger = structlog.get_logger(__name__)


class Notifier(Protocol):
    async def notify(
        self,
        user_id: UUID,
        title: str,
        message: str,
        category: str,
        action_ref: str | None = None,
    ) -> None: ...


class DatabaseNotifier:
    """Writes an unread notification row per call."""

    def __init__(
        self,
        session_factory: sessionmaker | None = None,
        settings: NotificationsConfig | None = None,
    ):
        self._session_factory = session_factory
        self._settings = settings

    async def notify(
        self,
        user_id: UUID,
        title: str,
        message: str,
        category: str,
        action_ref: str | None = None,
    ) -> None:
        async with session_scope(self._session_factory or get_session_factory()) as session:
            session.add(
                NotificationModel(
                    user_id=user_id,
                    title=title,
                    message=message,
                    type=category,
                    status="unread",
                    action_url=action_ref,
                )
            )

        logger.info("notification_recorded", user_id=str(user_id), category=category, title=title)

        if self._settings is not None and self._settings.enabled:
            await send_slack_notification(f"[{category}] {title}: {message}", settings=self._settings)
