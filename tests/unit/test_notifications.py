"""Tests for jadwa.notifications - database notifier and Slack mirror."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock, Mock, patch

import httpx
import pytest
from sqlalchemy import select

from jadwa.config import NotificationsConfig
from jadwa.db.connection import session_scope
from jadwa.db.models import NotificationModel
from jadwa.notifications.notifier import DatabaseNotifier
from jadwa.notifications.slack import send_slack_notification


def slack_client(post: AsyncMock) -> MagicMock:
    client_cls = MagicMock()
    client_cls.return_value.__aenter__.return_value = Mock(post=post)
    return client_cls


class TestSlackNotification:
    @pytest.mark.asyncio
    async def test_disabled_sends_nothing(self):
        post = AsyncMock()
        with patch("jadwa.notifications.slack.httpx.AsyncClient", slack_client(post)):
            sent = await send_slack_notification("hi", settings=NotificationsConfig(enabled=False))

        assert sent is False
        post.assert_not_called()

    @pytest.mark.asyncio
    async def test_enabled_without_url(self):
        sent = await send_slack_notification("hi", settings=NotificationsConfig(enabled=True))

        assert sent is False

    @pytest.mark.asyncio
    async def test_posts_to_webhook(self):
        post = AsyncMock(return_value=Mock(status_code=200, text="ok"))
        settings = NotificationsConfig(slack_webhook_url="https://hooks.slack.test/x", enabled=True)

        with patch("jadwa.notifications.slack.httpx.AsyncClient", slack_client(post)):
            sent = await send_slack_notification("hello", blocks=[{"type": "divider"}], settings=settings)

        assert sent is True
        post.assert_awaited_once()
        args, kwargs = post.call_args
        assert args == ("https://hooks.slack.test/x",)
        assert kwargs["json"] == {"text": "hello", "blocks": [{"type": "divider"}]}

    @pytest.mark.asyncio
    async def test_failures_return_false(self):
        settings = NotificationsConfig(slack_webhook_url="https://hooks.slack.test/x", enabled=True)

        rejected = AsyncMock(return_value=Mock(status_code=500, text="boom"))
        with patch("jadwa.notifications.slack.httpx.AsyncClient", slack_client(rejected)):
            assert await send_slack_notification("hello", settings=settings) is False

        unreachable = AsyncMock(side_effect=httpx.ConnectError("refused"))
        with patch("jadwa.notifications.slack.httpx.AsyncClient", slack_client(unreachable)):
            assert await send_slack_notification("hello", settings=settings) is False


class TestDatabaseNotifier:
    @pytest.mark.asyncio
    async def test_records_unread_notification(self, session_factory, people):
        notifier = DatabaseNotifier(session_factory)

        await notifier.notify(
            people.client.user_id,
            "Consultation Approved",
            "Your consultation has been approved",
            "booking",
            "/dashboard/client/chat",
        )

        async with session_scope(session_factory) as session:
            rows = (await session.execute(select(NotificationModel))).scalars().all()
        assert len(rows) == 1
        assert rows[0].user_id == people.client.user_id
        assert rows[0].status == "unread"
        assert rows[0].type == "booking"
        assert rows[0].action_url == "/dashboard/client/chat"

    @pytest.mark.asyncio
    async def test_mirrors_to_slack_when_enabled(self, session_factory, people):
        settings = NotificationsConfig(slack_webhook_url="https://hooks.slack.test/x", enabled=True)
        notifier = DatabaseNotifier(session_factory, settings=settings)

        with patch(
            "jadwa.notifications.notifier.send_slack_notification", AsyncMock(return_value=True)
        ) as slack:
            await notifier.notify(people.consultant.user_id, "New Consultation Assignment", "Chat", "booking")

        slack.assert_awaited_once_with(
            "[booking] New Consultation Assignment: Chat", settings=settings
        )
