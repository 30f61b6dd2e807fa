"""Notification sinks (in-app rows, optional Slack mirror)."""

from jadwa.notifications.notifier import DatabaseNotifier, Notifier

__all__ = ["Notifier", "DatabaseNotifier"]
