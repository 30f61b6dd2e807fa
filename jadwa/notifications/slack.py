import httpx
import structlog

from jadwa.config import NotificationsConfig, get_config

logger = structlog.get_logger(__name__)


async def send_slack_notification(
    message: str,
    blocks: list[dict] | None = None,
    settings: NotificationsConfig | None = None,
) -> bool:
    """Send a notification to Slack via webhook.

    Args:
        message: The fallback text message.
        blocks: Optional list of Slack Block Kit blocks for rich formatting.
        settings: Notification settings; defaults to the application config.

    Returns:
        bool: True if successful, False otherwise.
    """
    settings = settings or get_config().notifications

    # Check if notifications are enabled and webhook URL is configured
    if not settings.enabled:
        logger.debug("slack_notifications_disabled_by_config")
        return False

    if not settings.slack_webhook_url:
        logger.warning("slack_webhook_url_missing", detail="Notifications enabled but no webhook URL configured")
        return False

    payload: dict = {"text": message}
    if blocks:
        payload["blocks"] = blocks

    try:
        async with httpx.AsyncClient() as client:
            response = await client.post(settings.slack_webhook_url, json=payload, timeout=10.0)
            if response.status_code != 200:
                logger.error(
                    "slack_notification_failed",
                    status=response.status_code,
                    response=response.text,
                )
                return False

            logger.info("slack_notification_sent")
            return True
    except httpx.HTTPError as e:
        logger.error("slack_notification_error", error=str(e))
        return False
