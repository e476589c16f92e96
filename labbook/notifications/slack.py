"""Admin channel alerts over a Slack incoming webhook."""

import logging

import httpx

from labbook.config import get_config

logger = logging.getLogger(__name__)


def booking_review_blocks(reference_number: str, message: str, portal_url: str) -> list[dict]:
    """Block Kit layout for a booking that needs an administrator."""
    return [
        {
            "type": "section",
            "text": {"type": "mrkdwn", "text": f"*{reference_number}*\n{message}"},
        },
        {
            "type": "actions",
            "elements": [
                {
                    "type": "button",
                    "text": {"type": "plain_text", "text": "Open admin queue"},
                    "url": f"{portal_url.rstrip('/')}/admin/bookings",
                }
            ],
        },
    ]


async def send_slack_notification(message: str, blocks: list[dict] | None = None) -> bool:
    """Post an alert to the admin channel.

    Args:
        message: Plain-text fallback shown in notifications.
        blocks: Optional Block Kit layout.

    Returns:
        True if Slack accepted the message. Disabled alerts, a missing
        webhook and delivery failures all return False.
    """
    settings = get_config().notifications

    if not settings.enabled:
        logger.debug("slack_alerts_disabled")
        return False

    if not settings.slack_webhook_url:
        logger.warning("slack_webhook_url_missing: alerts enabled without SLACK_WEBHOOK_URL")
        return False

    payload: dict = {"text": message}
    if blocks:
        payload["blocks"] = blocks

    try:
        async with httpx.AsyncClient(timeout=10.0) as client:
            response = await client.post(settings.slack_webhook_url, json=payload)
    except httpx.HTTPError as e:
        logger.error("slack_alert_error: %s", e)
        return False

    if response.status_code != 200:
        logger.error("slack_alert_rejected: status=%s body=%s", response.status_code, response.text)
        return False

    logger.info("slack_alert_sent")
    return True
