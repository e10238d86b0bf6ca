"""
Chat webhook notifications.

Notifications are observability, not a pipeline gate: every failure
(missing URL, non-success response, transport error) is logged and
swallowed so callers never need to guard the call.
"""

from __future__ import annotations

import logging
from typing import Optional

import requests

from gmudgate.errors import NotificationError
from gmudgate.observability.internal_metrics import incr

logger = logging.getLogger(__name__)

_TIMEOUT_SECONDS = 10


def _send_webhook(webhook_url: str, message: str, timeout: float) -> None:
    payload = {"content": message}
    try:
        response = requests.post(webhook_url, json=payload, timeout=timeout)
    except requests.RequestException as exc:
        raise NotificationError(f"webhook request failed: {exc}") from exc
    if not response.ok:
        raise NotificationError(f"webhook returned HTTP {response.status_code}: {response.text[:200]}")


def notify(webhook_url: Optional[str], message: str, timeout: float = _TIMEOUT_SECONDS) -> bool:
    """Deliver ``message`` to the chat webhook. Returns True when delivered."""
    if not webhook_url:
        logger.debug("Notification webhook not configured, skipping: %s", message.splitlines()[0] if message else "")
        return False
    try:
        _send_webhook(webhook_url, message, timeout)
    except NotificationError as exc:
        incr("notifications_failed")
        logger.warning("Failed to send notification: %s", exc)
        return False
    incr("notifications_sent")
    logger.info("Notification sent")
    return True


class WebhookNotifier:
    """Binds a webhook URL so the workflow can call ``notify(message)``."""

    def __init__(self, webhook_url: Optional[str], timeout: float = _TIMEOUT_SECONDS):
        self.webhook_url = webhook_url or ""
        self.timeout = timeout

    def notify(self, message: str) -> bool:
        return notify(self.webhook_url, message, timeout=self.timeout)
