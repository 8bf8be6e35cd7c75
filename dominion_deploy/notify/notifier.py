"""Notifier implementations: Slack incoming webhook, no-op, and recording."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import List, Optional

import httpx

from dominion_deploy.exceptions import NotificationError

logger = logging.getLogger(__name__)


class Notifier(ABC):
    """Sends one status message to an external channel."""

    @abstractmethod
    def send(self, message: str) -> None:
        """Deliver ``message``; raise NotificationError if it cannot be sent."""


class NullNotifier(Notifier):
    """Used when no channel is configured; messages only reach the log."""

    def send(self, message: str) -> None:
        logger.debug("Notification (no channel configured): %s", message)


class RecordingNotifier(Notifier):
    """Keeps messages in memory, for dry runs and tests."""

    def __init__(self) -> None:
        self.messages: List[str] = []

    def send(self, message: str) -> None:
        self.messages.append(message)


class SlackNotifier(Notifier):
    """Posts ``{"text": message}`` to a Slack incoming webhook.

    Args:
        webhook_url: Incoming webhook URL
        client: Optional preconfigured httpx client (tests pass one built on
            ``httpx.MockTransport``)
        timeout: Request timeout in seconds
    """

    def __init__(
        self,
        webhook_url: str,
        client: httpx.Client | None = None,
        timeout: float = 10.0,
    ):
        if not webhook_url:
            raise ValueError("webhook_url must not be empty")
        self.webhook_url = webhook_url
        self.client = client
        self.timeout = timeout

    def send(self, message: str) -> None:
        payload = {"text": message}
        try:
            if self.client is not None:
                response = self.client.post(self.webhook_url, json=payload)
            else:
                response = httpx.post(self.webhook_url, json=payload, timeout=self.timeout)
            response.raise_for_status()
        except httpx.HTTPError as exc:
            raise NotificationError(f"Slack notification failed: {exc}") from exc


def build_notifier(webhook_url: Optional[str]) -> Notifier:
    """Return a Slack notifier when a webhook is configured, else a no-op."""
    if webhook_url:
        return SlackNotifier(webhook_url)
    return NullNotifier()
