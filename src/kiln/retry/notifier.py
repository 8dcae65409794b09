"""Human notification channel."""

from __future__ import annotations

import logging
from typing import Protocol

import httpx

from .models import BuildNotification

logger = logging.getLogger(__name__)


class Notifier(Protocol):
    def notify(self, requester_id: str, notification: BuildNotification) -> None:
        ...


class InMemoryNotifier:
    """Collects notifications; used in-process and in tests."""

    def __init__(self) -> None:
        self.sent: list[tuple[str, BuildNotification]] = []

    def notify(self, requester_id: str, notification: BuildNotification) -> None:
        self.sent.append((requester_id, notification))

    def for_build(self, build_id: str) -> list[BuildNotification]:
        return [notification for _, notification in self.sent if notification.build_id == build_id]


class WebhookNotifier:
    """Posts ``{"requesterId", "event"}`` to a webhook that fans out to the requester."""

    def __init__(self, url: str, timeout_s: float = 10.0, client: httpx.Client | None = None) -> None:
        self.url = url
        self.timeout_s = timeout_s
        self._client = client or httpx.Client(timeout=timeout_s)

    def notify(self, requester_id: str, notification: BuildNotification) -> None:
        response = self._client.post(
            self.url,
            json={"requesterId": requester_id, "event": notification.model_dump(mode="json")},
            timeout=self.timeout_s,
        )
        response.raise_for_status()
        logger.debug("Delivered %s for build %s", notification.type.value, notification.build_id)
