from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
import logging
from typing import Any

import httpx

from .message import NotificationMessage


@dataclass(frozen=True)
class WebhookSettings:
    webhook_url: str
    timeout_seconds: float
    user_agent: str


class BaseNotifier(ABC):
    """A chat webhook target. Subclasses set the platform name and success status."""

    name: str = "webhook"
    success_status: int = 200

    def __init__(self, settings: WebhookSettings) -> None:
        self._settings = settings
        self._logger = logging.getLogger(self.__module__)

    @abstractmethod
    def build_payload(self, message: NotificationMessage) -> dict[str, Any]:
        raise NotImplementedError

    async def send(self, message: NotificationMessage) -> bool:
        """Post the message once. Returns True if the target acknowledged it."""
        payload = self.build_payload(message)
        headers = {"User-Agent": self._settings.user_agent}

        async with httpx.AsyncClient(timeout=self._settings.timeout_seconds) as client:
            try:
                response = await client.post(self._settings.webhook_url, json=payload, headers=headers)
            except httpx.HTTPError as exc:
                self._logger.error("Error sending to %s: %s", self.name, exc)
                return False

        if response.status_code != self.success_status:
            self._logger.error(
                "Non-%s response from %s: %s",
                self.success_status,
                self.name,
                response.status_code,
            )
            return False
        self._logger.info("Message successfully sent to %s", self.name)
        return True
