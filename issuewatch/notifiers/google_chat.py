from __future__ import annotations

from typing import Any

from .base import BaseNotifier
from .message import NotificationMessage


class GoogleChatNotifier(BaseNotifier):
    name = "Google Chat"
    success_status = 200

    def build_payload(self, message: NotificationMessage) -> dict[str, Any]:
        return {"text": message.render()}
