from __future__ import annotations

from typing import Any

from .base import BaseNotifier
from .message import NotificationMessage


class DiscordNotifier(BaseNotifier):
    name = "Discord"
    success_status = 204

    def build_payload(self, message: NotificationMessage) -> dict[str, Any]:
        return {"content": message.render()}
