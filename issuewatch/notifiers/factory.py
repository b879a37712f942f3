from __future__ import annotations

import logging

from .base import BaseNotifier, WebhookSettings
from .discord import DiscordNotifier
from .google_chat import GoogleChatNotifier
from .message import NotificationMessage
from ..config import Config
from ..feeds.base import Issue


NOTIFIER_TYPES: dict[str, type[BaseNotifier]] = {
    "discord": DiscordNotifier,
    "google_chat": GoogleChatNotifier,
}


def build_notifiers(config: Config) -> list[BaseNotifier]:
    logger = logging.getLogger(__name__)
    notifiers: list[BaseNotifier] = []
    for target in config.notifications.targets:
        notifier_cls = NOTIFIER_TYPES.get(target.type.lower())
        if notifier_cls is None:
            logger.warning("Unknown notifier type %r; skipping", target.type)
            continue
        notifiers.append(
            notifier_cls(
                WebhookSettings(
                    webhook_url=target.webhook_url,
                    timeout_seconds=config.settings.request_timeout_seconds,
                    user_agent=config.settings.user_agent,
                )
            )
        )
    return notifiers


def build_notification_message(issue: Issue) -> NotificationMessage:
    return NotificationMessage(title=issue.title, url=issue.url)
