from __future__ import annotations

from dataclasses import dataclass
import logging
import os
import re
from typing import Any

import yaml


DEFAULT_POLL_INTERVAL = "10m"
DEFAULT_STATE_FILE = ".local/cache/issue_cache.txt"
DEFAULT_NOTIFY_DELAY_SECONDS = 0.5

_DURATION_RE = re.compile(r"(\d+(?:\.\d+)?)(ms|h|m|s)")
_DURATION_UNITS = {"h": 3600.0, "m": 60.0, "s": 1.0, "ms": 0.001}


@dataclass(frozen=True)
class NotifierTarget:
    type: str
    webhook_url: str


@dataclass(frozen=True)
class NotificationConfig:
    targets: tuple[NotifierTarget, ...]


@dataclass(frozen=True)
class Settings:
    poll_interval_seconds: float
    state_file: str
    request_timeout_seconds: float
    user_agent: str
    notify_delay_seconds: float


@dataclass(frozen=True)
class Config:
    repo_url: str | None
    notifications: NotificationConfig
    settings: Settings


def _expand_env(value: Any) -> Any:
    if isinstance(value, str):
        return os.path.expandvars(value)
    if isinstance(value, list):
        return [_expand_env(item) for item in value]
    if isinstance(value, dict):
        return {key: _expand_env(val) for key, val in value.items()}
    return value


def _require_dict(value: Any, name: str) -> dict[str, Any]:
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ValueError(f"{name} must be a mapping")
    return value


def load_config(path: str | None, overrides: dict[str, Any] | None = None) -> Config:
    """Build the process configuration.

    Values come from the YAML file at ``path`` (skipped when ``path`` is None
    or the file does not exist), then from ``overrides``, whose non-None
    entries win. Recognised override keys: ``repo_url``, ``discord_webhook_url``,
    ``google_chat_webhook_url``, ``poll_interval``, ``state_file``.
    """
    data: dict[str, Any] = {}
    if path and os.path.exists(path):
        with open(path, "r", encoding="utf-8") as handle:
            raw = yaml.safe_load(handle) or {}
        data = _expand_env(raw)
        if not isinstance(data, dict):
            raise ValueError("Config root must be a mapping")

    overrides = {key: value for key, value in (overrides or {}).items() if value is not None}

    notifications_raw = _require_dict(data.get("notifications"), "notifications")
    discord_raw = _require_dict(notifications_raw.get("discord"), "notifications.discord")
    google_chat_raw = _require_dict(notifications_raw.get("google_chat"), "notifications.google_chat")
    notifications = _load_notifications(
        discord_url=overrides.get("discord_webhook_url", discord_raw.get("webhook_url")),
        google_chat_url=overrides.get("google_chat_webhook_url", google_chat_raw.get("webhook_url")),
    )

    settings_raw = _require_dict(data.get("settings"), "settings")
    poll_interval = parse_duration(
        overrides.get("poll_interval", settings_raw.get("poll_interval", DEFAULT_POLL_INTERVAL))
    )
    if poll_interval <= 0:
        raise ValueError("settings.poll_interval must be positive")

    notify_delay = float(settings_raw.get("notify_delay_seconds", DEFAULT_NOTIFY_DELAY_SECONDS))
    if notify_delay < 0:
        raise ValueError("settings.notify_delay_seconds must be >= 0")

    settings = Settings(
        poll_interval_seconds=poll_interval,
        state_file=str(overrides.get("state_file", settings_raw.get("state_file", DEFAULT_STATE_FILE))),
        request_timeout_seconds=float(settings_raw.get("request_timeout_seconds", 20)),
        user_agent=str(settings_raw.get("user_agent", "issuewatch/0.1")),
        notify_delay_seconds=notify_delay,
    )

    repo_url = overrides.get("repo_url", data.get("repo_url"))
    return Config(
        repo_url=_normalize_url(repo_url, "repo URL"),
        notifications=notifications,
        settings=settings,
    )


def validate_config(config: Config) -> None:
    """Raise ValueError unless a repository and at least one webhook are configured."""
    if not config.repo_url or not config.notifications.targets:
        raise ValueError(
            "GitHub repo and at least one webhook URL "
            "(--discord-hook-url or --google-chat-hook-url) are required"
        )


def parse_duration(value: Any) -> float:
    """Parse ``10m``, ``90s``, ``1h30m`` or ``500ms`` into seconds.

    A bare number is read as minutes.
    """
    if isinstance(value, bool):
        raise ValueError(f"Invalid duration: {value!r}")
    if isinstance(value, (int, float)):
        return float(value) * 60
    text = str(value).strip().lower()
    if not text:
        raise ValueError("Duration must not be empty")
    try:
        return float(text) * 60
    except ValueError:
        pass

    total = 0.0
    position = 0
    for match in _DURATION_RE.finditer(text):
        if match.start() != position:
            raise ValueError(f"Invalid duration: {value!r}")
        total += float(match.group(1)) * _DURATION_UNITS[match.group(2)]
        position = match.end()
    if position != len(text):
        raise ValueError(f"Invalid duration: {value!r}")
    return total


def _load_notifications(discord_url: Any, google_chat_url: Any) -> NotificationConfig:
    targets: list[NotifierTarget] = []
    discord = _normalize_url(discord_url, "Discord webhook URL")
    google_chat = _normalize_url(google_chat_url, "Google Chat webhook URL")
    if discord:
        targets.append(NotifierTarget(type="discord", webhook_url=discord))
    if google_chat:
        targets.append(NotifierTarget(type="google_chat", webhook_url=google_chat))
    return NotificationConfig(targets=tuple(targets))


def _normalize_url(value: Any, name: str) -> str | None:
    if not value or not isinstance(value, str):
        return None
    value = value.strip()
    if "${" in value:
        logging.getLogger(__name__).debug("Ignoring %s with unexpanded placeholder: %s", name, value)
        return None
    if not (value.startswith("http://") or value.startswith("https://")):
        logging.getLogger(__name__).warning("Ignoring %s %r: not an http(s) URL", name, value)
        return None
    return value
