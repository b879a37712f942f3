from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class NotificationMessage:
    title: str
    url: str

    def render(self) -> str:
        return f"New Issue Created:\n\nTitle: {self.title}\nURL: {self.url}"
