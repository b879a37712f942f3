from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass(frozen=True)
class Issue:
    id: str
    url: str
    title: str


class FetchError(Exception):
    """Raised when the issue listing cannot be retrieved."""


class BaseFeed(ABC):
    @abstractmethod
    async def fetch_recent(self) -> list[Issue]:
        """Fetch the issues currently listed, in page order. Raises FetchError on failure."""
        raise NotImplementedError
