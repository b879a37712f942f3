from __future__ import annotations

from dataclasses import dataclass
import html
import logging
import re

import httpx

from .base import BaseFeed, FetchError, Issue


GITHUB_HOST = "https://github.com"

# Anchors on the listing page look like:
# <a id="issue_101_link" class="Link--primary ... markdown-title" data-hovercard-type="issue" href="/o/r/issues/101">Title</a>
ISSUE_LINK_RE = re.compile(
    r'<a id="issue_(\d+)_link" class="(?:[^"]*\s)?Link--primary(?:\s[^"]*)?" [^>]*href="([^"]+)"[^>]*>([^<]+)</a>'
)


@dataclass
class GitHubSettings:
    repo_url: str
    timeout_seconds: float
    user_agent: str


class GitHubIssuesFeed(BaseFeed):
    def __init__(self, settings: GitHubSettings) -> None:
        self._settings = settings
        self._logger = logging.getLogger(__name__)

    async def fetch_recent(self) -> list[Issue]:
        body = await self.fetch_listing()
        self._logger.debug("Parsing issues...")
        issues = parse_issues(body)
        self._logger.info("Found %d matches", len(issues))
        return issues

    async def fetch_listing(self) -> str:
        headers = {"User-Agent": self._settings.user_agent}
        async with httpx.AsyncClient(timeout=self._settings.timeout_seconds) as client:
            try:
                response = await client.get(
                    self._settings.repo_url, headers=headers, follow_redirects=True
                )
            except httpx.HTTPError as exc:
                raise FetchError(f"request to {self._settings.repo_url} failed: {exc}") from exc
        if response.status_code != 200:
            raise FetchError(f"received status code {response.status_code}")
        return response.text


def parse_issues(markup: str) -> list[Issue]:
    issues: list[Issue] = []
    for match in ISSUE_LINK_RE.finditer(markup):
        issue_id, href, title = match.groups()
        issues.append(
            Issue(
                id=issue_id,
                url=f"{GITHUB_HOST}{href}",
                title=html.unescape(title).strip(),
            )
        )
    return issues
