from __future__ import annotations

import os
import tempfile
import unittest
from unittest.mock import AsyncMock, patch

import httpx

from issuewatch.config import Config, NotificationConfig, NotifierTarget, Settings
from issuewatch.feeds.github import GitHubIssuesFeed, GitHubSettings
from issuewatch.main import poll_once
from issuewatch.notifiers.factory import build_notifiers
from issuewatch.state import load_state, save_state


ISSUE_CLASS = "Link--primary v-align-middle no-underline h4 js-navigation-open markdown-title"
REPO_URL = "https://github.com/o/r/issues"
DISCORD_URL = "https://discord.example/hook"
CHAT_URL = "https://chat.example/hook"


def _anchor(issue_id: str, title: str) -> str:
    return (
        f'<a id="issue_{issue_id}_link" class="{ISSUE_CLASS}" '
        f'data-hovercard-type="issue" href="/o/r/issues/{issue_id}">{title}</a>'
    )


TWO_ISSUES_PAGE = f"<div>{_anchor('101', 'Fix crash')}</div><div>{_anchor('102', 'Add docs')}</div>"


class PollOnceTests(unittest.IsolatedAsyncioTestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self._tmp.cleanup)
        self.state_file = os.path.join(self._tmp.name, ".local", "cache", "issue_cache.txt")
        self.events: list[tuple] = []

    def _config(self, *targets: NotifierTarget) -> Config:
        return Config(
            repo_url=REPO_URL,
            notifications=NotificationConfig(
                targets=targets or (NotifierTarget(type="discord", webhook_url=DISCORD_URL),)
            ),
            settings=Settings(
                poll_interval_seconds=600,
                state_file=self.state_file,
                request_timeout_seconds=5,
                user_agent="issuewatch/test",
                notify_delay_seconds=0.5,
            ),
        )

    async def _run(
        self,
        config: Config,
        page: str = TWO_ISSUES_PAGE,
        listing_status: int = 200,
        webhook_statuses: dict[str, int] | None = None,
    ) -> int:
        statuses = webhook_statuses or {DISCORD_URL: 204, CHAT_URL: 200}

        async def fake_post(url, json=None, headers=None):
            self.events.append(("post", url, json))
            return httpx.Response(statuses[url])

        async def fake_sleep(delay):
            self.events.append(("sleep", delay))

        feed = GitHubIssuesFeed(
            GitHubSettings(repo_url=config.repo_url, timeout_seconds=5, user_agent="issuewatch/test")
        )
        notifiers = build_notifiers(config)

        with patch("httpx.AsyncClient") as mock_client, patch(
            "issuewatch.main.asyncio.sleep", new=AsyncMock(side_effect=fake_sleep)
        ):
            instance = mock_client.return_value.__aenter__.return_value
            instance.get = AsyncMock(return_value=httpx.Response(listing_status, text=page))
            instance.post = AsyncMock(side_effect=fake_post)
            return await poll_once(feed, notifiers, config.settings)

    def _posts(self) -> list[tuple]:
        return [event for event in self.events if event[0] == "post"]

    async def test_new_issues_are_notified_and_persisted(self) -> None:
        count = await self._run(self._config())

        self.assertEqual(count, 2)
        self.assertEqual(
            self.events,
            [
                (
                    "post",
                    DISCORD_URL,
                    {"content": "New Issue Created:\n\nTitle: Fix crash\nURL: https://github.com/o/r/issues/101"},
                ),
                ("sleep", 0.5),
                (
                    "post",
                    DISCORD_URL,
                    {"content": "New Issue Created:\n\nTitle: Add docs\nURL: https://github.com/o/r/issues/102"},
                ),
                ("sleep", 0.5),
            ],
        )
        self.assertEqual(load_state(self.state_file), {"101", "102"})

    async def test_already_seen_issue_is_skipped(self) -> None:
        save_state(self.state_file, {"101"})

        count = await self._run(self._config())

        self.assertEqual(count, 1)
        posts = self._posts()
        self.assertEqual(len(posts), 1)
        self.assertIn("Title: Add docs", posts[0][2]["content"])
        self.assertEqual(load_state(self.state_file), {"101", "102"})

    async def test_second_cycle_sends_nothing(self) -> None:
        config = self._config()
        await self._run(config)
        self.events.clear()

        count = await self._run(config)

        self.assertEqual(count, 0)
        self.assertEqual(self.events, [])
        self.assertEqual(load_state(self.state_file), {"101", "102"})

    async def test_failed_fetch_leaves_storage_untouched(self) -> None:
        save_state(self.state_file, {"7"})

        with patch("issuewatch.main.save_state") as mock_save:
            count = await self._run(self._config(), listing_status=500)

        self.assertEqual(count, 0)
        self.assertEqual(self._posts(), [])
        mock_save.assert_not_called()
        self.assertEqual(load_state(self.state_file), {"7"})

    async def test_webhook_failure_still_marks_issue_seen(self) -> None:
        with self.assertLogs("issuewatch.notifiers.discord", level="ERROR") as logs:
            count = await self._run(self._config(), webhook_statuses={DISCORD_URL: 500})

        self.assertEqual(count, 2)
        self.assertTrue(any("Non-204" in line for line in logs.output))
        self.assertEqual(load_state(self.state_file), {"101", "102"})

    async def test_every_target_is_tried_even_when_one_fails(self) -> None:
        config = self._config(
            NotifierTarget(type="discord", webhook_url=DISCORD_URL),
            NotifierTarget(type="google_chat", webhook_url=CHAT_URL),
        )

        await self._run(config, webhook_statuses={DISCORD_URL: 429, CHAT_URL: 200})

        posted_urls = [event[1] for event in self._posts()]
        self.assertEqual(posted_urls, [DISCORD_URL, CHAT_URL, DISCORD_URL, CHAT_URL])
        self.assertEqual(self._posts()[1][2], {"text": self._posts()[0][2]["content"]})
        self.assertEqual(load_state(self.state_file), {"101", "102"})

    async def test_unreadable_cache_aborts_before_notifying(self) -> None:
        with patch("issuewatch.main.load_state", side_effect=PermissionError("denied")), patch(
            "issuewatch.main.save_state"
        ) as mock_save:
            count = await self._run(self._config())

        self.assertEqual(count, 0)
        self.assertEqual(self._posts(), [])
        mock_save.assert_not_called()

    async def test_corrupt_cache_aborts_before_notifying(self) -> None:
        os.makedirs(os.path.dirname(self.state_file), exist_ok=True)
        with open(self.state_file, "wb") as handle:
            handle.write(b"101\n\xff\n")

        with patch("issuewatch.main.save_state") as mock_save:
            with self.assertLogs("issuewatch.main", level="ERROR") as logs:
                count = await self._run(self._config())

        self.assertEqual(count, 0)
        self.assertEqual(self._posts(), [])
        mock_save.assert_not_called()
        self.assertTrue(any("Error loading cache" in line for line in logs.output))

    async def test_save_error_is_logged_not_raised(self) -> None:
        with patch("issuewatch.main.save_state", side_effect=OSError("disk full")):
            with self.assertLogs("issuewatch.main", level="ERROR") as logs:
                count = await self._run(self._config())

        self.assertEqual(count, 2)
        self.assertTrue(any("Error saving cache" in line for line in logs.output))

    async def test_page_without_issues_still_rewrites_cache(self) -> None:
        count = await self._run(self._config(), page="<html></html>")

        self.assertEqual(count, 0)
        self.assertTrue(os.path.exists(self.state_file))
        self.assertEqual(load_state(self.state_file), set())
