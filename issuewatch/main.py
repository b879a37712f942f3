from __future__ import annotations

# Flow:
# 1) Build an immutable Config from config.yaml and flags; refuse to start without a repo and a webhook.
# 2) Each cycle: fetch listing -> extract issues -> skip seen ids -> notify and mark -> rewrite the cache.
# 3) Sleep the fixed interval after every cycle, whatever its outcome.

import argparse
import asyncio
from datetime import datetime, timezone
import logging
from pathlib import Path
import sys

import yaml

from .config import DEFAULT_STATE_FILE, Config, Settings, load_config, validate_config
from .feeds.base import BaseFeed, FetchError, Issue
from .feeds.github import GitHubIssuesFeed, GitHubSettings
from .notifiers.base import BaseNotifier
from .notifiers.factory import build_notification_message, build_notifiers
from .state import load_state, mark_sent, save_state, was_sent


async def main() -> None:
    args = _parse_args()
    if args.init_config:
        _init_config(Path(args.config))
        return
    _configure_logging(args.verbose)
    logger = logging.getLogger(__name__)

    try:
        config = load_config(
            args.config,
            overrides={
                "repo_url": args.github_repo,
                "discord_webhook_url": args.discord_hook_url,
                "google_chat_webhook_url": args.google_chat_hook_url,
                "poll_interval": args.refresh_interval,
                "state_file": args.cache_file,
            },
        )
        if not args.test_notify:
            validate_config(config)
    except (ValueError, yaml.YAMLError) as exc:
        logger.critical("%s", exc)
        raise SystemExit(1)

    notifiers = build_notifiers(config)

    if args.test_notify:
        if not notifiers:
            logger.critical("At least one webhook URL is required for --test-notify")
            raise SystemExit(1)
        if not await _notify(notifiers, _build_test_issue()):
            raise SystemExit(1)
        return

    feed = _build_feed(config)
    logger.info(
        "Watching %s every %ss with %d notifier(s); cache at %s",
        config.repo_url,
        config.settings.poll_interval_seconds,
        len(notifiers),
        config.settings.state_file,
    )

    last_checked: datetime | None = None
    while True:
        started = datetime.now(timezone.utc)
        await poll_once(feed, notifiers, config.settings, dry_run=args.dry_run, last_checked=last_checked)
        last_checked = started
        if args.once:
            break
        await asyncio.sleep(config.settings.poll_interval_seconds)


def run() -> None:
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        pass


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Relay new GitHub issues to chat webhooks")
    parser.add_argument("--github-repo", help="GitHub repository issues page URL")
    parser.add_argument("--discord-hook-url", help="Discord webhook URL")
    parser.add_argument("--google-chat-hook-url", help="Google Chat webhook URL")
    parser.add_argument("--refresh-interval", help="Refresh interval, e.g. 10m, 90s, 1h30m (default 10m)")
    parser.add_argument("--cache-file", help=f"Cache file (default {DEFAULT_STATE_FILE})")
    parser.add_argument("--config", default="./config.yaml")
    parser.add_argument("--once", action="store_true", help="Run a single check and exit")
    parser.add_argument("--dry-run", action="store_true", help="Log new issues instead of sending them")
    parser.add_argument("--verbose", action="store_true")
    parser.add_argument("--init-config", action="store_true", help="Create a config.yaml template and exit")
    parser.add_argument("--test-notify", action="store_true", help="Send a test notification and exit")
    return parser.parse_args()


def _configure_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stdout,
    )
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


def _build_feed(config: Config) -> GitHubIssuesFeed:
    return GitHubIssuesFeed(
        GitHubSettings(
            repo_url=config.repo_url,
            timeout_seconds=config.settings.request_timeout_seconds,
            user_agent=config.settings.user_agent,
        )
    )


def _init_config(target: Path) -> None:
    if target.exists():
        raise SystemExit(f"Config already exists at {target}")
    root = Path(__file__).resolve().parents[1]
    template = root / "config.example.yaml"
    if not template.exists():
        raise SystemExit("config.example.yaml not found")
    target.write_text(template.read_text(encoding="utf-8"), encoding="utf-8")
    print(f"Wrote config template to {target}")


async def poll_once(
    feed: BaseFeed,
    notifiers: list[BaseNotifier],
    settings: Settings,
    dry_run: bool = False,
    last_checked: datetime | None = None,
) -> int:
    """Run one check cycle and return how many new issues were found.

    A failed fetch or an unreadable cache aborts the cycle before anything is
    sent or written. Delivery failures never keep an issue out of the cache.
    """
    logger = logging.getLogger(__name__)
    if last_checked:
        logger.info("Checking for new issues (last check %s)...", last_checked.isoformat())
    else:
        logger.info("Checking for new issues...")

    try:
        issues = await feed.fetch_recent()
    except FetchError as exc:
        logger.error("Error fetching issues: %s", exc)
        return 0

    try:
        seen = load_state(settings.state_file)
    except (OSError, UnicodeDecodeError) as exc:
        logger.error("Error loading cache %s: %s", settings.state_file, exc)
        return 0

    new_count = 0
    for issue in issues:
        if was_sent(seen, issue.id):
            logger.debug("Issue already notified: ID=%s, Title=%s, URL=%s", issue.id, issue.title, issue.url)
            continue

        logger.info("Found new issue: ID=%s, Title=%s, URL=%s", issue.id, issue.title, issue.url)
        if dry_run:
            logger.info("[dry-run] Would notify %d target(s) for issue %s", len(notifiers), issue.id)
        else:
            await _notify(notifiers, issue)
        mark_sent(seen, issue.id)
        new_count += 1

        await asyncio.sleep(settings.notify_delay_seconds)

    try:
        save_state(settings.state_file, seen)
    except OSError as exc:
        logger.error("Error saving cache %s: %s", settings.state_file, exc)

    logger.info("Check complete: %d listed, %d new", len(issues), new_count)
    return new_count


async def _notify(notifiers: list[BaseNotifier], issue: Issue) -> bool:
    logger = logging.getLogger(__name__)
    message = build_notification_message(issue)
    delivered = True
    for notifier in notifiers:
        try:
            success = await notifier.send(message)
        except Exception as exc:
            logger.error("Notifier %s failed for issue %s: %s", notifier.name, issue.id, exc)
            success = False
        delivered = delivered and success
    return delivered


def _build_test_issue() -> Issue:
    now = datetime.now(timezone.utc)
    return Issue(
        id=f"test:{int(now.timestamp())}",
        url="https://github.com/",
        title="issuewatch test notification: webhook verified",
    )


if __name__ == "__main__":
    run()
