from __future__ import annotations

from pathlib import Path


def load_state(path: str) -> set[str]:
    """Return the identifiers already notified. A missing file is an empty set."""
    try:
        with open(path, "r", encoding="utf-8") as handle:
            lines = handle.read().splitlines()
    except FileNotFoundError:
        return set()

    return {line.strip() for line in lines if line.strip()}


def save_state(path: str, seen: set[str]) -> None:
    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_text("\n".join(sorted(seen)), encoding="utf-8")


def was_sent(seen: set[str], issue_id: str) -> bool:
    return issue_id in seen


def mark_sent(seen: set[str], issue_id: str) -> None:
    seen.add(issue_id)
