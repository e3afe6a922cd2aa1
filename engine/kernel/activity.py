"""Activity entries: construction and human-readable summaries."""

from __future__ import annotations

import re
from datetime import UTC, datetime

from engine.kernel.types import ActivityEntry, Actor, generate_id, now_iso

_SPLIT_RE = re.compile(r"[\s._-]+")


def build_activity_entry(actor: Actor, action: str, target: str, context: str | None = None) -> ActivityEntry:
    return ActivityEntry(
        id=generate_id("activity"),
        action=action,
        target=target,
        context=context,
        actor_id=actor.id,
        actor_name=actor.name,
        timestamp=now_iso(),
    )


def summarize_activity(entry: ActivityEntry) -> str:
    match entry.action:
        case "create":
            return f"Created “{entry.target}”"
        case "update":
            return f"Updated “{entry.target}”"
        case "duplicate":
            return f"Duplicated “{entry.target}”"
        case "delete":
            return f"Deleted “{entry.target}”"
        case "move":
            return f"Moved “{entry.target}”"
        case "share":
            return f"Updated access for {entry.target}"
        case _:
            return entry.target


def to_title_case(value: str) -> str:
    """'ada.lovelace' → 'Ada Lovelace'."""
    return " ".join(part[:1].upper() + part[1:] for part in _SPLIT_RE.split(value) if part)


def _parse_iso(value: str) -> datetime | None:
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except (TypeError, ValueError):
        return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=UTC)


def format_relative_time(timestamp: str, now: datetime | None = None) -> str:
    """
    Compact age of an ISO timestamp: 'Just now', '5m ago', '3h ago',
    '2d ago', '1w ago', '4mo ago', '2y ago'. Unparseable input reads as
    'Just now'.
    """
    moment = _parse_iso(timestamp)
    if moment is None:
        return "Just now"

    seconds = ((now or datetime.now(UTC)) - moment).total_seconds()
    if seconds < 60:
        return "Just now"

    minutes = int(seconds // 60)
    if minutes < 60:
        return f"{minutes}m ago"
    hours = minutes // 60
    if hours < 24:
        return f"{hours}h ago"
    days = hours // 24
    if days < 7:
        return f"{days}d ago"
    weeks = days // 7
    if weeks < 4:
        return f"{weeks}w ago"
    months = max(days // 30, 1)
    if months < 12:
        return f"{months}mo ago"
    return f"{days // 365}y ago"
