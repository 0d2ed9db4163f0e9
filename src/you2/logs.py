"""
Free-form life logs (food, sleep, mood, ...) kept beside the task tree.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from .dates import now_ms

LOG_CATEGORIES = (
    "food",
    "supplements",
    "gym",
    "sleep",
    "walk",
    "mood",
    "dreams",
    "events",
    "insights",
)

Logs = Dict[str, List[Dict[str, Any]]]


def default_logs() -> Logs:
    """Return an empty log collection with every category."""
    return {category: [] for category in LOG_CATEGORIES}


def normalize_logs(raw: Any) -> Logs:
    """
    Merge a stored payload over the default categories.

    Unknown categories are kept; malformed entries are dropped.

    Examples
    --------
    >>> logs = normalize_logs({"mood": [{"text": "ok", "timestamp": 1}, "junk"], "ideas": []})
    >>> logs["mood"], logs["ideas"], logs["food"]
    ([{'text': 'ok', 'timestamp': 1}], [], [])
    """
    logs = default_logs()
    if not isinstance(raw, dict):
        return logs
    for category, entries in raw.items():
        if not isinstance(entries, list):
            continue
        logs[str(category)] = [
            {"text": entry["text"], "timestamp": entry.get("timestamp")}
            for entry in entries
            if isinstance(entry, dict) and isinstance(entry.get("text"), str)
        ]
    return logs


def append_log(
    logs: Logs,
    category: Optional[str],
    text: str,
    timestamp: Optional[int] = None,
) -> Logs:
    """
    Return logs with a new entry at the front of a category.

    Unknown or missing categories fall back to the first category;
    blank text leaves the logs unchanged.

    Examples
    --------
    >>> logs = append_log(default_logs(), "mood", " calm ", timestamp=5)
    >>> logs["mood"]
    [{'text': 'calm', 'timestamp': 5}]
    >>> append_log(logs, "nonsense", "rice", timestamp=6)["food"]
    [{'text': 'rice', 'timestamp': 6}]
    """
    updated = {name: list(entries) for name, entries in logs.items()}
    cleaned = (text or "").strip()
    if not cleaned:
        return updated
    if not updated:
        updated = default_logs()
    target = category if category and category in updated else next(iter(updated))
    entry = {"text": cleaned, "timestamp": timestamp if timestamp is not None else now_ms()}
    updated[target] = [entry, *updated[target]]
    return updated
