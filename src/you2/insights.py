"""
Read-only views over the forest: nudges and the day's agenda.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Tuple

from .dates import from_timestamp, is_timestamp, start_of_day, to_timestamp
from .tree import LEVELS, Forest, NodePath, iter_nodes

STALE_AFTER = timedelta(hours=24)
BULKY_STEP_COUNT = 7


@dataclass(frozen=True)
class Insight:
    """
    Nudge about a thread.

    Attributes
    ----------
    level : str
        Level of the thread.
    path : NodePath
        Path of the thread.
    kind : str
        ``stale`` or ``bulky``.
    text : str
        Message for the user.
    """

    level: str
    path: NodePath
    kind: str
    text: str


def analyze_forest(forest: Forest, now: Optional[datetime] = None) -> List[Insight]:
    """
    Flag stale and bulky threads.

    A thread is stale when it is uncompleted and older than a day, and
    bulky when it has seven or more direct steps.

    Examples
    --------
    >>> now = datetime(2026, 10, 19, 9, 0)
    >>> old = to_timestamp(now - timedelta(days=2))
    >>> forest = {"execution": [{"text": "Boat", "timestamp": old, "completed": False, "steps": []}]}
    >>> [(i.kind, i.text) for i in analyze_forest(forest, now)]
    [('stale', '"Boat" looks stale. Nudge.')]
    """
    now = now or datetime.now()
    cutoff = to_timestamp(now - STALE_AFTER)
    insights: List[Insight] = []
    for level in LEVELS:
        roots = forest.get(level) if isinstance(forest, dict) else None
        for index, thread in enumerate(roots if isinstance(roots, list) else []):
            if not isinstance(thread, dict):
                continue
            text = thread.get("text", "")
            created = thread.get("timestamp") or 0
            if not thread.get("completed") and created < cutoff:
                insights.append(Insight(level, [index], "stale", f'"{text}" looks stale. Nudge.'))
            steps = thread.get("steps") if isinstance(thread.get("steps"), list) else []
            if len(steps) >= BULKY_STEP_COUNT:
                insights.append(
                    Insight(level, [index], "bulky", f'"{text}" has many steps. Consider splitting.')
                )
    return insights


def agenda(
    forest: Forest,
    now: Optional[datetime] = None,
) -> Dict[str, List[Tuple[str, NodePath, Dict[str, Any]]]]:
    """
    Collect uncompleted nodes due today and those already overdue.

    Returns
    -------
    Dict[str, List[Tuple[str, NodePath, Dict[str, Any]]]]
        ``{"overdue": [...], "today": [...]}`` of ``(level, path, node)``,
        each sorted by target time.

    Examples
    --------
    >>> now = datetime(2026, 10, 19, 9, 0)
    >>> forest = {"execution": [
    ...     {"text": "Call", "targetDate": to_timestamp(datetime(2026, 10, 19, 18)), "steps": []},
    ...     {"text": "Bills", "targetDate": to_timestamp(datetime(2026, 10, 17)), "steps": []},
    ...     {"text": "Trip", "targetDate": to_timestamp(datetime(2026, 10, 25)), "steps": []},
    ... ]}
    >>> view = agenda(forest, now)
    >>> [n["text"] for _, _, n in view["today"]], [n["text"] for _, _, n in view["overdue"]]
    (['Call'], ['Bills'])
    """
    now = now or datetime.now()
    day_start = start_of_day(now)
    day_end = day_start + timedelta(days=1)
    view: Dict[str, List[Tuple[str, NodePath, Dict[str, Any]]]] = {"overdue": [], "today": []}
    for level, path, node in iter_nodes(forest):
        target = node.get("targetDate")
        if node.get("completed") or not is_timestamp(target):
            continue
        when = from_timestamp(target)
        if when < day_start:
            view["overdue"].append((level, path, node))
        elif when < day_end:
            view["today"].append((level, path, node))
    for items in view.values():
        items.sort(key=lambda item: item[2]["targetDate"])
    return view
