"""
Task node creation, completion and target-date lifecycle.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Tuple

from .dates import infer_date_from_text, next_weekly_at, now_ms
from .tree import (
    DEFAULT_LEVEL,
    LEGACY_COMPLETION_KEYS,
    LEVELS,
    Forest,
    clone_forest,
    empty_forest,
    get_node,
    get_parent_slot,
    is_level,
    promote,
)


class InsertPolicy(str, Enum):
    """Where newly created nodes land within their container."""

    FRONT = "front"
    BACK = "back"

    @classmethod
    def parse(cls, value: Optional[str]) -> "InsertPolicy":
        """
        Parse a policy name, defaulting to FRONT.

        Raises
        ------
        ValueError
            If the value names no policy.

        Examples
        --------
        >>> InsertPolicy.parse("back")
        <InsertPolicy.BACK: 'back'>
        >>> InsertPolicy.parse(None)
        <InsertPolicy.FRONT: 'front'>
        """
        if value is None or not str(value).strip():
            return cls.FRONT
        return cls(str(value).strip().lower())


def normalize_title(value: Any) -> str:
    """
    Normalize a title for comparison.

    Examples
    --------
    >>> normalize_title("  Boat ")
    'boat'
    >>> normalize_title(None)
    ''
    """
    if value is None:
        return ""
    return str(value).strip().casefold()


def clean_text(value: Any) -> str:
    """
    Return trimmed display text, empty for non-strings.

    Examples
    --------
    >>> clean_text("  Sink ")
    'Sink'
    >>> clean_text(42)
    ''
    """
    if not isinstance(value, str):
        return ""
    return value.strip()


def make_node(
    text: str,
    target_date: Optional[int] = None,
    all_day: Optional[bool] = None,
    timestamp: Optional[int] = None,
) -> Dict[str, Any]:
    """
    Build a new, uncompleted task node.

    Parameters
    ----------
    text : str
        Display text; trimmed.
    target_date : Optional[int], optional
        Deadline timestamp in milliseconds.
    all_day : Optional[bool], optional
        Date-only flag for the target; omitted when None.
    timestamp : Optional[int], optional
        Creation time override (default: now).

    Returns
    -------
    Dict[str, Any]
        New node.

    Raises
    ------
    ValueError
        If the text is blank.

    Examples
    --------
    >>> node = make_node(" Boat ", timestamp=1)
    >>> node
    {'text': 'Boat', 'timestamp': 1, 'completed': False, 'steps': [], 'targetDate': None}
    """
    cleaned = clean_text(text)
    if not cleaned:
        raise ValueError("Task text is empty")
    node: Dict[str, Any] = {
        "text": cleaned,
        "timestamp": timestamp if timestamp is not None else now_ms(),
        "completed": False,
        "steps": [],
        "targetDate": target_date,
    }
    if all_day is not None and target_date is not None:
        node["allDay"] = bool(all_day)
    return node


def insert_node(
    container: List[Dict[str, Any]],
    node: Dict[str, Any],
    policy: InsertPolicy = InsertPolicy.FRONT,
) -> int:
    """
    Insert a node per policy and return its index.

    Examples
    --------
    >>> items = [{"text": "A"}]
    >>> insert_node(items, {"text": "B"}, InsertPolicy.BACK)
    1
    >>> insert_node(items, {"text": "C"})
    0
    >>> [item["text"] for item in items]
    ['C', 'A', 'B']
    """
    if policy == InsertPolicy.BACK:
        container.append(node)
        return len(container) - 1
    container.insert(0, node)
    return 0


def parse_repeat(value: Any) -> Optional[Dict[str, int]]:
    """
    Validate a repeat schedule, returning None when malformed.

    Examples
    --------
    >>> parse_repeat({"weekday": 4, "hour": 18, "minute": 0})
    {'weekday': 4, 'hour': 18, 'minute': 0}
    >>> parse_repeat({"weekday": 7, "hour": 18, "minute": 0}) is None
    True
    """
    if not isinstance(value, dict):
        return None
    bounds = {"weekday": 6, "hour": 23, "minute": 59}
    parsed: Dict[str, int] = {}
    for key, upper in bounds.items():
        raw = value.get(key)
        if not isinstance(raw, int) or isinstance(raw, bool) or not 0 <= raw <= upper:
            return None
        parsed[key] = raw
    return parsed


def normalize_node(raw: Any) -> Optional[Dict[str, Any]]:
    """
    Coerce a stored node into canonical shape.

    Legacy completion flags are folded into ``completed``; ``steps``
    always ends up a list. Nodes without usable text are dropped.

    Examples
    --------
    >>> normalize_node({"text": "Sink", "done": True})["completed"]
    True
    >>> normalize_node({"text": "  "}) is None
    True
    """
    if not isinstance(raw, dict):
        return None
    text = clean_text(raw.get("text"))
    if not text:
        return None
    node = dict(raw)
    node["text"] = text
    legacy = any(bool(node.pop(key, False)) for key in LEGACY_COMPLETION_KEYS)
    node["completed"] = bool(node.get("completed")) or legacy
    if not isinstance(node.get("timestamp"), (int, float)):
        node["timestamp"] = now_ms()
    node.setdefault("targetDate", None)
    if "repeat" in node:
        repeat = parse_repeat(node["repeat"])
        if repeat is None:
            node.pop("repeat")
        else:
            node["repeat"] = repeat
    steps = node.get("steps") if isinstance(node.get("steps"), list) else []
    node["steps"] = [child for child in (normalize_node(item) for item in steps) if child]
    return node


def normalize_forest(raw: Any) -> Forest:
    """
    Coerce a loaded payload into a valid forest.

    Examples
    --------
    >>> normalize_forest({"execution": [{"text": "Boat"}, "junk"], "later": []})["execution"][0]["text"]
    'Boat'
    >>> normalize_forest(None)
    {'baseline': [], 'execution': [], 'creative': []}
    """
    forest = empty_forest()
    if not isinstance(raw, dict):
        return forest
    for level in LEVELS:
        items = raw.get(level)
        if not isinstance(items, list):
            continue
        forest[level] = [node for node in (normalize_node(item) for item in items) if node]
    return forest


def toggle_completion(
    forest: Forest,
    level: str,
    path: Sequence[int],
    now: Optional[datetime] = None,
) -> Forest:
    """
    Toggle completion, rescheduling repeating nodes instead.

    A node with a ``repeat`` schedule stays uncompleted and gets its
    ``targetDate`` moved to the next weekly occurrence.

    Parameters
    ----------
    forest : Forest
        Source forest (never mutated).
    level : str
        Level name.
    path : Sequence[int]
        Node path.
    now : Optional[datetime], optional
        Reference time for rescheduling (default: now).

    Returns
    -------
    Forest
        New forest.
    """
    updated = clone_forest(forest)
    node = get_node(updated, level, path)
    if node is None:
        return updated
    repeat = parse_repeat(node.get("repeat"))
    if repeat:
        node["targetDate"] = next_weekly_at(
            repeat["weekday"], repeat["hour"], repeat["minute"], now=now
        )
        node["allDay"] = False
        node["completed"] = False
    else:
        node["completed"] = not bool(node.get("completed"))
    return updated


def set_target_date(
    forest: Forest,
    level: str,
    path: Sequence[int],
    ts: Optional[int],
    all_day: Optional[bool] = None,
) -> Forest:
    """
    Set or clear a node's target date.

    Clearing the target also removes the all-day flag.

    Examples
    --------
    >>> forest = {"execution": [{"text": "Boat", "steps": []}]}
    >>> set_target_date(forest, "execution", [0], 5, True)["execution"][0]["allDay"]
    True
    >>> "allDay" in set_target_date(forest, "execution", [0], None)["execution"][0]
    False
    """
    updated = clone_forest(forest)
    node = get_node(updated, level, path)
    if node is None:
        return updated
    node["targetDate"] = ts
    if ts is None:
        node.pop("allDay", None)
    else:
        node["allDay"] = bool(all_day)
    return updated


def set_repeat(
    forest: Forest,
    level: str,
    path: Sequence[int],
    repeat: Optional[Dict[str, int]],
    now: Optional[datetime] = None,
) -> Forest:
    """
    Attach or clear a weekly repeat schedule.

    Attaching a schedule also moves the target to its next occurrence.
    A malformed schedule leaves the node untouched.
    """
    updated = clone_forest(forest)
    node = get_node(updated, level, path)
    if node is None:
        return updated
    if repeat is None:
        node.pop("repeat", None)
        return updated
    parsed = parse_repeat(repeat)
    if parsed is None:
        return updated
    node["repeat"] = parsed
    node["targetDate"] = next_weekly_at(
        parsed["weekday"], parsed["hour"], parsed["minute"], now=now
    )
    node["allDay"] = False
    return updated


def add_item(
    forest: Forest,
    text: str,
    level: Optional[str] = None,
    path: Optional[Sequence[int]] = None,
    *,
    policy: InsertPolicy = InsertPolicy.FRONT,
    now: Optional[datetime] = None,
    default_level: str = DEFAULT_LEVEL,
) -> Forest:
    """
    Add a typed item with a target inferred from its text.

    When level and path address an existing node the item becomes one
    of its steps. A level without a path adds a thread to that level;
    any other combination adds a thread to the default level.

    Examples
    --------
    >>> forest = add_item(empty_forest(), "Boat")
    >>> forest = add_item(forest, "Sink", "execution", [0])
    >>> forest["execution"][0]["steps"][0]["text"]
    'Sink'
    >>> len(add_item(forest, "Lost", "execution", [9])["execution"])
    2
    >>> add_item(forest, "Sleep", "baseline")["baseline"][0]["text"]
    'Sleep'
    """
    cleaned = clean_text(text)
    if not cleaned:
        return clone_forest(forest)
    inferred = infer_date_from_text(cleaned, now=now)
    updated = clone_forest(forest)
    node = make_node(cleaned, inferred.ts, inferred.all_day)
    parent = get_node(updated, level, path) if level and path else None
    if parent is not None:
        if not isinstance(parent.get("steps"), list):
            parent["steps"] = []
        insert_node(parent["steps"], node, policy)
    elif is_level(level) and not path:
        insert_node(updated[level], node, policy)
    else:
        insert_node(updated[default_level], node, policy)
    return updated


def rename_item(forest: Forest, level: str, path: Sequence[int], text: str) -> Forest:
    """Rename a node; blank text leaves the forest unchanged."""
    updated = clone_forest(forest)
    cleaned = clean_text(text)
    node = get_node(updated, level, path)
    if node is not None and cleaned:
        node["text"] = cleaned
    return updated


def delete_item(forest: Forest, level: str, path: Sequence[int]) -> Forest:
    """Remove a node and its subtree."""
    updated = clone_forest(forest)
    slot = get_parent_slot(updated, level, path)
    if slot is not None:
        slot.container.pop(slot.index)
    return updated


def promote_item(forest: Forest, level: str, path: Sequence[int]) -> Forest:
    """Promote a nested node to a thread; root nodes stay put."""
    return promote(forest, level, path)


def _find_by_title(items: List[Dict[str, Any]], title: str) -> Optional[Dict[str, Any]]:
    wanted = normalize_title(title)
    for item in items:
        if isinstance(item, dict) and normalize_title(item.get("text")) == wanted:
            return item
    return None


def ensure_thread(
    forest: Forest,
    level: str,
    title: str,
    *,
    policy: InsertPolicy = InsertPolicy.FRONT,
) -> Tuple[Forest, Optional[Dict[str, Any]]]:
    """
    Find a thread by title in a level, creating it when missing.

    Returns
    -------
    Tuple[Forest, Optional[Dict[str, Any]]]
        New forest and the found or created thread (None for a blank
        title or unknown level).

    Examples
    --------
    >>> forest, thread = ensure_thread(empty_forest(), "creative", "Album")
    >>> forest, again = ensure_thread(forest, "creative", "album")
    >>> len(forest["creative"]), again["text"]
    (1, 'Album')
    """
    updated = clone_forest(forest)
    cleaned = clean_text(title)
    if not cleaned or not is_level(level):
        return updated, None
    existing = _find_by_title(updated[level], cleaned)
    if existing is not None:
        return updated, existing
    thread = make_node(cleaned)
    insert_node(updated[level], thread, policy)
    return updated, thread


def ensure_step(
    forest: Forest,
    level: str,
    thread_title: str,
    step_title: str,
) -> Tuple[Forest, Optional[Dict[str, Any]], Optional[Dict[str, Any]]]:
    """
    Find or create a thread and a step under it, appending new steps.

    Returns
    -------
    Tuple[Forest, Optional[Dict[str, Any]], Optional[Dict[str, Any]]]
        New forest, the thread and the step.
    """
    updated, thread = ensure_thread(forest, level, thread_title)
    cleaned = clean_text(step_title)
    if thread is None or not cleaned:
        return updated, thread, None
    steps = thread.setdefault("steps", [])
    step = _find_by_title(steps, cleaned)
    if step is None:
        step = make_node(cleaned)
        steps.append(step)
    return updated, thread, step


def add_substep_under(
    forest: Forest,
    level: str,
    thread_title: str,
    step_title: str,
    substep_title: str,
) -> Forest:
    """
    Add a substep under thread/step, creating the ancestors as needed.

    Adding a substep that already exists by title is a no-op.

    Examples
    --------
    >>> forest = add_substep_under(empty_forest(), "execution", "Boat", "Sink", "Buy connector")
    >>> forest = add_substep_under(forest, "execution", "boat", "SINK", "buy connector")
    >>> sink = forest["execution"][0]["steps"][0]
    >>> [child["text"] for child in sink["steps"]]
    ['Buy connector']
    """
    updated, _, step = ensure_step(forest, level, thread_title, step_title)
    cleaned = clean_text(substep_title)
    if step is None or not cleaned:
        return updated
    children = step.setdefault("steps", [])
    if _find_by_title(children, cleaned) is None:
        children.append(make_node(cleaned))
    return updated
