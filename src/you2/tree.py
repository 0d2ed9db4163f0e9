"""
Path addressing and structural moves over the three-level task forest.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

LEVELS = ("baseline", "execution", "creative")
DEFAULT_LEVEL = "execution"
LEGACY_COMPLETION_KEYS = ("done", "isCompleted", "checked")

Forest = Dict[str, List[Dict[str, Any]]]
NodePath = List[int]


@dataclass
class ParentSlot:
    """
    Container list and index addressing a node inside its parent.

    Attributes
    ----------
    container : List[Dict[str, Any]]
        Level root list or the parent node's ``steps`` list.
    index : int
        Position of the node within ``container``.
    """

    container: List[Dict[str, Any]]
    index: int


def empty_forest() -> Forest:
    """
    Return a forest with every level present and empty.

    Returns
    -------
    Forest
        Fresh forest.

    Examples
    --------
    >>> empty_forest()
    {'baseline': [], 'execution': [], 'creative': []}
    """
    return {level: [] for level in LEVELS}


def clone_forest(forest: Optional[Forest]) -> Forest:
    """
    Deep-copy a forest, defaulting missing levels to empty lists.

    Parameters
    ----------
    forest : Optional[Forest]
        Forest to copy.

    Returns
    -------
    Forest
        Independent copy.

    Examples
    --------
    >>> original = {"execution": [{"text": "Boat", "steps": []}]}
    >>> cloned = clone_forest(original)
    >>> cloned["execution"][0] is original["execution"][0]
    False
    >>> sorted(cloned)
    ['baseline', 'creative', 'execution']
    """
    updated = copy.deepcopy(forest) if isinstance(forest, dict) else {}
    for level in LEVELS:
        if not isinstance(updated.get(level), list):
            updated[level] = []
    return updated


def is_level(value: Any) -> bool:
    """
    Return True when value names one of the fixed levels.

    Examples
    --------
    >>> is_level("creative")
    True
    >>> is_level("someday")
    False
    >>> is_level(None)
    False
    """
    return isinstance(value, str) and value in LEVELS


def is_path(value: Any) -> bool:
    """
    Return True for a list of non-negative integers.

    Booleans are rejected even though they subclass int.

    Examples
    --------
    >>> is_path([0, 2])
    True
    >>> is_path([])
    True
    >>> is_path([0, -1])
    False
    >>> is_path("0.1")
    False
    >>> is_path([True])
    False
    """
    if not isinstance(value, (list, tuple)):
        return False
    return all(
        isinstance(index, int) and not isinstance(index, bool) and index >= 0
        for index in value
    )


def _node_steps(node: Any) -> Optional[List[Dict[str, Any]]]:
    if not isinstance(node, dict):
        return None
    steps = node.get("steps")
    return steps if isinstance(steps, list) else None


def _walk(roots: Any, path: Sequence[int]) -> Optional[Dict[str, Any]]:
    if not isinstance(roots, list):
        return None
    container: Optional[List[Dict[str, Any]]] = roots
    node: Optional[Dict[str, Any]] = None
    for index in path:
        if container is None or index < 0 or index >= len(container):
            return None
        node = container[index]
        if not isinstance(node, dict):
            return None
        container = _node_steps(node)
    return node


def get_node(forest: Forest, level: str, path: Sequence[int]) -> Optional[Dict[str, Any]]:
    """
    Return the node addressed by level and path, or None.

    Parameters
    ----------
    forest : Forest
        Forest to search.
    level : str
        Level name.
    path : Sequence[int]
        Root index followed by ``steps`` indices.

    Returns
    -------
    Optional[Dict[str, Any]]
        The live node (not a copy), or None when any hop is invalid.

    Examples
    --------
    >>> forest = {"execution": [{"text": "Boat", "steps": [{"text": "Sink", "steps": []}]}]}
    >>> get_node(forest, "execution", [0, 0])["text"]
    'Sink'
    >>> get_node(forest, "execution", [0, 3]) is None
    True
    >>> get_node(forest, "execution", []) is None
    True
    """
    if not isinstance(forest, dict) or not is_level(level) or not is_path(path) or not path:
        return None
    return _walk(forest.get(level), path)


def get_parent_slot(forest: Forest, level: str, path: Sequence[int]) -> Optional[ParentSlot]:
    """
    Return the container and index holding the node at path.

    Parameters
    ----------
    forest : Forest
        Forest to search.
    level : str
        Level name.
    path : Sequence[int]
        Path of the node.

    Returns
    -------
    Optional[ParentSlot]
        Slot for the node, or None for an empty path or invalid hop.

    Examples
    --------
    >>> forest = {"execution": [{"text": "A", "steps": []}, {"text": "B", "steps": []}]}
    >>> slot = get_parent_slot(forest, "execution", [1])
    >>> slot.index, slot.container is forest["execution"]
    (1, True)
    >>> get_parent_slot(forest, "execution", [2]) is None
    True
    """
    if not isinstance(forest, dict) or not is_level(level) or not is_path(path) or not path:
        return None
    roots = forest.get(level)
    if not isinstance(roots, list):
        return None
    if len(path) == 1:
        container = roots
    else:
        parent = _walk(roots, path[:-1])
        container = _node_steps(parent)
        if container is None:
            return None
    index = path[-1]
    if index >= len(container):
        return None
    return ParentSlot(container=container, index=index)


def can_move_up(forest: Forest, level: str, path: Sequence[int]) -> bool:
    """
    Return True when the node has a previous sibling.

    Examples
    --------
    >>> forest = {"execution": [{"text": "A"}, {"text": "B"}]}
    >>> can_move_up(forest, "execution", [0]), can_move_up(forest, "execution", [1])
    (False, True)
    """
    slot = get_parent_slot(forest, level, path)
    return slot is not None and slot.index > 0


def can_move_down(forest: Forest, level: str, path: Sequence[int]) -> bool:
    """
    Return True when the node has a following sibling.

    Examples
    --------
    >>> forest = {"execution": [{"text": "A"}, {"text": "B"}]}
    >>> can_move_down(forest, "execution", [0]), can_move_down(forest, "execution", [1])
    (True, False)
    """
    slot = get_parent_slot(forest, level, path)
    return slot is not None and slot.index < len(slot.container) - 1


def move_by(forest: Forest, level: str, path: Sequence[int], direction: str) -> Forest:
    """
    Swap a node with its neighbour one position up or down.

    Parameters
    ----------
    forest : Forest
        Source forest (never mutated).
    level : str
        Level name.
    path : Sequence[int]
        Path of the node to move.
    direction : str
        ``"up"`` or ``"down"``.

    Returns
    -------
    Forest
        New forest; unchanged copy at a boundary or for an invalid path.

    Examples
    --------
    >>> forest = {"execution": [{"text": "A"}, {"text": "B"}]}
    >>> [n["text"] for n in move_by(forest, "execution", [1], "up")["execution"]]
    ['B', 'A']
    >>> [n["text"] for n in move_by(forest, "execution", [0], "up")["execution"]]
    ['A', 'B']
    """
    updated = clone_forest(forest)
    if direction not in ("up", "down"):
        return updated
    slot = get_parent_slot(updated, level, path)
    if slot is None:
        return updated
    target = slot.index + (-1 if direction == "up" else 1)
    if target < 0 or target >= len(slot.container):
        return updated
    container = slot.container
    container[slot.index], container[target] = container[target], container[slot.index]
    return updated


def move_to_top(forest: Forest, level: str, path: Sequence[int]) -> Forest:
    """
    Move a node to the start of its container.

    Examples
    --------
    >>> forest = {"execution": [{"text": "A"}, {"text": "B"}, {"text": "C"}]}
    >>> [n["text"] for n in move_to_top(forest, "execution", [2])["execution"]]
    ['C', 'A', 'B']
    """
    updated = clone_forest(forest)
    slot = get_parent_slot(updated, level, path)
    if slot is not None:
        node = slot.container.pop(slot.index)
        slot.container.insert(0, node)
    return updated


def move_to_bottom(forest: Forest, level: str, path: Sequence[int]) -> Forest:
    """
    Move a node to the end of its container.

    Examples
    --------
    >>> forest = {"execution": [{"text": "A"}, {"text": "B"}, {"text": "C"}]}
    >>> [n["text"] for n in move_to_bottom(forest, "execution", [0])["execution"]]
    ['B', 'C', 'A']
    """
    updated = clone_forest(forest)
    slot = get_parent_slot(updated, level, path)
    if slot is not None:
        node = slot.container.pop(slot.index)
        slot.container.append(node)
    return updated


def promote(forest: Forest, level: str, path: Sequence[int]) -> Forest:
    """
    Turn a nested node into a top-level thread of the same level.

    The node keeps its own subtree and is inserted at the front of the
    level's root list.

    Parameters
    ----------
    forest : Forest
        Source forest (never mutated).
    level : str
        Level name.
    path : Sequence[int]
        Path of the node; root-level paths are left alone.

    Returns
    -------
    Forest
        New forest.

    Examples
    --------
    >>> forest = {"execution": [{"text": "Boat", "steps": [{"text": "Sink", "steps": []}]}]}
    >>> promoted = promote(forest, "execution", [0, 0])
    >>> [n["text"] for n in promoted["execution"]]
    ['Sink', 'Boat']
    >>> promoted["execution"][1]["steps"]
    []
    """
    updated = clone_forest(forest)
    if not is_path(path) or len(path) <= 1:
        return updated
    slot = get_parent_slot(updated, level, path)
    if slot is None:
        return updated
    node = slot.container.pop(slot.index)
    updated[level].insert(0, node)
    return updated


def iter_nodes(forest: Forest, levels: Sequence[str] = LEVELS):
    """
    Yield ``(level, path, node)`` for every node, depth-first pre-order.

    Levels are visited in the given order; within a level, siblings are
    visited first to last.

    Examples
    --------
    >>> forest = {"execution": [{"text": "A", "steps": [{"text": "A1"}]}, {"text": "B"}]}
    >>> [(path, node["text"]) for _, path, node in iter_nodes(forest)]
    [([0], 'A'), ([0, 0], 'A1'), ([1], 'B')]
    """
    for level in levels:
        roots = forest.get(level) if isinstance(forest, dict) else None
        if not isinstance(roots, list):
            continue
        stack = [([index], node) for index, node in reversed(list(enumerate(roots)))]
        while stack:
            path, node = stack.pop()
            if not isinstance(node, dict):
                continue
            yield level, path, node
            steps = _node_steps(node) or []
            for index in range(len(steps) - 1, -1, -1):
                stack.append((path + [index], steps[index]))


def parse_path(value: str) -> NodePath:
    """
    Parse a dotted path such as ``"0.2.1"``.

    Parameters
    ----------
    value : str
        Dotted or space separated indices.

    Returns
    -------
    NodePath
        Parsed index list.

    Raises
    ------
    ValueError
        If the value is empty or contains a non-integer/negative part.

    Examples
    --------
    >>> parse_path("0.2.1")
    [0, 2, 1]
    >>> parse_path(" 3 ")
    [3]
    """
    raw = (value or "").strip()
    if not raw:
        raise ValueError("Path is empty")
    parts = raw.replace(" ", ".").replace("/", ".").split(".")
    indices: NodePath = []
    for part in parts:
        if not part:
            continue
        if not part.isdigit():
            raise ValueError(f"Invalid path segment: {part!r}")
        indices.append(int(part))
    if not indices:
        raise ValueError("Path is empty")
    return indices


def format_path(path: Sequence[int]) -> str:
    """
    Format a path in the dotted form accepted by ``parse_path``.

    Examples
    --------
    >>> format_path([0, 2, 1])
    '0.2.1'
    """
    return ".".join(str(index) for index in path)


def parse_level(value: Optional[str]) -> str:
    """
    Parse a level name, accepting unambiguous prefixes.

    Raises
    ------
    ValueError
        If the value does not identify a level.

    Examples
    --------
    >>> parse_level("Exec")
    'execution'
    >>> parse_level("b")
    'baseline'
    """
    raw = (value or "").strip().lower()
    if not raw:
        raise ValueError("Level is empty")
    matches = [level for level in LEVELS if level.startswith(raw)]
    if len(matches) != 1:
        raise ValueError(f"Unknown level: {value!r} (expected one of {', '.join(LEVELS)})")
    return matches[0]
