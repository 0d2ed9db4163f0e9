"""
Deterministic command forms handled without the model.

Supported forms (case-insensitive):

- ``delete X`` / ``remove X``
- ``rename X to Y`` / ``change X to Y`` / ``edit X to Y``
- ``mark X as done`` / ``mark X done`` / ``complete X`` / ``finish X``
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Optional, Tuple

from .adapter import find_node_path_by_title
from .nodes import clean_text
from .reducer import EditInstruction, apply_instruction
from .tree import Forest, clone_forest

_DELETE = re.compile(r"^(?:delete|remove)\s+(.+)$", re.IGNORECASE)
_RENAME = re.compile(r"^(?:rename|change|edit)\s+(.+?)\s+to\s+(.+)$", re.IGNORECASE)
_MARK_DONE = (
    re.compile(r"^mark\s+(.+?)\s+as\s+done$", re.IGNORECASE),
    re.compile(r"^mark\s+(.+?)\s+done$", re.IGNORECASE),
    re.compile(r"^(?:complete|finish)\s+(.+)$", re.IGNORECASE),
)


@dataclass(frozen=True)
class Shortcut:
    """
    Parsed local command.

    Attributes
    ----------
    kind : str
        ``delete``, ``rename`` or ``done``.
    title : str
        Title of the node the command targets.
    new_title : Optional[str]
        Replacement title for ``rename``.
    """

    kind: str
    title: str
    new_title: Optional[str] = None


@dataclass(frozen=True)
class ShortcutResult:
    """
    Outcome of running a shortcut.

    Attributes
    ----------
    shortcut : Shortcut
        The matched command.
    forest : Forest
        Forest after the command.
    changed : bool
        True when the forest changed.
    """

    shortcut: Shortcut
    forest: Forest
    changed: bool


def match_shortcut(text: str) -> Optional[Shortcut]:
    """
    Match raw request text against the local command forms.

    Examples
    --------
    >>> match_shortcut("Delete Boat")
    Shortcut(kind='delete', title='Boat', new_title=None)
    >>> match_shortcut("rename laptop to Car")
    Shortcut(kind='rename', title='laptop', new_title='Car')
    >>> match_shortcut("mark sink as done")
    Shortcut(kind='done', title='sink', new_title=None)
    >>> match_shortcut("finish the wiring")
    Shortcut(kind='done', title='the wiring', new_title=None)
    >>> match_shortcut("add boat and sink") is None
    True
    """
    raw = clean_text(text)
    if not raw:
        return None
    match = _DELETE.match(raw)
    if match:
        return Shortcut("delete", match.group(1).strip())
    match = _RENAME.match(raw)
    if match:
        return Shortcut("rename", match.group(1).strip(), match.group(2).strip())
    for pattern in _MARK_DONE:
        match = pattern.match(raw)
        if match:
            return Shortcut("done", match.group(1).strip())
    return None


def _apply_by_title(forest: Forest, title: str, **fields) -> Tuple[Forest, bool]:
    current = clone_forest(forest)
    found = find_node_path_by_title(current, title)
    if found is None:
        return current, False
    level, path = found
    updated = apply_instruction(
        current, EditInstruction(level=level, path=tuple(path), **fields)
    )
    return updated, updated != current


def delete_by_title(forest: Forest, title: str) -> Tuple[Forest, bool]:
    """Delete the first node titled ``title``; returns (forest, changed)."""
    return _apply_by_title(forest, title, action="delete")


def rename_by_title(forest: Forest, old_title: str, new_title: str) -> Tuple[Forest, bool]:
    """Rename the first node titled ``old_title``; blank new titles are ignored."""
    return _apply_by_title(forest, old_title, action="edit", text=new_title)


def mark_done_by_title(forest: Forest, title: str) -> Tuple[Forest, bool]:
    """Set ``completed`` on the first node titled ``title``."""
    return _apply_by_title(forest, title, action="complete")


def run_shortcut(forest: Forest, text: str) -> Optional[ShortcutResult]:
    """
    Run text as a local command.

    Returns
    -------
    Optional[ShortcutResult]
        Result when the text matched a command form (even if no node
        matched the title), None otherwise.

    Examples
    --------
    >>> forest = {"baseline": [], "execution": [{"text": "Boat", "steps": []}], "creative": []}
    >>> result = run_shortcut(forest, "delete boat")
    >>> result.changed, result.forest["execution"]
    (True, [])
    >>> run_shortcut(forest, "delete garden").changed
    False
    """
    shortcut = match_shortcut(text)
    if shortcut is None:
        return None
    if shortcut.kind == "delete":
        updated, changed = delete_by_title(forest, shortcut.title)
    elif shortcut.kind == "rename":
        updated, changed = rename_by_title(forest, shortcut.title, shortcut.new_title or "")
    else:
        updated, changed = mark_done_by_title(forest, shortcut.title)
    return ShortcutResult(shortcut=shortcut, forest=updated, changed=changed)
