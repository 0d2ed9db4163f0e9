"""
Apply path-addressed edit instructions to a task forest.

Instructions arrive from untrusted sources (title resolution, the model,
stale UI paths), so anything that does not fully address a node is a
no-op rather than an error.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass
from typing import Any, Dict, Iterable, Mapping, Optional, Tuple, Union

from .dates import is_timestamp
from .nodes import InsertPolicy, clean_text, insert_node, make_node
from .tree import (
    Forest,
    clone_forest,
    get_node,
    get_parent_slot,
    is_level,
    is_path,
    move_by,
    move_to_bottom,
    move_to_top,
    promote,
)

ACTIONS = ("add", "delete", "edit", "complete", "set_target", "promote", "reorder")
ADD_MODES = ("thread", "child", "sibling")
REORDER_DIRECTIONS = ("up", "down", "top", "bottom")


@dataclass(frozen=True)
class EditInstruction:
    """
    Validated low-level edit instruction.

    Attributes
    ----------
    action : str
        One of ``ACTIONS``.
    level : str
        Level the path is relative to.
    path : Tuple[int, ...]
        Node path; ignored for ``add`` in ``thread`` mode.
    mode : Optional[str]
        ``thread``, ``child`` or ``sibling`` for ``add``.
    text : Optional[str]
        Text for ``add`` and ``edit``.
    target_date : Optional[int]
        Target timestamp for ``add`` and ``set_target``.
    all_day : Optional[bool]
        All-day flag accompanying ``target_date``.
    direction : Optional[str]
        One of ``REORDER_DIRECTIONS`` for ``reorder``.
    """

    action: str
    level: str
    path: Tuple[int, ...] = ()
    mode: Optional[str] = None
    text: Optional[str] = None
    target_date: Optional[int] = None
    all_day: Optional[bool] = None
    direction: Optional[str] = None

    @classmethod
    def from_mapping(cls, raw: Any) -> Optional["EditInstruction"]:
        """
        Validate a raw instruction mapping.

        Parameters
        ----------
        raw : Any
            Mapping with ``action``, ``level``, ``path`` and the
            action-specific fields (``targetDate`` and ``allDay`` use
            their stored names).

        Returns
        -------
        Optional[EditInstruction]
            Parsed instruction, or None when it is malformed.

        Examples
        --------
        >>> EditInstruction.from_mapping({"action": "delete", "level": "execution", "path": [0]})
        EditInstruction(action='delete', level='execution', path=(0,), mode=None, text=None, target_date=None, all_day=None, direction=None)
        >>> EditInstruction.from_mapping({"action": "delete", "level": "someday", "path": [0]}) is None
        True
        >>> EditInstruction.from_mapping({"action": "reorder", "level": "execution", "path": [0]}) is None
        True
        """
        if isinstance(raw, EditInstruction):
            return raw
        if not isinstance(raw, Mapping):
            return None
        action = raw.get("action")
        level = raw.get("level")
        path = raw.get("path")
        if action not in ACTIONS or not is_level(level) or not is_path(path):
            return None

        mode = raw.get("mode")
        direction = raw.get("direction")
        text = raw.get("text")
        target_date = raw.get("targetDate")
        all_day = raw.get("allDay")
        if target_date is not None and not is_timestamp(target_date):
            return None
        if all_day is not None and not isinstance(all_day, bool):
            all_day = None
        if text is not None and not isinstance(text, str):
            return None

        if action == "add" and mode not in ADD_MODES:
            return None
        if action == "reorder" and direction not in REORDER_DIRECTIONS:
            return None

        return cls(
            action=action,
            level=level,
            path=tuple(path),
            mode=mode if action == "add" else None,
            text=text,
            target_date=int(target_date) if target_date is not None else None,
            all_day=all_day,
            direction=direction if action == "reorder" else None,
        )

    def to_dict(self) -> Dict[str, Any]:
        """
        Return the stored-name mapping form of the instruction.

        Examples
        --------
        >>> EditInstruction("edit", "execution", (0, 1), text="Car").to_dict()
        {'action': 'edit', 'level': 'execution', 'path': [0, 1], 'text': 'Car'}
        """
        payload: Dict[str, Any] = {
            "action": self.action,
            "level": self.level,
            "path": list(self.path),
        }
        if self.mode is not None:
            payload["mode"] = self.mode
        if self.text is not None:
            payload["text"] = self.text
        if self.action in ("add", "set_target"):
            payload["targetDate"] = self.target_date
        if self.all_day is not None:
            payload["allDay"] = self.all_day
        if self.direction is not None:
            payload["direction"] = self.direction
        return payload


InstructionLike = Union[EditInstruction, Mapping[str, Any]]


def _apply_add(
    updated: Forest,
    instruction: EditInstruction,
    fallback_target_date: Optional[int],
    fallback_all_day: Optional[bool],
    policy: InsertPolicy,
) -> Forest:
    text = clean_text(instruction.text)
    if not text:
        return updated
    if instruction.target_date is not None:
        target, all_day = instruction.target_date, instruction.all_day
    else:
        target, all_day = fallback_target_date, fallback_all_day

    if instruction.mode == "thread":
        insert_node(updated[instruction.level], make_node(text, target, all_day), policy)
    elif instruction.mode == "child":
        parent = get_node(updated, instruction.level, instruction.path)
        if parent is None:
            return updated
        if not isinstance(parent.get("steps"), list):
            parent["steps"] = []
        insert_node(parent["steps"], make_node(text, target, all_day), policy)
    elif instruction.mode == "sibling":
        slot = get_parent_slot(updated, instruction.level, instruction.path)
        if slot is None:
            return updated
        slot.container.insert(slot.index + 1, make_node(text, target, all_day))
    return updated


def _apply_reorder(updated: Forest, instruction: EditInstruction) -> Forest:
    level, path = instruction.level, list(instruction.path)
    if instruction.direction == "top":
        return move_to_top(updated, level, path)
    if instruction.direction == "bottom":
        return move_to_bottom(updated, level, path)
    return move_by(updated, level, path, instruction.direction)


def apply_instruction(
    forest: Forest,
    instruction: InstructionLike,
    fallback_target_date: Optional[int] = None,
    fallback_all_day: Optional[bool] = None,
    *,
    policy: InsertPolicy = InsertPolicy.FRONT,
) -> Forest:
    """
    Apply one low-level instruction and return the new forest.

    Parameters
    ----------
    forest : Forest
        Current forest (never mutated).
    instruction : InstructionLike
        ``EditInstruction`` or raw mapping.
    fallback_target_date : Optional[int], optional
        Target for added nodes when the instruction carries none,
        typically inferred from the originating text.
    fallback_all_day : Optional[bool], optional
        All-day flag accompanying the fallback target.
    policy : InsertPolicy, optional
        Where ``thread`` and ``child`` additions land.

    Returns
    -------
    Forest
        New forest; an unchanged copy when the instruction is malformed
        or does not address an existing node.

    Examples
    --------
    >>> forest = {"baseline": [], "execution": [], "creative": []}
    >>> forest = apply_instruction(forest, {"action": "add", "level": "execution", "path": [], "mode": "thread", "text": "Boat"})
    >>> forest["execution"][0]["text"]
    'Boat'
    >>> apply_instruction(forest, {"action": "explode"}) == forest
    True
    """
    parsed = EditInstruction.from_mapping(instruction)
    if parsed is None:
        return copy.deepcopy(forest)
    updated = clone_forest(forest)
    action = parsed.action
    path = list(parsed.path)

    if action == "add":
        return _apply_add(updated, parsed, fallback_target_date, fallback_all_day, policy)

    if action == "delete":
        slot = get_parent_slot(updated, parsed.level, path)
        if slot is not None:
            slot.container.pop(slot.index)
        return updated

    if action == "edit":
        node = get_node(updated, parsed.level, path)
        text = clean_text(parsed.text)
        if node is not None and text:
            node["text"] = text
        return updated

    if action == "complete":
        node = get_node(updated, parsed.level, path)
        if node is not None:
            node["completed"] = True
        return updated

    if action == "set_target":
        node = get_node(updated, parsed.level, path)
        if node is not None:
            node["targetDate"] = parsed.target_date
            if parsed.target_date is None:
                node.pop("allDay", None)
            elif parsed.all_day is not None:
                node["allDay"] = parsed.all_day
        return updated

    if action == "promote":
        return promote(updated, parsed.level, path)

    return _apply_reorder(updated, parsed)


def apply_instructions(
    forest: Forest,
    instructions: Iterable[InstructionLike],
    fallback_target_date: Optional[int] = None,
    fallback_all_day: Optional[bool] = None,
    *,
    policy: InsertPolicy = InsertPolicy.FRONT,
) -> Tuple[Forest, int]:
    """
    Apply instructions in order, counting those that changed the forest.

    Returns
    -------
    Tuple[Forest, int]
        Final forest and number of effective instructions.
    """
    current = clone_forest(forest)
    changed = 0
    for instruction in instructions:
        updated = apply_instruction(
            current,
            instruction,
            fallback_target_date,
            fallback_all_day,
            policy=policy,
        )
        if updated != current:
            changed += 1
        current = updated
    return current, changed
