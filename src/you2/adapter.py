"""
Translate title-addressed instructions into path-addressed ones.

High-level instructions name nodes by their text, the way a person or
the model refers to them ("add sink under boat"). They are resolved
against the current forest into ``EditInstruction`` values for the
reducer.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

from .dates import InferredDate, is_timestamp
from .nodes import InsertPolicy, clean_text, normalize_title
from .reducer import EditInstruction, apply_instruction
from .tree import DEFAULT_LEVEL, LEVELS, Forest, NodePath, clone_forest, iter_nodes

HIGH_LEVEL_ACTIONS = ("add", "delete", "edit")
NODE_TYPES = ("thread", "step", "substep")


def _optional_title(value: Any) -> Optional[str]:
    cleaned = clean_text(value)
    return cleaned or None


@dataclass(frozen=True)
class HighLevelInstruction:
    """
    Validated title-addressed instruction.

    Attributes
    ----------
    action : str
        ``add``, ``delete`` or ``edit``.
    type : str
        ``thread``, ``step`` or ``substep``; only meaningful for ``add``.
    title : str
        New title for add/edit, title to remove for delete.
    old_title : Optional[str]
        Current title of the node being renamed.
    parent_title : Optional[str]
        Title of the parent for steps and substeps.
    target_date : Optional[int]
        Explicit target timestamp, if any.
    """

    action: str
    type: str = "thread"
    title: str = ""
    old_title: Optional[str] = None
    parent_title: Optional[str] = None
    target_date: Optional[int] = None

    @classmethod
    def from_mapping(cls, raw: Any) -> Optional["HighLevelInstruction"]:
        """
        Validate a raw instruction, typically one element of a model reply.

        A missing ``type`` defaults to ``thread``. Unknown actions or
        types, and instructions with neither title nor old title, are
        rejected.

        Examples
        --------
        >>> HighLevelInstruction.from_mapping({"action": "add", "title": " Laptop "})
        HighLevelInstruction(action='add', type='thread', title='Laptop', old_title=None, parent_title=None, target_date=None)
        >>> HighLevelInstruction.from_mapping({"action": "launch", "title": "Boat"}) is None
        True
        >>> HighLevelInstruction.from_mapping({"action": "delete", "title": "  "}) is None
        True
        """
        if isinstance(raw, HighLevelInstruction):
            return raw
        if not isinstance(raw, Mapping):
            return None
        action = raw.get("action")
        if action not in HIGH_LEVEL_ACTIONS:
            return None
        node_type = raw.get("type")
        if node_type is None:
            node_type = "thread"
        if node_type not in NODE_TYPES:
            return None
        title = clean_text(raw.get("title"))
        old_title = _optional_title(raw.get("old_title"))
        if not title and not old_title:
            return None
        target_date = raw.get("targetDate")
        if not is_timestamp(target_date):
            target_date = None
        return cls(
            action=action,
            type=node_type,
            title=title,
            old_title=old_title,
            parent_title=_optional_title(raw.get("parent_title")),
            target_date=int(target_date) if target_date is not None else None,
        )

    def to_dict(self) -> Dict[str, Any]:
        """Return the wire form used in model prompts and replies."""
        return {
            "action": self.action,
            "type": self.type,
            "title": self.title,
            "old_title": self.old_title,
            "parent_title": self.parent_title,
            "targetDate": self.target_date,
        }


HighLevelLike = Union[HighLevelInstruction, Mapping[str, Any]]


def find_thread_index_by_title(roots: Sequence[Any], title: Optional[str]) -> int:
    """
    Return the index of the first root whose text matches title, or -1.

    Examples
    --------
    >>> find_thread_index_by_title([{"text": "Laptop"}, {"text": "Boat"}], " boat ")
    1
    >>> find_thread_index_by_title([{"text": "Boat"}], "")
    -1
    """
    wanted = normalize_title(title)
    if not wanted or not isinstance(roots, (list, tuple)):
        return -1
    for index, node in enumerate(roots):
        if isinstance(node, dict) and normalize_title(node.get("text")) == wanted:
            return index
    return -1


def find_node_path_by_title(
    forest: Forest,
    title: Optional[str],
    levels: Sequence[str] = LEVELS,
) -> Optional[Tuple[str, NodePath]]:
    """
    Find the first node anywhere in the forest whose text matches title.

    Levels are searched in order (baseline, execution, creative), each
    depth-first with parents before children and earlier siblings
    first. Duplicate titles resolve to the first hit in that order.

    Returns
    -------
    Optional[Tuple[str, NodePath]]
        Level and path of the match, or None.

    Examples
    --------
    >>> forest = {
    ...     "baseline": [{"text": "Sleep", "steps": []}],
    ...     "execution": [{"text": "Boat", "steps": [{"text": "Sink", "steps": []}]}],
    ...     "creative": [{"text": "Sink", "steps": []}],
    ... }
    >>> find_node_path_by_title(forest, "sink")
    ('execution', [0, 0])
    >>> find_node_path_by_title(forest, "Garden") is None
    True
    """
    wanted = normalize_title(title)
    if not wanted:
        return None
    for level, path, node in iter_nodes(forest, levels):
        if normalize_title(node.get("text")) == wanted:
            return level, path
    return None


def _add_thread(level: str, text: str, target_date: Optional[int]) -> EditInstruction:
    return EditInstruction(
        action="add",
        level=level,
        path=(),
        mode="thread",
        text=text,
        target_date=target_date,
    )


def _adapt_add(
    forest: Forest,
    instruction: HighLevelInstruction,
    policy: InsertPolicy,
    default_level: str,
) -> List[EditInstruction]:
    title = instruction.title
    if not title:
        return []
    target = instruction.target_date

    if instruction.type == "thread":
        return [_add_thread(default_level, title, target)]

    if instruction.type == "step":
        parent_title = instruction.parent_title
        if not parent_title:
            return [_add_thread(default_level, title, target)]
        operations: List[EditInstruction] = []
        working = forest
        index = find_thread_index_by_title(working.get(default_level, []), parent_title)
        if index == -1:
            create = _add_thread(default_level, parent_title, None)
            operations.append(create)
            # Re-resolve against the post-creation forest so the child
            # address holds under either insertion policy.
            working = apply_instruction(working, create, policy=policy)
            index = find_thread_index_by_title(working[default_level], parent_title)
        if index >= 0:
            operations.append(
                EditInstruction(
                    action="add",
                    level=default_level,
                    path=(index,),
                    mode="child",
                    text=title,
                    target_date=target,
                )
            )
        return operations

    found = find_node_path_by_title(forest, instruction.parent_title)
    if found is None:
        return [_add_thread(default_level, title, target)]
    level, path = found
    return [
        EditInstruction(
            action="add",
            level=level,
            path=tuple(path),
            mode="child",
            text=title,
            target_date=target,
        )
    ]


def adapt_high_level_instruction(
    forest: Forest,
    instruction: HighLevelLike,
    *,
    policy: InsertPolicy = InsertPolicy.FRONT,
    default_level: str = DEFAULT_LEVEL,
) -> List[EditInstruction]:
    """
    Resolve one title-addressed instruction into reducer instructions.

    Parameters
    ----------
    forest : Forest
        Forest the titles are resolved against.
    instruction : HighLevelLike
        ``HighLevelInstruction`` or raw mapping.
    policy : InsertPolicy, optional
        Insertion policy the reducer will use; needed to address a
        parent thread created on the fly.
    default_level : str, optional
        Level receiving new threads and searched for step parents.

    Returns
    -------
    List[EditInstruction]
        Zero or more instructions to apply in order.

    Examples
    --------
    >>> forest = {"baseline": [], "execution": [{"text": "Boat", "steps": []}], "creative": []}
    >>> [op.to_dict() for op in adapt_high_level_instruction(forest, {"action": "delete", "title": "boat"})]
    [{'action': 'delete', 'level': 'execution', 'path': [0]}]
    >>> adapt_high_level_instruction(forest, {"action": "edit", "old_title": "Car", "title": "Van"})
    []
    """
    parsed = HighLevelInstruction.from_mapping(instruction)
    if parsed is None:
        return []
    safe_forest = clone_forest(forest)

    if parsed.action == "add":
        return _adapt_add(safe_forest, parsed, policy, default_level)

    if parsed.action == "delete":
        found = find_node_path_by_title(safe_forest, parsed.title or parsed.old_title)
        if found is None:
            return []
        level, path = found
        return [EditInstruction(action="delete", level=level, path=tuple(path))]

    if not parsed.title:
        return []
    found = find_node_path_by_title(safe_forest, parsed.old_title or parsed.title)
    if found is None:
        return []
    level, path = found
    return [EditInstruction(action="edit", level=level, path=tuple(path), text=parsed.title)]


def apply_high_level_instructions(
    forest: Forest,
    instructions: Iterable[HighLevelLike],
    fallback: Optional[InferredDate] = None,
    *,
    policy: InsertPolicy = InsertPolicy.FRONT,
    default_level: str = DEFAULT_LEVEL,
) -> Tuple[Forest, int]:
    """
    Resolve and apply instructions one by one against the evolving forest.

    Each instruction's title lookups see the effect of the previous
    ones, so "add Boat" followed by "add Sink under Boat" works within
    one batch.

    Parameters
    ----------
    forest : Forest
        Starting forest (never mutated).
    instructions : Iterable[HighLevelLike]
        Title-addressed instructions; malformed entries are skipped.
    fallback : Optional[InferredDate], optional
        Target inferred from the request text, used for added nodes
        without an explicit target.
    policy : InsertPolicy, optional
        Insertion policy.
    default_level : str, optional
        Level for new threads.

    Returns
    -------
    Tuple[Forest, int]
        Final forest and number of reducer instructions that changed it.

    Examples
    --------
    >>> forest = {"baseline": [], "execution": [], "creative": []}
    >>> batch = [
    ...     {"action": "add", "type": "thread", "title": "Boat"},
    ...     {"action": "add", "type": "step", "title": "Sink", "parent_title": "boat"},
    ... ]
    >>> result, changed = apply_high_level_instructions(forest, batch)
    >>> changed, result["execution"][0]["steps"][0]["text"]
    (2, 'Sink')
    """
    fallback = fallback or InferredDate()
    current = clone_forest(forest)
    changed = 0
    for raw in instructions:
        for operation in adapt_high_level_instruction(
            current, raw, policy=policy, default_level=default_level
        ):
            updated = apply_instruction(
                current,
                operation,
                fallback.ts,
                fallback.all_day,
                policy=policy,
            )
            if updated != current:
                changed += 1
            current = updated
    return current, changed
