#!/usr/bin/env python3
"""
Request pipeline: local shortcuts first, then the model and the adapter.
"""

from __future__ import annotations

import sys
from dataclasses import dataclass
from datetime import datetime
from typing import Awaitable, Callable, Iterable, List, Optional, Tuple

from .adapter import HighLevelInstruction, HighLevelLike, apply_high_level_instructions
from .dates import infer_date_from_text
from .nodes import InsertPolicy
from .shortcuts import run_shortcut
from .tree import DEFAULT_LEVEL, Forest, clone_forest

AskFunc = Callable[[Forest, str], Awaitable[List[HighLevelInstruction]]]

BUSY_MESSAGE = "busy"


class InFlightGuard:
    """
    Single-slot guard allowing at most one outstanding model request.

    A request arriving while another is outstanding is rejected, not
    queued.

    Examples
    --------
    >>> guard = InFlightGuard()
    >>> guard.acquire(), guard.acquire()
    (True, False)
    >>> guard.release()
    >>> guard.busy
    False
    """

    def __init__(self) -> None:
        self._busy = False

    @property
    def busy(self) -> bool:
        return self._busy

    def acquire(self) -> bool:
        """Take the slot; False when it is already taken."""
        if self._busy:
            return False
        self._busy = True
        return True

    def release(self) -> None:
        self._busy = False


@dataclass(frozen=True)
class EditResult:
    """
    Outcome of one request.

    Attributes
    ----------
    forest : Forest
        Forest to publish (a copy of the input when nothing changed).
    changed : int
        Number of edits that changed the forest.
    message : str
        Status line for the user.
    source : str
        ``shortcut``, ``ai``, ``busy`` or ``empty``.
    """

    forest: Forest
    changed: int
    message: str
    source: str


def describe_changes(changed: int) -> str:
    """
    Format a change count for the user.

    Examples
    --------
    >>> describe_changes(0), describe_changes(3)
    ('no changes', 'changed 3 item(s)')
    """
    if changed <= 0:
        return "no changes"
    return f"changed {changed} item(s)"


async def handle_request(
    forest: Forest,
    text: str,
    ask: AskFunc,
    *,
    guard: Optional[InFlightGuard] = None,
    policy: InsertPolicy = InsertPolicy.FRONT,
    default_level: str = DEFAULT_LEVEL,
    now: Optional[datetime] = None,
) -> EditResult:
    """
    Apply a typed request to the forest.

    Shortcut commands run locally and never reach ``ask``. Everything
    else is sent to ``ask`` (at most one at a time per guard) and the
    returned instructions are applied in order, with a target date
    inferred from the request text as fallback for added nodes.

    Parameters
    ----------
    forest : Forest
        Current forest (never mutated).
    text : str
        User request.
    ask : AskFunc
        Coroutine function returning title-addressed instructions.
    guard : Optional[InFlightGuard], optional
        Shared in-flight guard (default: a fresh one).
    policy : InsertPolicy, optional
        Insertion policy.
    default_level : str, optional
        Level for new threads.
    now : Optional[datetime], optional
        Reference time for date inference.

    Returns
    -------
    EditResult
        New forest, change count and status message.
    """
    cleaned = (text or "").strip()
    if not cleaned:
        return EditResult(clone_forest(forest), 0, describe_changes(0), "empty")

    shortcut = run_shortcut(forest, cleaned)
    if shortcut is not None:
        changed = 1 if shortcut.changed else 0
        return EditResult(shortcut.forest, changed, describe_changes(changed), "shortcut")

    guard = guard or InFlightGuard()
    if not guard.acquire():
        return EditResult(clone_forest(forest), 0, BUSY_MESSAGE, "busy")
    try:
        try:
            instructions = await ask(forest, cleaned)
            if not isinstance(instructions, (list, tuple)):
                instructions = []
            fallback = infer_date_from_text(cleaned, now=now)
            updated, changed = apply_high_level_instructions(
                forest,
                instructions,
                fallback,
                policy=policy,
                default_level=default_level,
            )
        except Exception as exc:
            print(f"you2: request failed: {exc}", file=sys.stderr)
            return EditResult(clone_forest(forest), 0, describe_changes(0), "ai")
    finally:
        guard.release()
    return EditResult(updated, changed, describe_changes(changed), "ai")


def apply_suggested_instructions(
    forest: Forest,
    instructions: Iterable[HighLevelLike],
    *,
    policy: InsertPolicy = InsertPolicy.FRONT,
    default_level: str = DEFAULT_LEVEL,
) -> Tuple[Forest, int]:
    """
    Apply instructions suggested during chat.

    Examples
    --------
    >>> forest = {"baseline": [], "execution": [], "creative": []}
    >>> updated, changed = apply_suggested_instructions(forest, [{"action": "add", "title": "Gym"}])
    >>> changed, updated["execution"][0]["text"]
    (1, 'Gym')
    """
    return apply_high_level_instructions(
        forest, instructions, policy=policy, default_level=default_level
    )
