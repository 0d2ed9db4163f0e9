#!/usr/bin/env python3
"""
Three-level task tree edited by hand or in plain language.
"""

import asyncio
import sys
from datetime import datetime
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from .assistant import InFlightGuard, apply_suggested_instructions, handle_request
from .config import Settings, load_settings
from .dates import (
    format_date,
    format_date_time,
    has_clock_time,
    is_timestamp,
    parse_repeat_spec,
    parse_when,
    quick_target,
)
from .insights import agenda, analyze_forest
from .llm import ask_ai_to_edit, chat
from .logs import LOG_CATEGORIES, append_log, normalize_logs
from .nodes import (
    add_item,
    delete_item,
    promote_item,
    rename_item,
    set_repeat,
    set_target_date,
    toggle_completion,
)
from .reducer import REORDER_DIRECTIONS, apply_instruction
from .storage import (
    JsonFileStore,
    load_forest,
    load_logs,
    load_ui_state,
    save_forest,
    save_logs,
    save_ui_state,
    toggle_fold,
)
from .tree import LEVELS, Forest, NodePath, format_path, get_node, iter_nodes, parse_level, parse_path

REQUEST_GUARD = InFlightGuard()
FOLD_SECTION = "collapsedSteps"


def build_tree_prefix(ancestor_has_more: List[bool]) -> str:
    parts = []
    for has_more in ancestor_has_more:
        parts.append("|  " if has_more else "   ")
    parts.append("+- ")
    return "".join(parts)


def fold_key(level: str, path: Sequence[int]) -> str:
    """
    Key identifying a node in the fold state.

    Examples
    --------
    >>> fold_key("execution", [0, 2])
    'execution-0.2'
    """
    return f"{level}-{format_path(path)}"


def format_target(node: Dict) -> str:
    """
    Describe a node's target date, or return an empty string.

    Examples
    --------
    >>> from you2.dates import to_timestamp
    >>> format_target({"targetDate": to_timestamp(datetime(2026, 10, 22)), "allDay": True})
    'due 22 Oct 2026'
    >>> format_target({})
    ''
    >>> format_target({"targetDate": 10**17})
    ''
    """
    target = node.get("targetDate")
    if not is_timestamp(target):
        return ""
    if has_clock_time(int(target), node.get("allDay")):
        return f"due {format_date_time(int(target))}"
    return f"due {format_date(int(target))}"


def format_node_label(node: Dict, path: Sequence[int], collapsed: bool = False) -> str:
    """
    Format one tree line (without the prefix).

    Examples
    --------
    >>> format_node_label({"text": "Boat", "completed": True, "steps": []}, [0])
    '0 [x] Boat'
    >>> format_node_label({"text": "Sink", "steps": [{"text": "Pipe"}]}, [0, 1], collapsed=True)
    '0.1 [ ] Sink (+1)'
    """
    mark = "[x]" if node.get("completed") else "[ ]"
    parts = [format_path(path), mark, str(node.get("text", ""))]
    target = format_target(node)
    if target:
        parts.append(f"({target})")
    if isinstance(node.get("repeat"), dict):
        parts.append("(weekly)")
    steps = node.get("steps") or []
    if collapsed and steps:
        parts.append(f"(+{len(steps)})")
    return " ".join(parts)


def render_forest_lines(
    forest: Forest,
    levels: Sequence[str] = LEVELS,
    collapsed: Optional[Dict[str, bool]] = None,
) -> List[str]:
    """
    Render the forest as an indented tree.

    Parameters
    ----------
    forest : Forest
        Forest to render.
    levels : Sequence[str], optional
        Levels to include.
    collapsed : Optional[Dict[str, bool]], optional
        Fold state keyed by ``fold_key``; folded nodes hide their steps.

    Returns
    -------
    List[str]
        Output lines.

    Examples
    --------
    >>> forest = {"execution": [{"text": "Boat", "steps": [{"text": "Sink", "steps": []}]}]}
    >>> for line in render_forest_lines(forest, ["execution"]):
    ...     print(line)
    execution:
    +- 0 [ ] Boat
       +- 0.0 [ ] Sink
    """
    collapsed = collapsed or {}
    lines: List[str] = []

    def add_node(level: str, node: Dict, path: NodePath, ancestors_has_more: List[bool]) -> None:
        folded = bool(collapsed.get(fold_key(level, path)))
        prefix = build_tree_prefix(ancestors_has_more[:-1])
        lines.append(prefix + format_node_label(node, path, collapsed=folded))
        if folded:
            return
        steps = [step for step in node.get("steps") or [] if isinstance(step, dict)]
        for index, step in enumerate(steps):
            has_more = index < len(steps) - 1
            add_node(level, step, path + [index], ancestors_has_more + [has_more])

    for level in levels:
        lines.append(f"{level}:")
        roots = [node for node in forest.get(level) or [] if isinstance(node, dict)]
        if not roots:
            lines.append("   (empty)")
            continue
        for index, node in enumerate(roots):
            add_node(level, node, [index], [index < len(roots) - 1])
    return lines


def collect_titles(forest: Forest) -> List[str]:
    """
    Return distinct node titles in document order.

    Examples
    --------
    >>> collect_titles({"execution": [{"text": "Boat", "steps": [{"text": "Sink"}, {"text": "Boat"}]}]})
    ['Boat', 'Sink']
    """
    seen = set()
    titles: List[str] = []
    for _level, _path, node in iter_nodes(forest):
        text = node.get("text")
        if isinstance(text, str) and text and text not in seen:
            seen.add(text)
            titles.append(text)
    return titles


def prompt_request(
    prompt: str,
    titles: Sequence[str],
    input_func: Callable[[str], str] = input,
    is_interactive: Optional[bool] = None,
) -> str:
    """
    Prompt for a request, completing existing titles on a terminal.

    Parameters
    ----------
    prompt : str
        Prompt string.
    titles : Sequence[str]
        Titles offered for completion.
    input_func : Callable[[str], str], optional
        Input function used off-terminal or when injected.
    is_interactive : Optional[bool], optional
        Override for stdin TTY detection.

    Returns
    -------
    str
        Raw user input.
    """
    if is_interactive is None:
        is_interactive = sys.stdin.isatty()
    if input_func is not input or not is_interactive:
        return input_func(prompt)

    from prompt_toolkit import prompt as pt_prompt
    from prompt_toolkit.completion import WordCompleter
    from prompt_toolkit.key_binding import KeyBindings

    completer = WordCompleter(list(titles), ignore_case=True, match_middle=True)
    bindings = KeyBindings()

    @bindings.add("right")
    def accept_completion(event):
        buffer = event.current_buffer
        state = buffer.complete_state
        if state and state.current_completion:
            buffer.apply_completion(state.current_completion)
        else:
            buffer.cursor_right(count=1)

    return pt_prompt(
        prompt,
        completer=completer,
        complete_while_typing=True,
        key_bindings=bindings,
    )


def run_async(coroutine):
    """Run a coroutine on a dedicated event loop."""
    loop = asyncio.new_event_loop()
    try:
        asyncio.set_event_loop(loop)
        return loop.run_until_complete(coroutine)
    finally:
        asyncio.set_event_loop(None)
        loop.close()


def resolve_address(forest: Forest, level: str, path: str) -> Tuple[str, NodePath]:
    """
    Parse a level and dotted path typed on the command line.

    Raises
    ------
    ValueError
        If either part is malformed or no node lives there.

    Examples
    --------
    >>> resolve_address({"execution": [{"text": "Boat", "steps": []}]}, "exec", "0")
    ('execution', [0])
    """
    parsed_level = parse_level(level)
    parsed_path = parse_path(path)
    if get_node(forest, parsed_level, parsed_path) is None:
        raise ValueError(f"No item at {parsed_level} {format_path(parsed_path)}")
    return parsed_level, parsed_path


def parse_target(value: str, now: Optional[datetime] = None) -> Tuple[int, bool]:
    """
    Parse a target given as a preset or date text.

    Examples
    --------
    >>> from you2.dates import from_timestamp
    >>> ts, all_day = parse_target("next_thu", datetime(2026, 10, 19, 9))
    >>> from_timestamp(ts), all_day
    (datetime.datetime(2026, 10, 22, 0, 0), True)
    """
    try:
        return quick_target(value.strip().lower(), now=now), True
    except ValueError:
        pass
    inferred = parse_when(value, now=now)
    return inferred.ts, bool(inferred.all_day)


def join_words(words: Optional[List[str]]) -> str:
    return " ".join(words or []).strip()


class Session:
    """Settings, store and forest for one command invocation."""

    def __init__(self, settings: Optional[Settings] = None, store: Optional[JsonFileStore] = None):
        self.settings = settings or load_settings()
        self.store = store or JsonFileStore()
        self.forest = load_forest(self.store)

    @property
    def policy(self):
        return self.settings.tree.insert

    @property
    def default_level(self) -> str:
        return self.settings.tree.default_level

    def publish(self, forest: Forest) -> None:
        self.forest = forest
        save_forest(self.store, forest)

    async def ask(self, forest: Forest, text: str):
        return await ask_ai_to_edit(forest, text, self.settings.ai)


def build_app():
    """
    Build the Typer app lazily to keep fast-path imports light.

    Returns
    -------
    typer.Typer
        Configured Typer application for the you2 CLI.
    """
    import typer

    app = typer.Typer(help="Three-level task tree edited by hand or in plain language")

    def address_or_fail(session: Session, level: str, path: str) -> Tuple[str, NodePath]:
        try:
            return resolve_address(session.forest, level, path)
        except ValueError as exc:
            raise typer.BadParameter(str(exc)) from exc

    @app.command("show")
    def show_cmd(
        level: Optional[str] = typer.Argument(None, help="Only show this level."),
        expand: bool = typer.Option(False, "--all", "-a", help="Ignore folded items."),
    ):
        """Print the task tree."""
        session = Session()
        try:
            levels = [parse_level(level)] if level else list(LEVELS)
        except ValueError as exc:
            raise typer.BadParameter(str(exc)) from exc
        collapsed = {} if expand else load_ui_state(session.store)[FOLD_SECTION]
        for line in render_forest_lines(session.forest, levels, collapsed):
            print(line)

    @app.command("add")
    def add_cmd(
        text: List[str] = typer.Argument(..., help="Item text; 'by fri 6pm' sets a target."),
        level: Optional[str] = typer.Option(None, "--level", "-l", help="Level for a new thread."),
        under: Optional[str] = typer.Option(None, "--under", "-u", help="Parent path, e.g. 0.2."),
    ):
        """Add a thread, or a step under an existing item."""
        session = Session()
        cleaned = join_words(text)
        if not cleaned:
            raise typer.BadParameter("Item text is empty")
        try:
            parsed_level = parse_level(level) if level else session.default_level
            path = parse_path(under) if under else None
        except ValueError as exc:
            raise typer.BadParameter(str(exc)) from exc
        if path is not None and get_node(session.forest, parsed_level, path) is None:
            raise typer.BadParameter(f"No item at {parsed_level} {format_path(path)}")
        session.publish(
            add_item(
                session.forest,
                cleaned,
                parsed_level,
                path,
                policy=session.policy,
                default_level=session.default_level,
            )
        )
        print(f"added {cleaned}")

    @app.command("do")
    def do_cmd(
        text: Optional[List[str]] = typer.Argument(None, help="Request in plain language."),
    ):
        """Run a shortcut (delete/rename/mark done) or ask the model to edit the tree."""
        session = Session()
        request = join_words(text)
        if not request:
            request = prompt_request("you2> ", collect_titles(session.forest)).strip()
        if not request:
            print("no changes")
            return
        result = run_async(
            handle_request(
                session.forest,
                request,
                session.ask,
                guard=REQUEST_GUARD,
                policy=session.policy,
                default_level=session.default_level,
            )
        )
        if result.changed:
            session.publish(result.forest)
        print(result.message)

    @app.command("chat")
    def chat_cmd(
        text: List[str] = typer.Argument(..., help="What is on your mind."),
        apply: bool = typer.Option(False, "--apply", help="Apply suggested task edits."),
    ):
        """Talk it through; suggested edits are listed, and applied with --apply."""
        session = Session()
        message = join_words(text)
        if not REQUEST_GUARD.acquire():
            print("busy")
            return
        try:
            reply = run_async(chat(session.forest, [], message, session.settings.ai))
        finally:
            REQUEST_GUARD.release()
        print(reply.reply)
        for suggestion in reply.task_instructions:
            parent = f" under {suggestion.parent_title}" if suggestion.parent_title else ""
            print(f"  suggest: {suggestion.action} {suggestion.type} {suggestion.title}{parent}")
        if apply and reply.task_instructions:
            updated, changed = apply_suggested_instructions(
                session.forest,
                reply.task_instructions,
                policy=session.policy,
                default_level=session.default_level,
            )
            if changed:
                session.publish(updated)
            print(f"changed {changed} item(s)" if changed else "no changes")

    @app.command("toggle")
    def toggle_cmd(level: str, path: str):
        """Toggle completion; repeating items move to their next occurrence."""
        session = Session()
        parsed_level, parsed_path = address_or_fail(session, level, path)
        updated = toggle_completion(session.forest, parsed_level, parsed_path)
        session.publish(updated)
        node = get_node(updated, parsed_level, parsed_path)
        if node.get("repeat"):
            print(f"rescheduled {node['text']} ({format_target(node)})")
        else:
            print(f"{'done' if node.get('completed') else 'open'}: {node['text']}")

    @app.command("rename")
    def rename_cmd(level: str, path: str, text: List[str] = typer.Argument(...)):
        """Rename an item."""
        session = Session()
        parsed_level, parsed_path = address_or_fail(session, level, path)
        cleaned = join_words(text)
        if not cleaned:
            raise typer.BadParameter("Item text is empty")
        session.publish(rename_item(session.forest, parsed_level, parsed_path, cleaned))
        print(f"renamed to {cleaned}")

    @app.command("delete")
    def delete_cmd(level: str, path: str):
        """Delete an item and its steps."""
        session = Session()
        parsed_level, parsed_path = address_or_fail(session, level, path)
        title = get_node(session.forest, parsed_level, parsed_path)["text"]
        session.publish(delete_item(session.forest, parsed_level, parsed_path))
        print(f"deleted {title}")

    @app.command("promote")
    def promote_cmd(level: str, path: str):
        """Turn a step into a thread at the top of its level."""
        session = Session()
        parsed_level, parsed_path = address_or_fail(session, level, path)
        if len(parsed_path) <= 1:
            print("no changes")
            return
        session.publish(promote_item(session.forest, parsed_level, parsed_path))
        print("promoted")

    @app.command("move")
    def move_cmd(
        level: str,
        path: str,
        direction: str = typer.Argument(..., help="up, down, top or bottom."),
    ):
        """Reorder an item among its siblings."""
        session = Session()
        parsed_level, parsed_path = address_or_fail(session, level, path)
        normalized = direction.strip().lower()
        if normalized not in REORDER_DIRECTIONS:
            raise typer.BadParameter(
                f"Unknown direction: {direction} (expected one of {', '.join(REORDER_DIRECTIONS)})"
            )
        updated = apply_instruction(
            session.forest,
            {
                "action": "reorder",
                "level": parsed_level,
                "path": parsed_path,
                "direction": normalized,
            },
        )
        if updated == session.forest:
            print("no changes")
            return
        session.publish(updated)
        print(f"moved {normalized}")

    @app.command("target")
    def target_cmd(
        level: str,
        path: str,
        when: Optional[List[str]] = typer.Argument(
            None, help="today, tomorrow, next_mon, next_thu, 'fri 6pm' or an ISO date."
        ),
        clear: bool = typer.Option(False, "--clear", help="Remove the target date."),
    ):
        """Set or clear an item's target date."""
        session = Session()
        parsed_level, parsed_path = address_or_fail(session, level, path)
        if clear:
            session.publish(set_target_date(session.forest, parsed_level, parsed_path, None))
            print("target cleared")
            return
        raw = join_words(when)
        try:
            ts, all_day = parse_target(raw)
        except ValueError as exc:
            raise typer.BadParameter(str(exc)) from exc
        updated = set_target_date(session.forest, parsed_level, parsed_path, ts, all_day)
        session.publish(updated)
        print(format_target(get_node(updated, parsed_level, parsed_path)))

    @app.command("repeat")
    def repeat_cmd(
        level: str,
        path: str,
        spec: Optional[List[str]] = typer.Argument(None, help="Weekly schedule, e.g. 'thu 18:30'."),
        clear: bool = typer.Option(False, "--clear", help="Stop repeating."),
    ):
        """Make an item repeat weekly, or stop it repeating."""
        session = Session()
        parsed_level, parsed_path = address_or_fail(session, level, path)
        if clear:
            session.publish(set_repeat(session.forest, parsed_level, parsed_path, None))
            print("repeat cleared")
            return
        try:
            schedule = parse_repeat_spec(join_words(spec))
        except ValueError as exc:
            raise typer.BadParameter(str(exc)) from exc
        updated = set_repeat(session.forest, parsed_level, parsed_path, schedule)
        session.publish(updated)
        print(f"repeats weekly, next {format_target(get_node(updated, parsed_level, parsed_path))}")

    @app.command("fold")
    def fold_cmd(level: str, path: str):
        """Fold or unfold an item's steps in `show`."""
        session = Session()
        parsed_level, parsed_path = address_or_fail(session, level, path)
        key = fold_key(parsed_level, parsed_path)
        state = toggle_fold(load_ui_state(session.store), FOLD_SECTION, key)
        save_ui_state(session.store, state)
        print("folded" if state[FOLD_SECTION][key] else "unfolded")

    @app.command("today")
    def today_cmd():
        """List overdue items and items due today."""
        session = Session()
        view = agenda(session.forest)
        if not view["overdue"] and not view["today"]:
            print("nothing due today")
            return
        for heading in ("overdue", "today"):
            if not view[heading]:
                continue
            print(f"{heading}:")
            for level, path, node in view[heading]:
                print(f"  {level} {format_node_label(node, path)}")

    @app.command("insights")
    def insights_cmd():
        """Point out stale and overloaded threads."""
        session = Session()
        found = analyze_forest(session.forest)
        if not found:
            print("all threads look healthy")
            return
        for insight in found:
            print(f"{insight.level} {format_path(insight.path)}: {insight.text}")

    @app.command("log")
    def log_cmd(
        category: Optional[str] = typer.Argument(
            None, help=f"One of: {', '.join(LOG_CATEGORIES)}."
        ),
        text: Optional[List[str]] = typer.Argument(None, help="Entry text."),
    ):
        """Add a life-log entry, or list recent entries."""
        session = Session()
        logs = normalize_logs(load_logs(session.store))
        entry = join_words(text)
        if category and entry:
            if category not in logs:
                print(
                    f"you2: unknown log category {category!r}; using {LOG_CATEGORIES[0]}.",
                    file=sys.stderr,
                )
            save_logs(session.store, append_log(logs, category, entry))
            print("logged")
            return
        names = [category] if category else list(logs)
        for name in names:
            entries = logs.get(name, [])
            if not entries:
                continue
            print(f"{name}:")
            for item in entries[:10]:
                stamp = format_date_time(item["timestamp"]) if item.get("timestamp") else ""
                print(f"  {stamp}  {item['text']}".rstrip())

    return app


def main() -> None:
    """Entry point for the you2 console script."""
    app = build_app()
    app()


if __name__ == "__main__":
    main()
