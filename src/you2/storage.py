#!/usr/bin/env python3
"""
Key-value persistence for the task forest, UI fold state and logs.
"""

from __future__ import annotations

import json
import os
import sys
from pathlib import Path
from typing import Any, Dict, Optional

from .config import get_data_path
from .nodes import normalize_forest
from .tree import Forest

THREADS_KEY = "you2_threads"
UI_KEY = "you2_ui"
LOGS_KEY = "you2_logs"


class JsonFileStore:
    """
    String key-value store backed by a single JSON file.

    Values are stored as strings, mirroring the device storage the app
    was designed around; callers serialize their own payloads.
    """

    def __init__(self, path: Optional[Path] = None) -> None:
        self.path = path or get_data_path()

    def _read_all(self) -> Dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError):
            return {}
        if not isinstance(data, dict):
            return {}
        return {str(key): value for key, value in data.items() if isinstance(value, str)}

    def get(self, key: str) -> Optional[str]:
        """Return the stored string for key, or None."""
        return self._read_all().get(key)

    def set(self, key: str, value: str) -> None:
        """
        Store a string under key.

        Raises
        ------
        OSError
            If the file cannot be written.
        """
        data = self._read_all()
        data[key] = value
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_name(self.path.name + ".tmp")
        tmp_path.write_text(json.dumps(data, indent=2, sort_keys=True), encoding="utf-8")
        os.replace(tmp_path, self.path)


def _load_json(store: JsonFileStore, key: str) -> Any:
    raw = store.get(key)
    if not raw:
        return None
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        return None


def _save_json(store: JsonFileStore, key: str, payload: Any, label: str) -> bool:
    try:
        store.set(key, json.dumps(payload))
    except OSError as exc:
        print(f"you2: unable to save {label}: {exc}", file=sys.stderr)
        return False
    return True


def load_forest(store: JsonFileStore) -> Forest:
    """
    Load the stored forest, normalized; empty when missing or corrupt.

    Parameters
    ----------
    store : JsonFileStore
        Backing store.

    Returns
    -------
    Forest
        Loaded forest.
    """
    return normalize_forest(_load_json(store, THREADS_KEY))


def save_forest(store: JsonFileStore, forest: Forest) -> bool:
    """
    Persist the forest; failures are reported, not raised.

    Returns
    -------
    bool
        True when the write succeeded.
    """
    return _save_json(store, THREADS_KEY, forest, "tasks")


def load_ui_state(store: JsonFileStore) -> Dict[str, Dict[str, bool]]:
    """
    Load fold state as ``{"expandedThreads": {...}, "collapsedSteps": {...}}``.

    Keys are ``"<level>-<dotted path>"``, e.g. ``"execution-0.2"``.
    """
    raw = _load_json(store, UI_KEY)
    state: Dict[str, Dict[str, bool]] = {"expandedThreads": {}, "collapsedSteps": {}}
    if not isinstance(raw, dict):
        return state
    for name in state:
        section = raw.get(name)
        if isinstance(section, dict):
            state[name] = {str(key): bool(value) for key, value in section.items()}
    return state


def save_ui_state(store: JsonFileStore, state: Dict[str, Dict[str, bool]]) -> bool:
    """Persist fold state; failures are reported, not raised."""
    return _save_json(store, UI_KEY, state, "view state")


def toggle_fold(
    state: Dict[str, Dict[str, bool]],
    section: str,
    key: str,
) -> Dict[str, Dict[str, bool]]:
    """
    Return a copy of fold state with one entry flipped.

    Examples
    --------
    >>> toggle_fold({"expandedThreads": {}, "collapsedSteps": {}}, "collapsedSteps", "0.1")
    {'expandedThreads': {}, 'collapsedSteps': {'0.1': True}}
    """
    updated = {name: dict(values) for name, values in state.items()}
    values = updated.setdefault(section, {})
    values[key] = not values.get(key, False)
    return updated


def load_logs(store: JsonFileStore) -> Any:
    """Return the raw stored log payload, or None."""
    return _load_json(store, LOGS_KEY)


def save_logs(store: JsonFileStore, logs: Dict[str, Any]) -> bool:
    """Persist the log collection; failures are reported, not raised."""
    return _save_json(store, LOGS_KEY, logs, "logs")
