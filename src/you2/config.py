#!/usr/bin/env python3
"""
Load you2 settings from TOML with environment overrides.
"""

from __future__ import annotations

import os
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

from .nodes import InsertPolicy
from .tree import DEFAULT_LEVEL, is_level

CONFIG_PATH_ENV = "YOU2_CONFIG_PATH"
DATA_PATH_ENV = "YOU2_DATA_PATH"
API_KEY_ENVS = ("YOU2_API_KEY", "OPENAI_API_KEY")
MODEL_ENV = "YOU2_MODEL"
BASE_URL_ENV = "YOU2_BASE_URL"

DEFAULT_MODEL = "gpt-4o-mini"
DEFAULT_CHAT_MODEL = "gpt-4o"
DEFAULT_BASE_URL = "https://api.openai.com/v1"
DEFAULT_TIMEOUT = 30.0


@dataclass(frozen=True)
class AISettings:
    """
    Connection settings for the chat-completions endpoint.

    Attributes
    ----------
    api_key : Optional[str]
        Bearer token; requests are skipped when missing.
    model : str
        Model used to turn requests into edit instructions.
    chat_model : str
        Model used for conversational replies.
    base_url : str
        API root, without the ``/chat/completions`` suffix.
    timeout : float
        Request timeout in seconds.
    """

    api_key: Optional[str] = None
    model: str = DEFAULT_MODEL
    chat_model: str = DEFAULT_CHAT_MODEL
    base_url: str = DEFAULT_BASE_URL
    timeout: float = DEFAULT_TIMEOUT


@dataclass(frozen=True)
class TreeSettings:
    """
    Task tree behaviour settings.

    Attributes
    ----------
    insert : InsertPolicy
        Where new nodes land in their container.
    default_level : str
        Level receiving new threads.
    """

    insert: InsertPolicy = InsertPolicy.FRONT
    default_level: str = DEFAULT_LEVEL


@dataclass(frozen=True)
class Settings:
    """Complete you2 settings."""

    ai: AISettings = field(default_factory=AISettings)
    tree: TreeSettings = field(default_factory=TreeSettings)


def _expand(value: str) -> Path:
    return Path(os.path.expandvars(os.path.expanduser(value)))


def get_config_path() -> Path:
    """
    Return the settings file path.

    Examples
    --------
    >>> isinstance(get_config_path(), Path)
    True
    """
    override = os.environ.get(CONFIG_PATH_ENV, "").strip()
    if override:
        return _expand(override)
    return Path.home() / ".config" / "you2" / "config.toml"


def get_data_path() -> Path:
    """Return the JSON store path for tasks, UI state and logs."""
    override = os.environ.get(DATA_PATH_ENV, "").strip()
    if override:
        return _expand(override)
    return Path.home() / ".config" / "you2" / "store.json"


def _parse_ai_section(raw: Dict[str, Any]) -> AISettings:
    defaults = AISettings()
    try:
        timeout = float(raw.get("timeout", defaults.timeout))
    except (TypeError, ValueError):
        timeout = defaults.timeout
    if timeout <= 0:
        timeout = defaults.timeout
    api_key = str(raw.get("api_key") or "").strip()
    return AISettings(
        api_key=api_key or None,
        model=str(raw.get("model") or defaults.model),
        chat_model=str(raw.get("chat_model") or defaults.chat_model),
        base_url=str(raw.get("base_url") or defaults.base_url).rstrip("/"),
        timeout=timeout,
    )


def _parse_tree_section(raw: Dict[str, Any]) -> TreeSettings:
    try:
        insert = InsertPolicy.parse(raw.get("insert"))
    except ValueError:
        insert = InsertPolicy.FRONT
    level = raw.get("default_level")
    return TreeSettings(
        insert=insert,
        default_level=level if is_level(level) else DEFAULT_LEVEL,
    )


def apply_env_overrides(settings: Settings, environ: Optional[Dict[str, str]] = None) -> Settings:
    """
    Overlay environment variables on file settings.

    Examples
    --------
    >>> apply_env_overrides(Settings(), {"YOU2_MODEL": "local"}).ai.model
    'local'
    >>> apply_env_overrides(Settings(), {"OPENAI_API_KEY": "sk-1"}).ai.api_key
    'sk-1'
    """
    environ = os.environ if environ is None else environ
    ai = settings.ai
    api_key = ai.api_key
    for name in API_KEY_ENVS:
        value = environ.get(name, "").strip()
        if value:
            api_key = value
            break
    model = environ.get(MODEL_ENV, "").strip() or ai.model
    base_url = environ.get(BASE_URL_ENV, "").strip().rstrip("/") or ai.base_url
    return Settings(
        ai=AISettings(
            api_key=api_key,
            model=model,
            chat_model=ai.chat_model,
            base_url=base_url,
            timeout=ai.timeout,
        ),
        tree=settings.tree,
    )


def load_settings(path: Optional[Path] = None) -> Settings:
    """
    Load settings from disk, then apply environment overrides.

    A missing or unreadable file yields the defaults.

    Parameters
    ----------
    path : Optional[Path], optional
        Settings file override.

    Returns
    -------
    Settings
        Effective settings.
    """
    config_path = path or get_config_path()
    parsed: Dict[str, Any] = {}
    if config_path.exists():
        try:
            parsed = tomllib.loads(config_path.read_text(encoding="utf-8"))
        except (OSError, tomllib.TOMLDecodeError):
            parsed = {}
    ai_raw = parsed.get("ai") if isinstance(parsed.get("ai"), dict) else {}
    tree_raw = parsed.get("tree") if isinstance(parsed.get("tree"), dict) else {}
    settings = Settings(ai=_parse_ai_section(ai_raw), tree=_parse_tree_section(tree_raw))
    return apply_env_overrides(settings)
