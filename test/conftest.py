"""
Shared pytest fixtures for you2 tests.
"""

from __future__ import annotations

import pytest


@pytest.fixture(autouse=True)
def isolate_you2_files(tmp_path, monkeypatch) -> None:
    """
    Ensure tests do not read/write the real store, config or API key.

    Parameters
    ----------
    tmp_path : pathlib.Path
        Temporary path provided by pytest.
    monkeypatch : pytest.MonkeyPatch
        Monkeypatch fixture for environment updates.
    """
    monkeypatch.setenv("YOU2_DATA_PATH", str(tmp_path / "store.json"))
    monkeypatch.setenv("YOU2_CONFIG_PATH", str(tmp_path / "config.toml"))
    for name in ("YOU2_API_KEY", "OPENAI_API_KEY", "YOU2_MODEL", "YOU2_BASE_URL"):
        monkeypatch.delenv(name, raising=False)
