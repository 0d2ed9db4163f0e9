"""
Tests for settings loading.
"""

import doctest
from pathlib import Path

import pytest

import you2.config as config
from you2.nodes import InsertPolicy


@pytest.mark.unit
def test_defaults_when_file_missing():
    """
    Ensure missing config files yield defaults.

    Returns
    -------
    None
        This test asserts default settings.
    """
    settings = config.load_settings()

    assert settings.ai.api_key is None
    assert settings.ai.model == config.DEFAULT_MODEL
    assert settings.ai.base_url == config.DEFAULT_BASE_URL
    assert settings.tree.insert is InsertPolicy.FRONT
    assert settings.tree.default_level == "execution"


@pytest.mark.unit
def test_load_settings_reads_toml(tmp_path):
    """
    Ensure TOML sections populate settings.

    Returns
    -------
    None
        This test asserts TOML parsing.
    """
    path = tmp_path / "config.toml"
    path.write_text(
        "\n".join(
            [
                "[ai]",
                'api_key = "sk-file"',
                'model = "small"',
                'base_url = "http://localhost:8080/v1/"',
                "timeout = 5",
                "",
                "[tree]",
                'insert = "back"',
                'default_level = "creative"',
            ]
        ),
        encoding="utf-8",
    )

    settings = config.load_settings()

    assert settings.ai.api_key == "sk-file"
    assert settings.ai.model == "small"
    assert settings.ai.base_url == "http://localhost:8080/v1"
    assert settings.ai.timeout == 5.0
    assert settings.tree.insert is InsertPolicy.BACK
    assert settings.tree.default_level == "creative"


@pytest.mark.unit
def test_invalid_values_fall_back(tmp_path):
    """
    Ensure bad values and corrupt files fall back to defaults.

    Returns
    -------
    None
        This test asserts tolerant parsing.
    """
    path = tmp_path / "config.toml"
    path.write_text('[ai]\ntimeout = -3\n[tree]\ninsert = "middle"\ndefault_level = "later"\n', encoding="utf-8")

    settings = config.load_settings(path)

    assert settings.ai.timeout == config.DEFAULT_TIMEOUT
    assert settings.tree.insert is InsertPolicy.FRONT
    assert settings.tree.default_level == "execution"

    path.write_text("[ai\nbroken", encoding="utf-8")
    assert config.load_settings(path) == config.Settings()


@pytest.mark.unit
def test_environment_overrides_file(tmp_path, monkeypatch):
    """
    Ensure environment variables win over file values.

    Returns
    -------
    None
        This test asserts environment overrides.
    """
    (tmp_path / "config.toml").write_text('[ai]\napi_key = "sk-file"\n', encoding="utf-8")
    monkeypatch.setenv("OPENAI_API_KEY", "sk-openai")
    monkeypatch.setenv("YOU2_API_KEY", "sk-you2")
    monkeypatch.setenv("YOU2_BASE_URL", "http://proxy/v1/")

    settings = config.load_settings()

    assert settings.ai.api_key == "sk-you2"
    assert settings.ai.base_url == "http://proxy/v1"


@pytest.mark.unit
def test_paths_follow_environment(tmp_path, monkeypatch):
    """
    Ensure config and data paths honour their environment overrides.

    Returns
    -------
    None
        This test asserts path resolution.
    """
    monkeypatch.setenv("YOU2_DATA_PATH", str(tmp_path / "elsewhere.json"))

    assert config.get_data_path() == tmp_path / "elsewhere.json"
    assert config.get_config_path() == tmp_path / "config.toml"

    monkeypatch.delenv("YOU2_DATA_PATH")
    assert config.get_data_path() == Path.home() / ".config" / "you2" / "store.json"


@pytest.mark.unit
def test_config_doctest_examples():
    """
    Run doctest examples embedded in config helpers.

    Returns
    -------
    None
        This test asserts doctest coverage for config helpers.
    """
    results = doctest.testmod(config)
    assert results.failed == 0
