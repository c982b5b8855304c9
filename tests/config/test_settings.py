from __future__ import annotations

from pathlib import Path

import pytest

from weavenotes.config import (
    DEFAULT_DB_PATH,
    DEFAULT_ENUMERATION_INTERVAL_SECONDS,
    DEFAULT_WATCH_DEBOUNCE_SECONDS,
    Settings,
)


def test_settings_defaults_from_empty_environment() -> None:
    settings = Settings.from_env({})

    assert settings.db_path == Path(DEFAULT_DB_PATH)
    assert settings.enumeration_interval_seconds == DEFAULT_ENUMERATION_INTERVAL_SECONDS
    assert settings.watch_debounce_seconds == DEFAULT_WATCH_DEBOUNCE_SECONDS
    assert settings.export_dir == Path(".")


def test_settings_read_overrides() -> None:
    settings = Settings.from_env(
        {
            "WEAVENOTES_DB_PATH": " data/notes.db ",
            "WEAVENOTES_ENUMERATION_INTERVAL_SECONDS": "0",
            "WEAVENOTES_WATCH_DEBOUNCE_SECONDS": "0.25",
            "WEAVENOTES_EXPORT_DIR": "exports",
        }
    )

    assert settings.db_path == Path("data/notes.db")
    assert settings.enumeration_interval_seconds == 0.0
    assert settings.watch_debounce_seconds == 0.25
    assert settings.export_dir == Path("exports")


def test_settings_reject_empty_values() -> None:
    with pytest.raises(ValueError, match="WEAVENOTES_DB_PATH"):
        Settings.from_env({"WEAVENOTES_DB_PATH": "  "})

    with pytest.raises(ValueError, match="WEAVENOTES_EXPORT_DIR"):
        Settings.from_env({"WEAVENOTES_EXPORT_DIR": ""})


def test_settings_validate_numeric_ranges() -> None:
    with pytest.raises(ValueError, match="WEAVENOTES_ENUMERATION_INTERVAL_SECONDS"):
        Settings.from_env({"WEAVENOTES_ENUMERATION_INTERVAL_SECONDS": "-1"})

    with pytest.raises(ValueError, match="WEAVENOTES_WATCH_DEBOUNCE_SECONDS"):
        Settings.from_env({"WEAVENOTES_WATCH_DEBOUNCE_SECONDS": "0"})

    with pytest.raises(ValueError, match="WEAVENOTES_WATCH_DEBOUNCE_SECONDS"):
        Settings.from_env({"WEAVENOTES_WATCH_DEBOUNCE_SECONDS": "soon"})


def test_settings_read_process_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("WEAVENOTES_DB_PATH", "from-env.db")

    assert Settings.from_env().db_path == Path("from-env.db")
