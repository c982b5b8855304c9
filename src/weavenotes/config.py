"""Runtime configuration for weavenotes commands."""

from __future__ import annotations

from dataclasses import dataclass
import os
from pathlib import Path
from typing import Mapping


DEFAULT_DB_PATH = ".weavenotes.db"
DEFAULT_ENUMERATION_INTERVAL_SECONDS = 1.0
DEFAULT_WATCH_DEBOUNCE_SECONDS = 1.5
DEFAULT_EXPORT_DIR = "."


def _parse_float(*, name: str, raw_value: str, minimum: float, inclusive: bool = True) -> float:
    try:
        value = float(raw_value)
    except ValueError as exc:
        raise ValueError(f"{name} must be a number") from exc
    if inclusive and value < minimum:
        raise ValueError(f"{name} must be >= {minimum}")
    if not inclusive and value <= minimum:
        raise ValueError(f"{name} must be > {minimum}")
    return value


def _required(source: Mapping[str, str], name: str, default: str) -> str:
    value = source.get(name, default).strip()
    if not value:
        raise ValueError(f"{name} cannot be empty")
    return value


@dataclass(frozen=True, slots=True)
class Settings:
    """Validated weavenotes runtime settings."""

    db_path: Path = Path(DEFAULT_DB_PATH)
    enumeration_interval_seconds: float = DEFAULT_ENUMERATION_INTERVAL_SECONDS
    watch_debounce_seconds: float = DEFAULT_WATCH_DEBOUNCE_SECONDS
    export_dir: Path = Path(DEFAULT_EXPORT_DIR)

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "Settings":
        source: Mapping[str, str] = os.environ if environ is None else environ

        db_path_raw = _required(source, "WEAVENOTES_DB_PATH", DEFAULT_DB_PATH)
        export_dir_raw = _required(source, "WEAVENOTES_EXPORT_DIR", DEFAULT_EXPORT_DIR)
        interval_raw = _required(
            source,
            "WEAVENOTES_ENUMERATION_INTERVAL_SECONDS",
            str(DEFAULT_ENUMERATION_INTERVAL_SECONDS),
        )
        debounce_raw = _required(source, "WEAVENOTES_WATCH_DEBOUNCE_SECONDS", str(DEFAULT_WATCH_DEBOUNCE_SECONDS))

        return cls(
            db_path=Path(db_path_raw),
            enumeration_interval_seconds=_parse_float(
                name="WEAVENOTES_ENUMERATION_INTERVAL_SECONDS",
                raw_value=interval_raw,
                minimum=0.0,
            ),
            watch_debounce_seconds=_parse_float(
                name="WEAVENOTES_WATCH_DEBOUNCE_SECONDS",
                raw_value=debounce_raw,
                minimum=0.0,
                inclusive=False,
            ),
            export_dir=Path(export_dir_raw),
        )
