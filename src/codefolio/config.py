"""Configuration file management for codefolio.

Reads and writes ~/.codefolio/config.json. Values found there override the
defaults in Settings; unknown keys are ignored.
"""
from __future__ import annotations

import json
from dataclasses import dataclass, field, fields
from pathlib import Path

from codefolio.contributions import (
    DEFAULT_LEVEL_THRESHOLDS,
    DEFAULT_WINDOW_DAYS,
    MAX_WINDOW_DAYS,
    validate_thresholds,
)
from codefolio.problems import DIFFICULTIES

DEFAULT_CONFIG_PATH: Path = Path.home() / ".codefolio" / "config.json"
DEFAULT_EXPORT_DIR: Path = Path.home() / ".codefolio" / "exports"


def _as_int(name: str, value: object) -> int:
    """Accept ints and integral strings or floats; reject bools."""
    if isinstance(value, bool):
        raise ValueError(f"{name} must be an integer, got {value!r}")
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise ValueError(f"{name} must be an integer, got {value!r}") from None
    if not number.is_integer():
        raise ValueError(f"{name} must be an integer, got {value!r}")
    return int(number)


def _as_float(name: str, value: object) -> float:
    if isinstance(value, bool):
        raise ValueError(f"{name} must be a number, got {value!r}")
    try:
        return float(value)
    except (TypeError, ValueError):
        raise ValueError(f"{name} must be a number, got {value!r}") from None


@dataclass
class Settings:
    window_days: int = DEFAULT_WINDOW_DAYS
    level_thresholds: tuple[int, ...] = DEFAULT_LEVEL_THRESHOLDS
    stale_after_hours: float = 24.0
    reminder_offset_hours: float = 16.0
    challenge_lookback_days: int = 14
    difficulty_ceiling: str = "Hard"
    fetch_workers: int = 4
    fetch_deadline_seconds: float | None = None
    export_dir: Path = field(default_factory=lambda: DEFAULT_EXPORT_DIR)
    user_id: str = "local"

    def __post_init__(self) -> None:
        self.window_days = _as_int("window_days", self.window_days)
        self.challenge_lookback_days = _as_int("challenge_lookback_days", self.challenge_lookback_days)
        self.fetch_workers = _as_int("fetch_workers", self.fetch_workers)
        self.stale_after_hours = _as_float("stale_after_hours", self.stale_after_hours)
        self.reminder_offset_hours = _as_float("reminder_offset_hours", self.reminder_offset_hours)
        if self.fetch_deadline_seconds is not None:
            self.fetch_deadline_seconds = _as_float("fetch_deadline_seconds", self.fetch_deadline_seconds)
        if not isinstance(self.export_dir, (str, Path)):
            raise ValueError(f"export_dir must be a path, got {self.export_dir!r}")
        if not isinstance(self.user_id, str) or not self.user_id.strip():
            raise ValueError(f"user_id must be a non-empty string, got {self.user_id!r}")
        self.level_thresholds = validate_thresholds(self.level_thresholds)
        self.export_dir = Path(self.export_dir).expanduser()
        if not 1 <= self.window_days <= MAX_WINDOW_DAYS:
            raise ValueError(f"window_days must be 1-{MAX_WINDOW_DAYS}, got {self.window_days}")
        if self.challenge_lookback_days < 0:
            raise ValueError("challenge_lookback_days must not be negative")
        if self.fetch_workers < 1:
            raise ValueError("fetch_workers must be at least 1")
        if self.difficulty_ceiling not in DIFFICULTIES:
            raise ValueError(
                f"difficulty_ceiling must be one of {', '.join(DIFFICULTIES)}, "
                f"got {self.difficulty_ceiling!r}"
            )


def load_config(config_path: Path | None = None) -> dict:
    """Load config from JSON file. Returns {} if file missing or invalid."""
    path = config_path or DEFAULT_CONFIG_PATH
    if not path.exists():
        return {}
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (json.JSONDecodeError, OSError):
        return {}
    return data if isinstance(data, dict) else {}


def save_config(data: dict, config_path: Path | None = None) -> None:
    """Write config dict to JSON file. Creates parent dirs if needed."""
    path = config_path or DEFAULT_CONFIG_PATH
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(data, indent=2) + "\n", encoding="utf-8")


def _settings_from(config: dict) -> Settings:
    known = {f.name for f in fields(Settings)}
    overrides = {k: v for k, v in config.items() if k in known}
    return Settings(**overrides)


def load_settings(config_path: Path | None = None) -> Settings:
    """Build Settings from defaults overlaid with the config file."""
    return _settings_from(load_config(config_path))


def set_config_value(key: str, value: object, config_path: Path | None = None) -> None:
    """Persist a single setting, validating it against Settings first.

    Raises ValueError for unknown keys or values Settings rejects.
    """
    if key not in {f.name for f in fields(Settings)}:
        raise ValueError(f"Unknown setting: {key}")
    config = load_config(config_path)
    config[key] = value
    _settings_from(config)
    save_config(config, config_path)
