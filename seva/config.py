"""Configuration loading for the scheduler."""

from __future__ import annotations

from dataclasses import dataclass, fields
from pathlib import Path

import yaml

from seva.domain.db import DEFAULT_DB_URL


@dataclass
class SchedulerConfig:
    db_url: str = DEFAULT_DB_URL
    # Venue-wide concurrency caps per program category
    kirtan_cap: int = 2
    path_cap: int = 1
    jatha_size: int = 3
    fairness_window_weeks: int = 8
    pending_expiry_hours: int = 24
    sweep_lock_ttl_seconds: int = 300
    log_level: str = "INFO"

    def __post_init__(self) -> None:
        for name in ("kirtan_cap", "path_cap"):
            if int(getattr(self, name)) < 0:
                raise ValueError(f"{name} must be >= 0")
        for name in ("jatha_size", "fairness_window_weeks", "pending_expiry_hours", "sweep_lock_ttl_seconds"):
            if int(getattr(self, name)) <= 0:
                raise ValueError(f"{name} must be > 0")


def load_config(path: str | Path | None = None) -> SchedulerConfig:
    """
    Load scheduler configuration from a YAML file.

    Missing keys keep their defaults. With no path, returns the defaults.

    Raises:
        ValueError: If the file has unknown keys or invalid values
    """
    if path is None:
        return SchedulerConfig()

    with open(path, "r", encoding="utf-8") as fh:
        raw = yaml.safe_load(fh) or {}
    if not isinstance(raw, dict):
        raise ValueError(f"Config {path} must be a mapping, got {type(raw).__name__}")

    known = {f.name for f in fields(SchedulerConfig)}
    unknown = sorted(set(raw) - known)
    if unknown:
        raise ValueError(f"Unknown config keys in {path}: {', '.join(unknown)}")

    return SchedulerConfig(**raw)
