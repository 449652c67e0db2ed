"""Configuration for the branch pruner."""

import json
from dataclasses import dataclass, field
from datetime import timedelta
from pathlib import Path
from typing import Any, Dict, List, Optional

# Branches that should never be deleted
PROTECTED_BRANCHES = ["main", "master", "develop", "development", "staging", "production"]

DEFAULT_REGISTRY_PATH = Path.home() / ".branch-pruner" / "registry.json"


@dataclass
class PrunerConfig:
    """Configuration for pruning runs."""

    cooldown: timedelta = timedelta(hours=24)
    protected_patterns: List[str] = field(default_factory=lambda: list(PROTECTED_BRANCHES))
    recent_checkout_window: timedelta = timedelta(days=14)
    remote: str = "origin"
    force_delete: bool = True
    registry_path: Path = DEFAULT_REGISTRY_PATH
    max_workers: int = 4
    interval: timedelta = timedelta(hours=4)


def load_config(path: Optional[Path] = None, **overrides: Any) -> PrunerConfig:
    """
    Load configuration from a JSON file.

    Args:
        path: JSON file (optional)
        overrides: Field values taking precedence over the file; None values
            are ignored

    Returns:
        PrunerConfig

    Raises:
        ValueError: On unknown keys or invalid values
    """
    values: Dict[str, Any] = {}

    if path is not None:
        with open(path, "r", encoding="utf-8") as f:
            raw = json.load(f)
        if not isinstance(raw, dict):
            raise ValueError(f"Config must be a JSON object: {path}")

        unknown = set(raw) - set(_FILE_KEYS)
        if unknown:
            raise ValueError(f"Unknown config keys: {', '.join(sorted(unknown))}")

        for key, value in raw.items():
            name, convert = _FILE_KEYS[key]
            values[name] = convert(value)

    values.update({k: v for k, v in overrides.items() if v is not None})

    config = PrunerConfig(**values)
    if config.cooldown < timedelta(0):
        raise ValueError("cooldown must not be negative")
    if config.max_workers < 1:
        raise ValueError("max_workers must be at least 1")
    return config


_FILE_KEYS = {
    "cooldown_hours": ("cooldown", lambda v: timedelta(hours=float(v))),
    "protected": ("protected_patterns", lambda v: [str(p) for p in v]),
    "recent_checkout_days": ("recent_checkout_window", lambda v: timedelta(days=float(v))),
    "remote": ("remote", str),
    "force_delete": ("force_delete", bool),
    "registry_path": ("registry_path", lambda v: Path(v).expanduser()),
    "max_workers": ("max_workers", int),
    "interval_hours": ("interval", lambda v: timedelta(hours=float(v))),
}
