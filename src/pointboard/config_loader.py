"""Load and validate pointboard configuration from a YAML file."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Validation helpers
# ---------------------------------------------------------------------------


def _get_required(data: dict, key: str, context: str = "config") -> Any:
    """Get a required key from a dict, raising ValueError with a clear message."""
    keys = key.split(".")
    current = data
    for k in keys:
        if not isinstance(current, dict) or k not in current:
            raise ValueError(f"Missing required key '{key}' in {context}")
        current = current[k]
    return current


def _validate_range(value: Any, name: str, minimum: float = 1, maximum: float | None = None) -> None:
    """Validate a numeric config value is within bounds."""
    if isinstance(value, bool) or not isinstance(value, (int, float)) or value < minimum:
        raise ValueError(f"Config '{name}' must be >= {minimum}, got {value!r}")
    if maximum is not None and value > maximum:
        raise ValueError(f"Config '{name}' must be <= {maximum}, got {value!r}")


# ---------------------------------------------------------------------------
# Configuration dataclasses
# ---------------------------------------------------------------------------


@dataclass
class RetryConfig:
    """Backoff settings for best-effort side effects."""

    max_attempts: int = 3
    initial_delay_ms: int = 100
    max_delay_ms: int = 5000
    jitter_min: float = 0.5
    jitter_max: float = 1.5

    @property
    def initial_delay(self) -> float:
        return self.initial_delay_ms / 1000

    @property
    def max_delay(self) -> float:
        return self.max_delay_ms / 1000


@dataclass
class TrackerConfig:
    """Top-level settings loaded from pointboard.yaml."""

    db_path: str
    dashboard_host: str = "127.0.0.1"
    dashboard_port: int = 8420
    points_per_story_point: int = 10
    retry: RetryConfig = field(default_factory=RetryConfig)
    auth_enabled: bool = False
    auth_tokens: dict[str, str] = field(default_factory=dict)


def load_config(path: Path) -> TrackerConfig:
    """Load configuration from a YAML file.

    Parameters
    ----------
    path:
        Path to the YAML file (e.g. ``config/pointboard.yaml``).

    Raises
    ------
    FileNotFoundError
        If *path* does not exist.
    ValueError
        If a required key is missing or a value is out of range.
    """
    if not path.exists():
        raise FileNotFoundError(f"Config not found: {path}")

    with open(path) as f:
        data = yaml.safe_load(f) or {}

    return parse_config(data, context=path.name)


def parse_config(data: dict, context: str = "config") -> TrackerConfig:
    """Build a :class:`TrackerConfig` from an already-parsed mapping."""
    dashboard_raw = data.get("dashboard", {})
    retry_raw = data.get("retry", {})
    auth_raw = data.get("auth", {})

    retry = RetryConfig(
        max_attempts=retry_raw.get("max_attempts", 3),
        initial_delay_ms=retry_raw.get("initial_delay_ms", 100),
        max_delay_ms=retry_raw.get("max_delay_ms", 5000),
        jitter_min=retry_raw.get("jitter_min", 0.5),
        jitter_max=retry_raw.get("jitter_max", 1.5),
    )
    _validate_range(retry.max_attempts, "retry.max_attempts", 1, 10)
    _validate_range(retry.initial_delay_ms, "retry.initial_delay_ms", 0)
    _validate_range(retry.max_delay_ms, "retry.max_delay_ms", retry.initial_delay_ms)
    _validate_range(retry.jitter_min, "retry.jitter_min", 0)
    _validate_range(retry.jitter_max, "retry.jitter_max", retry.jitter_min)

    tokens = auth_raw.get("tokens", {})
    if not isinstance(tokens, dict):
        raise ValueError(f"Config 'auth.tokens' must map token -> user id in {context}")

    config = TrackerConfig(
        db_path=str(Path(_get_required(data, "database.path", context)).expanduser()),
        dashboard_host=dashboard_raw.get("host", "127.0.0.1"),
        dashboard_port=dashboard_raw.get("port", 8420),
        points_per_story_point=data.get("points", {}).get("per_story_point", 10),
        retry=retry,
        auth_enabled=auth_raw.get("enabled", False),
        auth_tokens={str(k): str(v) for k, v in tokens.items()},
    )

    _validate_range(config.dashboard_port, "dashboard.port", 1, 65535)
    _validate_range(config.points_per_story_point, "points.per_story_point", 1)
    if config.auth_enabled and not config.auth_tokens:
        logger.warning("auth.enabled is set but auth.tokens is empty; every request will be rejected")

    return config
