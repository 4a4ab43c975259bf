"""Scheduler configuration.

SchedulerConfig is an immutable bag of tunables with sensible defaults.
It can be built directly, read from PYBGTASKS_* environment variables
with from_env(), or adjusted through the Scheduler's `with_*` builders.

Environment variables:
    PYBGTASKS_MAX_WORKERS              concurrent runs (default 4)
    PYBGTASKS_TICK_INTERVAL            seconds between ticks (default 1.0)
    PYBGTASKS_MAX_LIFETIME_MS          expiry for never-run records (default 24h, 0 disables)
    PYBGTASKS_MAX_BACKOFF_MS           backoff ceiling (default 1h)
    PYBGTASKS_LOW_STORAGE_MB           storage-not-low threshold (default 100)
    PYBGTASKS_LOW_BATTERY_LEVEL        battery-not-low threshold (default 20)
    PYBGTASKS_CANCEL_GRACE             seconds a timed-out run may take to return (default 5.0)
    PYBGTASKS_STRICT_INVARIANTS        "1"/"true" raises on invariant violations
"""

from __future__ import annotations

import os
from dataclasses import dataclass, replace

from pybgtasks.models.retry import DEFAULT_MAX_BACKOFF_MS

_ENV_PREFIX = "PYBGTASKS_"
_TRUTHY = {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class SchedulerConfig:
    max_workers: int = 4
    tick_interval_s: float = 1.0
    max_lifetime_ms: int | None = 24 * 60 * 60 * 1000
    max_backoff_ms: int = DEFAULT_MAX_BACKOFF_MS
    low_storage_threshold_mb: int = 100
    low_battery_threshold: int = 20
    cancel_grace_s: float = 5.0
    strict_invariants: bool = False

    def __post_init__(self) -> None:
        if self.max_workers < 1:
            raise ValueError(f"max_workers must be >= 1, got {self.max_workers}")
        if self.tick_interval_s <= 0:
            raise ValueError(f"tick_interval_s must be > 0, got {self.tick_interval_s}")
        if self.max_lifetime_ms is not None and self.max_lifetime_ms <= 0:
            object.__setattr__(self, "max_lifetime_ms", None)
        if self.cancel_grace_s < 0:
            raise ValueError(f"cancel_grace_s must be >= 0, got {self.cancel_grace_s}")

    @classmethod
    def from_env(cls, environ: dict[str, str] | None = None) -> SchedulerConfig:
        """Build a config from PYBGTASKS_* variables; unset values keep defaults."""
        env = os.environ if environ is None else environ
        config = cls()

        def get(name: str) -> str | None:
            value = env.get(_ENV_PREFIX + name)
            return value.strip() if value is not None and value.strip() else None

        overrides: dict[str, object] = {}
        if (value := get("MAX_WORKERS")) is not None:
            overrides["max_workers"] = int(value)
        if (value := get("TICK_INTERVAL")) is not None:
            overrides["tick_interval_s"] = float(value)
        if (value := get("MAX_LIFETIME_MS")) is not None:
            overrides["max_lifetime_ms"] = int(value)
        if (value := get("MAX_BACKOFF_MS")) is not None:
            overrides["max_backoff_ms"] = int(value)
        if (value := get("LOW_STORAGE_MB")) is not None:
            overrides["low_storage_threshold_mb"] = int(value)
        if (value := get("LOW_BATTERY_LEVEL")) is not None:
            overrides["low_battery_threshold"] = int(value)
        if (value := get("CANCEL_GRACE")) is not None:
            overrides["cancel_grace_s"] = float(value)
        if (value := get("STRICT_INVARIANTS")) is not None:
            overrides["strict_invariants"] = value.lower() in _TRUTHY

        return replace(config, **overrides) if overrides else config
