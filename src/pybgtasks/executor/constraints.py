"""Constraint evaluation.

is_satisfied() is a pure function of (constraints, environment): the
conjunction of independent gates, where an unset gate always passes. The
dispatcher re-evaluates it every tick until the record runs, is cancelled
or expires.
"""

from __future__ import annotations

from pybgtasks.models.constraints import EnvironmentSnapshot, NetworkType, TaskConstraints

DEFAULT_LOW_BATTERY_THRESHOLD = 20
DEFAULT_LOW_STORAGE_THRESHOLD_MB = 100

__all__ = [
    "DEFAULT_LOW_BATTERY_THRESHOLD",
    "DEFAULT_LOW_STORAGE_THRESHOLD_MB",
    "is_satisfied",
    "unmet_constraints",
]


def _network_ok(network: NetworkType, env: EnvironmentSnapshot) -> bool:
    if network is NetworkType.NONE:
        return True
    if not env.has_network:
        return False
    if network is NetworkType.UNMETERED:
        return not env.network_is_metered
    if network is NetworkType.NOT_ROAMING:
        return not env.is_roaming
    # CONNECTED and METERED accept any connection.
    return True


def unmet_constraints(
    constraints: TaskConstraints,
    env: EnvironmentSnapshot,
    *,
    low_battery_threshold: int = DEFAULT_LOW_BATTERY_THRESHOLD,
    low_storage_threshold_mb: int = DEFAULT_LOW_STORAGE_THRESHOLD_MB,
) -> list[str]:
    """Return the names of the gates the environment does not satisfy.

    An empty list means the task may run.
    """
    unmet: list[str] = []
    if not _network_ok(constraints.network, env):
        unmet.append(f"network={constraints.network}")
    if constraints.requires_charging and not env.is_charging:
        unmet.append("charging")
    if constraints.requires_device_idle and not env.is_idle:
        unmet.append("device_idle")
    if constraints.requires_battery_not_low and env.battery_level < low_battery_threshold:
        unmet.append("battery_not_low")
    if (
        constraints.requires_storage_not_low
        and env.available_storage_mb < low_storage_threshold_mb
    ):
        unmet.append("storage_not_low")
    return unmet


def is_satisfied(
    constraints: TaskConstraints,
    env: EnvironmentSnapshot,
    *,
    low_battery_threshold: int = DEFAULT_LOW_BATTERY_THRESHOLD,
    low_storage_threshold_mb: int = DEFAULT_LOW_STORAGE_THRESHOLD_MB,
) -> bool:
    """Return True if every required dimension is met."""
    return not unmet_constraints(
        constraints,
        env,
        low_battery_threshold=low_battery_threshold,
        low_storage_threshold_mb=low_storage_threshold_mb,
    )
