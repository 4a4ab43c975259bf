"""Constraint and environment types.

TaskConstraints describe what a task needs from the device before it may
run; EnvironmentSnapshot describes what the device currently offers. Both
are immutable value objects with copy-on-write `with_*` builders.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from enum import Enum


class NetworkType(Enum):
    """Network requirement of a task."""

    NONE = "NONE"
    CONNECTED = "CONNECTED"
    UNMETERED = "UNMETERED"
    NOT_ROAMING = "NOT_ROAMING"
    METERED = "METERED"

    @property
    def requires_network(self) -> bool:
        return self is not NetworkType.NONE

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class TaskConstraints:
    """Preconditions gating a task's eligibility to run.

    An unset field is trivially satisfied.

    Example:
        constraints = (
            TaskConstraints.defaults()
            .with_network(NetworkType.UNMETERED)
            .with_charging(True)
        )
    """

    network: NetworkType = NetworkType.NONE
    requires_charging: bool = False
    requires_device_idle: bool = False
    requires_battery_not_low: bool = False
    requires_storage_not_low: bool = False
    trigger_content_uri: str | None = None
    """Content-change trigger reference. Carried for the host, not evaluated."""

    @classmethod
    def defaults(cls) -> TaskConstraints:
        return cls()

    def with_network(self, network: NetworkType) -> TaskConstraints:
        return replace(self, network=network)

    def with_charging(self, required: bool) -> TaskConstraints:
        return replace(self, requires_charging=required)

    def with_device_idle(self, required: bool) -> TaskConstraints:
        return replace(self, requires_device_idle=required)

    def with_battery_not_low(self, required: bool) -> TaskConstraints:
        return replace(self, requires_battery_not_low=required)

    def with_storage_not_low(self, required: bool) -> TaskConstraints:
        return replace(self, requires_storage_not_low=required)

    def with_content_trigger(self, uri: str | None) -> TaskConstraints:
        return replace(self, trigger_content_uri=uri)

    def has_constraints(self) -> bool:
        """Return True if any gate is set."""
        return (
            self.network.requires_network
            or self.requires_charging
            or self.requires_device_idle
            or self.requires_battery_not_low
            or self.requires_storage_not_low
        )


@dataclass(frozen=True)
class EnvironmentSnapshot:
    """Device conditions supplied by the host via set_context().

    Read-only to the scheduler. battery_level is clamped to 0-100.
    """

    has_network: bool = True
    network_is_metered: bool = False
    is_roaming: bool = False
    is_charging: bool = False
    is_idle: bool = False
    battery_level: int = 100
    available_storage_mb: int = 1000

    def __post_init__(self) -> None:
        if not 0 <= self.battery_level <= 100:
            object.__setattr__(self, "battery_level", max(0, min(100, self.battery_level)))

    @classmethod
    def defaults(cls) -> EnvironmentSnapshot:
        return cls()

    def with_network(
        self, has_network: bool, *, metered: bool | None = None, roaming: bool | None = None
    ) -> EnvironmentSnapshot:
        return replace(
            self,
            has_network=has_network,
            network_is_metered=self.network_is_metered if metered is None else metered,
            is_roaming=self.is_roaming if roaming is None else roaming,
        )

    def with_charging(self, is_charging: bool) -> EnvironmentSnapshot:
        return replace(self, is_charging=is_charging)

    def with_idle(self, is_idle: bool) -> EnvironmentSnapshot:
        return replace(self, is_idle=is_idle)

    def with_battery_level(self, level: int) -> EnvironmentSnapshot:
        return replace(self, battery_level=level)

    def with_available_storage(self, storage_mb: int) -> EnvironmentSnapshot:
        return replace(self, available_storage_mb=storage_mb)
