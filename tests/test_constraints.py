"""Tests for constraint evaluation against environment snapshots."""

import itertools

import pytest
from hypothesis import given

from conftest import constraints_strategy, environments
from pybgtasks import EnvironmentSnapshot, NetworkType, TaskConstraints, is_satisfied
from pybgtasks.executor.constraints import unmet_constraints

# ==============================================================================
# Network truth table
# ==============================================================================

# (network, has_network, metered, roaming) -> satisfied
NETWORK_CASES = {
    NetworkType.NONE: lambda has, metered, roaming: True,
    NetworkType.CONNECTED: lambda has, metered, roaming: has,
    NetworkType.METERED: lambda has, metered, roaming: has,
    NetworkType.UNMETERED: lambda has, metered, roaming: has and not metered,
    NetworkType.NOT_ROAMING: lambda has, metered, roaming: has and not roaming,
}


@pytest.mark.parametrize(
    "network,has_network,metered,roaming",
    [
        (network, *flags)
        for network in NetworkType
        for flags in itertools.product([True, False], repeat=3)
    ],
)
def test_network_truth_table(network, has_network, metered, roaming):
    constraints = TaskConstraints().with_network(network)
    env = EnvironmentSnapshot().with_network(has_network, metered=metered, roaming=roaming)

    assert is_satisfied(constraints, env) == NETWORK_CASES[network](has_network, metered, roaming)


# ==============================================================================
# Power, idle and storage gates
# ==============================================================================


@pytest.mark.parametrize("charging", [True, False])
@pytest.mark.parametrize("required", [True, False])
def test_charging_gate(required, charging):
    constraints = TaskConstraints().with_charging(required)
    env = EnvironmentSnapshot().with_charging(charging)
    assert is_satisfied(constraints, env) == (not required or charging)


@pytest.mark.parametrize("idle", [True, False])
@pytest.mark.parametrize("required", [True, False])
def test_idle_gate(required, idle):
    constraints = TaskConstraints().with_device_idle(required)
    env = EnvironmentSnapshot().with_idle(idle)
    assert is_satisfied(constraints, env) == (not required or idle)


@pytest.mark.parametrize("level,expected", [(0, False), (19, False), (20, True), (100, True)])
def test_battery_not_low_threshold(level, expected):
    constraints = TaskConstraints().with_battery_not_low(True)
    env = EnvironmentSnapshot().with_battery_level(level)
    assert is_satisfied(constraints, env) == expected


@pytest.mark.parametrize("storage,expected", [(0, False), (99, False), (100, True), (4096, True)])
def test_storage_not_low_threshold(storage, expected):
    constraints = TaskConstraints().with_storage_not_low(True)
    env = EnvironmentSnapshot().with_available_storage(storage)
    assert is_satisfied(constraints, env) == expected


def test_thresholds_are_configurable():
    constraints = TaskConstraints().with_battery_not_low(True).with_storage_not_low(True)
    env = EnvironmentSnapshot().with_battery_level(50).with_available_storage(500)

    assert is_satisfied(constraints, env)
    assert not is_satisfied(constraints, env, low_battery_threshold=60)
    assert not is_satisfied(constraints, env, low_storage_threshold_mb=1000)


def test_unmet_constraints_names_every_failing_gate():
    constraints = (
        TaskConstraints()
        .with_network(NetworkType.UNMETERED)
        .with_charging(True)
        .with_device_idle(True)
        .with_battery_not_low(True)
        .with_storage_not_low(True)
    )
    env = EnvironmentSnapshot(
        has_network=False, battery_level=5, available_storage_mb=10
    )

    assert unmet_constraints(constraints, env) == [
        "network=UNMETERED",
        "charging",
        "device_idle",
        "battery_not_low",
        "storage_not_low",
    ]


def test_content_trigger_is_not_evaluated():
    constraints = TaskConstraints().with_content_trigger("content://media/photos")
    assert not constraints.has_constraints()
    assert is_satisfied(constraints, EnvironmentSnapshot(has_network=False))


def test_battery_level_is_clamped():
    assert EnvironmentSnapshot(battery_level=150).battery_level == 100
    assert EnvironmentSnapshot(battery_level=-3).battery_level == 0


# ==============================================================================
# Properties
# ==============================================================================


@pytest.mark.property
@given(env=environments)
def test_no_constraints_always_satisfied(env):
    """Property: an unconstrained task may run in any environment."""
    assert is_satisfied(TaskConstraints.defaults(), env)


@pytest.mark.property
@given(constraints=constraints_strategy, env=environments)
def test_satisfied_iff_no_dimension_unmet(constraints, env):
    """Property: is_satisfied is false iff at least one required dimension is unmet."""
    network_ok = NETWORK_CASES[constraints.network](
        env.has_network, env.network_is_metered, env.is_roaming
    )
    expected = (
        network_ok
        and (not constraints.requires_charging or env.is_charging)
        and (not constraints.requires_device_idle or env.is_idle)
        and (not constraints.requires_battery_not_low or env.battery_level >= 20)
        and (not constraints.requires_storage_not_low or env.available_storage_mb >= 100)
    )

    assert is_satisfied(constraints, env) == expected
    assert (unmet_constraints(constraints, env) == []) == expected
