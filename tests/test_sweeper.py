from __future__ import annotations

import asyncio

import pytest

from gamerelay.endpoint import ClientEndpoint
from gamerelay.registry import EndpointRegistry
from gamerelay.sweeper import RegistrySweeper

from .conftest import FakeClock

OLD = ClientEndpoint("10.0.0.1", 1000)
FRESH = ClientEndpoint("10.0.0.2", 1000)


def test_sweep_once_evicts_and_counts(clock: FakeClock) -> None:
    registry = EndpointRegistry(clock=clock)
    registry.touch(OLD)
    clock.advance(400)
    registry.touch(FRESH)

    sweeper = RegistrySweeper(registry, interval=60, max_age=360)
    assert sweeper.sweep_once() == 1
    assert sweeper.sweep_once() == 0
    assert sweeper.evicted == 1
    assert OLD not in registry
    assert FRESH in registry


def test_interval_must_be_positive() -> None:
    with pytest.raises(ValueError):
        RegistrySweeper(EndpointRegistry(), interval=0, max_age=10)


async def test_background_task_sweeps_periodically(clock: FakeClock) -> None:
    registry = EndpointRegistry(clock=clock)
    registry.touch(OLD)
    sweeper = RegistrySweeper(registry, interval=0.01, max_age=360)
    sweeper.start()
    try:
        assert sweeper.running
        await asyncio.sleep(0.03)
        assert OLD in registry

        clock.advance(361)
        for _ in range(100):
            if OLD not in registry:
                break
            await asyncio.sleep(0.01)
        assert OLD not in registry
    finally:
        await sweeper.stop()
    assert not sweeper.running


async def test_stop_is_idempotent() -> None:
    sweeper = RegistrySweeper(EndpointRegistry(), interval=1, max_age=1)
    await sweeper.stop()
    sweeper.start()
    sweeper.start()
    await sweeper.stop()
    await sweeper.stop()
    assert not sweeper.running
