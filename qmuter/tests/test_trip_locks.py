"""
Per-trip lock registry.
"""

import asyncio
import pytest
from qmuter.app.services.trip_locks import TripLockRegistry


@pytest.mark.asyncio
async def test_same_trip_is_serialized():
    locks = TripLockRegistry()
    events = []

    async def worker(name):
        async with locks.hold("trip1"):
            events.append(f"{name}-in")
            await asyncio.sleep(0.01)
            events.append(f"{name}-out")

    await asyncio.gather(worker("a"), worker("b"))

    assert events in (
        ["a-in", "a-out", "b-in", "b-out"],
        ["b-in", "b-out", "a-in", "a-out"],
    )


@pytest.mark.asyncio
async def test_different_trips_run_concurrently():
    locks = TripLockRegistry()
    inside = asyncio.Event()
    release = asyncio.Event()

    async def holder():
        async with locks.hold("tripA"):
            inside.set()
            await release.wait()

    task = asyncio.create_task(holder())
    await inside.wait()

    # tripB must not wait for tripA
    async with locks.hold("tripB"):
        assert locks.is_locked("tripA")

    release.set()
    await task


@pytest.mark.asyncio
async def test_entries_are_evicted_when_idle():
    locks = TripLockRegistry()

    async with locks.hold("trip1"):
        assert len(locks) == 1

    assert len(locks) == 0
    assert not locks.is_locked("trip1")


@pytest.mark.asyncio
async def test_entry_released_after_exception():
    locks = TripLockRegistry()

    with pytest.raises(RuntimeError):
        async with locks.hold("trip1"):
            raise RuntimeError("boom")

    assert len(locks) == 0
