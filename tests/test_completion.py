import asyncio

import pytest

from station.scanner.completion import RoundBarrier


@pytest.mark.asyncio
async def test_sealed_empty_barrier_fires_immediately():
    barrier = RoundBarrier()
    barrier.seal()
    await asyncio.wait_for(barrier.wait(), timeout=1)


@pytest.mark.asyncio
async def test_barrier_waits_for_every_tracked_task():
    barrier = RoundBarrier()
    gates = [asyncio.Event() for _ in range(3)]
    for gate in gates:
        barrier.track(asyncio.create_task(gate.wait()))
    barrier.seal()

    waiter = asyncio.create_task(barrier.wait())
    for gate in gates[:-1]:
        gate.set()
    await asyncio.sleep(0.01)
    assert not waiter.done()
    assert barrier.active == 1

    gates[-1].set()
    await asyncio.wait_for(waiter, timeout=1)
    assert barrier.active == 0


@pytest.mark.asyncio
async def test_failed_and_cancelled_tasks_release_their_slot():
    async def boom():
        raise OSError("connect failed")

    barrier = RoundBarrier()
    failing = barrier.track(asyncio.create_task(boom()))
    hanging = barrier.track(asyncio.create_task(asyncio.Event().wait()))
    barrier.seal()

    hanging.cancel()
    await asyncio.wait_for(barrier.wait(), timeout=1)
    assert isinstance(failing.exception(), OSError)


@pytest.mark.asyncio
async def test_barrier_misuse_is_rejected():
    barrier = RoundBarrier()
    with pytest.raises(RuntimeError):
        await barrier.wait()
    with pytest.raises(RuntimeError):
        barrier.release()

    barrier.seal()
    with pytest.raises(RuntimeError):
        barrier.acquire()
