"""
Tests for single-shot timeout timers.

Covers firing, cancellation before and after the fire point, and the
best-effort nature of cancel() once the callback has started.
"""

import asyncio

import pytest

from deploybot.executor import TimeoutSupervisor, TimerError, TimerState


@pytest.mark.asyncio
async def test_timer_fires_once():
    supervisor = TimeoutSupervisor()
    fired = []

    async def on_fire():
        fired.append("x")

    handle = supervisor.arm(0.01, on_fire, name="t1")
    await handle.wait()

    assert fired == ["x"]
    assert handle.fired
    assert handle.state == TimerState.FIRED
    assert len(supervisor) == 0


@pytest.mark.asyncio
async def test_cancel_before_fire_prevents_callback():
    supervisor = TimeoutSupervisor()
    fired = []

    async def on_fire():
        fired.append("x")

    handle = supervisor.arm(0.05, on_fire)
    assert supervisor.cancel(handle) is True
    await handle.wait()
    await asyncio.sleep(0.08)

    assert fired == []
    assert handle.cancelled


@pytest.mark.asyncio
async def test_cancel_is_idempotent():
    supervisor = TimeoutSupervisor()

    async def on_fire():
        pass

    handle = supervisor.arm(1.0, on_fire)

    assert supervisor.cancel(handle) is True
    assert supervisor.cancel(handle) is False


@pytest.mark.asyncio
async def test_cancel_after_fire_is_a_noop():
    """Once the callback has started, cancel() does not stop it."""
    supervisor = TimeoutSupervisor()
    started = asyncio.Event()
    finished = []

    async def on_fire():
        started.set()
        await asyncio.sleep(0.02)
        finished.append("done")

    handle = supervisor.arm(0.0, on_fire)
    await started.wait()

    assert supervisor.cancel(handle) is False
    await handle.wait()
    assert finished == ["done"]


@pytest.mark.asyncio
async def test_zero_duration_fires_asynchronously():
    supervisor = TimeoutSupervisor()
    fired = []

    async def on_fire():
        fired.append("x")

    handle = supervisor.arm(0, on_fire)

    assert fired == []
    await handle.wait_fired()
    await handle.wait()
    assert fired == ["x"]


def test_negative_duration_rejected():
    supervisor = TimeoutSupervisor()

    async def on_fire():
        pass

    with pytest.raises(TimerError):
        supervisor.arm(-1, on_fire)


@pytest.mark.asyncio
async def test_callback_error_is_contained(caplog):
    supervisor = TimeoutSupervisor()

    async def on_fire():
        raise RuntimeError("boom")

    handle = supervisor.arm(0, on_fire, name="failing")
    await handle.wait()

    assert handle.fired
    assert "boom" in caplog.text


@pytest.mark.asyncio
async def test_cancel_all_leaves_fired_timers():
    supervisor = TimeoutSupervisor()

    async def on_fire():
        await asyncio.sleep(0.05)

    fired = supervisor.arm(0, on_fire)
    await fired.wait_fired()
    armed = [supervisor.arm(10, on_fire) for _ in range(3)]

    assert supervisor.cancel_all() == 3
    assert all(h.cancelled for h in armed)
    assert fired.fired
    await fired.wait()
