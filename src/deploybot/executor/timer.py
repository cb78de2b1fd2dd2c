"""
Single-shot timeout timers.

A timer is armed with a duration and an async callback. If it is not
cancelled before the duration elapses the callback runs exactly once, in its
own task, asynchronously with respect to whoever armed it.

Cancellation is best-effort: once the countdown has elapsed and the callback
has started, cancel() is a no-op and the callback runs to completion.
Callers that need "exactly one outcome" must guard the outcome itself, which
is what the orchestrator's Dispatch does.

Python Implementation:
- asyncio.Task per armed timer, tracked in a set to keep a reference
- asyncio.sleep for the countdown, Task.cancel() for cancellation
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from enum import Enum

from deploybot.errors import DeployBotError

logger = logging.getLogger(__name__)

TimeoutCallback = Callable[[], Awaitable[object]]


class TimerState(Enum):
    ARMED = "ARMED"
    FIRED = "FIRED"
    CANCELLED = "CANCELLED"


class TimerError(DeployBotError):
    """Timer misuse, e.g. a negative duration."""

    pass


class TimerHandle:
    """Handle to one armed timer.

    Composition - handle HAS-A countdown task, the supervisor owns it.
    """

    def __init__(self, name: str, duration: float):
        self.name = name
        self.duration = duration
        self.state = TimerState.ARMED
        self._task: asyncio.Task | None = None
        self._fired = asyncio.Event()

    def __repr__(self) -> str:
        return (
            f"TimerHandle(name={self.name!r}, duration={self.duration}, "
            f"state={self.state.value})"
        )

    @property
    def fired(self) -> bool:
        return self.state == TimerState.FIRED

    @property
    def cancelled(self) -> bool:
        return self.state == TimerState.CANCELLED

    async def wait_fired(self) -> None:
        """Wait until the callback has been invoked."""
        await self._fired.wait()

    async def wait(self) -> None:
        """Wait until the countdown task (and any callback) has finished."""
        if self._task is not None:
            await asyncio.gather(self._task, return_exceptions=True)


class TimeoutSupervisor:
    """Arms and cancels single-shot timers.

    Usage:
        supervisor = TimeoutSupervisor()
        handle = supervisor.arm(60.0, on_timeout, name="task-42")
        ...
        supervisor.cancel(handle)
    """

    def __init__(self):
        # Keep references so countdown tasks are not garbage collected
        self._handles: set[TimerHandle] = set()

    def __len__(self) -> int:
        """Number of countdowns or callbacks still running."""
        return len(self._handles)

    def arm(self, duration: float, on_fire: TimeoutCallback, name: str = "") -> TimerHandle:
        """Start a countdown that calls ``on_fire`` once ``duration`` seconds elapse.

        Must be called from inside a running event loop.

        Raises:
            TimerError: If duration is negative
        """
        if duration < 0:
            raise TimerError(f"Timer duration must be >= 0, got {duration}")

        handle = TimerHandle(name, duration)
        handle._task = asyncio.create_task(self._countdown(handle, on_fire), name=f"timeout:{name}")
        self._handles.add(handle)
        handle._task.add_done_callback(lambda _: self._handles.discard(handle))

        logger.debug(f"Armed timer {name!r} for {duration}s")
        return handle

    def cancel(self, handle: TimerHandle) -> bool:
        """Cancel an armed timer.

        Idempotent. Returns True only if this call stopped the countdown;
        a timer that already fired or was already cancelled is left alone.
        """
        if handle.state != TimerState.ARMED:
            return False

        handle.state = TimerState.CANCELLED
        if handle._task is not None:
            handle._task.cancel()
        logger.debug(f"Cancelled timer {handle.name!r}")
        return True

    def cancel_all(self) -> int:
        """Cancel every armed timer, leaving fired callbacks running."""
        return sum(1 for handle in list(self._handles) if self.cancel(handle))

    async def _countdown(self, handle: TimerHandle, on_fire: TimeoutCallback) -> None:
        await asyncio.sleep(handle.duration)
        if handle.state != TimerState.ARMED:
            return
        handle.state = TimerState.FIRED
        handle._fired.set()
        logger.info(f"Timer {handle.name!r} fired after {handle.duration}s")
        try:
            await on_fire()
        except Exception as e:
            logger.error(f"Timer {handle.name!r} callback failed: {e}")
