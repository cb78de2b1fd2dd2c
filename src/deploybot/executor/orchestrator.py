"""
Task orchestration - from notification to terminal status.

A notification names a pipeline task. The orchestrator fetches the task from
the control plane (the only step the caller waits for), then dispatches it:

    1. arm a timeout if the task declares one
    2. in a background task: report InProgress, run the deploy protocol,
       cancel the timeout, report Done or Failed

The timeout callback and the deploy completion race to report a terminal
status. Each dispatch owns a Dispatch record whose terminal slot is claimed
with a check-and-set that runs inside a single event-loop step, so exactly
one of them reports; the loser is logged and dropped. The deploy itself is
never cancelled by a timeout, only its status report is suppressed.

Notifications can also be queued with push_event() and consumed by a single
consumer loop started with start(); the queue is bounded and push_event()
never blocks.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from pydantic import ValidationError
from uuid_extensions import uuid7

from deploybot.client.control_plane import ControlPlaneClient, ControlPlaneError
from deploybot.errors import DeployBotError
from deploybot.executor.deployer import ContainerDeployer, DeployError
from deploybot.executor.reporter import ReportResult, StatusReporter
from deploybot.executor.timer import TimeoutSupervisor, TimerHandle
from deploybot.models import (
    Acknowledgment,
    DeploymentConfig,
    NotificationEvent,
    Task,
    TaskStatus,
    decode_notification,
)

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_UNIT_SECONDS = 60.0
DEFAULT_EVENT_QUEUE_SIZE = 100


class QueueFullError(DeployBotError):
    """The orchestrator's event queue is at capacity."""

    pass


class Dispatch:
    """One end-to-end attempt to run a task.

    Owns the "exactly one terminal status" guarantee: finish() claims the
    terminal slot the moment it is called, and every later claim is refused.
    The claimed status is sent only after the InProgress report has been
    attempted, so no terminal status can overtake it.
    """

    def __init__(self, event: NotificationEvent, task: Task, reporter: StatusReporter):
        self.dispatch_id = str(uuid7())
        self.event = event
        self.task = task
        self.timer: TimerHandle | None = None
        self.reports: list[ReportResult] = []
        self.suppressed: list[TaskStatus] = []
        self.error: Exception | None = None

        self._reporter = reporter
        self._terminal: TaskStatus | None = None
        self._in_progress_attempted = asyncio.Event()
        self._terminal_reported = asyncio.Event()

    def __repr__(self) -> str:
        return (
            f"Dispatch(id={self.dispatch_id!r}, pipeline_id={self.pipeline_id!r}, "
            f"task_id={self.task_id!r}, terminal={self._terminal})"
        )

    @property
    def pipeline_id(self) -> str:
        return self.event.pipeline_id

    @property
    def task_id(self) -> str:
        return self.task.id

    @property
    def terminal_status(self) -> TaskStatus | None:
        return self._terminal

    @property
    def reported_statuses(self) -> list[TaskStatus]:
        """Statuses sent to the control plane, in order."""
        return [result.status for result in self.reports]

    async def report_in_progress(self) -> ReportResult:
        try:
            result = await self._reporter.report(
                self.pipeline_id, self.task_id, TaskStatus.IN_PROGRESS
            )
            self.reports.append(result)
            return result
        finally:
            self._in_progress_attempted.set()

    async def finish(self, status: TaskStatus) -> bool:
        """Report ``status`` as the terminal status unless one was already claimed.

        Returns:
            True if this call reported, False if it was suppressed
        """
        # Check-and-set with no await in between, so the first caller wins
        if self._terminal is not None:
            logger.warning(
                f"Dispatch {self.dispatch_id}: suppressing {status} for task "
                f"{self.pipeline_id}/{self.task_id}, {self._terminal} already claimed"
            )
            self.suppressed.append(status)
            return False
        self._terminal = status

        await self._in_progress_attempted.wait()
        try:
            result = await self._reporter.report(self.pipeline_id, self.task_id, status)
            self.reports.append(result)
        finally:
            self._terminal_reported.set()
        return True

    async def wait_terminal(self) -> TaskStatus:
        """Wait until a terminal status has been reported."""
        await self._terminal_reported.wait()
        assert self._terminal is not None
        return self._terminal


class DispatchHandle:
    """Handle for observing a running dispatch.

    Composition - handle HAS-A dispatch and the task executing it.

    Usage:
        ack = await orchestrator.handle_notification(body)
        status = await ack.dispatch.wait_terminal()
    """

    def __init__(self, dispatch: Dispatch, task: asyncio.Task):
        self._dispatch = dispatch
        self._task = task

    def __repr__(self) -> str:
        return f"DispatchHandle({self._dispatch!r}, done={self.done()})"

    @property
    def dispatch_id(self) -> str:
        return self._dispatch.dispatch_id

    @property
    def dispatch(self) -> Dispatch:
        return self._dispatch

    @property
    def status(self) -> TaskStatus | None:
        """Terminal status reported so far, None while none has been."""
        return self._dispatch.terminal_status

    def done(self) -> bool:
        """Return True once the deploy path has finished."""
        return self._task.done()

    async def wait(self) -> TaskStatus | None:
        """Wait for the deploy path to finish.

        With a timeout that fired first, the returned status is TIMED_OUT
        even though the deploy itself ran to the end.
        """
        await asyncio.gather(self._task, return_exceptions=True)
        return self._dispatch.terminal_status

    async def wait_terminal(self) -> TaskStatus:
        """Wait for the terminal status, from whichever path reports it."""
        return await self._dispatch.wait_terminal()


class TaskOrchestrator:
    """Coordinates fetch, timeout, deploy and status reporting for each task.

    Dispatches run with unbounded parallelism; each is an asyncio task kept
    in a set so it is not garbage collected and so shutdown can wait for it.

    Usage:
        orchestrator = TaskOrchestrator(client, ContainerDeployer(engine))
        ack = await orchestrator.handle_notification(body)
        ...
        await orchestrator.shutdown()
    """

    def __init__(
        self,
        client: ControlPlaneClient,
        deployer: ContainerDeployer,
        *,
        reporter: StatusReporter | None = None,
        supervisor: TimeoutSupervisor | None = None,
        timeout_unit_seconds: float = DEFAULT_TIMEOUT_UNIT_SECONDS,
        event_queue_size: int = DEFAULT_EVENT_QUEUE_SIZE,
    ):
        """Initialize the orchestrator.

        Args:
            client: Control-plane client used for task detail fetches
            deployer: Deploy protocol runner
            reporter: Status reporter, built on ``client`` if omitted
            supervisor: Timer supervisor, a fresh one if omitted
            timeout_unit_seconds: Seconds per unit of a task's declared timeout
            event_queue_size: Capacity of the notification queue
        """
        self._client = client
        self._deployer = deployer
        self._reporter = reporter or StatusReporter(client)
        self._supervisor = supervisor or TimeoutSupervisor()
        self._timeout_unit_seconds = timeout_unit_seconds

        self._background_tasks: set[asyncio.Task] = set()
        self._events: asyncio.Queue[NotificationEvent] = asyncio.Queue(maxsize=event_queue_size)
        self._consumer_task: asyncio.Task | None = None
        self._running = False

    @property
    def supervisor(self) -> TimeoutSupervisor:
        return self._supervisor

    def in_flight(self) -> int:
        """Number of dispatches whose deploy path is still running."""
        return len(self._background_tasks)

    # ========================================================================
    # Synchronous-acknowledgment path
    # ========================================================================

    async def handle_notification(
        self, raw: bytes | str | dict[str, Any] | NotificationEvent
    ) -> Acknowledgment:
        """Decode a notification, fetch its task and dispatch it.

        Returns as soon as the task detail is fetched; the deploy runs in
        the background.

        Returns:
            CLIENT_ERROR for a malformed notification or a non-2xx fetch,
            SERVER_ERROR for an unreachable control plane, OK otherwise.
            Nothing is reported to the control plane in the error cases.
        """
        if isinstance(raw, NotificationEvent):
            event = raw
        else:
            try:
                event = decode_notification(raw)
            except ValidationError as e:
                logger.warning(f"Rejected malformed notification: {e.error_count()} error(s)")
                return Acknowledgment.client_error(f"malformed notification: {e}")

        logger.info(
            f"Notification for task {event.pipeline_id}/{event.task_id} "
            f"arguments={event.arguments}"
        )

        try:
            task = await self._client.fetch_task_detail(event.pipeline_id, event.task_id)
        except ControlPlaneError as e:
            logger.error(f"Task detail fetch failed for {event.pipeline_id}/{event.task_id}: {e}")
            if e.is_transport_error:
                return Acknowledgment.server_error(str(e))
            return Acknowledgment.client_error(str(e))

        handle = self.dispatch(event, task)
        return Acknowledgment.ok(dispatch=handle)

    def dispatch(self, event: NotificationEvent, task: Task) -> DispatchHandle:
        """Arm the task's timeout and start its deploy in the background."""
        dispatch = Dispatch(event, task, self._reporter)

        if task.has_timeout:
            seconds = task.timeout * self._timeout_unit_seconds

            async def on_timeout() -> None:
                await dispatch.finish(TaskStatus.TIMED_OUT)

            dispatch.timer = self._supervisor.arm(
                seconds, on_timeout, name=f"{event.pipeline_id}/{task.id}"
            )

        bg_task = asyncio.create_task(self._execute(dispatch), name=f"dispatch:{task.id}")
        self._background_tasks.add(bg_task)
        bg_task.add_done_callback(self._background_tasks.discard)

        logger.info(f"Dispatched task {event.pipeline_id}/{task.id} as {dispatch.dispatch_id}")
        return DispatchHandle(dispatch, bg_task)

    async def _execute(self, dispatch: Dispatch) -> None:
        """Deploy path of one dispatch. Never raises."""
        await dispatch.report_in_progress()

        try:
            config = DeploymentConfig.from_task_config(dispatch.task.config)
            await self._deployer.deploy(config)
        except ValidationError as e:
            service = dispatch.task.config.get("serviceName", "")
            dispatch.error = DeployError("config", str(service), e)
        except DeployError as e:
            dispatch.error = e
        except Exception as e:
            logger.error(f"Dispatch {dispatch.dispatch_id}: unexpected deploy error: {e}")
            dispatch.error = e

        if dispatch.timer is not None:
            self._supervisor.cancel(dispatch.timer)

        if dispatch.error is not None:
            logger.error(
                f"Task {dispatch.pipeline_id}/{dispatch.task_id} failed: {dispatch.error}"
            )
            await dispatch.finish(TaskStatus.FAILED)
        else:
            await dispatch.finish(TaskStatus.DONE)

    # ========================================================================
    # Queued path
    # ========================================================================

    def push_event(self, event: NotificationEvent) -> None:
        """Queue a notification for the consumer loop.

        Raises:
            QueueFullError: If the queue is at capacity
        """
        try:
            self._events.put_nowait(event)
        except asyncio.QueueFull as e:
            raise QueueFullError(
                f"event queue full ({self._events.maxsize}), dropping "
                f"{event.pipeline_id}/{event.task_id}"
            ) from e

    async def pull_event(self) -> NotificationEvent:
        """Wait for the next queued notification."""
        return await self._events.get()

    def pending_events(self) -> int:
        return self._events.qsize()

    async def join_events(self) -> None:
        """Wait until every queued notification has been handled."""
        await self._events.join()

    async def start(self) -> OrchestratorHandle:
        """Start the single consumer loop for queued notifications.

        Returns OrchestratorHandle immediately.
        """
        if self._consumer_task is not None and not self._consumer_task.done():
            raise DeployBotError("orchestrator consumer loop already running")
        self._running = True
        self._consumer_task = asyncio.create_task(self._consume(), name="orchestrator-consumer")
        return OrchestratorHandle(self, self._consumer_task)

    async def _consume(self) -> None:
        logger.info("Orchestrator consumer started")
        try:
            while self._running:
                event = await self.pull_event()
                try:
                    ack = await self.handle_notification(event)
                    if not ack.is_ok:
                        logger.warning(
                            f"Queued notification {event.pipeline_id}/{event.task_id} "
                            f"not dispatched: {ack.message}"
                        )
                except Exception as e:
                    logger.error(f"Orchestrator consumer error: {e}")
                finally:
                    self._events.task_done()
        finally:
            logger.info("Orchestrator consumer stopped")

    # ========================================================================
    # Lifecycle
    # ========================================================================

    async def wait_idle(self) -> None:
        """Wait until every in-flight dispatch's deploy path has finished."""
        while self._background_tasks:
            await asyncio.gather(*list(self._background_tasks), return_exceptions=True)

    async def shutdown(self) -> None:
        """Stop consuming, cancel unfired timers and wait for in-flight deploys.

        Explicit shutdown, not relying on GC.
        """
        logger.info("Orchestrator shutting down...")
        self._running = False

        if self._consumer_task is not None and not self._consumer_task.done():
            self._consumer_task.cancel()
            try:
                await self._consumer_task
            except asyncio.CancelledError:
                pass

        dropped = self._events.qsize()
        if dropped:
            logger.warning(f"Dropping {dropped} queued notification(s) on shutdown")

        if self._background_tasks:
            logger.info(f"Waiting for {len(self._background_tasks)} in-flight dispatch(es)...")
            await self.wait_idle()

        cancelled = self._supervisor.cancel_all()
        if cancelled:
            logger.debug(f"Cancelled {cancelled} armed timer(s)")
        logger.info("Orchestrator stopped")


class OrchestratorHandle:
    """Handle for controlling the orchestrator's consumer loop.

    Usage:
        handle = await orchestrator.start()
        await handle.shutdown()
    """

    def __init__(self, orchestrator: TaskOrchestrator, task: asyncio.Task):
        self._orchestrator = orchestrator
        self._task = task

    def is_running(self) -> bool:
        return not self._task.done()

    async def shutdown(self) -> None:
        await self._orchestrator.shutdown()

    def abort(self) -> None:
        """Cancel the consumer loop without waiting for in-flight dispatches."""
        self._task.cancel()
