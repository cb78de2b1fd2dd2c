"""
Tests for the webhook-facing ingestor and the orchestrator's bounded queue.
"""

import pytest

from conftest import make_deploy_config, make_notification
from deploybot.errors import DeployBotError
from deploybot.executor import QueueFullError, WebhookIngestor
from deploybot.models import AckCode, NotificationEvent, TaskStatus


@pytest.fixture
def ingestor(orchestrator):
    return WebhookIngestor(orchestrator)


def test_health_is_static():
    assert WebhookIngestor.health() == {"status": "ok"}


@pytest.mark.asyncio
async def test_handle_delegates_to_orchestrator(ingestor, control_plane):
    control_plane.add_task("pipe-1", "task-1", make_deploy_config())

    ack = await ingestor.handle(make_notification())

    assert ack.is_ok
    assert await ack.dispatch.wait() == TaskStatus.DONE


@pytest.mark.asyncio
async def test_submit_queues_without_fetching(ingestor, orchestrator, control_plane):
    ack = ingestor.submit(make_notification())

    assert ack.is_ok
    assert ack.message == "accepted"
    assert orchestrator.pending_events() == 1
    assert control_plane.requests == []


@pytest.mark.asyncio
async def test_submit_rejects_malformed_body(ingestor, orchestrator):
    ack = ingestor.submit(b"{not json")

    assert ack.code == AckCode.CLIENT_ERROR
    assert orchestrator.pending_events() == 0


@pytest.mark.asyncio
async def test_full_queue_answers_busy(ingestor, orchestrator):
    # The orchestrator fixture's queue holds two events
    assert ingestor.submit(make_notification(task_id="a")).is_ok
    assert ingestor.submit(make_notification(task_id="b")).is_ok

    ack = ingestor.submit(make_notification(task_id="c"))

    assert ack.code == AckCode.BUSY
    assert ack.http_status == 503
    assert orchestrator.pending_events() == 2


@pytest.mark.asyncio
async def test_push_event_raises_when_full(orchestrator):
    event = NotificationEvent(pipelineId="p", taskId="t")
    orchestrator.push_event(event)
    orchestrator.push_event(event)

    with pytest.raises(QueueFullError):
        orchestrator.push_event(event)


@pytest.mark.asyncio
async def test_consumer_loop_dispatches_queued_events(ingestor, orchestrator, control_plane):
    control_plane.add_task("pipe-1", "task-1", make_deploy_config(serviceName="one"))
    control_plane.add_task("pipe-1", "task-2", make_deploy_config(serviceName="two"))

    handle = await orchestrator.start()
    assert handle.is_running()

    ingestor.submit(make_notification(task_id="task-1"))
    ingestor.submit(make_notification(task_id="task-2"))
    await orchestrator.join_events()
    await orchestrator.wait_idle()

    assert control_plane.statuses("task-1") == ["InProgress", "Done"]
    assert control_plane.statuses("task-2") == ["InProgress", "Done"]

    await handle.shutdown()
    assert not handle.is_running()


@pytest.mark.asyncio
async def test_consumer_survives_rejected_events(ingestor, orchestrator, control_plane):
    control_plane.add_task("pipe-1", "task-1", make_deploy_config())
    await orchestrator.start()

    ingestor.submit(make_notification(task_id="missing"))
    ingestor.submit(make_notification(task_id="task-1"))
    await orchestrator.join_events()
    await orchestrator.wait_idle()

    assert control_plane.statuses("missing") == []
    assert control_plane.statuses("task-1") == ["InProgress", "Done"]


@pytest.mark.asyncio
async def test_start_twice_is_refused(orchestrator):
    await orchestrator.start()

    with pytest.raises(DeployBotError):
        await orchestrator.start()
