"""
Pytest configuration and fixtures for deploybot tests.

Provides a fake control plane served through httpx.MockTransport, an
in-memory container engine and a wired orchestrator with a shrunken timeout
unit so timeout races play out in milliseconds.
"""

import asyncio
import json
from collections.abc import AsyncGenerator
from typing import Any

import httpx
import pytest
from hypothesis import strategies as st

from deploybot.client import ControlPlaneClient
from deploybot.engine import InMemoryContainerEngine
from deploybot.executor import ContainerDeployer, TaskOrchestrator

BASE_URL = "http://control-plane.test/api"
ACCESS_TOKEN = "test-token"

# One timeout "minute" in tests
TIMEOUT_UNIT = 0.05


class FakeControlPlane:
    """Control-plane double usable as an httpx.MockTransport handler.

    Serves task details registered with add_task() and records every status
    update as a (pipeline_id, task_id, status) tuple.
    """

    def __init__(self):
        self.tasks: dict[tuple[str, str], dict[str, Any]] = {}
        self.requests: list[httpx.Request] = []
        self.status_updates: list[tuple[str, str, str]] = []

        self.fetch_status_code = 200
        self.status_update_code = 200
        self.transport_error = False
        self.status_update_error: Exception | None = None
        self.report_delays: dict[str, float] = {}

    def add_task(
        self,
        pipeline_id: str,
        task_id: str,
        config: dict[str, Any],
        timeout: int = 0,
        arguments: list[str] | None = None,
    ) -> None:
        self.tasks[(pipeline_id, task_id)] = {
            "id": task_id,
            "name": f"deploy-{task_id}",
            "config": config,
            "timeout": timeout,
            "arguments": arguments or [],
        }

    def statuses(self, task_id: str | None = None) -> list[str]:
        return [s for _, t, s in self.status_updates if task_id is None or t == task_id]

    def fetches(self) -> list[httpx.Request]:
        return [r for r in self.requests if r.method == "GET"]

    def updates(self) -> list[httpx.Request]:
        return [r for r in self.requests if r.method == "PUT"]

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.transport_error:
            raise httpx.ConnectError("connection refused", request=request)

        path = request.url.path
        if request.method == "GET" and path.endswith("/task"):
            if self.fetch_status_code != 200:
                return httpx.Response(self.fetch_status_code, json={"msg": "rejected"})
            key = (request.url.params.get("pid"), request.url.params.get("id"))
            task = self.tasks.get(key)
            if task is None:
                return httpx.Response(404, json={"msg": "task not found"})
            return httpx.Response(200, json={"payload": {"task": task}})

        if request.method == "PUT" and path.endswith("/taskStatus"):
            body = json.loads(request.content)
            status = body["task"]["status"]
            delay = self.report_delays.get(status)
            if delay:
                await asyncio.sleep(delay)
            self.status_updates.append((body["pipelineId"], body["taskId"], status))
            if self.status_update_error is not None:
                raise self.status_update_error
            if self.status_update_code != 200:
                return httpx.Response(self.status_update_code, json={"msg": "error"})
            return httpx.Response(200, json={})

        return httpx.Response(404)


def make_deploy_config(**overrides: Any) -> dict[str, Any]:
    """Wire-format deployment config with sensible defaults."""
    config: dict[str, Any] = {
        "serviceName": "web",
        "imageName": "registry.test/web",
        "imageTag": "1.0.0",
        "env": ["MODE=production"],
        "ports": {"8080": "9090"},
        "volumeMounts": {"/srv/data": "/data"},
        "restartPolicy": {"name": "", "maximumRetryCount": 3},
        "autoRemove": False,
    }
    config.update(overrides)
    return config


def make_notification(pipeline_id: str = "pipe-1", task_id: str = "task-1") -> dict[str, Any]:
    return {"payload": {"pipelineId": pipeline_id, "taskId": task_id, "arguments": ["--fast"]}}


@pytest.fixture
def control_plane() -> FakeControlPlane:
    return FakeControlPlane()


@pytest.fixture
async def http_client(control_plane: FakeControlPlane) -> AsyncGenerator[httpx.AsyncClient, None]:
    client = httpx.AsyncClient(base_url=BASE_URL, transport=httpx.MockTransport(control_plane))
    yield client
    await client.aclose()


@pytest.fixture
def client(http_client: httpx.AsyncClient) -> ControlPlaneClient:
    return ControlPlaneClient(base_url=BASE_URL, access_token=ACCESS_TOKEN, client=http_client)


@pytest.fixture
def engine() -> InMemoryContainerEngine:
    return InMemoryContainerEngine()


@pytest.fixture
async def orchestrator(
    client: ControlPlaneClient, engine: InMemoryContainerEngine
) -> AsyncGenerator[TaskOrchestrator, None]:
    orchestrator = TaskOrchestrator(
        client,
        ContainerDeployer(engine),
        timeout_unit_seconds=TIMEOUT_UNIT,
        event_queue_size=2,
    )
    yield orchestrator
    await orchestrator.shutdown()


# Hypothesis strategies

port_numbers = st.integers(min_value=1, max_value=65535).map(str)

port_maps = st.dictionaries(port_numbers, port_numbers, max_size=8)
