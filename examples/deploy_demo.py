import asyncio
import json
import logging

import httpx

from deploybot import (
    ContainerDeployer,
    ControlPlaneClient,
    InMemoryContainerEngine,
    TaskOrchestrator,
    WebhookIngestor,
)

logging.basicConfig(level=logging.CRITICAL)

TASKS = {
    ("pipe-1", "deploy-web"): {
        "id": "deploy-web",
        "name": "deploy web",
        "timeout": 1,
        "config": {
            "serviceName": "web",
            "imageName": "nginx",
            "imageTag": "1.27",
            "ports": {"80": "8080"},
            "env": ["MODE=demo"],
        },
    },
    ("pipe-1", "deploy-slow"): {
        "id": "deploy-slow",
        "name": "deploy slow",
        "timeout": 1,
        "config": {"serviceName": "slow", "imageName": "bigimage"},
    },
}


def control_plane(request: httpx.Request) -> httpx.Response:
    if request.method == "GET":
        task = TASKS.get((request.url.params["pid"], request.url.params["id"]))
        if task is None:
            return httpx.Response(404)
        return httpx.Response(200, json={"payload": {"task": task}})

    body = json.loads(request.content)
    print(f"  control plane <- {body['taskId']}: {body['task']['status']}")
    return httpx.Response(200, json={})


async def main():
    http = httpx.AsyncClient(
        base_url="http://control-plane.local/api", transport=httpx.MockTransport(control_plane)
    )
    client = ControlPlaneClient(
        base_url="http://control-plane.local/api", access_token="demo", client=http
    )

    engine = InMemoryContainerEngine()

    orchestrator = TaskOrchestrator(client, ContainerDeployer(engine), timeout_unit_seconds=0.1)
    ingestor = WebhookIngestor(orchestrator)

    print("Deploying web (fast):")
    ack = await ingestor.handle({"payload": {"pipelineId": "pipe-1", "taskId": "deploy-web"}})
    print(f"  ack {ack.http_status} {ack.to_dict()}")
    print(f"  final: {await ack.dispatch.wait()}")

    print("Deploying slow (times out):")
    # Pulling takes longer than the task's one-unit timeout
    engine.delay("pull", 0.3)
    ack = await ingestor.handle({"payload": {"pipelineId": "pipe-1", "taskId": "deploy-slow"}})
    print(f"  ack {ack.http_status} {ack.to_dict()}")
    print(f"  final: {await ack.dispatch.wait()}")

    print("Unknown task:")
    ack = await ingestor.handle({"payload": {"pipelineId": "pipe-1", "taskId": "nope"}})
    print(f"  ack {ack.http_status} {ack.to_dict()}")

    print(f"Running containers: {sorted(n for n in engine.containers if engine.running(n))}")

    await orchestrator.shutdown()
    await http.aclose()


if __name__ == "__main__":
    asyncio.run(main())
