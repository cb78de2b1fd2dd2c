"""
Tests for the Docker adapter with a mocked DockerClient.

Verifies the SDK calls each operation makes and the error mapping; no
daemon is needed.
"""

from unittest.mock import MagicMock

import pytest
from docker.errors import APIError, NotFound
from docker.types import Mount

from conftest import make_deploy_config
from deploybot.engine import (
    BindMount,
    ContainerNotFoundError,
    ContainerSpec,
    EngineError,
    NetworkAttachment,
    PortBinding,
)
from deploybot.engine.docker import DockerEngine
from deploybot.executor import ContainerDeployer
from deploybot.models import DeploymentConfig


@pytest.fixture
def docker_client():
    return MagicMock()


@pytest.fixture
def docker_engine(docker_client):
    return DockerEngine(client=docker_client)


def _spec(**kwargs) -> ContainerSpec:
    defaults = dict(
        name="web",
        image="registry.test/web:1.0.0",
        env=("MODE=production",),
        ports=(PortBinding(container_port="8080", host_port="9090"),),
        mounts=(BindMount(source="/srv/data", target="/data"),),
        restart_policy="on-failure",
        restart_max_retries=3,
    )
    defaults.update(kwargs)
    return ContainerSpec(**defaults)


@pytest.mark.asyncio
async def test_stop_and_remove_address_container_by_name(docker_engine, docker_client):
    await docker_engine.stop_container("web")
    await docker_engine.remove_container("web", force=True)

    docker_client.containers.get.assert_called_with("web")
    docker_client.containers.get.return_value.stop.assert_called_once_with()
    docker_client.containers.get.return_value.remove.assert_called_once_with(force=True)


@pytest.mark.asyncio
async def test_not_found_maps_to_container_not_found(docker_engine, docker_client):
    docker_client.containers.get.side_effect = NotFound("No such container: web")

    with pytest.raises(ContainerNotFoundError):
        await docker_engine.stop_container("web")


@pytest.mark.asyncio
async def test_other_docker_errors_map_to_engine_error(docker_engine, docker_client):
    docker_client.images.pull.side_effect = APIError("toomanyrequests")

    with pytest.raises(EngineError) as exc_info:
        await docker_engine.pull_image("nginx:1.27")

    assert not isinstance(exc_info.value, ContainerNotFoundError)


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "image, repository, tag",
    [
        ("nginx:1.27", "nginx", "1.27"),
        ("nginx", "nginx", "latest"),
        ("registry.test:5000/team/web:2.0", "registry.test:5000/team/web", "2.0"),
    ],
)
async def test_pull_splits_repository_and_tag(
    docker_engine, docker_client, image, repository, tag
):
    await docker_engine.pull_image(image)

    docker_client.images.pull.assert_called_once_with(repository, tag=tag)


@pytest.mark.asyncio
async def test_create_translates_spec(docker_engine, docker_client):
    docker_client.containers.create.return_value.id = "abc123"
    spec = _spec(network=NetworkAttachment(name="backend", network_id="net-1"))

    container_id = await docker_engine.create_container(spec)

    assert container_id == "abc123"
    docker_client.containers.create.assert_called_once_with(
        "registry.test/web:1.0.0",
        name="web",
        environment=["MODE=production"],
        auto_remove=False,
        restart_policy={"Name": "on-failure", "MaximumRetryCount": 3},
        ports={"8080/tcp": "9090"},
        mounts=[Mount(target="/data", source="/srv/data", type="bind")],
        network="backend",
    )


def test_create_kwargs_with_host_ip_and_no_network():
    spec = _spec(
        ports=(
            PortBinding(container_port="53", host_port="5353", protocol="udp", host_ip="127.0.0.1"),
        ),
        mounts=(),
    )

    kwargs = DockerEngine._create_kwargs(spec)

    assert kwargs["ports"] == {"53/udp": ("127.0.0.1", "5353")}
    assert "mounts" not in kwargs
    assert "network" not in kwargs


@pytest.mark.asyncio
async def test_start_uses_container_id(docker_engine, docker_client):
    await docker_engine.start_container("abc123")

    docker_client.containers.get.assert_called_once_with("abc123")
    docker_client.containers.get.return_value.start.assert_called_once_with()


@pytest.mark.asyncio
async def test_remove_image_formats_actions(docker_engine, docker_client):
    docker_client.api.remove_image.return_value = [
        {"Untagged": "nginx:1.27"},
        {"Deleted": "sha256:abc"},
    ]

    removed = await docker_engine.remove_image("sha256:abc")

    docker_client.api.remove_image.assert_called_once_with("sha256:abc", force=True, noprune=False)
    assert removed == ["Untagged: nginx:1.27", "Deleted: sha256:abc"]


@pytest.mark.asyncio
async def test_prune_build_cache_returns_reclaimed_bytes(docker_engine, docker_client):
    docker_client.images.prune_builds.return_value = {"CachesDeleted": [], "SpaceReclaimed": 4096}

    assert await docker_engine.prune_build_cache() == 4096


@pytest.mark.asyncio
async def test_network_operations(docker_engine, docker_client):
    docker_client.networks.create.return_value.id = "net-1"
    docker_client.networks.get.return_value.id = "net-1"

    assert await docker_engine.create_network("backend") == "net-1"
    assert await docker_engine.get_network_id("backend") == "net-1"
    await docker_engine.remove_network("backend")

    docker_client.networks.create.assert_called_once_with("backend", driver="bridge")
    docker_client.networks.get.return_value.remove.assert_called_once_with()


def test_close_closes_client(docker_engine, docker_client):
    docker_engine.close()

    docker_client.close.assert_called_once_with()


def _api_error(status_code: int, explanation: str) -> APIError:
    response = MagicMock(status_code=status_code)
    return APIError(f"{status_code} Client Error", response=response, explanation=explanation)


@pytest.mark.asyncio
async def test_remove_during_auto_removal_maps_to_not_found(docker_engine, docker_client):
    docker_client.containers.get.return_value.remove.side_effect = _api_error(
        409, "removal of container web is already in progress"
    )

    with pytest.raises(ContainerNotFoundError):
        await docker_engine.remove_container("web")


@pytest.mark.asyncio
async def test_other_remove_conflicts_stay_engine_errors(docker_engine, docker_client):
    docker_client.containers.get.return_value.remove.side_effect = _api_error(
        409, "You cannot remove a running container web"
    )

    with pytest.raises(EngineError) as exc_info:
        await docker_engine.remove_container("web")

    assert not isinstance(exc_info.value, ContainerNotFoundError)


@pytest.mark.asyncio
async def test_redeploy_of_auto_remove_container_continues_past_remove(
    docker_engine, docker_client
):
    """Stopping an auto-remove container races the daemon's own removal."""
    container = docker_client.containers.get.return_value
    container.remove.side_effect = _api_error(
        409, "removal of container web is already in progress"
    )
    docker_client.containers.create.return_value.id = "new-id"
    config = DeploymentConfig.from_task_config(make_deploy_config(autoRemove=True))

    container_id = await ContainerDeployer(docker_engine).deploy(config)

    assert container_id == "new-id"
    container.stop.assert_called_once_with()
    docker_client.images.pull.assert_called_once_with("registry.test/web", tag="1.0.0")
    assert docker_client.containers.create.call_args.kwargs["auto_remove"] is True
    docker_client.containers.get.assert_called_with("new-id")
    container.start.assert_called_once_with()
