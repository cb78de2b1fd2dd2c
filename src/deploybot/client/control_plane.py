"""HTTP client for the control-plane API.

The control plane is the system of record for pipelines and tasks. The
launcher needs two calls from it:

- ``GET  {base}/task?pid=<pipeline>&id=<task>`` to fetch a task's detail
- ``PUT  {base}/taskStatus`` to record a status transition

Both carry a bearer token. Any non-2xx answer is an error, as is any
transport failure; both surface as ControlPlaneError.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx
from pydantic import ValidationError

from deploybot.errors import DeployBotError
from deploybot.models import Task, TaskStatus, decode_task_response

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 30.0


class ControlPlaneError(DeployBotError):
    """Control-plane call failed.

    Attributes:
        status_code: HTTP status of a non-2xx answer, None for transport errors
    """

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code

    @property
    def is_transport_error(self) -> bool:
        return self.status_code is None


class ControlPlaneClient:
    """Async wrapper around the control-plane endpoints.

    Usage:
        client = ControlPlaneClient(base_url="https://api.example", access_token="...")
        task = await client.fetch_task_detail(pipeline_id, task_id)
        await client.update_task_status(pipeline_id, task.id, TaskStatus.IN_PROGRESS)
        await client.aclose()
    """

    def __init__(
        self,
        *,
        base_url: str,
        access_token: str,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            base_url: Control-plane API root, e.g. ``https://cp.example/api``
            access_token: Bearer token sent with every request
            timeout_seconds: Per-request timeout of the owned HTTP client
            client: Pre-built ``httpx.AsyncClient`` to use instead of an
                owned one. Its own base URL and timeout apply; ``base_url``
                and ``timeout_seconds`` are ignored. It is left unmodified
                (auth headers go on each request) and is not closed by
                aclose().
        """
        self._headers = {
            "Accept": "application/json",
            "Authorization": f"Bearer {access_token}",
        }
        if client is None:
            self._client = httpx.AsyncClient(base_url=base_url.rstrip("/"), timeout=timeout_seconds)
        else:
            self._client = client
        self._owns_client = client is None

    async def aclose(self) -> None:
        """Close the underlying HTTP client when owned by this wrapper."""
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> ControlPlaneClient:
        return self

    async def __aexit__(self, *_: object) -> None:
        await self.aclose()

    async def fetch_task_detail(self, pipeline_id: str, task_id: str) -> Task:
        """Fetch a task's detail.

        Raises:
            ControlPlaneError: On transport failure, non-2xx status or an
                undecodable body
        """
        body = await self._request("GET", "/task", params={"pid": pipeline_id, "id": task_id})
        try:
            return decode_task_response(body)
        except ValidationError as e:
            raise ControlPlaneError(f"invalid task detail for {pipeline_id}/{task_id}: {e}") from e

    async def update_task_status(self, pipeline_id: str, task_id: str, status: TaskStatus) -> None:
        """Record a status transition for a task.

        Raises:
            ControlPlaneError: On transport failure or non-2xx status
        """
        await self._request(
            "PUT",
            "/taskStatus",
            json={
                "pipelineId": pipeline_id,
                "taskId": task_id,
                "task": {"status": status.value},
            },
        )

    async def _request(self, method: str, path: str, **kwargs: Any) -> dict[str, Any]:
        try:
            response = await self._client.request(method, path, headers=self._headers, **kwargs)
        except httpx.HTTPError as exc:
            raise ControlPlaneError(
                f"control plane request failed: {method} {path}: {exc}"
            ) from exc

        if not response.is_success:
            logger.debug(
                f"Control plane answered {response.status_code} for {method} {path}: "
                f"{response.text}"
            )
            raise ControlPlaneError(
                f"control plane returned HTTP {response.status_code} for {method} {path}",
                status_code=response.status_code,
            )

        if not response.content:
            return {}
        try:
            data = response.json()
        except ValueError as exc:
            raise ControlPlaneError(
                f"control plane returned invalid JSON for {method} {path}",
                status_code=response.status_code,
            ) from exc
        return data if isinstance(data, dict) else {"payload": data}
