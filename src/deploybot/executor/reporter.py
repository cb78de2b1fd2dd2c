"""Status reporting to the control plane.

Reporting is best-effort telemetry: a failed update is logged and returned
as a ReportResult, never raised back into the dispatch that triggered it.
That holds for any exception the client raises, not only ControlPlaneError,
since the dispatch waits on the InProgress report before deploying.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from deploybot.client.control_plane import ControlPlaneClient, ControlPlaneError
from deploybot.models import TaskStatus

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ReportResult:
    """Outcome of one status-update call."""

    status: TaskStatus
    ok: bool
    error: str | None = None


class StatusReporter:
    """Sends one status update per call; no retries."""

    def __init__(self, client: ControlPlaneClient):
        self._client = client

    async def report(self, pipeline_id: str, task_id: str, status: TaskStatus) -> ReportResult:
        """Report ``status`` for a task.

        Args:
            pipeline_id: Pipeline the task belongs to
            task_id: Task identifier
            status: New status

        Returns:
            ReportResult describing whether the control plane accepted it
        """
        try:
            await self._client.update_task_status(pipeline_id, task_id, status)
        except ControlPlaneError as e:
            logger.warning(f"Status report {status} for task {pipeline_id}/{task_id} failed: {e}")
            return ReportResult(status=status, ok=False, error=str(e))
        except Exception as e:
            # e.g. httpx.InvalidURL or StreamError, outside httpx.HTTPError
            logger.error(
                f"Status report {status} for task {pipeline_id}/{task_id} "
                f"failed unexpectedly: {e!r}"
            )
            return ReportResult(status=status, ok=False, error=repr(e))

        logger.info(f"Reported {status} for task {pipeline_id}/{task_id}")
        return ReportResult(status=status, ok=True)
