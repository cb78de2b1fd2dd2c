"""Webhook entry point.

Thin adapter between whatever HTTP server hosts the launcher and the
orchestrator. It never waits for a deploy: ``handle`` answers after the task
detail fetch, ``submit`` answers as soon as the notification is queued.
"""

from __future__ import annotations

import logging
from typing import Any

from pydantic import ValidationError

from deploybot.executor.orchestrator import QueueFullError, TaskOrchestrator
from deploybot.models import Acknowledgment, decode_notification

logger = logging.getLogger(__name__)


class WebhookIngestor:
    """Accepts task-ready notifications and returns immediate acknowledgments."""

    def __init__(self, orchestrator: TaskOrchestrator):
        self._orchestrator = orchestrator

    async def handle(self, body: bytes | str | dict[str, Any]) -> Acknowledgment:
        """Dispatch a notification and acknowledge once its task is fetched."""
        return await self._orchestrator.handle_notification(body)

    def submit(self, body: bytes | str | dict[str, Any]) -> Acknowledgment:
        """Queue a notification for the orchestrator's consumer loop.

        Returns:
            OK when queued, CLIENT_ERROR when malformed, BUSY when the queue
            is full
        """
        try:
            event = decode_notification(body)
        except ValidationError as e:
            logger.warning(f"Rejected malformed notification: {e.error_count()} error(s)")
            return Acknowledgment.client_error(f"malformed notification: {e}")

        try:
            self._orchestrator.push_event(event)
        except QueueFullError as e:
            logger.warning(str(e))
            return Acknowledgment.busy(str(e))
        return Acknowledgment.ok("accepted")

    @staticmethod
    def health() -> dict[str, str]:
        """Liveness probe; depends on no internal state."""
        return {"status": "ok"}
