"""Clients for external services the launcher talks to."""

from deploybot.client.control_plane import ControlPlaneClient, ControlPlaneError

__all__ = ["ControlPlaneClient", "ControlPlaneError"]
