"""Synchronous acknowledgment returned to the ingress layer."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import IntEnum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from deploybot.executor.orchestrator import DispatchHandle

__all__ = ["AckCode", "Acknowledgment"]


class AckCode(IntEnum):
    """Application-level result codes carried in the acknowledgment body."""

    OK = 0
    CLIENT_ERROR = 1
    SERVER_ERROR = 2
    BUSY = 3


_HTTP_STATUS = {
    AckCode.OK: 200,
    AckCode.CLIENT_ERROR: 400,
    AckCode.SERVER_ERROR: 400,
    AckCode.BUSY: 503,
}


@dataclass
class Acknowledgment:
    """Immediate answer to a notification.

    Returned before the deployment runs, so it only says whether the
    dispatch was started, never how it ended.
    """

    code: AckCode = AckCode.OK
    """Result code for the triggering system."""

    message: str = ""
    """Human-readable detail, empty on success."""

    dispatch: DispatchHandle | None = field(default=None, repr=False, compare=False)
    """Handle of the started dispatch, None when nothing was dispatched."""

    @classmethod
    def ok(cls, message: str = "", dispatch: DispatchHandle | None = None) -> Acknowledgment:
        return cls(code=AckCode.OK, message=message, dispatch=dispatch)

    @classmethod
    def client_error(cls, message: str) -> Acknowledgment:
        return cls(code=AckCode.CLIENT_ERROR, message=message)

    @classmethod
    def server_error(cls, message: str) -> Acknowledgment:
        return cls(code=AckCode.SERVER_ERROR, message=message)

    @classmethod
    def busy(cls, message: str) -> Acknowledgment:
        return cls(code=AckCode.BUSY, message=message)

    @property
    def is_ok(self) -> bool:
        return self.code == AckCode.OK

    @property
    def http_status(self) -> int:
        """HTTP status the ingress layer should answer with."""
        return _HTTP_STATUS[self.code]

    def to_dict(self) -> dict[str, Any]:
        """Wire representation of the acknowledgment body."""
        return {"code": int(self.code), "msg": self.message}
