"""Status enumeration for task dispatch tracking.

Defines the lifecycle states the control plane records for a pipeline task
while it is being dispatched by the launcher.
"""

from enum import Enum


class TaskStatus(Enum):
    """Status of a pipeline task as reported to the control plane.

    Lifecycle:
        PENDING → IN_PROGRESS → DONE/FAILED/TIMED_OUT

    Exactly one terminal status is reported per dispatch, and IN_PROGRESS
    is always reported before it.
    """

    PENDING = "Pending"
    """Task exists on the control plane but has not been dispatched."""

    IN_PROGRESS = "InProgress"
    """Task has been picked up and its deployment is running."""

    DONE = "Done"
    """Deployment finished successfully."""

    FAILED = "Failed"
    """Deployment returned an error at some step."""

    TIMED_OUT = "TimedOut"
    """Declared timeout elapsed before the deployment finished."""

    @property
    def is_terminal(self) -> bool:
        """Check if this status ends the dispatch lifecycle."""
        return self in (TaskStatus.DONE, TaskStatus.FAILED, TaskStatus.TIMED_OUT)

    def __str__(self) -> str:
        return self.value
