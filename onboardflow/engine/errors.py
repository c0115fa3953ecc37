"""
Error taxonomy for the workflow engine.

Steps handle validation errors, remote rejections and transient failures
themselves by writing state. The exceptions below are the ones that cross
the step boundary and reach the execution loop or the caller.
"""

from typing import Optional


class WorkflowError(Exception):
    """Base class for all engine errors."""


class ConfigurationError(WorkflowError):
    """
    A required dependency or credential is missing at step entry.

    Fatal for the current resume call. The executor reports an
    "unavailable" outcome and does not persist the failing step.
    """

    user_message = "We encountered a configuration issue. Please try again later."

    def __init__(self, message: str, step: Optional[str] = None):
        super().__init__(message)
        self.step = step


class CheckpointConflictError(WorkflowError):
    """Checkpoint version mismatch: another resume wrote to the same thread."""

    def __init__(self, thread_id: str, expected_version: int, actual_version: int):
        super().__init__(
            f"Checkpoint conflict on thread '{thread_id}': "
            f"expected version {expected_version}, found {actual_version}"
        )
        self.thread_id = thread_id
        self.expected_version = expected_version
        self.actual_version = actual_version


class RoutingError(WorkflowError):
    """A router returned a key or step that the route table does not know."""


class StepExecutionError(WorkflowError):
    """An unexpected exception escaped a step handler."""

    def __init__(self, step: str, cause: BaseException):
        super().__init__(f"Error in step '{step}': {cause}")
        self.step = step
        self.cause = cause


class StepLimitExceededError(WorkflowError):
    """A single resume call executed more steps than allowed."""

    def __init__(self, limit: int):
        super().__init__(f"Max steps per resume ({limit}) exceeded")
        self.limit = limit
