"""
Engine package - Resumable workflow execution components.
"""

from onboardflow.engine.state import (
    Channel,
    Reducer,
    StateSchema,
    WorkflowState,
    message_event,
)
from onboardflow.engine.node import Step, StepKind, Suspend, interrupt, step
from onboardflow.engine.graph import Graph, END, START
from onboardflow.engine.executor import (
    ExecutionResult,
    ExecutionStatus,
    Executor,
)
from onboardflow.engine.middleware import compose, inject_dependencies, log_resume
from onboardflow.engine.errors import (
    CheckpointConflictError,
    ConfigurationError,
    RoutingError,
    StepExecutionError,
    WorkflowError,
)

__all__ = [
    "Channel",
    "Reducer",
    "StateSchema",
    "WorkflowState",
    "message_event",
    "Step",
    "StepKind",
    "Suspend",
    "interrupt",
    "step",
    "Graph",
    "END",
    "START",
    "ExecutionResult",
    "ExecutionStatus",
    "Executor",
    "compose",
    "inject_dependencies",
    "log_resume",
    "CheckpointConflictError",
    "ConfigurationError",
    "RoutingError",
    "StepExecutionError",
    "WorkflowError",
]
