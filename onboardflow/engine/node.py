"""
Step Definition for the Workflow Engine.

Steps are the building blocks of a workflow. Each step is a function that
receives the current state and the dependency bundle, and returns either a
partial state update or a suspend signal.
"""

from typing import Any, Callable, Dict, Mapping, Optional, Tuple, Union
from dataclasses import dataclass, field
from enum import Enum
import asyncio
import functools
import logging

from onboardflow.engine.errors import ConfigurationError, StepExecutionError
from onboardflow.engine.state import WorkflowState


logger = logging.getLogger(__name__)


class StepKind(str, Enum):
    """Types of steps in the workflow."""
    STANDARD = "standard"        # Pure state transformation
    SIDE_EFFECT = "side_effect"  # Performs an external call
    INTERRUPT = "interrupt"      # May suspend awaiting external input
    ROUTER = "router"            # Sub-workflow multiplexer
    CLEANUP = "cleanup"          # Clears in-flight fields


@dataclass(frozen=True)
class Suspend:
    """Signal that execution must pause until the caller supplies input."""
    reason: str


class SuspendSignal(Exception):
    """Raised by :func:`interrupt` to suspend from inside a handler."""

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason


def interrupt(reason: str) -> None:
    """Suspend the current step with the given reason tag."""
    raise SuspendSignal(reason)


@dataclass
class StepResult:
    """Outcome of one step execution: a delta, or a suspend reason."""
    delta: Dict[str, Any] = field(default_factory=dict)
    suspend: Optional[str] = None

    @property
    def suspended(self) -> bool:
        return self.suspend is not None


Handler = Callable[
    [WorkflowState, Mapping[str, Any]],
    Union[Dict[str, Any], Suspend, None],
]


@dataclass
class Step:
    """
    A step in the workflow graph.

    Attributes:
        name: Unique, stable identifier (used as the resume pointer)
        handler: Function ``(state, deps) -> delta | Suspend | None`` (sync or async)
        kind: Type of step
        description: Human-readable description
        guard_fields: Fields whose successful value makes the step a no-op
    """

    name: str
    handler: Handler
    kind: StepKind = StepKind.STANDARD
    description: str = ""
    guard_fields: Tuple[str, ...] = ()

    def __post_init__(self):
        """Validate the step after initialization."""
        if not self.name:
            raise ValueError("Step name cannot be empty")
        if not callable(self.handler):
            raise ValueError(f"Handler for step '{self.name}' must be callable")

    @property
    def is_async(self) -> bool:
        """Check if the handler is an async function."""
        return asyncio.iscoroutinefunction(self.handler)

    @property
    def is_interrupt_point(self) -> bool:
        return self.kind == StepKind.INTERRUPT

    @property
    def has_side_effect(self) -> bool:
        return self.kind == StepKind.SIDE_EFFECT

    async def execute(self, state: WorkflowState, deps: Mapping[str, Any]) -> StepResult:
        """
        Execute the step handler.

        Handles both sync and async handlers transparently. Handlers may
        return a ``Suspend`` or call :func:`interrupt`; both become a
        suspended result.

        Raises:
            ConfigurationError: A required dependency is missing
            StepExecutionError: Any other exception escaped the handler
        """
        try:
            if self.is_async:
                result = await self.handler(state, deps)
            else:
                # Run sync handler in executor to not block
                loop = asyncio.get_running_loop()
                result = await loop.run_in_executor(
                    None,
                    functools.partial(self.handler, state, deps)
                )
        except SuspendSignal as signal:
            return StepResult(suspend=signal.reason)
        except ConfigurationError as e:
            if e.step is None:
                e.step = self.name
            raise
        except Exception as e:
            raise StepExecutionError(self.name, e) from e

        if result is None:
            return StepResult()
        if isinstance(result, Suspend):
            return StepResult(suspend=result.reason)
        if isinstance(result, dict):
            return StepResult(delta=result)

        raise StepExecutionError(
            self.name,
            TypeError(
                f"handler must return a dict, Suspend or None, "
                f"got {type(result).__name__}"
            ),
        )

    def to_dict(self) -> Dict[str, Any]:
        """Serialize the step to a dictionary."""
        return {
            "name": self.name,
            "kind": self.kind.value,
            "description": self.description,
            "handler": getattr(self.handler, "__name__", str(self.handler)),
            "guard_fields": list(self.guard_fields),
        }


def step(
    name: Optional[str] = None,
    kind: StepKind = StepKind.STANDARD,
    description: str = "",
    guard_fields: Tuple[str, ...] = (),
) -> Callable:
    """
    Decorator attaching step metadata to a handler function.

    Usage:
        @step(name="await-otp", kind=StepKind.INTERRUPT)
        def await_otp(state, deps):
            ...

    The decorated function stays a plain callable; :func:`create_step`
    reads the metadata when the graph is built.
    """
    def decorator(func: Callable) -> Callable:
        func._step_metadata = {
            "name": name or func.__name__,
            "kind": kind,
            "description": description or (func.__doc__ or "").strip().split("\n")[0],
            "guard_fields": tuple(guard_fields),
        }
        return func

    return decorator


def create_step(func: Callable, name: Optional[str] = None) -> Step:
    """Create a Step from a handler, using metadata from :func:`step` when present."""
    metadata = getattr(func, "_step_metadata", {})
    return Step(
        name=name or metadata.get("name") or func.__name__,
        handler=func,
        kind=metadata.get("kind", StepKind.STANDARD),
        description=metadata.get("description", ""),
        guard_fields=metadata.get("guard_fields", ()),
    )
