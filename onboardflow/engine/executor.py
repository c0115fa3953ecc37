"""
Resumable Workflow Executor.

The executor drives one thread of a workflow graph: it loads the thread's
checkpoint, merges the caller's input, runs steps along router-selected
edges and persists a checkpoint after every step. Execution stops at the
terminal marker or when a step suspends awaiting external input; a later
resume call re-enters at the persisted step, or at the entry point when its
input sets a preempting channel.
"""

from typing import Any, Callable, Dict, List, Mapping, Optional
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
import time
import logging

from onboardflow.engine.errors import (
    ConfigurationError,
    RoutingError,
    StepExecutionError,
    StepLimitExceededError,
)
from onboardflow.engine.graph import Graph, END
from onboardflow.engine.state import StateSchema, WorkflowState
from onboardflow.storage.checkpoint import Checkpoint, CheckpointStore


logger = logging.getLogger(__name__)


DEFAULT_MAX_STEPS = 100


class ExecutionStatus(str, Enum):
    """Outcome of a resume call."""
    COMPLETED = "completed"      # Reached the terminal marker
    SUSPENDED = "suspended"      # Waiting for external input
    UNAVAILABLE = "unavailable"  # Missing dependency or credentials
    FAILED = "failed"            # Unexpected engine or step error


@dataclass
class ExecutionStep:
    """A single step in the execution log."""
    step: int
    name: str
    started_at: datetime
    completed_at: Optional[datetime] = None
    duration_ms: Optional[float] = None
    result: str = "success"
    error: Optional[str] = None
    route_taken: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "step": self.step,
            "name": self.name,
            "started_at": self.started_at.isoformat(),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "duration_ms": self.duration_ms,
            "result": self.result,
            "error": self.error,
            "route_taken": self.route_taken,
        }


@dataclass
class ExecutionResult:
    """Result of a resume call."""
    thread_id: str
    status: ExecutionStatus
    state: WorkflowState
    next_step: Optional[str] = None
    reason: Optional[str] = None
    execution_log: List[ExecutionStep] = field(default_factory=list)
    version: int = 0
    total_duration_ms: Optional[float] = None
    error: Optional[str] = None

    @property
    def suspended_at(self) -> Optional[str]:
        return self.next_step if self.status == ExecutionStatus.SUSPENDED else None

    @property
    def final_state(self) -> Dict[str, Any]:
        return self.state.data

    @property
    def events(self) -> List[Dict[str, Any]]:
        return self.state.events

    def public_state(self, schema: StateSchema) -> Dict[str, Any]:
        """State fields safe to expose to external clients."""
        return schema.public_view(self.state.data)

    def to_dict(self, schema: Optional[StateSchema] = None) -> Dict[str, Any]:
        return {
            "thread_id": self.thread_id,
            "status": self.status.value,
            "suspended_at": self.suspended_at,
            "reason": self.reason,
            "state": self.public_state(schema) if schema else self.state.data,
            "events": self.state.events,
            "execution_log": [s.to_dict() for s in self.execution_log],
            "version": self.version,
            "total_duration_ms": self.total_duration_ms,
            "error": self.error,
        }


class Executor:
    """
    Resumable workflow executor.

    Runs steps strictly sequentially within one resume call, writing
    exactly one checkpoint per executed step. Callers must serialize
    resumes per thread; concurrent writers are rejected by the store's
    version check and surface as ``CheckpointConflictError``.

    Usage:
        executor = Executor(graph, schema, store, deps={"tools": registry})
        result = await executor.resume("thread-1", {"cardData": {...}})
    """

    def __init__(
        self,
        graph: Graph,
        schema: StateSchema,
        store: CheckpointStore,
        deps: Optional[Mapping[str, Any]] = None,
        max_steps: int = DEFAULT_MAX_STEPS,
        on_step: Optional[Callable[[str, ExecutionStep, WorkflowState], None]] = None,
    ):
        """
        Initialize the executor.

        Args:
            graph: The workflow graph to execute
            schema: State schema with per-field merge rules
            store: Checkpoint store
            deps: Dependency bundle handed to every step
            max_steps: Runaway guard for a single resume call
            on_step: Optional callback invoked after each step
        """
        errors = graph.validate()
        if errors:
            raise ValueError(f"Graph validation failed: {errors}")

        self.graph = graph
        self.schema = schema
        self.store = store
        self.deps: Dict[str, Any] = dict(deps or {})
        self.max_steps = max_steps
        self.on_step = on_step

    async def get_state(self, thread_id: str) -> Optional[Checkpoint]:
        """Get the persisted checkpoint for a thread."""
        return await self.store.load(thread_id)

    async def resume(
        self,
        thread_id: str,
        input_delta: Optional[Mapping[str, Any]] = None,
        deps: Optional[Mapping[str, Any]] = None,
    ) -> ExecutionResult:
        """
        Resume (or start) a thread with the given input.

        Args:
            thread_id: Conversation/thread identifier
            input_delta: Partial state supplied by the caller
            deps: Extra dependencies for this call, layered over the defaults

        Returns:
            ExecutionResult - completed, suspended, unavailable or failed

        Raises:
            CheckpointConflictError: Another resume wrote to this thread
        """
        start_time = time.time()
        call_deps = {**self.deps, **(deps or {})}

        checkpoint = await self.store.load(thread_id)
        if checkpoint is None:
            persisted = WorkflowState.initial(self.schema)
            current = self.graph.entry_point
            version = 0
            logger.info(f"Starting new thread {thread_id}")
        else:
            persisted = WorkflowState.from_dict(checkpoint.state)
            current = checkpoint.next_step
            version = checkpoint.version
            if current == END:
                current = self.graph.entry_point
            preempting = self.schema.preempting_fields(input_delta)
            if preempting and current != self.graph.entry_point:
                logger.info(
                    f"Thread {thread_id}: {', '.join(preempting)} set, re-entering at "
                    f"'{self.graph.entry_point}' instead of '{current}'"
                )
                current = self.graph.entry_point
            logger.info(f"Resuming thread {thread_id} at '{current}' (v{version})")

        state = persisted.merge(input_delta, self.schema)
        log: List[ExecutionStep] = []

        def finish(status: ExecutionStatus, result_state: WorkflowState, **kwargs) -> ExecutionResult:
            return ExecutionResult(
                thread_id=thread_id,
                status=status,
                state=result_state,
                execution_log=log,
                version=version,
                total_duration_ms=(time.time() - start_time) * 1000,
                **kwargs,
            )

        while True:
            if len(log) >= self.max_steps:
                error = StepLimitExceededError(self.max_steps)
                logger.error(f"Thread {thread_id}: {error}")
                return finish(ExecutionStatus.FAILED, persisted, next_step=current, error=str(error))

            try:
                step = self.graph.get_step(current)
            except RoutingError as e:
                logger.error(f"Thread {thread_id}: {e}")
                return finish(ExecutionStatus.FAILED, persisted, next_step=current, error=str(e))

            record = ExecutionStep(step=len(log) + 1, name=step.name, started_at=datetime.now())
            log.append(record)
            step_start = time.time()
            logger.info(f"Executing step: {step.name} (thread {thread_id}, step {record.step})")

            try:
                result = await step.execute(state, call_deps)
            except ConfigurationError as e:
                self._complete(record, step_start, "unavailable", error=str(e))
                logger.error(f"Step {step.name} unavailable: {e}")
                return finish(
                    ExecutionStatus.UNAVAILABLE,
                    persisted,
                    next_step=current,
                    reason=e.user_message,
                    error=str(e),
                )
            except StepExecutionError as e:
                self._complete(record, step_start, "error", error=str(e))
                logger.exception(f"Step {step.name} failed: {e}")
                return finish(ExecutionStatus.FAILED, persisted, next_step=current, error=str(e))

            if result.suspended:
                # Same pointer: re-entry re-runs this step from scratch
                saved = await self._save(thread_id, state, current, version)
                version = saved.version
                persisted = state
                self._complete(record, step_start, "suspended")
                self._notify(thread_id, record, state)
                logger.info(f"Thread {thread_id} suspended at '{current}': {result.suspend}")
                return finish(
                    ExecutionStatus.SUSPENDED,
                    state,
                    next_step=current,
                    reason=result.suspend,
                )

            state = state.merge(result.delta, self.schema)

            try:
                candidate = self.graph.get_next_step(current, state.data)
            except RoutingError as e:
                self._complete(record, step_start, "error", error=str(e))
                logger.error(f"Routing from {step.name} failed: {e}")
                return finish(ExecutionStatus.FAILED, persisted, next_step=current, error=str(e))

            saved = await self._save(thread_id, state, candidate, version)
            version = saved.version
            persisted = state
            self._complete(record, step_start, "success", route=candidate)
            self._notify(thread_id, record, state)
            logger.debug(f"Route: {step.name} -> {candidate}")

            if candidate == END:
                logger.info(f"Thread {thread_id} completed")
                return finish(ExecutionStatus.COMPLETED, state, next_step=END)

            current = candidate

    async def _save(
        self,
        thread_id: str,
        state: WorkflowState,
        next_step: str,
        version: int,
    ) -> Checkpoint:
        checkpoint = Checkpoint(
            thread_id=thread_id,
            state=state.to_dict(),
            next_step=next_step,
            version=version,
        )
        return await self.store.save(thread_id, checkpoint, expected_version=version)

    @staticmethod
    def _complete(
        record: ExecutionStep,
        step_start: float,
        result: str,
        error: Optional[str] = None,
        route: Optional[str] = None,
    ) -> None:
        record.completed_at = datetime.now()
        record.duration_ms = (time.time() - step_start) * 1000
        record.result = result
        record.error = error
        record.route_taken = route

    def _notify(self, thread_id: str, record: ExecutionStep, state: WorkflowState) -> None:
        if self.on_step:
            try:
                self.on_step(thread_id, record, state)
            except Exception as e:
                logger.warning(f"Step callback failed: {e}")
