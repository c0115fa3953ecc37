"""
Resume middleware.

A middleware wraps a resume call: it receives the call and the next handler
in the chain, and may adjust the input delta or the dependency bundle
before delegating. ``compose`` builds the chain in front of an executor.
"""

from typing import Any, Awaitable, Callable, Dict, Optional, Union
from dataclasses import dataclass, field
import logging

from onboardflow.engine.executor import ExecutionResult, Executor


logger = logging.getLogger(__name__)


@dataclass
class ResumeCall:
    """Arguments of one resume call as seen by middleware."""
    executor: Executor
    thread_id: str
    input_delta: Dict[str, Any] = field(default_factory=dict)
    deps: Dict[str, Any] = field(default_factory=dict)


Next = Callable[[ResumeCall], Awaitable[ExecutionResult]]
Middleware = Callable[[ResumeCall, Next], Awaitable[ExecutionResult]]
ResumeFn = Callable[..., Awaitable[ExecutionResult]]


def compose(executor: Executor, *middlewares: Middleware) -> ResumeFn:
    """
    Build a resume callable with middlewares applied in order.

    The first middleware is the outermost one.

    Usage:
        resume = compose(executor, log_resume, inject_dependencies(tools=registry))
        result = await resume("thread-1", {"cardData": {...}})
    """
    async def terminal(call: ResumeCall) -> ExecutionResult:
        return await call.executor.resume(call.thread_id, call.input_delta, call.deps)

    def wrap(middleware: Middleware, next_handler: Next) -> Next:
        async def handler(call: ResumeCall) -> ExecutionResult:
            return await middleware(call, next_handler)
        return handler

    chain: Next = terminal
    for middleware in reversed(middlewares):
        chain = wrap(middleware, chain)

    async def resume(
        thread_id: str,
        input_delta: Optional[Dict[str, Any]] = None,
        deps: Optional[Dict[str, Any]] = None,
    ) -> ExecutionResult:
        call = ResumeCall(
            executor=executor,
            thread_id=thread_id,
            input_delta=dict(input_delta or {}),
            deps=dict(deps or {}),
        )
        return await chain(call)

    return resume


def inject_dependencies(**deps: Any) -> Middleware:
    """Add shared dependencies to every call; per-call values win."""
    async def middleware(call: ResumeCall, next_handler: Next) -> ExecutionResult:
        call.deps = {**deps, **call.deps}
        return await next_handler(call)

    return middleware


def inject_connection_status(
    connected: Union[bool, Callable[[], bool]],
    field_name: str = "isToolServerConnected",
) -> Middleware:
    """
    Record whether the remote operation server is reachable.

    The flag is written into the input delta only when neither the caller
    nor the thread's persisted state has set it.
    """
    async def middleware(call: ResumeCall, next_handler: Next) -> ExecutionResult:
        if field_name not in call.input_delta:
            checkpoint = await call.executor.get_state(call.thread_id)
            persisted = checkpoint.state.get("data", {}) if checkpoint else {}
            if persisted.get(field_name) is None:
                value = connected() if callable(connected) else connected
                call.input_delta[field_name] = bool(value)
        return await next_handler(call)

    return middleware


async def log_resume(call: ResumeCall, next_handler: Next) -> ExecutionResult:
    """Log the start and outcome of each resume call."""
    logger.info(
        f"Resume requested for thread {call.thread_id} "
        f"(input fields: {sorted(call.input_delta.keys())})"
    )
    try:
        result = await next_handler(call)
    except Exception as e:
        logger.error(f"Resume of thread {call.thread_id} raised {type(e).__name__}: {e}")
        raise

    logger.info(
        f"Resume of thread {call.thread_id} finished: {result.status.value}"
        + (f" at '{result.suspended_at}' ({result.reason})" if result.suspended_at else "")
        + f" after {len(result.execution_log)} step(s)"
    )
    return result
