"""
Service wiring: builds the onboarding workflow, its checkpoint store and
executor, and the resume chain the HTTP API calls.
"""

from typing import Any, Dict, Mapping, Optional
from dataclasses import dataclass, field
import logging

from onboardflow.config import Settings, settings as default_settings
from onboardflow.engine.executor import ExecutionResult, Executor
from onboardflow.engine.graph import Graph
from onboardflow.engine.middleware import (
    compose,
    inject_connection_status,
    inject_dependencies,
    log_resume,
)
from onboardflow.engine.state import StateSchema
from onboardflow.storage.checkpoint import CheckpointStore, InMemoryCheckpointStore
from onboardflow.tools.http import HttpToolClient, register_remote_tools
from onboardflow.tools.registry import ToolRegistry
from onboardflow.workflows.constants import DEP_SETTINGS, DEP_TOOLS
from onboardflow.workflows.onboarding import create_onboarding_workflow
from onboardflow.workflows.schema import create_onboarding_schema


logger = logging.getLogger(__name__)


@dataclass
class OnboardingService:
    """Everything a caller needs to drive onboarding threads."""
    graph: Graph
    schema: StateSchema
    store: CheckpointStore
    executor: Executor
    tools: Optional[ToolRegistry] = None
    client: Optional[HttpToolClient] = None
    shared_deps: Dict[str, Any] = field(default_factory=dict)
    connected: bool = False

    def __post_init__(self):
        self._resume = compose(
            self.executor,
            log_resume,
            inject_dependencies(**self.shared_deps),
            inject_connection_status(lambda: self.connected),
        )

    async def resume(
        self,
        thread_id: str,
        input_delta: Optional[Dict[str, Any]] = None,
        deps: Optional[Dict[str, Any]] = None,
    ) -> ExecutionResult:
        """Resume a thread through the middleware chain."""
        return await self._resume(thread_id, input_delta, deps)

    async def connect(self) -> bool:
        """Ping the operation server and remember the result."""
        if self.client is None:
            return self.connected
        self.connected = await self.client.ping()
        logger.info(f"Operation server connected: {self.connected}")
        return self.connected

    async def close(self) -> None:
        if self.client is not None:
            await self.client.aclose()


def build_service(
    config: Optional[Settings] = None,
    deps: Optional[Mapping[str, Any]] = None,
    store: Optional[CheckpointStore] = None,
) -> OnboardingService:
    """
    Build the onboarding service.

    A remote operation client is created only when ``TOOL_SERVER_URL`` is
    set. Without one (and without ``tools`` in ``deps``) side-effecting
    steps report the thread as unavailable.

    Args:
        config: Settings (defaults to the global settings)
        deps: Extra dependencies shared by every resume call, e.g. the
            payload encryptor or the intent extractor
        store: Checkpoint store (defaults to a fresh in-memory store)
    """
    config = config or default_settings
    shared: Dict[str, Any] = {DEP_SETTINGS: config}

    tools: Optional[ToolRegistry] = None
    client: Optional[HttpToolClient] = None
    if config.TOOL_SERVER_URL:
        client = HttpToolClient(config.TOOL_SERVER_URL, timeout=config.TOOL_CALL_TIMEOUT)
        tools = register_remote_tools(ToolRegistry(), client)
        shared[DEP_TOOLS] = tools
    else:
        logger.warning("TOOL_SERVER_URL not set; remote operations are unavailable")

    shared.update(deps or {})
    tools = shared.get(DEP_TOOLS, tools)

    schema = create_onboarding_schema()
    graph = create_onboarding_workflow(config.SECURE_TOKEN_RETRY_LIMIT)
    store = store if store is not None else InMemoryCheckpointStore()
    executor = Executor(graph, schema, store, max_steps=config.MAX_STEPS_PER_RESUME)

    service = OnboardingService(
        graph=graph,
        schema=schema,
        store=store,
        executor=executor,
        tools=tools,
        client=client,
        shared_deps=shared,
        # Locally injected operations need no server
        connected=tools is not None and client is None,
    )

    logger.info(f"Built onboarding service ({len(graph.steps)} steps)")
    return service
