"""
Operation Registry for the Workflow Engine.

The registry maps operation names to callables that perform external
calls (tokenization, device binding, OTP validation, ...). Steps invoke
operations through :meth:`ToolRegistry.call`, which returns the result
together with announcement events for the event log. Payloads and
results are redacted before they are logged or announced.
"""

from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, Union
from dataclasses import dataclass, field
import asyncio
import functools
import logging

from onboardflow.tools.redaction import redact_object


logger = logging.getLogger(__name__)


Operation = Callable[[Dict[str, Any]], Union[Any, Awaitable[Any]]]


class ToolCallError(Exception):
    """An external call failed in transport (HTTP error, timeout, unknown operation)."""

    def __init__(self, operation: str, message: str):
        super().__init__(f"Operation '{operation}' failed: {message}")
        self.operation = operation


@dataclass
class Tool:
    """
    A registered operation.

    Attributes:
        name: Unique identifier for the operation
        func: Callable taking the payload dict (sync or async)
        description: Human-readable description
    """
    name: str
    func: Operation
    description: str = ""

    @property
    def is_async(self) -> bool:
        return asyncio.iscoroutinefunction(self.func)

    async def invoke(self, payload: Dict[str, Any]) -> Any:
        if self.is_async:
            return await self.func(payload)
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, functools.partial(self.func, payload))

    def to_dict(self) -> Dict[str, Any]:
        """Serialize tool metadata."""
        return {
            "name": self.name,
            "description": self.description,
        }


@dataclass
class ToolCallResult:
    """Result of an operation plus the events announcing the call."""
    result: Any
    events: List[Dict[str, Any]] = field(default_factory=list)


class ToolRegistry:
    """
    Registry of external operations.

    Usage:
        registry = ToolRegistry()

        @registry.register("get-token-status")
        async def get_token_status(payload: dict) -> dict:
            ...

        # Inside a step
        call = await registry.call("get-token-status", {"vProvisionedTokenID": token_id})
        status = call.result
    """

    def __init__(self):
        self._tools: Dict[str, Tool] = {}

    def register(self, name: Optional[str] = None, description: str = "") -> Callable:
        """
        Decorator to register a function as an operation.

        Args:
            name: Operation name (defaults to function name)
            description: Description (defaults to docstring)
        """
        def decorator(func: Operation) -> Operation:
            self.add(func, name=name, description=description)
            return func

        return decorator

    def add(self, func: Operation, name: Optional[str] = None, description: str = "") -> None:
        """Directly add a function as an operation (non-decorator version)."""
        tool_name = name or func.__name__
        tool_desc = description or func.__doc__ or ""

        self._tools[tool_name] = Tool(
            name=tool_name,
            func=func,
            description=tool_desc.strip(),
        )
        logger.debug(f"Registered operation: {tool_name}")

    def get(self, name: str) -> Optional[Tool]:
        """Get an operation by name."""
        return self._tools.get(name)

    async def call(self, name: str, payload: Mapping[str, Any]) -> ToolCallResult:
        """
        Call an operation by name.

        Args:
            name: Operation name
            payload: JSON-serializable request payload

        Returns:
            ToolCallResult with the raw result and redacted announcement events

        Raises:
            ToolCallError: If the operation is not registered
            Exception: Whatever the operation raises; steps treat it as transient
        """
        tool = self.get(name)
        if not tool:
            raise ToolCallError(name, "not found in registry")

        args = dict(payload)
        redacted_args = redact_object(args)
        logger.info(f"Calling operation {name} with payload: {redacted_args}")

        result = await tool.invoke(args)

        redacted_result = redact_object(result)
        logger.debug(f"Operation {name} returned: {redacted_result}")

        events = [
            {"type": "tool_call", "name": name, "args": redacted_args},
            {"type": "tool_result", "name": name, "content": redacted_result},
        ]
        return ToolCallResult(result=result, events=events)

    def remove(self, name: str) -> bool:
        """Remove an operation from the registry."""
        if name in self._tools:
            del self._tools[name]
            return True
        return False

    def list_tools(self) -> List[Dict[str, Any]]:
        """List all registered operations with their metadata."""
        return [tool.to_dict() for tool in self._tools.values()]

    def has(self, name: str) -> bool:
        """Check if an operation is registered."""
        return name in self._tools

    def __contains__(self, name: str) -> bool:
        return self.has(name)

    def __len__(self) -> int:
        return len(self._tools)

    def __iter__(self):
        return iter(self._tools.values())
