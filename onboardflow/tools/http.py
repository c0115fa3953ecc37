"""
HTTP-backed remote operations.

Each remote operation is a POST of the JSON payload to
``{base_url}/tools/{operation}``. A well-formed rejection from the server
arrives as a 2xx body carrying an ``errorResponse`` object and is returned
as a normal result; transport failures raise ``ToolCallError``.
"""

from typing import Any, Dict, Iterable, Mapping, Optional
import logging

import httpx

from onboardflow.tools.registry import ToolCallError, ToolRegistry


logger = logging.getLogger(__name__)


ONBOARDING_OPERATIONS = (
    "tokenize-card",
    "get-device-attestation-options",
    "device-binding-request",
    "submit-idv-step-up-method",
    "validate-otp",
    "get-token-status",
    "enroll-card",
    "delete-token",
)


class HttpToolClient:
    """
    Async client for the remote operation server.

    Usage:
        client = HttpToolClient("https://tools.example.com", timeout=30)
        result = await client.call("get-token-status", {"vProvisionedTokenID": "..."})
        await client.aclose()
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 30.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self._client = client or httpx.AsyncClient(base_url=self.base_url, timeout=timeout)

    async def call(self, operation: str, payload: Mapping[str, Any]) -> Any:
        """POST a payload to an operation endpoint and return the decoded body."""
        try:
            response = await self._client.post(f"/tools/{operation}", json=dict(payload))
            response.raise_for_status()
        except httpx.TimeoutException as e:
            logger.warning(f"Operation {operation} timed out: {e}")
            raise ToolCallError(operation, "request timed out") from e
        except httpx.HTTPStatusError as e:
            logger.warning(f"Operation {operation} returned HTTP {e.response.status_code}")
            raise ToolCallError(operation, f"HTTP {e.response.status_code}") from e
        except httpx.HTTPError as e:
            logger.warning(f"Operation {operation} transport error: {e}")
            raise ToolCallError(operation, str(e)) from e

        try:
            return response.json()
        except ValueError as e:
            raise ToolCallError(operation, "response body is not JSON") from e

    async def ping(self) -> bool:
        """Check whether the operation server answers its health endpoint."""
        try:
            response = await self._client.get("/health")
            return response.status_code < 500
        except httpx.HTTPError:
            return False

    async def aclose(self) -> None:
        await self._client.aclose()


def register_remote_tools(
    registry: ToolRegistry,
    client: HttpToolClient,
    operations: Iterable[str] = ONBOARDING_OPERATIONS,
) -> ToolRegistry:
    """Wire remote operations into a registry."""
    for operation in operations:
        registry.add(_remote_operation(client, operation), name=operation,
                     description=f"Remote operation {operation}")
    logger.info(f"Registered {len(registry)} remote operations at {client.base_url}")
    return registry


def _remote_operation(client: HttpToolClient, operation: str):
    async def call_remote(payload: Dict[str, Any]) -> Any:
        return await client.call(operation, payload)

    call_remote.__name__ = operation.replace("-", "_")
    return call_remote
