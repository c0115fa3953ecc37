"""
Operation API Routes.

Endpoints for listing the external operations available to the workflow.
"""

from fastapi import APIRouter, Depends, HTTPException

from onboardflow.api.dependencies import get_service
from onboardflow.api.schemas import ErrorResponse, OperationInfo, OperationListResponse
from onboardflow.service import OnboardingService


router = APIRouter(prefix="/operations", tags=["Operations"])


@router.get(
    "/",
    response_model=OperationListResponse,
)
async def list_operations(service: OnboardingService = Depends(get_service)) -> OperationListResponse:
    """
    List all registered operations.

    Empty when no operation server is configured; side-effecting steps then
    report the thread as unavailable.
    """
    tools = service.tools.list_tools() if service.tools is not None else []
    return OperationListResponse(
        operations=[OperationInfo(**t) for t in tools],
        total=len(tools),
        connected=service.connected,
    )


@router.get(
    "/{operation}",
    response_model=OperationInfo,
    responses={404: {"model": ErrorResponse}},
)
async def get_operation(
    operation: str,
    service: OnboardingService = Depends(get_service),
) -> OperationInfo:
    """Get information about a specific operation."""
    tool = service.tools.get(operation) if service.tools is not None else None
    if not tool:
        available = [t["name"] for t in service.tools.list_tools()] if service.tools else []
        raise HTTPException(
            status_code=404,
            detail=f"Operation '{operation}' not found. Available: {available}",
        )
    return OperationInfo(**tool.to_dict())
