"""
Thread API Routes.

Endpoints for resuming onboarding threads and inspecting their persisted
checkpoints.
"""

from fastapi import APIRouter, Depends, HTTPException, status
import logging

from onboardflow.api.dependencies import get_service
from onboardflow.api.schemas import (
    ErrorResponse,
    ResumeRequest,
    ResumeResponse,
    ThreadListResponse,
    ThreadStateResponse,
)
from onboardflow.engine.errors import CheckpointConflictError
from onboardflow.engine.graph import END
from onboardflow.service import OnboardingService


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/threads", tags=["Threads"])


# ============================================================
# Execution Endpoints
# ============================================================

@router.post(
    "/{thread_id}/resume",
    response_model=ResumeResponse,
    responses={
        409: {"model": ErrorResponse, "description": "Concurrent resume of the same thread"},
        500: {"model": ErrorResponse, "description": "Execution failed"},
    },
)
async def resume_thread(
    thread_id: str,
    request: ResumeRequest,
    service: OnboardingService = Depends(get_service),
) -> ResumeResponse:
    """
    Resume (or start) a thread with the given input.

    Runs until the workflow suspends for external input or reaches its end.
    A missing dependency or credential is an `unavailable` outcome, not an
    HTTP error.
    """
    try:
        result = await service.resume(thread_id, request.input)
    except CheckpointConflictError as e:
        logger.warning(f"Rejected concurrent resume of thread {thread_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Thread '{thread_id}' was modified by another request, retry the call",
        )

    return ResumeResponse(**result.to_dict(service.schema))


# ============================================================
# State Endpoints
# ============================================================

@router.get(
    "/",
    response_model=ThreadListResponse,
)
async def list_threads(service: OnboardingService = Depends(get_service)) -> ThreadListResponse:
    """List all known threads."""
    threads = await service.store.list_threads()
    return ThreadListResponse(threads=threads, total=len(threads))


@router.get(
    "/{thread_id}",
    response_model=ThreadStateResponse,
    responses={404: {"model": ErrorResponse}},
)
async def get_thread(
    thread_id: str,
    service: OnboardingService = Depends(get_service),
) -> ThreadStateResponse:
    """Get the persisted public state of a thread and the step it resumes at."""
    checkpoint = await service.executor.get_state(thread_id)
    if not checkpoint:
        raise HTTPException(status_code=404, detail=f"Thread '{thread_id}' not found")

    return ThreadStateResponse(
        thread_id=checkpoint.thread_id,
        next_step=checkpoint.next_step,
        completed=checkpoint.next_step == END,
        state=service.schema.public_view(checkpoint.state.get("data", {})),
        events=checkpoint.state.get("events", []),
        version=checkpoint.version,
        created_at=checkpoint.created_at.isoformat(),
        updated_at=checkpoint.updated_at.isoformat(),
    )


@router.delete(
    "/{thread_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    responses={404: {"model": ErrorResponse}},
)
async def delete_thread(thread_id: str, service: OnboardingService = Depends(get_service)):
    """Delete a thread's checkpoint."""
    deleted = await service.store.delete(thread_id)
    if not deleted:
        raise HTTPException(status_code=404, detail=f"Thread '{thread_id}' not found")
    logger.info(f"Deleted thread: {thread_id}")
