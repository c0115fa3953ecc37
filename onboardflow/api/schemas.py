"""
Pydantic Schemas for API Request/Response Models.

These schemas define the structure of data flowing through the API,
providing automatic validation and documentation.
"""

from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field

from onboardflow.engine.executor import ExecutionStatus


# ============================================================
# Resume Schemas
# ============================================================

class ResumeRequest(BaseModel):
    """Request to resume (or start) a thread."""
    input: Dict[str, Any] = Field(
        default_factory=dict,
        description="Partial state supplied by the caller, merged before the next step runs",
    )

    class Config:
        json_schema_extra = {
            "example": {
                "input": {
                    "email": "jane@example.com",
                    "clientReferenceId": "ref-123",
                    "cardData": {
                        "cardNumber": "4111111111111111",
                        "expiryDate": "12/27",
                        "cvv": "123",
                        "cardholderName": "Jane Doe",
                    },
                }
            }
        }


class ExecutionLogEntry(BaseModel):
    """A single entry in the execution log."""
    step: int
    name: str
    started_at: str
    completed_at: Optional[str]
    duration_ms: Optional[float]
    result: str
    error: Optional[str]
    route_taken: Optional[str]


class ResumeResponse(BaseModel):
    """Outcome of a resume call."""
    thread_id: str = Field(..., description="Conversation/thread identifier")
    status: ExecutionStatus
    suspended_at: Optional[str] = Field(None, description="Step waiting for input")
    reason: Optional[str] = Field(None, description="Suspend reason or unavailability message")
    state: Dict[str, Any] = Field(..., description="Public state fields")
    events: List[Dict[str, Any]]
    execution_log: List[ExecutionLogEntry]
    version: int
    total_duration_ms: Optional[float]
    error: Optional[str] = None

    class Config:
        json_schema_extra = {
            "example": {
                "thread_id": "thread-1",
                "status": "suspended",
                "suspended_at": "await-secure-token",
                "reason": "awaiting_secure_token",
                "state": {
                    "email": "jane@example.com",
                    "tokenId": "tok-abc123",
                    "cardDeletionSignal": 0,
                },
                "events": [
                    {
                        "type": "message",
                        "content": "Card tokenization successful! Your payment method is now secure.",
                        "ui_only": True,
                    }
                ],
                "execution_log": [
                    {
                        "step": 1,
                        "name": "tokenize-card",
                        "started_at": "2024-01-01T12:00:00",
                        "completed_at": "2024-01-01T12:00:01",
                        "duration_ms": 412.5,
                        "result": "success",
                        "error": None,
                        "route_taken": "await-secure-token",
                    }
                ],
                "version": 4,
                "total_duration_ms": 450.0,
                "error": None,
            }
        }


# ============================================================
# Thread Schemas
# ============================================================

class ThreadStateResponse(BaseModel):
    """Persisted state of a thread."""
    thread_id: str
    next_step: str = Field(..., description="Step the next resume call starts at")
    completed: bool = Field(..., description="Whether the last run reached the end")
    state: Dict[str, Any]
    events: List[Dict[str, Any]]
    version: int
    created_at: str
    updated_at: str


class ThreadListResponse(BaseModel):
    """Response listing threads."""
    threads: List[str]
    total: int


# ============================================================
# Workflow Schemas
# ============================================================

class StepInfo(BaseModel):
    """Information about a workflow step."""
    name: str
    kind: str
    description: str
    handler: str
    guard_fields: List[str]


class WorkflowInfoResponse(BaseModel):
    """Structure of the onboarding workflow."""
    name: str
    description: Optional[str]
    entry_point: Optional[str]
    step_count: int
    steps: List[StepInfo]
    edges: Dict[str, str]
    conditional_edges: Dict[str, List[str]] = Field(
        ..., description="Possible targets of each conditional edge"
    )
    mermaid_diagram: str


# ============================================================
# Operation Schemas
# ============================================================

class OperationInfo(BaseModel):
    """Information about a registered external operation."""
    name: str
    description: str


class OperationListResponse(BaseModel):
    """Response listing registered operations."""
    operations: List[OperationInfo]
    total: int
    connected: bool = Field(..., description="Whether the operation server answered at startup")


# ============================================================
# Error Schemas
# ============================================================

class ErrorResponse(BaseModel):
    """Standard error response."""
    error: str
    detail: Optional[str] = None
    status_code: int
