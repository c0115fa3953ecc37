"""
Workflow API Routes.

Read-only view of the onboarding workflow structure.
"""

from fastapi import APIRouter, Depends
from fastapi.responses import PlainTextResponse

from onboardflow.api.dependencies import get_service
from onboardflow.api.schemas import StepInfo, WorkflowInfoResponse
from onboardflow.service import OnboardingService


router = APIRouter(prefix="/workflow", tags=["Workflow"])


@router.get(
    "",
    response_model=WorkflowInfoResponse,
)
async def get_workflow(service: OnboardingService = Depends(get_service)) -> WorkflowInfoResponse:
    """Get the steps, edges and entry point of the onboarding workflow."""
    graph = service.graph

    return WorkflowInfoResponse(
        name=graph.name,
        description=graph.description or None,
        entry_point=graph.entry_point,
        step_count=len(graph.steps),
        steps=[StepInfo(**s.to_dict()) for s in graph.steps.values()],
        edges=dict(graph.edges),
        conditional_edges={
            source: edge.targets for source, edge in graph.conditional_edges.items()
        },
        mermaid_diagram=graph.to_mermaid(),
    )


@router.get("/mermaid", response_class=PlainTextResponse)
async def get_workflow_mermaid(service: OnboardingService = Depends(get_service)) -> str:
    """Mermaid diagram of the workflow, as plain text."""
    return service.graph.to_mermaid()
