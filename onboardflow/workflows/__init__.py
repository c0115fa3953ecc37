"""
Workflows package - The payment onboarding workflow.
"""

from onboardflow.workflows.onboarding import create_onboarding_workflow
from onboardflow.workflows.schema import create_onboarding_schema
from onboardflow.workflows.constants import Action, Mode, Operations, Reason, Steps

__all__ = [
    "create_onboarding_workflow",
    "create_onboarding_schema",
    "Action",
    "Mode",
    "Operations",
    "Reason",
    "Steps",
]
