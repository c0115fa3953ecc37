"""
FastAPI dependencies shared by the route modules.
"""

from fastapi import Request

from onboardflow.service import OnboardingService


def get_service(request: Request) -> OnboardingService:
    """The onboarding service attached to the running application."""
    return request.app.state.service
