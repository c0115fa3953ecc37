"""
API package - FastAPI routes and schemas.
"""

from onboardflow.api.routes import operations, threads, workflow

__all__ = ["operations", "threads", "workflow"]
