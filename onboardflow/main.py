"""
OnboardFlow - FastAPI Application Entry Point.

A resumable, human-in-the-loop workflow engine for payment onboarding.
"""

from contextlib import asynccontextmanager
from typing import Optional
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import logging

from onboardflow.config import settings
from onboardflow.api.routes import operations, threads, workflow
from onboardflow.engine.errors import ConfigurationError, WorkflowError
from onboardflow.service import OnboardingService, build_service


# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


DESCRIPTION = """
## Onboarding Workflow API

A resumable workflow engine that walks a user through linking a payment
card, removing it, and telling us what they want to buy.

### Features
- **Threads**: Each conversation is a thread with its own checkpoint
- **Suspend / Resume**: Steps pause for user input and resume exactly where they left off
- **Sub-workflows**: add-card, delete-card and user-intent behind one router
- **Redaction**: Operation payloads are masked before they are logged or returned

### Quick Start
1. Start a thread: `POST /threads/{thread_id}/resume` with `{"input": {"email": "..."}}`
2. Answer the prompt named by `reason` with another resume call
3. Inspect a thread: `GET /threads/{thread_id}`
4. View the workflow: `GET /workflow`
"""


def create_app(service: Optional[OnboardingService] = None) -> FastAPI:
    """
    Create the FastAPI application.

    Args:
        service: Onboarding service to serve (built from settings when omitted)
    """
    service = service or build_service()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan handler."""
        # Startup
        logger.info(f"Starting {settings.APP_NAME} v{settings.APP_VERSION}")
        await service.connect()

        yield

        # Shutdown
        logger.info("Shutting down...")
        await service.close()

    app = FastAPI(
        title=settings.APP_NAME,
        description=DESCRIPTION,
        version=settings.APP_VERSION,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )
    app.state.service = service

    # Add CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Include routers
    app.include_router(threads.router)
    app.include_router(workflow.router)
    app.include_router(operations.router)

    # ============================================================
    # Root Endpoints
    # ============================================================

    @app.get("/", tags=["Root"])
    async def root():
        """API root - returns basic info and links."""
        return {
            "name": settings.APP_NAME,
            "version": settings.APP_VERSION,
            "description": "A resumable workflow engine for payment onboarding",
            "docs": "/docs",
            "redoc": "/redoc",
            "endpoints": {
                "resume": "/threads/{thread_id}/resume",
                "threads": "/threads",
                "workflow": "/workflow",
                "operations": "/operations",
            },
        }

    @app.get("/health", tags=["Root"])
    async def health():
        """Health check endpoint."""
        return {
            "status": "healthy",
            "version": settings.APP_VERSION,
            "threads_count": len(await service.store.list_threads()),
            "operations_count": len(service.tools) if service.tools is not None else 0,
            "operation_server_connected": service.connected,
        }

    # ============================================================
    # Error Handlers
    # ============================================================

    @app.exception_handler(ConfigurationError)
    async def configuration_error_handler(request, exc):
        logger.error(f"Configuration error: {exc}")
        return JSONResponse(
            status_code=503,
            content={
                "error": "Service Unavailable",
                "detail": exc.user_message,
                "status_code": 503,
            },
        )

    @app.exception_handler(WorkflowError)
    async def workflow_error_handler(request, exc):
        logger.exception(f"Workflow error: {exc}")
        return JSONResponse(
            status_code=500,
            content={
                "error": "Workflow Error",
                "detail": str(exc) if settings.DEBUG else "The workflow could not be executed",
                "status_code": 500,
            },
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(request, exc):
        """Global exception handler for unhandled errors."""
        logger.exception(f"Unhandled error: {exc}")
        return JSONResponse(
            status_code=500,
            content={
                "error": "Internal Server Error",
                "detail": str(exc) if settings.DEBUG else "An unexpected error occurred",
                "status_code": 500,
            },
        )

    return app


app = create_app()
