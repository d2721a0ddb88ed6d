"""FastAPI application factory.

Creates the app with logging middleware, lifespan wiring of the proposal
tracking service, and the v1 API router.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from collections.abc import AsyncGenerator

import structlog
from fastapi import FastAPI

from src.crm.api.middleware.logging import LoggingMiddleware, configure_structlog
from src.crm.api.v1.router import router as v1_router
from src.crm.config import get_settings
from src.crm.proposals.service import ProposalTrackingService


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan: configure logging and build the tracking service."""
    log = structlog.get_logger(__name__)
    settings = get_settings()
    configure_structlog()

    # Tests and embedding callers may install their own service first.
    if getattr(app.state, "proposal_service", None) is None:
        app.state.proposal_service = ProposalTrackingService(
            policy=settings.follow_up_policy(),
        )
    log.info(
        "proposal_tracking.initialized",
        environment=settings.ENVIRONMENT.value,
        follow_up_after_days=settings.FOLLOW_UP_AFTER_DAYS,
    )

    yield

    log.info("proposal_tracking.shutdown")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title="Proposal Tracker API",
        version="0.1.0",
        description="Automated proposal status tracking for the travel CRM",
        lifespan=lifespan,
    )

    app.add_middleware(LoggingMiddleware)
    app.include_router(v1_router, prefix="/v1")

    return app


# Module-level app for uvicorn
app = create_app()
