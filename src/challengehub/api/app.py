"""FastAPI application factory."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from challengehub import __version__
from challengehub.api.routes import (
    challenges_router,
    health_router,
    my_submissions_router,
    submissions_router,
    users_router,
    webhooks_router,
)
from challengehub.database import dispose_db, init_db
from challengehub.processor.webhooks import MalformedEventError, WebhookSignatureError
from challengehub.services.errors import ChallengeHubError
from challengehub.services.state_machine import InvalidTransitionError

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler."""
    init_db()
    yield
    await dispose_db()


def _error_response(status_code: int, detail: str, code: str, context: dict | None = None) -> JSONResponse:
    content: dict = {"detail": detail, "code": code}
    if context:
        content["context"] = context
    return JSONResponse(status_code=status_code, content=content)


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title="ChallengeHub API",
        description="Challenge funding, webhook reconciliation and payouts",
        version=__version__,
        lifespan=lifespan,
    )

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Exception handlers
    @app.exception_handler(ChallengeHubError)
    async def domain_exception_handler(request: Request, exc: ChallengeHubError) -> JSONResponse:
        """Render domain errors with their stable code."""
        if exc.status_code >= 500:
            logger.error("%s %s failed: %s (%s)", request.method, request.url.path, exc.message, exc.code)
        return _error_response(exc.status_code, exc.message, exc.code, exc.context)

    @app.exception_handler(InvalidTransitionError)
    async def transition_exception_handler(
        request: Request, exc: InvalidTransitionError
    ) -> JSONResponse:
        """Handle state machine violations."""
        return _error_response(
            exc.status_code,
            exc.message,
            exc.code,
            {"from_status": exc.from_status, "to_status": exc.to_status},
        )

    @app.exception_handler(WebhookSignatureError)
    async def signature_exception_handler(
        request: Request, exc: WebhookSignatureError
    ) -> JSONResponse:
        """Reject unauthenticated webhook deliveries."""
        logger.warning("Rejected webhook delivery: %s", exc)
        return _error_response(exc.status_code, str(exc), exc.code)

    @app.exception_handler(MalformedEventError)
    async def malformed_event_handler(request: Request, exc: MalformedEventError) -> JSONResponse:
        """Reject webhook bodies that are not well-formed events."""
        logger.warning("Malformed webhook delivery: %s", exc)
        return _error_response(exc.status_code, str(exc), exc.code)

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Handle unexpected exceptions."""
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "detail": "An unexpected error occurred",
                "code": "INTERNAL_ERROR",
            },
        )

    # Include routers
    app.include_router(health_router)
    app.include_router(challenges_router, prefix="/api/v1")
    app.include_router(submissions_router, prefix="/api/v1")
    app.include_router(my_submissions_router, prefix="/api/v1")
    app.include_router(users_router, prefix="/api/v1")
    app.include_router(webhooks_router)

    return app


# Default app instance for uvicorn
app = create_app()
