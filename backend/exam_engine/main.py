"""Exam Engine - FastAPI Application."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from exam_engine import __version__
from exam_engine.config import Settings, get_settings
from exam_engine.db import Database
from exam_engine.errors import AttemptClosed, InvalidStateError, NotFoundError, ValidationError
from exam_engine.routers import (
    attempts_router,
    patterns_router,
    questions_router,
    tests_router,
)
from exam_engine.services.pattern import PatternService
from exam_engine.timeutil import utcnow

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    settings: Settings = app.state.settings

    # Startup
    logger.info("Initializing database...")
    database = Database(settings.database_url, echo=settings.debug)
    await database.create_all()
    app.state.database = database

    if settings.seed_default_patterns:
        async with database.session() as session:
            await PatternService(session).seed_default_patterns()

    logger.info("Startup complete.")
    yield

    # Shutdown
    logger.info("Shutting down...")
    await database.dispose()


def register_exception_handlers(app: FastAPI) -> None:
    """Translate domain errors raised by services into HTTP responses."""

    @app.exception_handler(ValidationError)
    async def validation_error_handler(request: Request, exc: ValidationError):
        return JSONResponse(status_code=422, content={"detail": str(exc), "errors": exc.errors})

    @app.exception_handler(NotFoundError)
    async def not_found_handler(request: Request, exc: NotFoundError):
        return JSONResponse(status_code=404, content={"detail": str(exc)})

    @app.exception_handler(AttemptClosed)
    async def attempt_closed_handler(request: Request, exc: AttemptClosed):
        return JSONResponse(
            status_code=409,
            content={"detail": str(exc), "status": exc.status, "result_url": exc.result_url},
        )

    @app.exception_handler(InvalidStateError)
    async def invalid_state_handler(request: Request, exc: InvalidStateError):
        logger.warning(f"{request.method} {request.url.path} rejected: {exc}")
        return JSONResponse(status_code=409, content={"detail": str(exc)})


def create_app(settings: Settings | None = None) -> FastAPI:
    """Build the application. Tests pass their own settings."""
    settings = settings or get_settings()
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    app = FastAPI(
        title=settings.app_name,
        description="Timed assessment attempts: patterns, scoring and submission",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.clock = utcnow

    # CORS middleware for frontend
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Include routers
    app.include_router(patterns_router)
    app.include_router(questions_router)
    app.include_router(tests_router)
    app.include_router(attempts_router)

    register_exception_handlers(app)

    @app.get("/")
    async def root():
        """Root endpoint with API info."""
        return {
            "name": settings.app_name,
            "version": __version__,
            "docs": "/docs",
        }

    @app.get("/health")
    async def health_check():
        """Health check endpoint."""
        return {"status": "healthy"}

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)
