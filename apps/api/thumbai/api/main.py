"""FastAPI application entry point."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from thumbai.api.routes import router
from thumbai.config import get_settings
from thumbai.database.session import close_db, init_db
from thumbai.errors import ThumbAIError
from thumbai.jobs.context import build_job_context
from thumbai.logs import configure_logging


settings = get_settings()

configure_logging(settings.debug)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    # Startup
    logger.info(f"Starting {settings.app_name} v{settings.app_version}")

    if settings.environment == "development":
        await init_db()
        logger.info("Database initialized")

    app.state.job_context = build_job_context(settings)

    yield

    # Shutdown
    logger.info("Shutting down...")
    await app.state.job_context.close()
    await close_db()


# Create FastAPI application
app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="ThumbAI API - AI thumbnail generation",
    lifespan=lifespan,
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(ThumbAIError)
async def thumbai_error_handler(request: Request, exc: ThumbAIError) -> JSONResponse:
    """Render application errors as ``{"error": message}``."""
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc!r} (cause: {exc.__cause__!r})")
    message = exc.message if exc.expose_message else exc.public_message
    return JSONResponse(status_code=exc.status_code, content={"error": message})


# Include routes
app.include_router(router, prefix="/api")


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "name": settings.app_name,
        "version": settings.app_version,
        "docs": "/docs",
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "thumbai.api.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.debug,
    )
