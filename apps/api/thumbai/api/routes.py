"""FastAPI routes for the ThumbAI API.

Endpoints:
- GET    /user/sessions              - List the caller's sessions
- DELETE /user/sessions/{session_id} - Revoke one of the caller's sessions
- GET    /user/login-history         - The caller's sign-in history
- POST   /thumbnails                 - Dispatch a thumbnail generation job
- GET    /thumbnails/{job_id}        - Poll a job's status/result

All endpoints except /health require a session token.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Query, status
from redis.exceptions import RedisError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from thumbai.api.deps import get_current_principal, get_dispatcher, get_result_store
from thumbai.config import get_settings
from thumbai.database.session import get_db
from thumbai.errors import ConflictError, DatastoreError, NotFoundError
from thumbai.jobs.dispatcher import JobDispatcher
from thumbai.jobs.store import ResultStore
from thumbai.schemas import (
    GenerationJob,
    LoginHistoryResponse,
    Principal,
    SessionResponse,
    SuccessResponse,
    ThumbnailAccepted,
    ThumbnailRequest,
)
from thumbai.services.sessions import list_login_history, list_user_sessions, revoke_user_session


logger = logging.getLogger(__name__)
router = APIRouter()

settings = get_settings()


# =============================================================================
# Health Check
# =============================================================================

@router.get("/health")
async def health() -> dict:
    """Health check endpoint."""
    return {
        "status": "ok",
        "version": settings.app_version,
        "environment": settings.environment,
    }


# =============================================================================
# Session Endpoints
# =============================================================================

@router.get("/user/sessions", response_model=list[SessionResponse])
async def get_user_sessions(
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
) -> list[SessionResponse]:
    """List the caller's sessions, most recently active first."""
    try:
        user_sessions = await list_user_sessions(db, principal.user_id)
    except SQLAlchemyError as e:
        logger.error(f"Error fetching user sessions: {e}")
        raise DatastoreError("Failed to fetch sessions") from e

    return [SessionResponse.model_validate(s) for s in user_sessions]


@router.delete("/user/sessions/{session_id}", response_model=SuccessResponse)
async def delete_user_session(
    session_id: str,
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
) -> SuccessResponse:
    """Revoke one of the caller's sessions."""
    try:
        await revoke_user_session(db, principal.user_id, session_id)
    except SQLAlchemyError as e:
        logger.error(f"Error deleting session: {e}")
        raise DatastoreError("Failed to delete session") from e

    return SuccessResponse()


@router.get("/user/login-history", response_model=list[LoginHistoryResponse])
async def get_login_history(
    limit: int = Query(default=50, ge=1, le=200),
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
) -> list[LoginHistoryResponse]:
    """The caller's sign-ins, newest first."""
    try:
        rows = await list_login_history(db, principal.user_id, limit=limit)
    except SQLAlchemyError as e:
        logger.error(f"Error fetching login history: {e}")
        raise DatastoreError("Failed to fetch login history") from e

    return [LoginHistoryResponse.model_validate(row) for row in rows]


# =============================================================================
# Thumbnail Endpoints
# =============================================================================

@router.post(
    "/thumbnails",
    response_model=ThumbnailAccepted,
    status_code=status.HTTP_202_ACCEPTED,
)
async def create_thumbnail(
    request: ThumbnailRequest,
    principal: Principal = Depends(get_current_principal),
    dispatcher: JobDispatcher = Depends(get_dispatcher),
) -> ThumbnailAccepted:
    """Queue a thumbnail generation job.

    The job is processed asynchronously.
    Use GET /thumbnails/{job_id} to poll for its result.
    """
    try:
        if request.job_id and await dispatcher.store.get(request.job_id) is not None:
            raise ConflictError("Job already exists")
        job = await dispatcher.dispatch(
            request.prompt,
            job_id=request.job_id,
            user_id=principal.user_id,
        )
    except RedisError as e:
        logger.error(f"Error dispatching thumbnail job: {e}")
        raise DatastoreError("Failed to queue job") from e

    return ThumbnailAccepted(job_id=job.job_id, status=job.status)


@router.get("/thumbnails/{job_id}", response_model=GenerationJob)
async def get_thumbnail(
    job_id: str,
    principal: Principal = Depends(get_current_principal),
    store: ResultStore = Depends(get_result_store),
) -> GenerationJob:
    """Get a job's status and, once finished, its result.

    A job waiting for a retry reads as pending with the last error set;
    ``attempts`` counts the attempts made so far.
    """
    try:
        job = await store.get(job_id)
    except RedisError as e:
        logger.error(f"Error reading job {job_id}: {e}")
        raise DatastoreError("Failed to fetch job") from e

    if job is None or job.user_id != principal.user_id:
        raise NotFoundError("Job not found")

    return job
