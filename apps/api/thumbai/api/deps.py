"""FastAPI dependencies: principal resolution and job-subsystem handles."""

from __future__ import annotations

import logging

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from thumbai.config import Settings, get_settings
from thumbai.database.session import get_db
from thumbai.errors import ConfigurationError, DatastoreError, UnauthorizedError
from thumbai.jobs.context import JobContext
from thumbai.jobs.dispatcher import JobDispatcher
from thumbai.jobs.store import ResultStore
from thumbai.schemas import Principal
from thumbai.services.sessions import resolve_session


logger = logging.getLogger(__name__)

bearer = HTTPBearer(auto_error=False)


def session_token_from_request(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer),
    settings: Settings = Depends(get_settings),
) -> str:
    """Read the session token from the cookie or a bearer header."""
    token = request.cookies.get(settings.session_cookie_name)
    if not token and credentials is not None:
        token = credentials.credentials
    if not token:
        raise UnauthorizedError()
    return token


async def get_current_principal(
    token: str = Depends(session_token_from_request),
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
) -> Principal:
    try:
        session, user = await resolve_session(db, token, settings)
    except SQLAlchemyError as e:
        logger.error(f"Error resolving session: {e}")
        raise DatastoreError("Failed to authenticate") from e

    return Principal(
        user_id=user.id,
        email=user.email,
        name=user.name,
        session_id=session.id,
    )


def get_job_context(request: Request) -> JobContext:
    ctx = getattr(request.app.state, "job_context", None)
    if ctx is None:
        raise ConfigurationError("Job context not initialized")
    return ctx


def get_result_store(ctx: JobContext = Depends(get_job_context)) -> ResultStore:
    return ctx.store.require()


def get_dispatcher(
    ctx: JobContext = Depends(get_job_context),
    store: ResultStore = Depends(get_result_store),
) -> JobDispatcher:
    return JobDispatcher(
        redis=ctx.redis.require(),
        store=store,
        queue_key=ctx.settings.queue_key,
        signing_key=ctx.settings.queue_signing_key,
    )
