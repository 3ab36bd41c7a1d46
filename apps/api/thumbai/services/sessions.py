"""Session store operations.

Sessions are owned by exactly one user. Every lookup that acts on behalf of
a caller filters by ``(id, user_id)`` together so a caller can never learn
whether a session id exists under another account.
"""

from __future__ import annotations

import logging
import secrets
from datetime import timedelta

from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from thumbai.config import Settings, get_settings
from thumbai.database.models import LoginHistory, User, UserSession
from thumbai.errors import NotFoundError, UnauthorizedError
from thumbai.schemas import utc_now
from thumbai.services.user_agent import parse_user_agent


logger = logging.getLogger(__name__)


async def list_user_sessions(db: AsyncSession, user_id: str) -> list[UserSession]:
    """All sessions of a user, most recently active first."""
    result = await db.execute(
        select(UserSession)
        .where(UserSession.user_id == user_id)
        .order_by(UserSession.last_seen_at.desc())
    )
    return list(result.scalars().all())


async def revoke_user_session(db: AsyncSession, user_id: str, session_id: str) -> None:
    """Delete one of the caller's sessions.

    Raises NotFoundError when the session does not exist or belongs to
    someone else. Both cases are indistinguishable to the caller.
    """
    result = await db.execute(
        select(UserSession)
        .where(UserSession.id == session_id)
        .where(UserSession.user_id == user_id)
    )
    session_to_delete = result.scalar_one_or_none()

    if session_to_delete is None:
        raise NotFoundError("Session not found or unauthorized")

    await db.delete(session_to_delete)
    await db.commit()
    logger.info(f"Revoked session {session_id} for user {user_id}")


async def get_or_create_user(db: AsyncSession, email: str, name: str | None = None) -> User:
    result = await db.execute(select(User).where(User.email == email))
    user = result.scalar_one_or_none()
    if user is None:
        user = User(email=email, name=name)
        db.add(user)
        await db.commit()
        await db.refresh(user)
        logger.info(f"Created user {user.id}")
    return user


async def create_session(
    db: AsyncSession,
    user: User,
    *,
    user_agent: str | None = None,
    ip_address: str | None = None,
    settings: Settings | None = None,
) -> UserSession:
    """Start a session for a user and record the sign-in."""
    settings = settings or get_settings()
    now = utc_now()

    session = UserSession(
        session_token=secrets.token_urlsafe(32),
        user_id=user.id,
        expires=now + timedelta(seconds=settings.session_max_age_seconds),
        last_seen_at=now,
        ip_address=ip_address,
        user_agent=user_agent,
        created_at=now,
    )
    db.add(session)

    device = parse_user_agent(user_agent)
    db.add(
        LoginHistory(
            user_id=user.id,
            session_id=session.id,
            ip_address=ip_address,
            user_agent=user_agent,
            browser=device.browser,
            os=device.os,
            device=device.device,
            device_type=device.device_type.value,
            created_at=now,
        )
    )

    await db.commit()
    await db.refresh(session)
    logger.info(f"User {user.id} signed in (session {session.id}, {device.browser or 'unknown browser'})")
    return session


async def resolve_session(
    db: AsyncSession,
    session_token: str,
    settings: Settings | None = None,
) -> tuple[UserSession, User]:
    """Look up a live session by token and mark it as seen.

    Expired sessions are deleted and rejected. When less than
    ``max_age - update_age`` of the lifetime remains the expiry rolls forward.
    """
    settings = settings or get_settings()

    result = await db.execute(
        select(UserSession, User)
        .join(User, User.id == UserSession.user_id)
        .where(UserSession.session_token == session_token)
    )
    row = result.first()
    if row is None:
        raise UnauthorizedError()

    session, user = row
    now = utc_now()

    if session.expires <= now:
        await db.delete(session)
        await db.commit()
        raise UnauthorizedError()

    max_age = timedelta(seconds=settings.session_max_age_seconds)
    update_age = timedelta(seconds=settings.session_update_age_seconds)
    if session.expires - max_age + update_age <= now:
        session.expires = now + max_age

    session.last_seen_at = now
    db.add(session)
    await db.commit()
    return session, user


async def list_login_history(db: AsyncSession, user_id: str, limit: int = 50) -> list[LoginHistory]:
    result = await db.execute(
        select(LoginHistory)
        .where(LoginHistory.user_id == user_id)
        .order_by(LoginHistory.created_at.desc())
        .limit(limit)
    )
    return list(result.scalars().all())
