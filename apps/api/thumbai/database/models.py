"""SQLModel database tables.

Tables:
- User: people who can sign in
- UserSession: database-backed sign-in sessions (table ``sessions``)
- LoginHistory: append-only record of every sign-in
"""

from __future__ import annotations

from datetime import datetime, timezone
from uuid import uuid4

from sqlalchemy import Column, DateTime, Index, Text
from sqlalchemy.types import TypeDecorator
from sqlmodel import Field, SQLModel

from thumbai.schemas import utc_now


def _new_id() -> str:
    return uuid4().hex


class UTCDateTime(TypeDecorator):
    """Timezone-aware UTC timestamps on every backend.

    SQLite keeps no offset, so values are stored as naive UTC there and
    given their UTC tzinfo back on load.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        value = value.astimezone(timezone.utc)
        if dialect.name == "sqlite":
            return value.replace(tzinfo=None)
        return value

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


# =============================================================================
# User Model
# =============================================================================

class User(SQLModel, table=True):
    """A ThumbAI account."""

    __tablename__ = "users"

    id: str = Field(default_factory=_new_id, primary_key=True)
    email: str = Field(unique=True, index=True)
    name: str | None = Field(default=None)
    image: str | None = Field(default=None)
    email_verified: datetime | None = Field(default=None, sa_type=UTCDateTime)
    created_at: datetime = Field(default_factory=utc_now, sa_type=UTCDateTime)


# =============================================================================
# Session Model
# =============================================================================

class UserSession(SQLModel, table=True):
    """A sign-in session. Belongs to exactly one user."""

    __tablename__ = "sessions"
    __table_args__ = (
        Index("ix_sessions_user_last_seen", "user_id", "last_seen_at"),
    )

    id: str = Field(default_factory=_new_id, primary_key=True)
    session_token: str = Field(unique=True, index=True)
    user_id: str = Field(foreign_key="users.id", index=True)
    expires: datetime = Field(sa_type=UTCDateTime)
    last_seen_at: datetime = Field(default_factory=utc_now, sa_type=UTCDateTime)
    ip_address: str | None = Field(default=None)
    user_agent: str | None = Field(default=None, sa_column=Column(Text))
    created_at: datetime = Field(default_factory=utc_now, sa_type=UTCDateTime)


# =============================================================================
# Login History Model
# =============================================================================

class LoginHistory(SQLModel, table=True):
    """One row per sign-in. Never updated or deleted."""

    __tablename__ = "login_history"
    __table_args__ = (
        Index("ix_login_history_user_created", "user_id", "created_at"),
    )

    id: str = Field(default_factory=_new_id, primary_key=True)
    user_id: str = Field(foreign_key="users.id", index=True)
    session_id: str | None = Field(default=None)
    ip_address: str | None = Field(default=None)
    user_agent: str | None = Field(default=None, sa_column=Column(Text))
    browser: str | None = Field(default=None)
    os: str | None = Field(default=None)
    device: str | None = Field(default=None)
    device_type: str = Field(default="unknown")
    created_at: datetime = Field(default_factory=utc_now, sa_type=UTCDateTime)
