"""Pydantic schemas for API, job and event contracts.

These schemas define the contracts between:
- API endpoints and clients
- The dispatcher, the queue and the job worker
- The worker and the result store
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


GENERATE_THUMBNAIL_EVENT = "thumbai/thumbnail.generate"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class CamelModel(BaseModel):
    """Base for wire models: camelCase on the wire, snake_case in Python."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


# =============================================================================
# Enums
# =============================================================================

class JobStatus(str, Enum):
    """Status of a thumbnail generation job."""
    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class DeviceType(str, Enum):
    """Coarse device class parsed from a user agent."""
    MOBILE = "mobile"
    TABLET = "tablet"
    DESKTOP = "desktop"
    BOT = "bot"
    UNKNOWN = "unknown"


# =============================================================================
# Principal
# =============================================================================

class Principal(BaseModel):
    """The authenticated user behind the current request."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["user"] = "user"
    user_id: str
    email: str
    name: str | None = None
    session_id: str


# =============================================================================
# Job Schemas
# =============================================================================

class ThumbnailArtifact(CamelModel):
    """Reference to a generated image."""
    url: str | None = None
    b64_json: str | None = None
    revised_prompt: str | None = None
    model: str
    size: str | None = None


class GenerationJob(CamelModel):
    """A thumbnail generation job as held in the result store."""
    job_id: str
    prompt: str
    status: JobStatus = JobStatus.PENDING
    result: ThumbnailArtifact | None = None
    error: str | None = None
    attempts: int = 0
    user_id: str | None = None
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)
    completed_at: datetime | None = None

    @property
    def is_finished(self) -> bool:
        return self.status in (JobStatus.SUCCEEDED, JobStatus.FAILED)


class JobOutcome(BaseModel):
    """What a job function reports back to the runner."""
    success: bool
    message: str
    job_id: str | None = None
    result: ThumbnailArtifact | None = None


# =============================================================================
# Event Schemas
# =============================================================================

class GenerateThumbnailData(CamelModel):
    """Payload of the thumbnail generation event."""
    prompt: str
    job_id: str


class EventEnvelope(CamelModel):
    """A queued event plus the delivery metadata the runner needs."""
    id: str
    name: str
    data: dict[str, Any]
    ts: datetime = Field(default_factory=utc_now)
    attempt: int = 1
    started_at: datetime | None = None
    signature: str | None = None


# =============================================================================
# API Request/Response Schemas
# =============================================================================

class SessionResponse(CamelModel):
    """One of the caller's sessions."""
    id: str
    session_token: str
    expires: datetime
    last_seen_at: datetime
    ip_address: str | None = None
    user_agent: str | None = None


class LoginHistoryResponse(CamelModel):
    """One sign-in event."""
    id: str
    created_at: datetime
    ip_address: str | None = None
    user_agent: str | None = None
    browser: str | None = None
    os: str | None = None
    device: str | None = None
    device_type: DeviceType = DeviceType.UNKNOWN


class ThumbnailRequest(CamelModel):
    """API request to generate a thumbnail."""
    prompt: str = Field(..., min_length=1, max_length=4000)
    job_id: str | None = Field(default=None, min_length=1, max_length=128)


class ThumbnailAccepted(CamelModel):
    """API response after a job has been dispatched."""
    job_id: str
    status: JobStatus


class SuccessResponse(BaseModel):
    """Generic acknowledgement."""
    success: bool = True
