"""Process-wide clients for the job subsystem.

Clients are built once at process start and handed to the API and the
worker. A client that could not be built is carried as a failed
``ClientInit`` holding the reason, so callers branch on ``.ok`` instead of
checking for a bare ``None``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Generic, TypeVar

from redis.asyncio import Redis

from thumbai.config import OPENAI_KEY_PLACEHOLDER, Settings
from thumbai.errors import ConfigurationError
from thumbai.providers.base import ImageProvider
from thumbai.providers.openai import OpenAIImageProvider
from thumbai.jobs.store import ResultStore


logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class ClientInit(Generic[T]):
    """Outcome of building a client: either the client or why it failed."""

    client: T | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.client is not None

    def require(self) -> T:
        """Return the client or raise ConfigurationError."""
        if self.client is None:
            raise ConfigurationError(self.error or "Client not configured")
        return self.client

    @classmethod
    def success(cls, client: T) -> "ClientInit[T]":
        return cls(client=client)

    @classmethod
    def failure(cls, error: str) -> "ClientInit[T]":
        return cls(error=error)


@dataclass
class JobContext:
    """Handles passed into every job invocation and API request."""

    settings: Settings
    redis: ClientInit[Redis]
    store: ClientInit[ResultStore]
    provider: ClientInit[ImageProvider]

    async def close(self) -> None:
        if self.provider.ok:
            await self.provider.client.close()
        if self.redis.ok:
            await self.redis.client.aclose()


def build_redis(settings: Settings) -> ClientInit[Redis]:
    if settings.redis_url is None:
        logger.error("Redis environment variable (REDIS_URL) not found. Cannot store results.")
        return ClientInit.failure("Result store not configured")
    try:
        client = Redis.from_url(str(settings.redis_url), decode_responses=True)
    except ValueError as e:
        logger.error(f"Failed to initialize Redis client: {e}")
        return ClientInit.failure("Result store initialization failed")
    logger.info("Redis client initialized successfully")
    return ClientInit.success(client)


def build_result_store(settings: Settings, redis: ClientInit[Redis]) -> ClientInit[ResultStore]:
    if not redis.ok:
        return ClientInit.failure(redis.error or "Result store not configured")
    return ClientInit.success(
        ResultStore(
            redis.client,
            key_prefix=settings.job_key_prefix,
            ttl_seconds=settings.result_ttl_seconds,
        )
    )


def build_image_provider(settings: Settings) -> ClientInit[ImageProvider]:
    api_key = settings.openai_api_key
    if not api_key or api_key == OPENAI_KEY_PLACEHOLDER:
        logger.warning("Invalid or empty OpenAI API key - generation jobs will fail")
        return ClientInit.failure("Image provider not configured")
    try:
        provider = OpenAIImageProvider(
            api_key=api_key,
            base_url=settings.openai_base_url,
            model=settings.openai_image_model,
            size=settings.openai_image_size,
            quality=settings.openai_image_quality,
            timeout=settings.provider_timeout_seconds,
        )
    except ValueError as e:
        logger.error(f"Failed to initialize image provider: {e}")
        return ClientInit.failure("Image provider initialization failed")
    logger.info("Image provider initialized successfully")
    return ClientInit.success(provider)


def build_job_context(settings: Settings) -> JobContext:
    redis = build_redis(settings)
    return JobContext(
        settings=settings,
        redis=redis,
        store=build_result_store(settings, redis),
        provider=build_image_provider(settings),
    )
