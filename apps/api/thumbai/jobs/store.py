"""Redis-backed result store for generation jobs."""

from __future__ import annotations

import logging

from redis.asyncio import Redis

from thumbai.schemas import GenerationJob, JobStatus, ThumbnailArtifact, utc_now


logger = logging.getLogger(__name__)


class ResultStore:
    """Holds one JSON ``GenerationJob`` per job id.

    Writes are whole-record ``SET`` operations on a single key, so two
    writers for the same job simply race to last-write-wins.
    """

    def __init__(self, redis: Redis, key_prefix: str = "thumbai:job:", ttl_seconds: int | None = None):
        self.redis = redis
        self.key_prefix = key_prefix
        self.ttl_seconds = ttl_seconds

    def key(self, job_id: str) -> str:
        return f"{self.key_prefix}{job_id}"

    async def get(self, job_id: str) -> GenerationJob | None:
        raw = await self.redis.get(self.key(job_id))
        if raw is None:
            return None
        return GenerationJob.model_validate_json(raw)

    async def save(self, job: GenerationJob) -> GenerationJob:
        job.updated_at = utc_now()
        await self.redis.set(
            self.key(job.job_id),
            job.model_dump_json(by_alias=True),
            ex=self.ttl_seconds,
        )
        return job

    async def _load_or_new(self, job_id: str, prompt: str) -> GenerationJob:
        job = await self.get(job_id)
        if job is None:
            logger.warning(f"No stored record for job {job_id}, creating one")
            job = GenerationJob(job_id=job_id, prompt=prompt)
        return job

    async def mark_running(self, job_id: str, prompt: str, attempt: int) -> GenerationJob:
        job = await self._load_or_new(job_id, prompt)
        job.status = JobStatus.RUNNING
        job.attempts = attempt
        job.error = None
        job.completed_at = None
        return await self.save(job)

    async def mark_retrying(self, job_id: str, prompt: str, error: str) -> GenerationJob:
        """Put a failed attempt back to pending; the last error stays visible."""
        job = await self._load_or_new(job_id, prompt)
        job.status = JobStatus.PENDING
        job.error = error
        job.completed_at = None
        return await self.save(job)

    async def mark_succeeded(self, job_id: str, prompt: str, result: ThumbnailArtifact) -> GenerationJob:
        job = await self._load_or_new(job_id, prompt)
        job.status = JobStatus.SUCCEEDED
        job.result = result
        job.error = None
        job.completed_at = utc_now()
        return await self.save(job)

    async def mark_failed(self, job_id: str, prompt: str, error: str) -> GenerationJob:
        job = await self._load_or_new(job_id, prompt)
        job.status = JobStatus.FAILED
        job.error = error
        job.completed_at = utc_now()
        return await self.save(job)
