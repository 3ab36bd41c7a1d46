"""Job dispatcher: records a pending job and publishes its event."""

from __future__ import annotations

import logging
from uuid import uuid4

from redis.asyncio import Redis
from redis.exceptions import RedisError

from thumbai.jobs.events import build_generate_event
from thumbai.jobs.store import ResultStore
from thumbai.schemas import EventEnvelope, GenerationJob, JobStatus


logger = logging.getLogger(__name__)


class JobDispatcher:
    """Publishes generation requests onto the Redis event queue.

    Dispatch returns as soon as the event is queued; callers poll the
    result store with the job id to learn the outcome.
    """

    def __init__(self, redis: Redis, store: ResultStore, queue_key: str, signing_key: str = ""):
        self.redis = redis
        self.store = store
        self.queue_key = queue_key
        self.signing_key = signing_key

    async def publish(self, envelope: EventEnvelope) -> None:
        await self.redis.rpush(self.queue_key, envelope.model_dump_json(by_alias=True))

    async def dispatch(
        self,
        prompt: str,
        job_id: str | None = None,
        user_id: str | None = None,
    ) -> GenerationJob:
        job_id = job_id or uuid4().hex

        job = GenerationJob(
            job_id=job_id,
            prompt=prompt,
            status=JobStatus.PENDING,
            user_id=user_id,
        )
        await self.store.save(job)

        envelope = build_generate_event(prompt, job_id, self.signing_key)
        try:
            await self.publish(envelope)
        except RedisError as e:
            logger.error(f"Could not queue job {job_id}: {e}")
            try:
                await self.store.mark_failed(job_id, prompt, "Failed to queue job")
            except RedisError as store_error:
                logger.error(f"Could not record queue failure for job {job_id}: {store_error}")
            raise

        logger.info(f"Dispatched job {job_id} (event {envelope.id})")
        return job
