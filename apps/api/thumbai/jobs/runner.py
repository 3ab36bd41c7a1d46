"""Queue runner: pulls events off Redis and applies each function's policy.

Policy per job:
- the first attempt stamps ``started_at``; every attempt gets whatever is
  left of the function's wall-clock budget
- ``NonRetriableError`` (and malformed payloads) end the job at once
- any other error puts the job back to pending and re-enqueues the event
  until ``max_attempts`` is reached
- a failure outcome returned by the function is final
"""

from __future__ import annotations

import asyncio
import logging
from datetime import timedelta
from typing import Awaitable, Callable

from pydantic import ValidationError
from redis.exceptions import RedisError

from thumbai.errors import NonRetriableError
from thumbai.jobs.context import JobContext
from thumbai.jobs.events import verify_envelope
from thumbai.jobs.registry import FunctionRegistry, JobFunction
from thumbai.schemas import EventEnvelope, JobOutcome, utc_now


logger = logging.getLogger(__name__)


class QueueRunner:
    """Consumes one event at a time from the queue."""

    def __init__(
        self,
        ctx: JobContext,
        registry: FunctionRegistry,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        settings = ctx.settings
        self.ctx = ctx
        self.registry = registry
        self.redis = ctx.redis.require()
        self.queue_key = settings.queue_key
        self.signing_key = settings.queue_signing_key
        self.backoff_seconds = settings.job_retry_backoff_seconds
        self.poll_timeout = settings.worker_poll_timeout_seconds
        self._sleep = sleep

    async def run(self, stop: asyncio.Event | None = None) -> None:
        """Process events until ``stop`` is set."""
        logger.info(f"Worker started on queue {self.queue_key} ({len(self.registry)} functions)")
        while stop is None or not stop.is_set():
            try:
                await self.run_once(self.poll_timeout)
            except RedisError as e:
                logger.error(f"Queue error: {e}")
                await self._sleep(1.0)
        logger.info("Worker stopped")

    async def run_once(self, block_timeout: int = 1) -> JobOutcome | None:
        """Pop and process a single event. Returns None if nothing was processed."""
        item = await self.redis.blpop([self.queue_key], timeout=block_timeout)
        if item is None:
            return None
        _, raw = item
        return await self.process(raw)

    async def process(self, raw: str) -> JobOutcome | None:
        try:
            envelope = EventEnvelope.model_validate_json(raw)
        except ValidationError as e:
            logger.error(f"Dropping malformed event: {e}")
            return None

        if not verify_envelope(envelope, self.signing_key):
            logger.error(f"Dropping event {envelope.id}: invalid signature")
            return None

        function = self.registry.get(envelope.name)
        if function is None:
            logger.warning(f"No function registered for {envelope.name}, dropping event {envelope.id}")
            return None

        now = utc_now()
        if envelope.started_at is None:
            envelope.started_at = now
        deadline = envelope.started_at + timedelta(seconds=function.timeout_seconds)
        remaining = (deadline - now).total_seconds()
        if remaining <= 0:
            return await self._time_out(envelope, function)

        job_id = envelope.data.get("jobId")

        try:
            outcome = await asyncio.wait_for(function.handler(envelope, self.ctx), timeout=remaining)
        except asyncio.TimeoutError:
            return await self._time_out(envelope, function)
        except (NonRetriableError, ValidationError) as e:
            logger.error(f"{function.id} failed permanently for job {job_id}: {e}")
            return JobOutcome(success=False, message=str(e), job_id=job_id)
        except Exception as e:
            if envelope.attempt < function.max_attempts:
                await self._retry(envelope, function, remaining, str(e))
                return JobOutcome(
                    success=False,
                    message=f"Retry scheduled (attempt {envelope.attempt} of {function.max_attempts})",
                    job_id=job_id,
                )
            logger.error(f"{function.id} gave up on job {job_id} after {envelope.attempt} attempts: {e}")
            return JobOutcome(success=False, message=str(e), job_id=job_id)

        if not outcome.success:
            logger.error(f"{function.id} reported failure for job {job_id}: {outcome.message}")
        return outcome

    async def _retry(self, envelope: EventEnvelope, function: JobFunction, remaining: float, error: str) -> None:
        delay = min(self.backoff_seconds * (2 ** (envelope.attempt - 1)), max(remaining, 0.0))
        logger.warning(
            f"{function.id} attempt {envelope.attempt}/{function.max_attempts} failed, "
            f"retrying in {delay:.1f}s"
        )
        job_id = envelope.data.get("jobId")
        if self.ctx.store.ok and job_id:
            try:
                await self.ctx.store.client.mark_retrying(job_id, envelope.data.get("prompt", ""), error)
            except RedisError as e:
                logger.error(f"Could not record retry for job {job_id}: {e}")
        if delay > 0:
            await self._sleep(delay)
        envelope.attempt += 1
        await self.redis.rpush(self.queue_key, envelope.model_dump_json(by_alias=True))

    async def _time_out(self, envelope: EventEnvelope, function: JobFunction) -> JobOutcome:
        job_id = envelope.data.get("jobId")
        message = f"Timed out after {function.timeout_seconds:g}s"
        logger.error(f"{function.id} {message.lower()} for job {job_id}")

        if self.ctx.store.ok and job_id:
            try:
                await self.ctx.store.client.mark_failed(job_id, envelope.data.get("prompt", ""), message)
            except RedisError as e:
                logger.error(f"Could not record timeout for job {job_id}: {e}")

        return JobOutcome(success=False, message=message, job_id=job_id)
