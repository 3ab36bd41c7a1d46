"""Thumbnail generation job function."""

from __future__ import annotations

import logging
import time

from thumbai.config import Settings
from thumbai.errors import ConfigurationError
from thumbai.jobs.context import JobContext
from thumbai.jobs.registry import JobFunction
from thumbai.schemas import GENERATE_THUMBNAIL_EVENT, EventEnvelope, GenerateThumbnailData, JobOutcome


logger = logging.getLogger(__name__)


async def generate_thumbnail(event: EventEnvelope, ctx: JobContext) -> JobOutcome:
    """Generate one thumbnail and persist the result under its job id.

    Returns a failure outcome without calling the provider when the result
    store is unavailable. Any other error is recorded on the job and
    re-raised so the runner's retry policy can decide what happens next.
    """
    if not ctx.store.ok:
        logger.error("Result store not configured or initialization failed. Aborting function.")
        return JobOutcome(success=False, message="Internal server error: result store not configured")

    store = ctx.store.client
    job_id = event.data.get("jobId")
    prompt = event.data.get("prompt") or ""
    start_time = time.perf_counter()

    try:
        data = GenerateThumbnailData.model_validate(event.data)
        prompt, job_id = data.prompt, data.job_id
        logger.info(f'Generation started for job {job_id} (attempt {event.attempt}), prompt: "{prompt}"')

        if not ctx.provider.ok:
            raise ConfigurationError(ctx.provider.error)
        provider = ctx.provider.client

        await store.mark_running(job_id, prompt, event.attempt)
        artifact = await provider.generate(prompt)
        await store.mark_succeeded(job_id, prompt, artifact)

        elapsed = time.perf_counter() - start_time
        logger.info(f"Image generation completed in {elapsed:.2f}s for job {job_id}")

        return JobOutcome(
            success=True,
            message="Image generation completed",
            job_id=job_id,
            result=artifact,
        )
    except Exception as e:
        elapsed = time.perf_counter() - start_time
        logger.error(f"Image generation failed after {elapsed:.2f}s for job {job_id}: {e}")
        if not isinstance(job_id, str) or not job_id:
            raise
        try:
            await store.mark_failed(job_id, str(prompt), str(e))
        except Exception as store_error:
            logger.error(f"Could not record failure for job {job_id}: {store_error}")
        raise


def generate_thumbnail_function(settings: Settings) -> JobFunction:
    return JobFunction(
        id="generate-thumbnail",
        name="Thumbnail Generation",
        event=GENERATE_THUMBNAIL_EVENT,
        handler=generate_thumbnail,
        max_attempts=settings.job_max_attempts,
        timeout_seconds=settings.job_timeout_seconds,
    )
