"""Queue runner retry, timeout and routing policy."""

from __future__ import annotations

import asyncio
import json

import pytest

from thumbai.errors import ProviderRejectedError, TransientProviderError
from thumbai.jobs.context import ClientInit, JobContext
from thumbai.jobs.dispatcher import JobDispatcher
from thumbai.jobs.events import build_generate_event
from thumbai.jobs.registry import FunctionRegistry, JobFunction
from thumbai.jobs.runner import QueueRunner
from thumbai.jobs.worker import generate_thumbnail_function
from thumbai.schemas import EventEnvelope, JobOutcome, JobStatus

from conftest import FakeImageProvider


async def no_sleep(_seconds: float) -> None:
    return None


def make_runner(ctx: JobContext, *functions: JobFunction) -> QueueRunner:
    registry = FunctionRegistry(list(functions) or [generate_thumbnail_function(ctx.settings)])
    return QueueRunner(ctx, registry, sleep=no_sleep)


def with_provider(ctx: JobContext, provider) -> JobContext:
    return JobContext(settings=ctx.settings, redis=ctx.redis, store=ctx.store, provider=provider)


async def dispatch(ctx: JobContext, prompt: str, job_id: str) -> None:
    dispatcher = JobDispatcher(
        ctx.redis.client,
        ctx.store.client,
        ctx.settings.queue_key,
        ctx.settings.queue_signing_key,
    )
    await dispatcher.dispatch(prompt, job_id=job_id)


async def queued(ctx: JobContext) -> list[EventEnvelope]:
    raw = await ctx.redis.client.lrange(ctx.settings.queue_key, 0, -1)
    return [EventEnvelope.model_validate_json(item) for item in raw]


async def test_successful_job(job_context, provider):
    await dispatch(job_context, "sunset over lake", "job-ok")
    runner = make_runner(job_context)

    outcome = await runner.run_once()

    assert outcome.success is True
    assert provider.calls == ["sunset over lake"]
    job = await job_context.store.client.get("job-ok")
    assert job.status == JobStatus.SUCCEEDED
    assert await queued(job_context) == []


async def test_transient_errors_are_retried_up_to_three_attempts(job_context):
    failing = FakeImageProvider(always_fail=TransientProviderError("Image provider returned 503"))
    ctx = with_provider(job_context, ClientInit.success(failing))
    await dispatch(ctx, "stormy sea", "job-retry")
    runner = make_runner(ctx)

    first = await runner.run_once()
    assert first.success is False
    assert [e.attempt for e in await queued(ctx)] == [2]

    await runner.run_once()
    assert [e.attempt for e in await queued(ctx)] == [3]

    last = await runner.run_once()
    assert last.success is False
    assert last.message == "Image provider returned 503"
    assert await queued(ctx) == []
    assert len(failing.calls) == 3

    job = await ctx.store.client.get("job-retry")
    assert job.status == JobStatus.FAILED
    assert job.attempts == 3


async def test_recovers_on_a_later_attempt(job_context):
    flaky = FakeImageProvider(errors=[TransientProviderError("Image provider returned 429")])
    ctx = with_provider(job_context, ClientInit.success(flaky))
    await dispatch(ctx, "forest trail", "job-flaky")
    runner = make_runner(ctx)

    await runner.run_once()
    outcome = await runner.run_once()

    assert outcome.success is True
    job = await ctx.store.client.get("job-flaky")
    assert job.status == JobStatus.SUCCEEDED
    assert job.attempts == 2
    assert job.error is None


class SnapshottingProvider(FakeImageProvider):
    """Captures the stored job record each time the provider is called."""

    def __init__(self, store, job_id: str, **kwargs):
        super().__init__(**kwargs)
        self.store = store
        self.job_id = job_id
        self.seen = []

    async def generate(self, prompt):
        self.seen.append(await self.store.get(self.job_id))
        return await super().generate(prompt)


async def test_retried_attempt_is_running_again_without_completion_time(job_context):
    flaky = SnapshottingProvider(
        job_context.store.client,
        "job-rerun",
        errors=[TransientProviderError("Image provider returned 503")],
    )
    ctx = with_provider(job_context, ClientInit.success(flaky))
    await dispatch(ctx, "harbor at dawn", "job-rerun")
    runner = make_runner(ctx)

    await runner.run_once()
    waiting = await ctx.store.client.get("job-rerun")
    assert waiting.status == JobStatus.PENDING
    assert waiting.error == "Image provider returned 503"
    assert waiting.completed_at is None
    assert not waiting.is_finished

    await runner.run_once()

    second = flaky.seen[1]
    assert second.status == JobStatus.RUNNING
    assert second.attempts == 2
    assert second.completed_at is None
    assert second.error is None

    done = await ctx.store.client.get("job-rerun")
    assert done.is_finished
    assert done.completed_at is not None


async def test_configuration_errors_are_not_retried(job_context):
    ctx = with_provider(job_context, ClientInit.failure("Image provider not configured"))
    await dispatch(ctx, "desert road", "job-config")
    runner = make_runner(ctx)

    outcome = await runner.run_once()

    assert outcome.success is False
    assert await queued(ctx) == []
    job = await ctx.store.client.get("job-config")
    assert job.status == JobStatus.FAILED


async def test_rejected_requests_are_not_retried(job_context):
    rejecting = FakeImageProvider(always_fail=ProviderRejectedError("Image provider rejected the request (400)"))
    ctx = with_provider(job_context, ClientInit.success(rejecting))
    await dispatch(ctx, "something disallowed", "job-rejected")

    await make_runner(ctx).run_once()

    assert len(rejecting.calls) == 1
    assert await queued(ctx) == []


async def test_uninitialized_store_is_terminal(job_context, provider):
    ctx = JobContext(
        settings=job_context.settings,
        redis=job_context.redis,
        store=ClientInit.failure("Result store not configured"),
        provider=job_context.provider,
    )
    event = build_generate_event("city skyline", "job-nostore", ctx.settings.queue_signing_key)

    outcome = await make_runner(ctx).process(event.model_dump_json(by_alias=True))

    assert outcome.success is False
    assert provider.calls == []
    assert await queued(ctx) == []


async def test_tampered_event_is_dropped(job_context, provider):
    event = build_generate_event("harmless prompt", "job-tampered", job_context.settings.queue_signing_key)
    payload = json.loads(event.model_dump_json(by_alias=True))
    payload["data"]["prompt"] = "something else"

    outcome = await make_runner(job_context).process(json.dumps(payload))

    assert outcome is None
    assert provider.calls == []


async def test_unsigned_event_is_dropped_when_signing_is_enabled(job_context, provider):
    event = build_generate_event("no signature", "job-unsigned")

    outcome = await make_runner(job_context).process(event.model_dump_json(by_alias=True))

    assert outcome is None
    assert provider.calls == []


async def test_malformed_and_unknown_events_are_dropped(job_context, provider):
    runner = make_runner(job_context)
    unknown = EventEnvelope(id="evt-1", name="thumbai/unknown.event", data={})

    assert await runner.process("not json") is None
    assert await runner.process(unknown.model_dump_json(by_alias=True)) is None
    assert provider.calls == []


async def test_job_exceeding_its_budget_is_marked_failed(job_context):
    async def slow(event, ctx) -> JobOutcome:
        await asyncio.sleep(5)
        return JobOutcome(success=True, message="too late")

    function = JobFunction(
        id="slow",
        name="Slow",
        event="thumbai/thumbnail.generate",
        handler=slow,
        max_attempts=3,
        timeout_seconds=0.05,
    )
    await dispatch(job_context, "anything", "job-slow")
    runner = make_runner(job_context, function)

    outcome = await runner.run_once()

    assert outcome.success is False
    assert outcome.message.startswith("Timed out")
    assert await queued(job_context) == []
    job = await job_context.store.client.get("job-slow")
    assert job.status == JobStatus.FAILED
    assert job.error.startswith("Timed out")


def test_registry_rejects_duplicate_event_handlers(settings):
    function = generate_thumbnail_function(settings)
    registry = FunctionRegistry([function])

    with pytest.raises(ValueError):
        registry.register(function)
