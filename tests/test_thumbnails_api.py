from __future__ import annotations

from thumbai.api.main import app
from thumbai.jobs.context import ClientInit, JobContext

from conftest import auth, make_user, sign_in


async def test_requires_authentication(client):
    response = await client.post("/api/thumbnails", json={"prompt": "a fox"})
    assert response.status_code == 401


async def test_dispatch_then_poll(client, session_maker, settings, redis):
    user = await make_user(session_maker, "creator@example.com")
    session = await sign_in(session_maker, user, settings)

    accepted = await client.post("/api/thumbnails", json={"prompt": "a fox in the snow"}, headers=auth(session))

    assert accepted.status_code == 202
    job_id = accepted.json()["jobId"]
    assert accepted.json()["status"] == "pending"
    assert await redis.llen(settings.queue_key) == 1

    polled = await client.get(f"/api/thumbnails/{job_id}", headers=auth(session))

    assert polled.status_code == 200
    body = polled.json()
    assert body["jobId"] == job_id
    assert body["prompt"] == "a fox in the snow"
    assert body["status"] == "pending"
    assert body["result"] is None


async def test_other_users_cannot_see_a_job(client, session_maker, settings):
    owner = await make_user(session_maker, "owner-job@example.com")
    stranger = await make_user(session_maker, "stranger@example.com")
    owner_session = await sign_in(session_maker, owner, settings)
    stranger_session = await sign_in(session_maker, stranger, settings)

    accepted = await client.post(
        "/api/thumbnails", json={"prompt": "private", "jobId": "job-private"}, headers=auth(owner_session)
    )
    assert accepted.json()["jobId"] == "job-private"

    hidden = await client.get("/api/thumbnails/job-private", headers=auth(stranger_session))
    missing = await client.get("/api/thumbnails/job-nope", headers=auth(stranger_session))

    assert hidden.status_code == 404
    assert hidden.json() == missing.json() == {"error": "Job not found"}


async def test_duplicate_job_id_is_rejected(client, session_maker, settings):
    user = await make_user(session_maker, "dupe@example.com")
    session = await sign_in(session_maker, user, settings)
    payload = {"prompt": "same id", "jobId": "job-dupe"}

    first = await client.post("/api/thumbnails", json=payload, headers=auth(session))
    second = await client.post("/api/thumbnails", json=payload, headers=auth(session))

    assert first.status_code == 202
    assert second.status_code == 409


async def test_empty_prompt_is_rejected(client, session_maker, settings):
    user = await make_user(session_maker, "empty@example.com")
    session = await sign_in(session_maker, user, settings)

    response = await client.post("/api/thumbnails", json={"prompt": ""}, headers=auth(session))

    assert response.status_code == 422


async def test_unconfigured_result_store_returns_503(client, session_maker, settings, job_context):
    user = await make_user(session_maker, "nostore@example.com")
    session = await sign_in(session_maker, user, settings)
    app.state.job_context = JobContext(
        settings=settings,
        redis=ClientInit.failure("Result store not configured"),
        store=ClientInit.failure("Result store not configured"),
        provider=job_context.provider,
    )

    response = await client.post("/api/thumbnails", json={"prompt": "anything"}, headers=auth(session))

    assert response.status_code == 503
    assert response.json() == {"error": "Service unavailable"}
