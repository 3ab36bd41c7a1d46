"""CLI entrypoint (Typer).

- `thumbai serve`                  run the API
- `thumbai worker`                 run the generation worker
- `thumbai dispatch "<prompt>"`    queue a job and print its id
- `thumbai status <job-id>`        show a job from the result store
- `thumbai init-db`                create tables
- `thumbai create-session <email>` mint a session token for local testing
- `thumbai send-verification <email> <url>`
"""

from __future__ import annotations

import asyncio
import signal

import typer

from thumbai.config import get_settings
from thumbai.logs import configure_logging

app = typer.Typer(help="ThumbAI API and worker CLI.")


@app.callback()
def main(debug: bool = typer.Option(False, "--debug", help="Verbose logging")):
    configure_logging(debug or get_settings().debug)


@app.command()
def serve(
    host: str = typer.Option(None, help="Bind address"),
    port: int = typer.Option(None, help="Bind port"),
    reload: bool = typer.Option(False, help="Auto-reload on code changes"),
):
    """Run the HTTP API."""
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "thumbai.api.main:app",
        host=host or settings.api_host,
        port=port or settings.api_port,
        reload=reload,
    )


@app.command()
def worker():
    """Consume generation events until interrupted."""
    from thumbai.jobs.context import build_job_context
    from thumbai.jobs.registry import FunctionRegistry
    from thumbai.jobs.runner import QueueRunner
    from thumbai.jobs.worker import generate_thumbnail_function

    async def _run() -> None:
        settings = get_settings()
        ctx = build_job_context(settings)
        stop = asyncio.Event()
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, stop.set)
        try:
            runner = QueueRunner(ctx, FunctionRegistry([generate_thumbnail_function(settings)]))
            await runner.run(stop)
        finally:
            await ctx.close()

    asyncio.run(_run())


@app.command()
def dispatch(
    prompt: str,
    job_id: str = typer.Option(None, "--job-id", help="Use this job id instead of a generated one"),
):
    """Queue a thumbnail generation job."""
    from thumbai.jobs.context import build_job_context
    from thumbai.jobs.dispatcher import JobDispatcher

    async def _run() -> str:
        settings = get_settings()
        ctx = build_job_context(settings)
        try:
            dispatcher = JobDispatcher(
                redis=ctx.redis.require(),
                store=ctx.store.require(),
                queue_key=settings.queue_key,
                signing_key=settings.queue_signing_key,
            )
            job = await dispatcher.dispatch(prompt, job_id=job_id)
            return job.job_id
        finally:
            await ctx.close()

    typer.echo(asyncio.run(_run()))


@app.command()
def status(
    job_id: str,
    wait: bool = typer.Option(False, "--wait", help="Poll until the job succeeds or fails"),
    interval: float = typer.Option(2.0, help="Seconds between polls with --wait"),
):
    """Print a job record as JSON."""
    from thumbai.jobs.context import build_job_context

    async def _run() -> str | None:
        ctx = build_job_context(get_settings())
        try:
            store = ctx.store.require()
            job = await store.get(job_id)
            while wait and job is not None and not job.is_finished:
                await asyncio.sleep(interval)
                job = await store.get(job_id)
            return job.model_dump_json(by_alias=True, indent=2) if job else None
        finally:
            await ctx.close()

    output = asyncio.run(_run())
    if output is None:
        typer.echo(f"Job {job_id} not found", err=True)
        raise typer.Exit(code=1)
    typer.echo(output)


@app.command("init-db")
def init_db_command():
    """Create database tables."""
    from thumbai.database.session import close_db, init_db

    async def _run() -> None:
        await init_db()
        await close_db()

    asyncio.run(_run())
    typer.echo("Database initialized")


@app.command("create-session")
def create_session_command(
    email: str,
    name: str = typer.Option(None, help="Display name for a new user"),
    user_agent: str = typer.Option(None, "--user-agent", help="User agent to record"),
    ip_address: str = typer.Option(None, "--ip", help="IP address to record"),
):
    """Sign a user in and print the session token."""
    from thumbai.database.session import close_db, get_session
    from thumbai.services.sessions import create_session, get_or_create_user

    async def _run() -> str:
        try:
            async with get_session() as db:
                user = await get_or_create_user(db, email, name)
                session = await create_session(db, user, user_agent=user_agent, ip_address=ip_address)
                return session.session_token
        finally:
            await close_db()

    typer.echo(asyncio.run(_run()))


@app.command("send-verification")
def send_verification(
    email: str,
    url: str,
    name: str = typer.Option(None, help="Recipient name"),
):
    """Send the sign-in email."""
    from thumbai.mail.resend import ResendMailer

    async def _run() -> str:
        mailer = ResendMailer()
        try:
            return await mailer.send_verification_email(url, email, name)
        finally:
            await mailer.close()

    typer.echo(asyncio.run(_run()))


if __name__ == "__main__":
    app()
