"""Command line entry points: run the API and keep a hosted instance awake."""

import time
from datetime import datetime, timezone
from typing import Optional

import click
import httpx

DEFAULT_HEALTH_URL = "http://localhost:3001/health"


@click.group()
def cli():
    """Fitness Tracker API tools."""


@cli.command("serve")
@click.option("--host", default=None, help="Bind address (defaults to HOST)")
@click.option("--port", type=int, default=None, help="Port (defaults to PORT)")
@click.option("--reload", is_flag=True, help="Restart on code changes")
def serve(host, port, reload):
    """Run the API with uvicorn."""
    import uvicorn

    from fitness_tracker.config import settings

    uvicorn.run(
        "fitness_tracker.main:app",
        host=host or settings.HOST,
        port=port or settings.PORT,
        reload=reload,
        log_level=settings.LOG_LEVEL.lower(),
    )


def ping_server(url: str, client: httpx.Client) -> Optional[int]:
    """
    Request ``url`` once and report the outcome.

    Returns:
        The response status code, or None if the request failed
    """
    started = time.monotonic()
    timestamp = datetime.now(timezone.utc).isoformat()
    try:
        response = client.get(url)
    except httpx.HTTPError as e:
        click.echo(f"❌ Keep-alive ping failed: {e} - {timestamp}")
        return None

    duration_ms = int((time.monotonic() - started) * 1000)
    click.echo(
        f"✅ Keep-alive ping - Status: {response.status_code} - Duration: {duration_ms}ms - {timestamp}"
    )
    return response.status_code


@cli.command("keep-alive")
@click.option("--url", default=DEFAULT_HEALTH_URL, show_default=True, help="Health URL to ping")
@click.option("--interval-minutes", type=float, default=10, show_default=True)
@click.option("--once", is_flag=True, help="Ping a single time and exit")
def keep_alive(url, interval_minutes, once):
    """Ping the health endpoint so an idle host does not spin down."""
    with httpx.Client(timeout=30.0) as client:
        if once:
            ping_server(url, client)
            return

        click.echo(f"🚀 Pinging {url} every {interval_minutes:g} minutes. Press Ctrl+C to stop.")
        try:
            while True:
                ping_server(url, client)
                time.sleep(interval_minutes * 60)
        except KeyboardInterrupt:
            click.echo("Keep-alive stopped.")


if __name__ == "__main__":
    cli()
