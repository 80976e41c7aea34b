import sys
from pathlib import Path
from typing import Optional

import typer

from vouch_outbox import settings
from vouch_outbox.app import Application, main
from vouch_outbox.logging_conf import logger

app = typer.Typer(help="VouchForMe outbox CLI (run the sender, inspect and flush the spool)")


def _application():
    try:
        settings.validate_config()
    except ValueError as e:
        logger.error(f"Configuration error: {e}")
        sys.exit(1)
    return Application()


@app.command()
def run():
    """Run the background sender until SIGINT/SIGTERM."""
    main()


@app.command()
def enqueue(
    text: str,
    app_name: str = typer.Option("CLI", "--app", help="Application name recorded with the text."),
    bundle_id: Optional[str] = typer.Option(None, "--bundle-id"),
    screenshot: Optional[Path] = typer.Option(None, "--screenshot", exists=True, dir_okay=False),
):
    """Spool one text chunk for analysis."""
    application = _application()
    shot = screenshot.read_bytes() if screenshot else None
    mime = "image/png" if screenshot and screenshot.suffix.lower() == ".png" else "image/jpeg"
    result = application.capture(text, app_name, bundle_id=bundle_id, screenshot_bytes=shot, screenshot_mime=mime)
    application.queue.close()
    typer.echo(f"Queued {result.record_id} (dropped {result.dropped_count})")


@app.command()
def status():
    """Show pending/dead counts and analyzer reachability."""
    for key, value in _application().status().items():
        typer.echo(f"{key}: {value}")


@app.command("send-now")
def send_now(limit: int = typer.Option(settings.SEND_NOW_LIMIT, help="Maximum items to send.")):
    """Send up to LIMIT items immediately, stopping at the first failure."""
    sent = _application().send_now(limit)
    typer.echo(f"Manual send: {sent} item(s)")


@app.command()
def clear(yes: bool = typer.Option(False, "--yes", "-y", help="Skip the confirmation prompt.")):
    """Remove every pending payload from disk. Cannot be undone."""
    if not yes:
        typer.confirm("Clear all queued payloads?", abort=True)
    removed = _application().clear_queue()
    typer.echo(f"Cleared queue ({removed} item(s))")


@app.command()
def dead():
    """List dead-letter records."""
    records = _application().queue.list_dead()
    for record_id in records:
        typer.echo(record_id)
    typer.echo(f"{len(records)} dead-letter record(s)")


@app.command()
def requeue(record_id: str):
    """Move a dead-letter record back into the pending spool."""
    if not _application().queue.requeue_dead(record_id):
        typer.echo(f"No dead-letter record {record_id}", err=True)
        raise typer.Exit(code=1)
    typer.echo(f"Requeued {record_id}")


if __name__ == "__main__":
    app()
