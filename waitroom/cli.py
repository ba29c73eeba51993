"""Command line interface for running and inspecting the waitroom."""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Awaitable, Callable, Optional, TypeVar

import typer

from waitroom import Coordinator, Outcome
from waitroom.config import load_config

T = TypeVar("T")

app = typer.Typer(help="CLI for the waitroom coordinator")

process_app = typer.Typer(help="Commands for inspecting and completing processes")

app.add_typer(process_app, name="process")


@app.callback()
def main() -> None:
    """Waitroom CLI entry point."""
    pass


def _run(action: Callable[[Coordinator], Awaitable[T]]) -> T:
    """Run ``action`` against a coordinator and close it afterwards."""

    async def runner() -> T:
        coordinator = Coordinator.from_config()
        try:
            return await action(coordinator)
        finally:
            await coordinator.close()

    return asyncio.run(runner())


@app.command("serve")
def serve(
    host: Optional[str] = None,
    port: Optional[int] = None,
) -> None:
    """
    Run the HTTP API.

    Serves the start, complete and status endpoints using the configured
    repository and engine backend.

    Example:
        waitroom serve
        waitroom serve --host 127.0.0.1 --port 9000
    """
    import uvicorn

    from waitroom.api import create_app

    config = load_config()
    logging.basicConfig(
        level=config.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    uvicorn.run(
        create_app(config=config),
        host=host or config.server.host,
        port=port or config.server.port,
        log_level=config.log_level.lower(),
    )


@process_app.command("list")
def process_list() -> None:
    """
    List all processes in the store with their current status.

    Example:
        waitroom process list
        # Output: order-42    DONE    2024-01-01 10:00:01+00:00
    """
    records = _run(lambda c: c.list_processes())
    if not records:
        typer.echo("No processes found")
        return
    for record in records:
        typer.echo(f"{record.correlation_key}\t{record.status.value}\t{record.updated_at}")


@process_app.command("show")
def process_show(correlation_key: str) -> None:
    """Show status, payload and timestamps for one process."""
    record = _run(lambda c: c.status(correlation_key))
    if record is None:
        typer.echo("Process not found")
        raise typer.Exit(code=1)
    typer.echo(f"Process {record.correlation_key}: {record.status.value}")
    typer.echo(f"Started: {record.started_at}")
    typer.echo(f"Updated: {record.updated_at}")
    if record.result_payload is not None:
        typer.echo(f"Result: {json.dumps(record.result_payload)}")
    if record.error_payload is not None:
        typer.echo(f"Error: {record.error_message}")
        details = {k: v for k, v in record.error_payload.items() if k != "message"}
        if details:
            typer.echo(f"Error details: {json.dumps(details)}")


def _parse_payload(raw: Optional[str]) -> Any:
    if raw is None:
        return None
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        typer.secho("Payload must be valid JSON", fg=typer.colors.RED)
        raise typer.Exit(code=2)


@process_app.command("complete")
def process_complete(
    correlation_key: str,
    payload: Optional[str] = typer.Option(None, help="JSON result payload"),
) -> None:
    """
    Mark a pending process as DONE.

    Example:
        waitroom process complete order-42 --payload '{"approved": true}'
    """
    result = _parse_payload(payload)
    transitioned = _run(lambda c: c.complete(correlation_key, Outcome.SUCCESS, result))
    if transitioned:
        typer.echo(f"Process {correlation_key} completed")
    else:
        typer.echo(f"Process {correlation_key} was not pending; nothing changed")


@process_app.command("fail")
def process_fail(
    correlation_key: str,
    message: str = typer.Option("Failed by operator", help="Error message"),
) -> None:
    """Mark a pending process as ERROR."""
    transitioned = _run(
        lambda c: c.complete(correlation_key, Outcome.FAILURE, {"message": message})
    )
    if transitioned:
        typer.echo(f"Process {correlation_key} failed")
    else:
        typer.echo(f"Process {correlation_key} was not pending; nothing changed")


@process_app.command("pending")
def process_pending() -> None:
    """Print the number of pending processes."""
    typer.echo(str(_run(lambda c: c.pending_count())))


@process_app.command("abort-pending")
def process_abort_pending(
    reason: str = typer.Option("shutdown", help="Reason recorded in the error payload"),
    yes: bool = typer.Option(False, "--yes", help="Skip the confirmation prompt"),
) -> None:
    """
    Fail every pending process.

    Waiters on every instance sharing the store resolve to the abort error.
    """
    if not yes:
        typer.confirm("Fail all pending processes?", abort=True)
    count = _run(lambda c: c.abort_pending(reason))
    typer.echo(f"Aborted {count} pending process(es)")


@process_app.command("history")
def process_history(correlation_key: str) -> None:
    """Show the audit history of a process."""
    events = _run(lambda c: c.history(correlation_key))
    if not events:
        typer.echo("No history found")
        return
    for event in events:
        status = f" {event.status}" if event.status else ""
        typer.echo(f"{event.recorded_at}\t{event.event}{status}")


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    app()
