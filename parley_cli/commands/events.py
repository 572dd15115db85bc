"""Webhook audit log commands."""

from typing import Optional

import typer

from parley_cli.client import ParleyClient
from parley_cli.formatting import colored_status, console, format_ts, print_table

app = typer.Typer(help="Webhook audit log")


def _get_client(ctx: typer.Context) -> ParleyClient:
    if ctx.obj and "client" in ctx.obj:
        return ctx.obj["client"]
    return ParleyClient()


@app.command("list")
def list_events(
    ctx: typer.Context,
    status: Optional[str] = typer.Option(
        None, "--status", "-s", help="processed, ignored or failed"
    ),
    limit: int = typer.Option(20, "--limit", "-n", min=1, max=200),
):
    """List recent webhook deliveries, newest first."""
    client = _get_client(ctx)
    try:
        events = client.list_webhook_events(status=status, limit=limit)
    except Exception as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)

    if not events:
        console.print("[yellow]No webhook events found[/yellow]")
        return

    rows = [
        [
            e.get("id", "?"),
            format_ts(e.get("createdAt")),
            e.get("provider", "?"),
            e.get("eventType", "?"),
            colored_status(e.get("status", "?")),
            e.get("error") or "-",
        ]
        for e in events
    ]
    print_table(
        ["ID", "Received", "Provider", "Event", "Status", "Error"],
        rows,
        title="Webhook events",
    )
