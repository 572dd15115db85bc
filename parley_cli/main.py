"""Parley CLI entry point."""

from typing import Optional

import typer

from parley_cli.client import DEFAULT_URL, ParleyClient
from parley_cli.commands import events, webhook
from parley_cli.formatting import console, print_status

app = typer.Typer(
    name="parley",
    help="Parley CLI - session and webhook operations",
    no_args_is_help=True,
)

app.add_typer(webhook.app, name="webhook")
app.add_typer(events.app, name="events")


@app.callback()
def main(
    ctx: typer.Context,
    url: str = typer.Option(DEFAULT_URL, "--url", envvar="PARLEY_URL", help="Server URL"),
    api_key: Optional[str] = typer.Option(
        None, "--api-key", envvar="PARLEY_API_KEY", help="Bearer token for admin commands"
    ),
):
    """Parley CLI"""
    ctx.ensure_object(dict)
    ctx.obj["url"] = url
    ctx.obj["client"] = ParleyClient(base_url=url, token=api_key)


def _get_client(ctx: typer.Context) -> ParleyClient:
    if ctx.obj:
        return ctx.obj.get("client", ParleyClient())
    return ParleyClient()


@app.command()
def status(ctx: typer.Context):
    """Show Parley server status."""
    client = _get_client(ctx)
    try:
        result = client.get_status()
    except Exception as e:
        console.print(f"[red]Error connecting to server: {e}[/red]")
        raise typer.Exit(1)

    print_status("Server", result.get("status", "unknown"))
    print_status("Version", result.get("version", "unknown"))

    db_ok = result.get("database", False)
    print_status(
        "Database",
        "connected" if db_ok else "unreachable",
        "green" if db_ok else "red",
    )
    print_status("Pending Sessions", str(result.get("pendingSessions", "-")))
    print_status(
        "Auth",
        "enabled" if result.get("authEnabled") else "disabled",
        "green" if result.get("authEnabled") else "yellow",
    )


if __name__ == "__main__":
    app()
