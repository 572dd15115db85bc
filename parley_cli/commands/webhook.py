"""Webhook signing and test-delivery commands."""

import json
from pathlib import Path

import httpx
import typer

from parley_cli.client import DEFAULT_SIGNATURE_HEADER, ParleyClient, sign_body
from parley_cli.formatting import console, print_status

app = typer.Typer(help="Webhook signing and test deliveries")


def _get_client(ctx: typer.Context) -> ParleyClient:
    if ctx.obj and "client" in ctx.obj:
        return ctx.obj["client"]
    return ParleyClient()


def build_test_payload(
    session_id: str,
    include_transcript: bool = True,
    include_analysis: bool = True,
) -> dict:
    """A legacy-shape post-call payload correlated to ``session_id``."""
    payload = {
        "event": "post_call_transcription",
        "conversation_initiation_client_data": {
            "dynamic_variables": {"session_id": session_id},
        },
    }
    if include_transcript:
        payload["transcript"] = [
            {"role": "agent", "message": "Dzień dobry, w czym mogę pomóc?", "ts_ms": 0},
            {"role": "user", "message": "Chciałbym porozmawiać o ofercie.", "ts_ms": 2400},
        ]
    if include_analysis:
        payload["analysis"] = {
            "score_overall": 7.5,
            "criteria": {"clarity": 8, "empathy": 7},
            "summary": "Test delivery from the parley CLI",
            "tips": ["Ask an open question earlier"],
        }
    return payload


@app.command("sign")
def sign(
    file: Path = typer.Argument(..., exists=True, dir_okay=False, help="Body to sign"),
    secret: str = typer.Option(
        ..., "--secret", envvar="ELEVENLABS_WEBHOOK_SECRET", help="Webhook secret"
    ),
):
    """Print the hex HMAC-SHA256 signature of a file's exact bytes."""
    typer.echo(sign_body(file.read_bytes(), secret))


@app.command("send-test")
def send_test(
    ctx: typer.Context,
    session_id: str = typer.Option(..., "--session-id", help="Session to correlate to"),
    secret: str = typer.Option(
        ..., "--secret", envvar="ELEVENLABS_WEBHOOK_SECRET", help="Webhook secret"
    ),
    transcript: bool = typer.Option(True, "--transcript/--no-transcript"),
    analysis: bool = typer.Option(True, "--analysis/--no-analysis"),
    signature_header: str = typer.Option(
        DEFAULT_SIGNATURE_HEADER, "--signature-header", envvar="WEBHOOK_SIGNATURE_HEADER"
    ),
):
    """Sign and deliver a test webhook for a session."""
    client = _get_client(ctx)
    payload = build_test_payload(session_id, transcript, analysis)

    try:
        response = client.send_webhook(payload, secret, signature_header)
    except httpx.HTTPError as e:
        console.print(f"[red]Request failed: {e}[/red]")
        raise typer.Exit(1)

    ok = response.is_success
    print_status("Status", str(response.status_code), "green" if ok else "red")
    try:
        console.print_json(json.dumps(response.json()))
    except ValueError:
        console.print(response.text)

    if not ok:
        raise typer.Exit(1)
