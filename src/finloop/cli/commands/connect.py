"""Connection commands for the finloop CLI.

Claims a SimpleFIN setup token and either prints the resulting access URL or
stores it as a new connection in a local state file.
"""

import logging
from pathlib import Path

import typer

from finloop.connectors.credentials import parse_setup_token
from finloop.connectors.simplefin_client import SimplefinClient
from finloop.errors import FinloopError
from finloop.models import create_connection
from finloop.store import JsonStateStore

app = typer.Typer(help="Connect a SimpleFIN account")
logger = logging.getLogger(__name__)


@app.callback()
def connect() -> None:
    """Connect a SimpleFIN account."""


@app.command("claim")
def claim(
    setup_token: str = typer.Argument(
        ..., help="Setup token from the SimpleFIN Bridge website"
    ),
    state: Path | None = typer.Option(
        None,
        "--state",
        "-s",
        help="Add the connection to this state file instead of printing the access URL",
    ),
) -> None:
    """Exchange a setup token for a permanent access URL.

    A setup token can only be claimed once. Without --state the access URL is
    printed to stdout; keep it secret, it grants read access to the accounts.
    """
    try:
        claim_url = parse_setup_token(setup_token)
        access_url = SimplefinClient.from_settings().claim_access_url(claim_url)
    except FinloopError as e:
        logger.error(f"❌ Claim failed: {e.message}")
        raise typer.Exit(1) from e

    if state is None:
        typer.echo(access_url)
        return

    store = JsonStateStore(state)
    snapshot = store.load()
    connection = create_connection(access_url)
    snapshot.connections.append(connection)
    store.save(snapshot)
    logger.info(f"✅ Added connection {connection.id} to {state}")
    typer.echo(connection.id)
