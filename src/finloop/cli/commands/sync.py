"""Data synchronization commands for the finloop CLI.

``request`` performs a one-off stateless read and prints the normalized JSON.
``run`` performs a full sync against a local state file: fetch, reconcile,
categorize, then apply the resulting change-set to the file.
"""

import json
import logging
from pathlib import Path

import typer

from finloop.recurring import detect_recurring_transactions
from finloop.store import JsonStateStore
from finloop.sync import SyncOrchestrator, handle_sync_request

app = typer.Typer(help="Sync financial data from SimpleFIN")
logger = logging.getLogger(__name__)


@app.command("request")
def sync_request(
    access_url: str = typer.Option(
        ...,
        "--access-url",
        help="SimpleFIN access URL",
        envvar="FINLOOP_ACCESS_URL",
        show_default=False,
    ),
    start_date: str | None = typer.Option(
        None, "--start-date", help="Earliest date to fetch (YYYY-MM-DD)"
    ),
    end_date: str | None = typer.Option(
        None, "--end-date", help="Latest date to fetch (YYYY-MM-DD)"
    ),
    balances_only: bool = typer.Option(
        False, "--balances-only", help="Fetch balances without transactions"
    ),
) -> None:
    """Fetch accounts and transactions and print them as JSON.

    Nothing is reconciled or stored; every transaction in the window is
    returned as if it were new.
    """
    payload: dict[str, object] = {
        "accessUrl": access_url,
        "balancesOnly": balances_only,
    }
    if start_date:
        payload["startDate"] = start_date
    if end_date:
        payload["endDate"] = end_date

    response = handle_sync_request(payload)
    typer.echo(json.dumps(response.body, indent=2))

    if not response.ok:
        logger.error(f"❌ Sync failed ({response.status_code}): {response.body['message']}")
        raise typer.Exit(1)


@app.command("run")
def sync_run(
    state: Path = typer.Option(
        ..., "--state", "-s", help="JSON state file to sync into"
    ),
    connection_id: str | None = typer.Option(
        None,
        "--connection",
        "-c",
        help="Connection to sync (required when the state has several)",
    ),
) -> None:
    """Sync one connection and apply the changes to the state file."""
    store = JsonStateStore(state)
    snapshot = store.load()

    try:
        connection = snapshot.get_connection(connection_id)
    except KeyError as e:
        logger.error(f"❌ {e.args[0]}")
        raise typer.Exit(1) from e

    outcome = SyncOrchestrator().run(
        connection,
        accounts=snapshot.accounts,
        transactions=snapshot.transactions_for(connection.id),
        rules=snapshot.rules,
        categories=snapshot.categories,
    )
    snapshot.apply(outcome.change_set)
    store.save(snapshot)

    if not outcome.success:
        logger.error(f"❌ Sync failed [{outcome.error_code}]: {outcome.error_message}")
        if outcome.connection.status != connection.status:
            logger.error(f"Connection status is now {outcome.connection.status.value}")
        raise typer.Exit(1)

    for upstream_error in outcome.upstream_errors:
        logger.warning(f"⚠️  SimpleFIN reported: {upstream_error}")
    logger.info(
        f"✅ Synced {len(outcome.accounts)} accounts: "
        f"{len(outcome.new_transactions)} new, "
        f"{len(outcome.updated_transactions)} updated transactions"
    )


@app.command("recurring")
def sync_recurring(
    state: Path = typer.Option(
        ..., "--state", "-s", help="JSON state file to scan"
    ),
) -> None:
    """Print suggested recurring transaction groups as JSON."""
    snapshot = JsonStateStore(state).load()
    groups = detect_recurring_transactions(snapshot.transactions)
    logger.info(f"Found {len(groups)} recurring groups")
    typer.echo(json.dumps(groups, indent=2))
