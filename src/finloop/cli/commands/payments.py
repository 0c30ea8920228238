"""Scheduled payment commands for the finloop CLI."""

import logging
from datetime import date
from pathlib import Path

import typer

from finloop.config import get_settings
from finloop.payments import (
    current_week_reference_code,
    generate_reference_code,
    match_payments,
)
from finloop.store import JsonStateStore

app = typer.Typer(help="Scheduled payment helpers")
logger = logging.getLogger(__name__)


@app.command("reference-code")
def reference_code(
    payee_name: str = typer.Argument(..., help="Name of the person being paid"),
    week: int | None = typer.Option(
        None, "--week", "-w", min=1, max=53, help="ISO week number (default: this week)"
    ),
) -> None:
    """Print the reference code to put in an e-transfer memo."""
    if not payee_name.strip():
        raise typer.BadParameter("Payee name cannot be empty")

    if week is None:
        code = current_week_reference_code(payee_name, date.today())
    else:
        code = generate_reference_code(payee_name, week)
    typer.echo(code)


@app.command("match")
def match(
    state: Path = typer.Option(
        ..., "--state", "-s", help="JSON state file with transactions and payments"
    ),
    tolerance: int | None = typer.Option(
        None,
        "--tolerance",
        min=0,
        help="Allowed amount difference in cents (default from settings)",
    ),
) -> None:
    """Match pending payments to e-transfers and save their new status."""
    store = JsonStateStore(state)
    snapshot = store.load()

    if tolerance is None:
        tolerance = get_settings().sync.payment_match_tolerance

    result = match_payments(snapshot.transactions, snapshot.payments, tolerance)
    snapshot.payments = result.payments
    store.save(snapshot)

    for found in result.matches:
        typer.echo(f"{found.payment.reference_code}\t{found.transaction.id}")
    logger.info(f"✅ Matched {len(result.matches)} payments")
