"""Detect transactions that repeat on a roughly weekly-to-monthly cadence."""

import re
from collections.abc import Iterable
from decimal import ROUND_HALF_UP, Decimal
from statistics import mean

from finloop.models import Transaction

MIN_INTERVAL_DAYS = 7
MAX_INTERVAL_DAYS = 35

_KEY_CHARS_RE = re.compile(r"[^a-z0-9]+")


def _group_key(transaction: Transaction) -> str:
    """Description prefix plus the absolute amount rounded to whole units."""
    whole_units = (Decimal(abs(transaction.amount)) / 100).quantize(
        Decimal("1"), rounding=ROUND_HALF_UP
    )
    amount_bucket = int(whole_units) * 100
    prefix = transaction.clean_description.lower()[:20]
    return f"{_KEY_CHARS_RE.sub('-', prefix).strip('-')}_{amount_bucket}"


def detect_recurring_transactions(
    transactions: Iterable[Transaction],
) -> dict[str, list[str]]:
    """Find groups of similar transactions that recur at a regular interval.

    Transactions are grouped by the first 20 characters of their clean
    description and their amount rounded to the nearest 100 minor units. A
    group of two or more whose mean gap between consecutive dates is between 7
    and 35 days is reported.

    This only suggests groups. ``is_recurring`` and ``recurring_group_id`` are
    user-owned, so applying a suggestion is left to the caller.

    Args:
        transactions: Transactions to scan

    Returns:
        dict[str, list[str]]: ``recurring_<key>`` group ids mapped to the ids
            of their member transactions, in date order
    """
    groups: dict[str, list[Transaction]] = {}
    for tx in transactions:
        groups.setdefault(_group_key(tx), []).append(tx)

    recurring: dict[str, list[str]] = {}
    for key, members in groups.items():
        if len(members) < 2:
            continue

        ordered = sorted(members, key=lambda t: t.date)
        gaps = [
            (later.date - earlier.date).days
            for earlier, later in zip(ordered, ordered[1:])
        ]
        if MIN_INTERVAL_DAYS <= mean(gaps) <= MAX_INTERVAL_DAYS:
            recurring[f"recurring_{key}"] = [t.id for t in ordered]

    return recurring
