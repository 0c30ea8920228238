# ruff: noqa: S101
"""Tests for recurring transaction detection."""

from collections.abc import Callable
from datetime import date

import pytest

from finloop.models import Transaction
from finloop.recurring import detect_recurring_transactions

TxFactory = Callable[..., Transaction]


@pytest.mark.unit
def test_monthly_subscription_detected(make_transaction: TxFactory) -> None:
    txs = [
        make_transaction("N3", amount=-1699, clean_description="Netflix", day=date(2024, 3, 5)),
        make_transaction("N1", amount=-1699, clean_description="Netflix", day=date(2024, 1, 5)),
        make_transaction("N2", amount=-1689, clean_description="Netflix", day=date(2024, 2, 5)),
    ]

    groups = detect_recurring_transactions(txs)

    assert groups == {"recurring_netflix_1700": ["sf_N1", "sf_N2", "sf_N3"]}


@pytest.mark.unit
def test_single_occurrence_not_recurring(make_transaction: TxFactory) -> None:
    assert detect_recurring_transactions([make_transaction()]) == {}


@pytest.mark.unit
def test_daily_purchases_not_recurring(make_transaction: TxFactory) -> None:
    txs = [
        make_transaction(f"T{d}", clean_description="Tim Hortons", day=date(2024, 1, d))
        for d in range(1, 6)
    ]

    assert detect_recurring_transactions(txs) == {}


@pytest.mark.unit
def test_different_amounts_grouped_separately(make_transaction: TxFactory) -> None:
    txs = [
        make_transaction("A", amount=-1000, clean_description="Gym", day=date(2024, 1, 1)),
        make_transaction("B", amount=-5000, clean_description="Gym", day=date(2024, 2, 1)),
    ]

    assert detect_recurring_transactions(txs) == {}


@pytest.mark.unit
def test_half_unit_amounts_round_up(make_transaction: TxFactory) -> None:
    txs = [
        make_transaction("P1", amount=-250, clean_description="Parking", day=date(2024, 1, 10)),
        make_transaction("P2", amount=-349, clean_description="Parking", day=date(2024, 2, 10)),
    ]

    assert detect_recurring_transactions(txs) == {"recurring_parking_300": ["sf_P1", "sf_P2"]}
