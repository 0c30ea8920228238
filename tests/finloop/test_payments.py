# ruff: noqa: S101
"""Tests for reference-code payment matching."""

from collections.abc import Callable
from datetime import date

import pytest

from finloop.models import BabysitterPayment, PaymentStatus, Transaction
from finloop.payments import (
    current_week_reference_code,
    generate_reference_code,
    is_transfer_candidate,
    iso_week_number,
    match_payments,
)

TxFactory = Callable[..., Transaction]


class TestReferenceCodes:
    """Tests for reference code generation."""

    @pytest.mark.unit
    def test_generate(self) -> None:
        assert generate_reference_code("jane", 3) == "W03-J"
        assert generate_reference_code("  Mo ", 42) == "W42-M"

    @pytest.mark.unit
    def test_iso_week_number(self) -> None:
        assert iso_week_number(date(2024, 1, 15)) == 3
        # 2021-01-01 belongs to the last ISO week of 2020
        assert iso_week_number(date(2021, 1, 1)) == 53

    @pytest.mark.unit
    def test_current_week(self) -> None:
        assert current_week_reference_code("Jane", date(2024, 1, 15)) == "W03-J"


class TestMatchPayments:
    """Tests for binding payments to e-transfers."""

    @pytest.mark.unit
    def test_matches_transfer_with_code(self, make_transaction: TxFactory) -> None:
        tx = make_transaction(
            "TX-9", amount=-4999, description="INTERAC E-TRANSFER W03-J"
        )
        payment = BabysitterPayment(reference_code="W03-J", amount=5000)

        result = match_payments([tx], [payment])

        (found,) = result.matches
        assert found.transaction == tx
        assert found.payment.status == PaymentStatus.MATCHED
        assert found.payment.matched_transaction_id == "sf_TX-9"
        assert result.payments == [found.payment]

    @pytest.mark.unit
    def test_code_in_notes_matches(self, make_transaction: TxFactory) -> None:
        tx = make_transaction(
            amount=-5000, description="E-TFR SENT", notes="w03-j babysitting"
        )
        payment = BabysitterPayment(reference_code="W03-J", amount=5000)

        assert len(match_payments([tx], [payment]).matches) == 1

    @pytest.mark.unit
    def test_amount_outside_tolerance(self, make_transaction: TxFactory) -> None:
        tx = make_transaction(amount=-4800, description="INTERAC E-TRANSFER W03-J")
        payment = BabysitterPayment(reference_code="W03-J", amount=5000)

        result = match_payments([tx], [payment])

        assert result.matches == []
        assert result.payments == [payment]

    @pytest.mark.unit
    def test_custom_tolerance(self, make_transaction: TxFactory) -> None:
        tx = make_transaction(amount=-4800, description="INTERAC E-TRANSFER W03-J")
        payment = BabysitterPayment(reference_code="W03-J", amount=5000)

        assert len(match_payments([tx], [payment], tolerance=200).matches) == 1

    @pytest.mark.unit
    def test_incoming_and_non_transfers_ignored(
        self, make_transaction: TxFactory
    ) -> None:
        incoming = make_transaction("TX-1", amount=5000, description="E-TRANSFER W03-J")
        purchase = make_transaction("TX-2", amount=-5000, description="SHOP W03-J")

        assert not is_transfer_candidate(incoming)
        assert not is_transfer_candidate(purchase)
        payment = BabysitterPayment(reference_code="W03-J", amount=5000)
        assert match_payments([incoming, purchase], [payment]).matches == []

    @pytest.mark.unit
    def test_transaction_binds_only_once(self, make_transaction: TxFactory) -> None:
        tx = make_transaction(amount=-5000, description="INTERAC E-TRANSFER W03-J")
        first = BabysitterPayment(id="p1", reference_code="W03-J", amount=5000)
        second = BabysitterPayment(id="p2", reference_code="W03-J", amount=5000)

        result = match_payments([tx], [first, second])

        assert [m.payment.id for m in result.matches] == ["p1"]
        assert result.payments[1] == second

    @pytest.mark.unit
    def test_already_matched_payments_skipped(
        self, make_transaction: TxFactory
    ) -> None:
        tx = make_transaction(amount=-5000, description="INTERAC E-TRANSFER W03-J")
        done = BabysitterPayment(
            reference_code="W03-J",
            amount=5000,
            status=PaymentStatus.MATCHED,
            matched_transaction_id="sf_other",
        )

        result = match_payments([tx], [done])

        assert result.matches == []
        assert result.payments == [done]
