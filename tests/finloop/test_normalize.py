# ruff: noqa: S101
"""Tests for converting SimpleFIN payloads into the domain model."""

from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any

import pytest

from finloop.connectors.simplefin_schemas import parse_account_set
from finloop.errors import MalformedResponseError
from finloop.normalize import (
    apply_liability_sign,
    clean_description,
    infer_account_type,
    normalize_account_set,
    normalize_currency,
    to_minor_units,
)


class TestToMinorUnits:
    """Tests for decimal to integer minor unit conversion."""

    @pytest.mark.unit
    @pytest.mark.parametrize(
        ("value", "expected"),
        [
            ("1234.56", 123456),
            ("-49.99", -4999),
            ("0", 0),
            ("10", 1000),
            ("0.005", 1),
            ("-0.005", -1),
            ("1234.565", 123457),
            (Decimal("19.999"), 2000),
            (7, 700),
        ],
    )
    def test_conversion(self, value: Any, expected: int) -> None:
        assert to_minor_units(value) == expected

    @pytest.mark.unit
    def test_no_float_drift(self) -> None:
        # 0.1 + 0.2 style errors must not leak into stored amounts
        assert to_minor_units("0.30") == 30
        assert to_minor_units("1.15") == 115

    @pytest.mark.unit
    @pytest.mark.parametrize("value", ["abc", "", "NaN", "Infinity"])
    def test_invalid_values(self, value: str) -> None:
        with pytest.raises(MalformedResponseError):
            to_minor_units(value)


class TestAccountType:
    """Tests for account type inference and liability sign."""

    @pytest.mark.unit
    @pytest.mark.parametrize(
        ("name", "expected"),
        [
            ("Example Visa Infinite", "credit"),
            ("World Mastercard", "credit"),
            ("Line of Credit", "credit"),
            ("High Interest Savings", "savings"),
            ("Self-directed RRSP", "investment"),
            ("TFSA", "investment"),
            ("Investment Account", "investment"),
            ("Everyday Chequing", "checking"),
            ("Checking", "checking"),
            ("Joint Account", "checking"),
        ],
    )
    def test_infer_account_type(self, name: str, expected: str) -> None:
        assert infer_account_type(name) == expected

    @pytest.mark.unit
    def test_credit_balance_is_never_positive(self) -> None:
        assert apply_liability_sign("credit", 50000) == -50000
        assert apply_liability_sign("credit", -50000) == -50000
        assert apply_liability_sign("checking", 50000) == 50000
        assert apply_liability_sign("savings", -100) == -100

    @pytest.mark.unit
    def test_normalize_currency(self) -> None:
        assert normalize_currency("USD") == "USD"
        assert normalize_currency("CAD") == "CAD"
        assert normalize_currency("EUR") == "CAD"
        assert normalize_currency(None) == "CAD"


class TestCleanDescription:
    """Tests for merchant name cleanup."""

    @pytest.mark.unit
    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            ("POS DEBIT TIM HORTONS #1234 TORONTO ON", "Tim Hortons"),
            ("INTERAC PURCHASE 1234567 LOBLAWS", "Purchase Loblaws"),
            ("SHELL 12/31 CALGARY AB", "Shell Calgary"),
            ("Netflix.com 2024-01-15", "Netflix.com"),
            ("Coffee   Shop", "Coffee Shop"),
            ("ABC", "ABC"),
        ],
    )
    def test_cleanup(self, raw: str, expected: str) -> None:
        assert clean_description(raw) == expected

    @pytest.mark.unit
    def test_falls_back_to_original_when_empty(self) -> None:
        assert clean_description("POS 1234567") == "POS 1234567"


class TestNormalizeAccountSet:
    """Tests for normalizing a full payload."""

    @pytest.mark.unit
    def test_accounts(self, simplefin_payload: dict[str, Any]) -> None:
        payload = normalize_account_set(
            parse_account_set(simplefin_payload), connection_id="conn_1"
        )

        chequing, visa = payload.accounts
        assert chequing.id == "ACT-chq"
        assert chequing.connection_id == "conn_1"
        assert chequing.provider.institution == "Example Bank"
        assert chequing.provider.institution_domain == "examplebank.ca"
        assert chequing.type == "checking"
        assert chequing.balance == 123456
        assert chequing.provider.available_balance == 120000
        assert chequing.provider.balance_date == datetime(
            2024, 1, 15, 12, tzinfo=timezone.utc
        )

        assert visa.type == "credit"
        assert visa.balance == -50000
        assert visa.provider.available_balance is None

        assert payload.errors == [
            "Connection to Example Credit Union may need attention"
        ]

    @pytest.mark.unit
    def test_transactions(self, simplefin_payload: dict[str, Any]) -> None:
        payload = normalize_account_set(parse_account_set(simplefin_payload))

        # Newest first
        tim, transfer = payload.transactions
        assert tim.id == "sf_TX-1"
        assert tim.external_id == "TX-1"
        assert tim.account_id == "ACT-chq"
        assert tim.source == "simplefin"
        assert tim.amount == -1234
        assert tim.date == date(2024, 1, 15)
        assert tim.clean_description == "Tim Hortons"
        assert tim.provider.transacted_at == datetime(
            2024, 1, 15, 11, tzinfo=timezone.utc
        )
        assert tim.user.notes is None
        assert tim.category_id is None
        assert tim.is_reviewed is False

        assert transfer.pending is True
        assert transfer.amount == -4999
        assert transfer.user.notes == "babysitting"

    @pytest.mark.unit
    def test_custom_id_prefix(self, simplefin_payload: dict[str, Any]) -> None:
        payload = normalize_account_set(
            parse_account_set(simplefin_payload), id_prefix="bank"
        )
        assert {t.id for t in payload.transactions} == {"bank_TX-1", "bank_TX-2"}

    @pytest.mark.unit
    def test_institution_falls_back(self) -> None:
        account_set = parse_account_set(
            {
                "accounts": [
                    {
                        "id": "A",
                        "org": {},
                        "name": "Chequing",
                        "balance": "1",
                        "balance-date": 0,
                    }
                ]
            }
        )
        payload = normalize_account_set(account_set)
        assert payload.accounts[0].provider.institution == "Unknown"

    @pytest.mark.unit
    def test_description_falls_back_to_payee(self) -> None:
        account_set = parse_account_set(
            {
                "accounts": [
                    {
                        "id": "A",
                        "org": {"name": "Bank"},
                        "name": "Chequing",
                        "balance": "1",
                        "balance-date": 0,
                        "transactions": [
                            {"id": "T", "posted": 0, "amount": "-1", "payee": "Corner Store"}
                        ],
                    }
                ]
            }
        )
        tx = normalize_account_set(account_set).transactions[0]
        assert tx.description == "Corner Store"
