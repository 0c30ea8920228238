"""Convert SimpleFIN payloads into domain accounts and transactions.

Money is carried as ``Decimal`` from the wire and converted once, here, into
signed integer minor units. Account types are inferred from the account name
because SimpleFIN does not report them.
"""

import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from finloop.connectors.simplefin_schemas import (
    AccountSchema,
    SimplefinAccountSet,
    TransactionSchema,
)
from finloop.errors import MalformedResponseError
from finloop.models import (
    Account,
    AccountProviderFields,
    AccountType,
    Currency,
    Transaction,
    TransactionProviderFields,
    TransactionUserFields,
)

logger = logging.getLogger(__name__)

DEFAULT_TRANSACTION_ID_PREFIX = "sf"

# Checked in order; the first group with a token in the name wins
_ACCOUNT_TYPE_TOKENS: tuple[tuple[AccountType, tuple[str, ...]], ...] = (
    ("credit", ("credit", "mastercard", "visa")),
    ("savings", ("saving",)),
    ("investment", ("invest", "rrsp", "tfsa")),
    ("checking", ("chequ", "check")),
)

_SUPPORTED_CURRENCIES: frozenset[str] = frozenset({"CAD", "USD"})

_PAYMENT_PREFIX_RE = re.compile(
    r"^(?:(?:POS|INTERAC|VISA|MC|DEBIT|CREDIT|CHQ|CK|DD|EFT|TFR|XFER)\s+)+",
    re.IGNORECASE,
)
_REFERENCE_NUMBER_RE = re.compile(r"\s*#?\d{6,}\s*")
_STORE_NUMBER_RE = re.compile(r"\s+#\d+\b.*$")
_SHORT_DATE_RE = re.compile(r"\s*\d{2}/\d{2}(?:/\d{2,4})?\s*")
_ISO_DATE_RE = re.compile(r"\s*\d{4}-\d{2}-\d{2}\s*")
_REGION_SUFFIX_RE = re.compile(r"\s+[A-Z]{2}\s*$", re.IGNORECASE)
_WHITESPACE_RE = re.compile(r"\s+")
_WORD_START_RE = re.compile(r"\b\w")


def to_minor_units(value: Decimal | str | int | float) -> int:
    """Convert a decimal amount to integer minor units.

    Rounds half away from zero, so ``"1234.565"`` becomes ``123457``.

    Raises:
        MalformedResponseError: If the value is not a finite number
    """
    try:
        amount = value if isinstance(value, Decimal) else Decimal(str(value))
        if not amount.is_finite():
            raise InvalidOperation(value)
        return int((amount * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
    except InvalidOperation as e:
        raise MalformedResponseError(
            f"SimpleFIN returned an invalid amount: {value!r}"
        ) from e


def infer_account_type(name: str) -> AccountType:
    """Infer the account type from its display name."""
    name_lower = name.lower()
    for account_type, tokens in _ACCOUNT_TYPE_TOKENS:
        if any(token in name_lower for token in tokens):
            return account_type
    return "checking"


def apply_liability_sign(account_type: AccountType, balance: int) -> int:
    """Credit balances are stored as liabilities, i.e. never positive."""
    return -abs(balance) if account_type == "credit" else balance


def normalize_currency(currency: str | None) -> Currency:
    """Keep CAD or USD; anything else, including a missing code, becomes CAD."""
    if currency == "CAD" or currency == "USD":
        return currency
    return "CAD"


def clean_description(description: str) -> str:
    """Produce a readable merchant name from a raw bank description.

    Steps, in order: strip payment-method prefixes, strip reference and store
    numbers, strip dates, strip a trailing region code, collapse whitespace,
    and title-case an all-caps result. Falls back to the original text when
    nothing is left.

    >>> clean_description("POS DEBIT TIM HORTONS #1234 TORONTO ON")
    'Tim Hortons'
    """
    cleaned = _PAYMENT_PREFIX_RE.sub("", description)

    cleaned = _REFERENCE_NUMBER_RE.sub(" ", cleaned)
    cleaned = _STORE_NUMBER_RE.sub("", cleaned)

    cleaned = _SHORT_DATE_RE.sub(" ", cleaned)
    cleaned = _ISO_DATE_RE.sub(" ", cleaned)

    cleaned = _REGION_SUFFIX_RE.sub("", cleaned)

    cleaned = _WHITESPACE_RE.sub(" ", cleaned).strip()

    if cleaned == cleaned.upper() and len(cleaned) > 3:
        cleaned = _WORD_START_RE.sub(lambda m: m.group().upper(), cleaned.lower())

    return cleaned or description


def _from_epoch(seconds: int) -> datetime:
    return datetime.fromtimestamp(seconds, tz=timezone.utc)


def normalize_account(sf_account: AccountSchema, connection_id: str = "") -> Account:
    """Convert one upstream account into a domain account."""
    account_type = infer_account_type(sf_account.name)
    balance = apply_liability_sign(account_type, to_minor_units(sf_account.balance))

    available_balance: int | None = None
    if sf_account.available_balance is not None:
        available_balance = to_minor_units(sf_account.available_balance)

    return Account(
        id=sf_account.id,
        connection_id=connection_id,
        provider=AccountProviderFields(
            name=sf_account.name,
            institution=sf_account.org.name or sf_account.org.domain or "Unknown",
            institution_domain=sf_account.org.domain,
            type=account_type,
            currency=normalize_currency(sf_account.currency),
            balance=balance,
            available_balance=available_balance,
            balance_date=_from_epoch(sf_account.balance_date),
        ),
    )


def normalize_transaction(
    sf_transaction: TransactionSchema,
    account_id: str,
    id_prefix: str = DEFAULT_TRANSACTION_ID_PREFIX,
) -> Transaction:
    """Convert one upstream transaction into a domain transaction.

    The memo, if any, seeds the user's notes on the new record.
    """
    description = sf_transaction.description or sf_transaction.payee or "Unknown"
    posted_at = _from_epoch(sf_transaction.posted)
    transacted_at = (
        _from_epoch(sf_transaction.transacted_at)
        if sf_transaction.transacted_at
        else None
    )

    return Transaction(
        id=f"{id_prefix}_{sf_transaction.id}",
        external_id=sf_transaction.id,
        account_id=account_id,
        provider=TransactionProviderFields(
            date=posted_at.date(),
            posted_at=posted_at,
            transacted_at=transacted_at,
            amount=to_minor_units(sf_transaction.amount),
            description=description,
            clean_description=clean_description(description),
            pending=sf_transaction.pending,
        ),
        user=TransactionUserFields(notes=sf_transaction.memo or None),
    )


@dataclass
class NormalizedPayload:
    """Domain values produced from one upstream response."""

    accounts: list[Account] = field(default_factory=list)
    transactions: list[Transaction] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)


def normalize_account_set(
    account_set: SimplefinAccountSet,
    connection_id: str = "",
    id_prefix: str = DEFAULT_TRANSACTION_ID_PREFIX,
) -> NormalizedPayload:
    """Normalize a full ``/accounts`` response.

    Args:
        account_set: Validated upstream payload
        connection_id: Connection the accounts belong to
        id_prefix: Namespace for local transaction ids

    Returns:
        NormalizedPayload: Accounts in upstream order, transactions sorted by
            date (newest first), and the upstream error strings
    """
    payload = NormalizedPayload(errors=list(account_set.errors))

    for sf_account in account_set.accounts:
        payload.accounts.append(normalize_account(sf_account, connection_id))
        for sf_transaction in sf_account.transactions:
            payload.transactions.append(
                normalize_transaction(sf_transaction, sf_account.id, id_prefix)
            )

    payload.transactions.sort(key=lambda t: t.date, reverse=True)

    logger.debug(
        f"Normalized {len(payload.accounts)} accounts and "
        f"{len(payload.transactions)} transactions"
    )
    return payload
