"""Match outgoing e-transfers to scheduled payments by reference code.

A payee is asked to include a short code such as ``W03-J`` (ISO week 3, payee
initial J) in the e-transfer memo. Matching is greedy: payments are processed
in input order and each claims the first eligible transaction, which is then
unavailable to later payments. With small pending sets this is adequate, but
it is not an optimal assignment; a payment can miss its only valid match if an
earlier payment claimed it first.
"""

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import date

from finloop.models import BabysitterPayment, PaymentStatus, Transaction

logger = logging.getLogger(__name__)

DEFAULT_AMOUNT_TOLERANCE = 100

_TRANSFER_KEYWORDS: tuple[str, ...] = (
    "e-transfer",
    "etransfer",
    "e-tfr",
    "interac",
    "emt",
    "transfer",
)


@dataclass(frozen=True)
class PaymentMatch:
    """A payment bound to the transaction that paid it."""

    payment: BabysitterPayment
    transaction: Transaction


@dataclass
class PaymentMatchResult:
    """Matches found plus the full payment list with statuses updated."""

    matches: list[PaymentMatch] = field(default_factory=list)
    payments: list[BabysitterPayment] = field(default_factory=list)


def iso_week_number(day: date) -> int:
    """ISO-8601 week number (1-53) of ``day``."""
    return day.isocalendar()[1]


def generate_reference_code(payee_name: str, week_number: int) -> str:
    """Build the ``W##-X`` reference code for a payee and week.

    >>> generate_reference_code("Jane", 3)
    'W03-J'
    """
    initial = payee_name.strip()[:1].upper()
    return f"W{week_number:02d}-{initial}"


def current_week_reference_code(payee_name: str, today: date | None = None) -> str:
    """Reference code for the ISO week containing ``today``."""
    return generate_reference_code(payee_name, iso_week_number(today or date.today()))


def is_transfer_candidate(transaction: Transaction) -> bool:
    """Outgoing transactions whose description reads like an interbank transfer."""
    if transaction.amount >= 0:
        return False
    text = f"{transaction.description} {transaction.clean_description}".lower()
    return any(keyword in text for keyword in _TRANSFER_KEYWORDS)


def _mentions_code(transaction: Transaction, reference_code: str) -> bool:
    code = reference_code.upper()
    haystacks = (
        transaction.description,
        transaction.clean_description,
        transaction.user.notes or "",
    )
    return any(code in text.upper() for text in haystacks)


def match_payments(
    transactions: Iterable[Transaction],
    payments: Iterable[BabysitterPayment],
    tolerance: int = DEFAULT_AMOUNT_TOLERANCE,
) -> PaymentMatchResult:
    """Bind pending payments to the transfers that paid them.

    Args:
        transactions: Transactions to search
        payments: Scheduled payments; only pending ones are matched
        tolerance: Allowed difference between ``abs(amount)`` and the
            expected amount, in minor units

    Returns:
        PaymentMatchResult: Matches in payment order, and every input payment
            (matched ones carry ``status=matched`` and the transaction id)
    """
    candidates = [tx for tx in transactions if is_transfer_candidate(tx)]
    result = PaymentMatchResult()

    for payment in payments:
        if payment.status != PaymentStatus.PENDING or not payment.reference_code:
            result.payments.append(payment)
            continue

        position = next(
            (
                i
                for i, tx in enumerate(candidates)
                if _mentions_code(tx, payment.reference_code)
                and abs(abs(tx.amount) - payment.amount) <= tolerance
            ),
            None,
        )
        if position is None:
            result.payments.append(payment)
            continue

        found = candidates.pop(position)
        matched = payment.model_copy(
            update={
                "status": PaymentStatus.MATCHED,
                "matched_transaction_id": found.id,
            }
        )
        result.matches.append(PaymentMatch(payment=matched, transaction=found))
        result.payments.append(matched)
        logger.info(f"Matched payment {payment.reference_code} to transaction {found.id}")

    return result
