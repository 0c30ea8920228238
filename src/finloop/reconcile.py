"""Reconcile freshly fetched records against the stored ones.

Transactions are matched only by ``external_id``. A match never touches the
user-owned half of a record: the merged transaction is the existing record
with its provider half swapped for the incoming one. Accounts are matched by
id and only their balances move.

Nothing in this module raises. Ambiguous input is left unmodified.
"""

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from enum import Enum

from finloop.models import Account, Transaction
from finloop.normalize import apply_liability_sign

logger = logging.getLogger(__name__)


class PostedPolicy(str, Enum):
    """How a stored transaction reacts to different upstream data.

    ``IMMUTABLE`` only lets a pending transaction settle; once posted the
    stored record never changes, even if the bank later corrects it.
    ``REFRESH`` additionally adopts any change to the provider-owned fields.
    """

    IMMUTABLE = "immutable"
    REFRESH = "refresh"


@dataclass
class ReconcileResult:
    """Outcome of reconciling one incoming batch."""

    new: list[Transaction] = field(default_factory=list)
    updated: list[Transaction] = field(default_factory=list)
    unchanged: int = 0

    @property
    def changed(self) -> list[Transaction]:
        return [*self.new, *self.updated]


def merge_transaction(existing: Transaction, incoming: Transaction) -> Transaction:
    """Adopt the incoming provider fields while keeping local identity and edits."""
    return existing.model_copy(update={"provider": incoming.provider})


def reconcile_transactions(
    existing: Iterable[Transaction],
    incoming: Iterable[Transaction],
    policy: PostedPolicy = PostedPolicy.IMMUTABLE,
) -> ReconcileResult:
    """Classify incoming transactions as new, updated or unchanged.

    Args:
        existing: Stored transactions for the connection
        incoming: Normalized transactions from the latest fetch
        policy: Treatment of already-posted matches

    Returns:
        ReconcileResult: New records (inserted as-is) and merged updates
    """
    by_external_id: dict[str, Transaction] = {}
    for tx in existing:
        by_external_id.setdefault(tx.external_id, tx)

    result = ReconcileResult()
    # Index positions so a later duplicate in the same batch updates in place
    new_index: dict[str, int] = {}
    updated_index: dict[str, int] = {}

    for tx in incoming:
        current = by_external_id.get(tx.external_id)

        if current is None:
            by_external_id[tx.external_id] = tx
            new_index[tx.external_id] = len(result.new)
            result.new.append(tx)
            continue

        settles = current.pending and not tx.pending
        refreshes = policy is PostedPolicy.REFRESH and current.provider != tx.provider
        if not (settles or refreshes):
            result.unchanged += 1
            continue

        merged = merge_transaction(current, tx)
        by_external_id[tx.external_id] = merged

        if tx.external_id in new_index:
            result.new[new_index[tx.external_id]] = merged
        elif tx.external_id in updated_index:
            result.updated[updated_index[tx.external_id]] = merged
        else:
            updated_index[tx.external_id] = len(result.updated)
            result.updated.append(merged)

    logger.info(
        f"Reconciled transactions: {len(result.new)} new, "
        f"{len(result.updated)} updated, {result.unchanged} unchanged"
    )
    return result


@dataclass
class AccountMergeResult:
    """Full account set after a merge plus what changed."""

    accounts: list[Account] = field(default_factory=list)
    created: list[Account] = field(default_factory=list)
    updated: list[Account] = field(default_factory=list)


def merge_accounts(
    existing: Iterable[Account],
    incoming: Iterable[Account],
    connection_id: str,
) -> AccountMergeResult:
    """Merge fetched accounts into the stored set.

    New accounts are attached to ``connection_id``. Known accounts only take
    the new balance, available balance and balance date; their name, type and
    every user setting stay as stored. Stored accounts missing from the fetch
    are kept.

    Args:
        existing: Stored accounts (any connection)
        incoming: Normalized accounts from the latest fetch
        connection_id: Connection the fetch was made for

    Returns:
        AccountMergeResult: The complete account list in stored order followed
            by new accounts
    """
    merged: dict[str, Account] = {}
    for account in existing:
        merged.setdefault(account.id, account)

    result = AccountMergeResult()
    seen: set[str] = set()

    for account in incoming:
        if account.id in seen:
            continue
        seen.add(account.id)

        current = merged.get(account.id)
        if current is None:
            created = account.model_copy(update={"connection_id": connection_id})
            merged[account.id] = created
            result.created.append(created)
            continue

        provider = current.provider.model_copy(
            update={
                "balance": apply_liability_sign(
                    current.provider.type, account.provider.balance
                ),
                "available_balance": account.provider.available_balance,
                "balance_date": account.provider.balance_date,
            }
        )
        updated = current.model_copy(update={"provider": provider})
        merged[account.id] = updated
        result.updated.append(updated)

    result.accounts = list(merged.values())
    logger.info(
        f"Merged accounts: {len(result.created)} created, "
        f"{len(result.updated)} updated, {len(result.accounts)} total"
    )
    return result
