"""Rule-based transaction categorization.

Rules are tried from highest to lowest priority against the lower-cased clean
description; the first match whose category still exists assigns it (and the category's loop and
subcategory). The engine is pure and idempotent, and it never fails: a rule
with an invalid regular expression simply never matches.
"""

import logging
import re
from collections.abc import Iterable, Sequence
from functools import lru_cache

from finloop.models import Category, CategoryRule, Transaction

logger = logging.getLogger(__name__)


@lru_cache(maxsize=256)
def _compile_rule_pattern(pattern: str) -> re.Pattern[str] | None:
    try:
        return re.compile(pattern, re.IGNORECASE)
    except re.error as e:
        # Cached, so each bad pattern is reported once per process
        logger.warning(f"Ignoring category rule with invalid regex {pattern!r}: {e}")
        return None


def rule_matches(rule: CategoryRule, description: str) -> bool:
    """Test one rule against a description, case-insensitively."""
    text = description.lower()
    if rule.pattern_type == "contains":
        return rule.pattern.lower() in text
    if rule.pattern_type == "starts_with":
        return text.startswith(rule.pattern.lower())
    if rule.pattern_type == "regex":
        compiled = _compile_rule_pattern(rule.pattern)
        return compiled is not None and compiled.search(text) is not None
    return False


def sort_rules(rules: Iterable[CategoryRule]) -> list[CategoryRule]:
    """Order rules by descending priority, keeping input order for ties."""
    return sorted(rules, key=lambda r: r.priority, reverse=True)


def categorize_transaction(
    transaction: Transaction,
    sorted_rules: Sequence[CategoryRule],
    categories_by_id: dict[str, Category],
    keep_assigned: bool = False,
) -> Transaction:
    """Apply the first matching rule to a single transaction.

    Args:
        transaction: Transaction to categorize
        sorted_rules: Rules already in evaluation order
        categories_by_id: Category definitions keyed by id
        keep_assigned: Also skip transactions that already have a category

    Returns:
        Transaction: A categorized copy, or the input unchanged when it is
            reviewed or when no matching rule resolves to an existing category
    """
    if transaction.is_reviewed:
        return transaction
    if keep_assigned and transaction.category_id:
        return transaction

    for rule in sorted_rules:
        if not rule_matches(rule, transaction.clean_description):
            continue

        category = categories_by_id.get(rule.category_id)
        if category is None:
            logger.debug(
                f"Rule {rule.pattern!r} points at missing category {rule.category_id}"
            )
            continue

        return transaction.with_user(
            category_id=category.id,
            loop=category.loop,
            subcategory=category.subcategory,
        )

    return transaction


def categorize_transactions(
    transactions: Iterable[Transaction],
    rules: Iterable[CategoryRule],
    categories: Iterable[Category],
    *,
    keep_assigned: bool = False,
) -> list[Transaction]:
    """Categorize a batch of transactions.

    Args:
        transactions: Transactions to categorize
        rules: Category rules in any order
        categories: Category definitions the rules resolve against
        keep_assigned: Leave transactions that already carry a category alone

    Returns:
        list[Transaction]: Transactions in input order
    """
    sorted_rules = sort_rules(rules)
    categories_by_id = {c.id: c for c in categories}
    return [
        categorize_transaction(tx, sorted_rules, categories_by_id, keep_assigned)
        for tx in transactions
    ]
