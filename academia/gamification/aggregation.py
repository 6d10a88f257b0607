"""
Aggregate updater.

Pure functions folding ledger entries into a user's aggregate. Applying the
same transaction twice counts it twice; callers deduplicate by transaction
id before getting here (see ``GamificationRepository.commit``).
"""

import dataclasses
from typing import Iterable, Sequence

from academia.gamification.levels import LEVEL_THRESHOLDS, level_for_xp
from academia.gamification.models import PointTransaction, UserAggregate, utcnow


def apply_transaction(
    aggregate: UserAggregate,
    transaction: PointTransaction,
    thresholds: Sequence[int] = LEVEL_THRESHOLDS
) -> UserAggregate:
    """
    Apply one transaction to an aggregate.

    Args:
        aggregate: Current aggregate (left untouched)
        transaction: Transaction to fold in
        thresholds: Level thresholds

    Returns:
        New aggregate with total XP and level updated
    """
    if transaction.user_id != aggregate.user_id:
        raise ValueError(
            f"Transaction {transaction.id} belongs to {transaction.user_id}, "
            f"not {aggregate.user_id}"
        )

    total_xp = aggregate.total_xp + transaction.points
    return dataclasses.replace(
        aggregate,
        total_xp=total_xp,
        level=level_for_xp(total_xp, thresholds),
        updated_at=utcnow()
    )


def apply_transactions(
    aggregate: UserAggregate,
    transactions: Iterable[PointTransaction],
    thresholds: Sequence[int] = LEVEL_THRESHOLDS
) -> UserAggregate:
    """Fold several transactions in order."""
    for transaction in transactions:
        aggregate = apply_transaction(aggregate, transaction, thresholds)
    return aggregate
