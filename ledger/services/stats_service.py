"""
Stats service — per-kind totals over a date window.

Totals are computed from the postings rather than stored anywhere, so
they always agree with the ledger itself.

Exactly ONE leg per event is summed, the same leg list_transactions()
shows as `display_amount_idr`:

    expense / income        the wallet leg
    transfer                the "from" (negative) leg
    savings_contribution    the bucket leg
    savings_withdrawal      the bucket leg

Summing both legs of a two-legged event would double-count transfers and
savings movements. Amounts are reported as magnitudes.
"""

from datetime import datetime

from sqlalchemy import and_, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from ledger.models.posting import Posting
from ledger.models.transaction_event import TransactionEvent, TransactionType
from ledger.schemas.common import to_utc
from ledger.schemas.transaction import TransactionStats

_TOTAL_FIELDS = {
    TransactionType.INCOME.value: "total_income",
    TransactionType.EXPENSE.value: "total_expense",
    TransactionType.TRANSFER.value: "total_transfers",
    TransactionType.SAVINGS_CONTRIBUTION.value: "total_savings_contributions",
    TransactionType.SAVINGS_WITHDRAWAL.value: "total_savings_withdrawals",
}


def _display_leg():
    """Join condition picking the one summed posting of each event."""
    return or_(
        and_(
            TransactionEvent.type.in_(
                [TransactionType.EXPENSE.value, TransactionType.INCOME.value]
            ),
            Posting.wallet_id.is_not(None),
        ),
        and_(
            TransactionEvent.type == TransactionType.TRANSFER.value,
            Posting.amount_idr < 0,
        ),
        and_(
            TransactionEvent.type.in_(
                [
                    TransactionType.SAVINGS_CONTRIBUTION.value,
                    TransactionType.SAVINGS_WITHDRAWAL.value,
                ]
            ),
            Posting.savings_bucket_id.is_not(None),
        ),
    )


async def get_transaction_stats(
    db: AsyncSession,
    from_date: datetime | None = None,
    to_date: datetime | None = None,
) -> TransactionStats:
    """
    Aggregate active transactions by kind.

    Args:
        db: Database session.
        from_date: Inclusive lower bound on occurred_at, or None for unbounded.
        to_date: Inclusive upper bound on occurred_at, or None for unbounded.

    Returns:
        TransactionStats with a zero for every kind that has no events.
    """
    from_date = to_utc(from_date)
    to_date = to_utc(to_date)

    statement = (
        select(
            TransactionEvent.type,
            func.count(func.distinct(TransactionEvent.id)),
            func.coalesce(func.sum(func.abs(Posting.amount_idr)), 0),
        )
        .join(Posting, and_(Posting.event_id == TransactionEvent.id, _display_leg()))
        .where(TransactionEvent.deleted_at.is_(None))
        .group_by(TransactionEvent.type)
    )
    if from_date is not None:
        statement = statement.where(TransactionEvent.occurred_at >= from_date)
    if to_date is not None:
        statement = statement.where(TransactionEvent.occurred_at <= to_date)

    result = await db.execute(statement)

    stats = TransactionStats()
    for event_type, count, total in result.all():
        setattr(stats, _TOTAL_FIELDS[event_type], int(total))
        stats.count_by_type[event_type] = count
        stats.transaction_count += count
    return stats
