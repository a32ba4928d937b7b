"""
Balance service — what a wallet or savings bucket holds right now.

The balance is the sum of the signed postings against the account,
ignoring postings whose event is soft-deleted. Archived accounts still
report a balance; only a missing id is an error.
"""

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from ledger.exceptions import NotFoundError
from ledger.models.posting import Posting
from ledger.models.transaction_event import TransactionEvent
from ledger.schemas.balance import BalanceResponse
from ledger.schemas.common import validate_entity_id
from ledger.services.reference_service import find_savings_bucket, find_wallet


async def _sum_postings(db: AsyncSession, account_column, account_id: str) -> tuple[int, int]:
    result = await db.execute(
        select(
            func.coalesce(func.sum(Posting.amount_idr), 0),
            func.count(Posting.id),
        )
        .join(TransactionEvent, TransactionEvent.id == Posting.event_id)
        .where(account_column == account_id)
        .where(TransactionEvent.deleted_at.is_(None))
    )
    total, count = result.one()
    return int(total), count


async def get_wallet_balance(db: AsyncSession, wallet_id: str) -> BalanceResponse:
    """
    Balance of one wallet.

    Raises:
        NotFoundError: If no wallet has this id.
    """
    validate_entity_id(wallet_id, field="wallet_id")
    if not (await find_wallet(db, wallet_id)).found:
        raise NotFoundError("wallet", wallet_id, detail="Wallet not found")

    total, count = await _sum_postings(db, Posting.wallet_id, wallet_id)
    return BalanceResponse(
        account_id=wallet_id,
        account_kind="wallet",
        balance_idr=total,
        posting_count=count,
    )


async def get_savings_bucket_balance(db: AsyncSession, bucket_id: str) -> BalanceResponse:
    """
    Balance of one savings bucket.

    Raises:
        NotFoundError: If no savings bucket has this id.
    """
    validate_entity_id(bucket_id, field="bucket_id")
    if not (await find_savings_bucket(db, bucket_id)).found:
        raise NotFoundError("savings_bucket", bucket_id, detail="Savings bucket not found")

    total, count = await _sum_postings(db, Posting.savings_bucket_id, bucket_id)
    return BalanceResponse(
        account_id=bucket_id,
        account_kind="savings_bucket",
        balance_idr=total,
        posting_count=count,
    )
