"""
Query service — reading transactions back out of the ledger.

Two read paths:

  - get_transaction_by_id(): one event with its postings and category
    name. Soft-deleted events ARE returned here (callers check
    `deleted_at`); a missing id returns None rather than raising. Only a
    malformed id raises.
  - list_transactions(): filtered, paginated, newest-first listing of
    ACTIVE events. Each item carries two presentation fields derived from
    its postings (nothing here is stored):

      display_amount_idr  always a positive magnitude:
                          expense/income  -> the wallet leg
                          transfer        -> the "from" (negative) leg
                          savings_*       -> the bucket leg
      display_account     wallet name, "<from> → <to>", "To: <bucket>",
                          or "From: <bucket>". Missing or archived
                          wallets/buckets read as "Unknown Wallet" /
                          "Unknown Bucket".

Category names come from a LEFT JOIN restricted to non-archived
categories, so an archived category shows as no name at all.
"""

from collections.abc import Iterable

from sqlalchemy import and_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import aliased, selectinload

from ledger.models.category import Category
from ledger.models.posting import Posting
from ledger.models.savings_bucket import SavingsBucket
from ledger.models.transaction_event import TransactionEvent, TransactionType
from ledger.models.wallet import Wallet
from ledger.schemas.common import parse_input, validate_entity_id
from ledger.schemas.transaction import (
    TransactionListItem,
    TransactionListQuery,
    TransactionWithPostings,
)

UNKNOWN_WALLET = "Unknown Wallet"
UNKNOWN_BUCKET = "Unknown Bucket"


def _event_query():
    """Events with their postings and (active) category name."""
    return (
        select(TransactionEvent, Category.name)
        .outerjoin(
            Category,
            and_(
                Category.id == TransactionEvent.category_id,
                Category.archived.is_(False),
            ),
        )
        .options(selectinload(TransactionEvent.postings))
        # Re-read rows the session already holds, so results reflect
        # updates made earlier in the same session.
        .execution_options(populate_existing=True)
    )


def _with_category(event: TransactionEvent, category_name: str | None) -> TransactionWithPostings:
    payload = TransactionWithPostings.model_validate(event)
    payload.category_name = category_name
    return payload


async def get_transaction_by_id(
    db: AsyncSession,
    transaction_id: str,
) -> TransactionWithPostings | None:
    """
    Fetch one event with its postings.

    Returns:
        The event (deleted or not), or None if no event has this id.

    Raises:
        ValidationError: If the id is malformed (empty or too long).
    """
    validate_entity_id(transaction_id)

    result = await db.execute(
        _event_query().where(TransactionEvent.id == transaction_id)
    )
    row = result.one_or_none()
    if row is None:
        return None

    event, category_name = row
    return _with_category(event, category_name)


def describe_postings(
    event_type: str,
    postings: Iterable[Posting],
    wallet_names: dict[str, str],
    bucket_names: dict[str, str],
) -> tuple[int, str]:
    """
    Derive (display_amount_idr, display_account) for one event.

    `wallet_names` / `bucket_names` should only contain active accounts;
    anything absent is reported as unknown.
    """
    postings = list(postings)
    wallet_leg = next((p for p in postings if p.wallet_id is not None), None)
    bucket_leg = next((p for p in postings if p.savings_bucket_id is not None), None)

    def wallet_label(posting: Posting | None) -> str:
        if posting is None or posting.wallet_id is None:
            return UNKNOWN_WALLET
        return wallet_names.get(posting.wallet_id, UNKNOWN_WALLET)

    def bucket_label(posting: Posting | None) -> str:
        if posting is None:
            return UNKNOWN_BUCKET
        return bucket_names.get(posting.savings_bucket_id, UNKNOWN_BUCKET)

    if event_type in (TransactionType.EXPENSE, TransactionType.INCOME):
        amount = abs(wallet_leg.amount_idr) if wallet_leg else 0
        return amount, wallet_label(wallet_leg)

    if event_type == TransactionType.TRANSFER:
        from_leg = next((p for p in postings if p.amount_idr < 0), None)
        to_leg = next((p for p in postings if p.amount_idr > 0), None)
        amount = abs(from_leg.amount_idr) if from_leg else 0
        return amount, f"{wallet_label(from_leg)} → {wallet_label(to_leg)}"

    amount = abs(bucket_leg.amount_idr) if bucket_leg else 0
    if event_type == TransactionType.SAVINGS_CONTRIBUTION:
        return amount, f"To: {bucket_label(bucket_leg)}"
    return amount, f"From: {bucket_label(bucket_leg)}"


async def _active_names(db: AsyncSession, model, ids: set[str]) -> dict[str, str]:
    if not ids:
        return {}
    result = await db.execute(
        select(model.id, model.name)
        .where(model.id.in_(ids))
        .where(model.archived.is_(False))
    )
    return {row.id: row.name for row in result}


async def list_transactions(
    db: AsyncSession,
    query: TransactionListQuery | dict | None = None,
) -> list[TransactionListItem]:
    """
    List active transactions, newest first.

    Args:
        db: Database session.
        query: Filters and pagination. A plain dict is validated into a
               TransactionListQuery first.

    Returns:
        Up to `limit` events, each with display amount and account.

    Raises:
        ValidationError: If the filters are malformed (e.g. limit > 100).
    """
    query = parse_input(TransactionListQuery, query or {})

    statement = _event_query().where(TransactionEvent.deleted_at.is_(None))

    if query.from_date is not None:
        statement = statement.where(TransactionEvent.occurred_at >= query.from_date)
    if query.to_date is not None:
        statement = statement.where(TransactionEvent.occurred_at <= query.to_date)
    if query.type is not None:
        statement = statement.where(TransactionEvent.type == query.type)
    if query.wallet_id is not None:
        statement = statement.where(
            select(Posting.id)
            .where(Posting.event_id == TransactionEvent.id)
            .where(Posting.wallet_id == query.wallet_id)
            .exists()
        )
    if query.category_id is not None:
        statement = statement.where(TransactionEvent.category_id == query.category_id)
    if query.category_type is not None:
        # Events without a category never match a category type
        typed = aliased(Category)
        statement = statement.where(
            TransactionEvent.category_id.in_(
                select(typed.id).where(typed.type == query.category_type)
            )
        )

    statement = (
        statement
        .order_by(TransactionEvent.occurred_at.desc(), TransactionEvent.created_at.desc())
        .limit(query.limit)
        .offset(query.offset)
    )

    rows = (await db.execute(statement)).all()
    if not rows:
        return []

    all_postings = [p for event, _ in rows for p in event.postings]
    wallet_names = await _active_names(
        db, Wallet, {p.wallet_id for p in all_postings if p.wallet_id}
    )
    bucket_names = await _active_names(
        db, SavingsBucket, {p.savings_bucket_id for p in all_postings if p.savings_bucket_id}
    )

    items = []
    for event, category_name in rows:
        amount, account = describe_postings(
            event.type, event.postings, wallet_names, bucket_names
        )
        base = _with_category(event, category_name)
        items.append(
            TransactionListItem.model_validate(
                {
                    **base.model_dump(),
                    "display_amount_idr": amount,
                    "display_account": account,
                }
            )
        )
    return items
