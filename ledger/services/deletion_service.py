"""
Deletion service — soft delete, restore, bulk delete and permanent delete.

Soft delete is the normal way a transaction goes away: `deleted_at` is
stamped and the event drops out of listings and statistics, but it stays
in the table (and is still reachable by id) so it can be restored.

Bulk delete is best-effort:
  Every requested id is classified first (not found / already deleted /
  deletable). Only the deletable ones are stamped, in ONE UPDATE statement,
  and everything else is reported back in `failed_ids`. A bad id never
  blocks the good ones; the atomic unit is the set of successful
  deletions, not the whole request.

Permanent delete is an administrative escape hatch, separate from the
soft-delete flow and not exposed over HTTP. It removes the postings
first and then the event, in one savepoint.
"""

import logging
from datetime import datetime, timezone

from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ledger.config import settings
from ledger.exceptions import InvalidStateError, NotFoundError, ValidationError
from ledger.models.posting import Posting
from ledger.models.transaction_event import TransactionEvent
from ledger.schemas.common import validate_entity_id
from ledger.schemas.transaction import BulkDeleteResult, TransactionWithPostings
from ledger.services.query_service import get_transaction_by_id

logger = logging.getLogger(__name__)


async def _get_event(db: AsyncSession, transaction_id: str) -> TransactionEvent:
    validate_entity_id(transaction_id)
    result = await db.execute(
        select(TransactionEvent).where(TransactionEvent.id == transaction_id)
    )
    event = result.scalar_one_or_none()
    if event is None:
        raise NotFoundError("transaction", transaction_id, detail="Transaction not found")
    return event


async def delete_transaction(db: AsyncSession, transaction_id: str) -> None:
    """
    Soft-delete one transaction.

    Raises:
        NotFoundError: No event has this id.
        InvalidStateError: The event is already deleted.
    """
    event = await _get_event(db, transaction_id)
    if event.is_deleted:
        raise InvalidStateError("Transaction is already deleted")

    now = datetime.now(timezone.utc)
    event.deleted_at = now
    event.updated_at = now
    await db.flush()
    logger.info("Soft-deleted transaction %s", transaction_id)


async def restore_transaction(
    db: AsyncSession,
    transaction_id: str,
) -> TransactionWithPostings:
    """
    Undo a soft delete.

    Raises:
        NotFoundError: No event has this id.
        InvalidStateError: The event is not deleted.
    """
    event = await _get_event(db, transaction_id)
    if not event.is_deleted:
        raise InvalidStateError("Transaction is not deleted")

    event.deleted_at = None
    event.updated_at = datetime.now(timezone.utc)
    await db.flush()
    logger.info("Restored transaction %s", transaction_id)

    return await get_transaction_by_id(db, transaction_id)


async def bulk_delete_transactions(
    db: AsyncSession,
    ids: list[str],
) -> BulkDeleteResult:
    """
    Soft-delete up to BULK_DELETE_MAX_IDS transactions, best effort.

    Args:
        db: Database session.
        ids: 1..100 transaction ids. Duplicates count once.

    Returns:
        deleted_count: How many events were stamped by this call.
        failed_ids: Every requested id that was missing or already deleted,
                    in request order.

    Raises:
        ValidationError: Empty list, too many ids, or a malformed id.
    """
    if not ids:
        raise ValidationError("At least one transaction id is required", field="ids")
    if len(ids) > settings.BULK_DELETE_MAX_IDS:
        raise ValidationError(
            f"Cannot delete more than {settings.BULK_DELETE_MAX_IDS} transactions at once",
            field="ids",
        )
    for transaction_id in ids:
        validate_entity_id(transaction_id, field="ids")

    requested = list(dict.fromkeys(ids))

    result = await db.execute(
        select(TransactionEvent.id, TransactionEvent.deleted_at)
        .where(TransactionEvent.id.in_(requested))
    )
    deleted_at_by_id = {row.id: row.deleted_at for row in result}

    deletable = [
        transaction_id for transaction_id in requested
        if transaction_id in deleted_at_by_id and deleted_at_by_id[transaction_id] is None
    ]
    stamped: set[str] = set()
    if deletable:
        now = datetime.now(timezone.utc)
        async with db.begin_nested():
            result = await db.execute(
                update(TransactionEvent)
                .where(TransactionEvent.id.in_(deletable))
                # A concurrent delete between classify and write is not ours to count
                .where(TransactionEvent.deleted_at.is_(None))
                .values(deleted_at=now, updated_at=now)
                .returning(TransactionEvent.id)
            )
            stamped = set(result.scalars().all())

    failed_ids = [
        transaction_id for transaction_id in requested
        if transaction_id not in stamped
    ]

    logger.info(
        "Bulk delete: %d deleted, %d failed", len(stamped), len(failed_ids)
    )
    return BulkDeleteResult(deleted_count=len(stamped), failed_ids=failed_ids)


async def permanently_delete_transaction(db: AsyncSession, transaction_id: str) -> None:
    """
    [ADMIN ONLY] Remove a transaction and its postings for good.

    Works on active and soft-deleted events alike.

    Raises:
        NotFoundError: No event has this id.
    """
    await _get_event(db, transaction_id)

    async with db.begin_nested():
        # Postings reference the event, so they go first
        await db.execute(delete(Posting).where(Posting.event_id == transaction_id))
        await db.execute(
            delete(TransactionEvent).where(TransactionEvent.id == transaction_id)
        )

    logger.warning("Permanently deleted transaction %s", transaction_id)
