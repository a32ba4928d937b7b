"""
Transactions router — HTTP adapter over the ledger services.

Create:
  POST   /transactions                              — Any kind, selected by "type"
  POST   /transactions/expense                      — Expense
  POST   /transactions/income                       — Income
  POST   /transactions/transfer                     — Transfer between wallets
  POST   /transactions/savings/contribute           — Wallet -> savings bucket
  POST   /transactions/savings/withdraw             — Savings bucket -> wallet

Update (partial; omitted fields are left alone, null clears):
  PATCH  /transactions/{id}/expense
  PATCH  /transactions/{id}/income
  PATCH  /transactions/{id}/transfer
  PATCH  /transactions/{id}/savings-contribution
  PATCH  /transactions/{id}/savings-withdrawal

Read:
  GET    /transactions                              — Filtered, paginated list
  GET    /transactions/stats                        — Per-kind totals
  GET    /transactions/{id}                         — One event with postings

Delete:
  DELETE /transactions/{id}                         — Soft delete
  POST   /transactions/{id}/restore                 — Undo a soft delete
  POST   /transactions/bulk-delete                  — Best-effort batch soft delete

Fixed paths (/stats, /bulk-delete) are declared before /{transaction_id}
so they are never captured as an id.

PATCH bodies are handed to the services as raw dicts so that a field sent
as null stays distinguishable from a field not sent at all.
"""

from datetime import datetime
from typing import Any, Literal

from fastapi import APIRouter, Body, Depends, Query, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from ledger.config import settings
from ledger.database import get_db
from ledger.exceptions import NotFoundError
from ledger.schemas.transaction import (
    BulkDeleteRequest,
    BulkDeleteResult,
    ExpenseCreate,
    IncomeCreate,
    SavingsContributionCreate,
    SavingsWithdrawalCreate,
    TransactionCreate,
    TransactionListItem,
    TransactionStats,
    TransactionWithPostings,
    TransferCreate,
)
from ledger.services import (
    deletion_service,
    query_service,
    stats_service,
    transaction_service,
)

router = APIRouter()


# ---------------------------------------------------------------------------
# Create
# ---------------------------------------------------------------------------

@router.post(
    "",
    response_model=TransactionWithPostings,
    status_code=status.HTTP_201_CREATED,
    summary="Create a transaction of any kind",
)
async def create_transaction(
    request: TransactionCreate,
    db: AsyncSession = Depends(get_db),
):
    """
    Create a transaction; the `type` field selects the kind and therefore
    which other fields are required.

    Repeating an `idempotency_key` returns the original transaction.
    """
    return await transaction_service.create_transaction(db, request)


@router.post(
    "/expense",
    response_model=TransactionWithPostings,
    status_code=status.HTTP_201_CREATED,
    summary="Record an expense",
)
async def create_expense(
    request: ExpenseCreate,
    db: AsyncSession = Depends(get_db),
):
    """
    Record money spent from a wallet.

    - **category_id**: must be an active *expense* category
    - **amount_idr**: positive integer in minor units (minimum 100)
    """
    return await transaction_service.create_expense(db, request)


@router.post(
    "/income",
    response_model=TransactionWithPostings,
    status_code=status.HTTP_201_CREATED,
    summary="Record an income",
)
async def create_income(
    request: IncomeCreate,
    db: AsyncSession = Depends(get_db),
):
    """Record money received into a wallet. The category is optional."""
    return await transaction_service.create_income(db, request)


@router.post(
    "/transfer",
    response_model=TransactionWithPostings,
    status_code=status.HTTP_201_CREATED,
    summary="Transfer between two wallets",
)
async def create_transfer(
    request: TransferCreate,
    db: AsyncSession = Depends(get_db),
):
    """Move money from one wallet to a different one."""
    return await transaction_service.create_transfer(db, request)


@router.post(
    "/savings/contribute",
    response_model=TransactionWithPostings,
    status_code=status.HTTP_201_CREATED,
    summary="Move money into a savings bucket",
)
async def create_savings_contribution(
    request: SavingsContributionCreate,
    db: AsyncSession = Depends(get_db),
):
    return await transaction_service.create_savings_contribution(db, request)


@router.post(
    "/savings/withdraw",
    response_model=TransactionWithPostings,
    status_code=status.HTTP_201_CREATED,
    summary="Move money out of a savings bucket",
)
async def create_savings_withdrawal(
    request: SavingsWithdrawalCreate,
    db: AsyncSession = Depends(get_db),
):
    return await transaction_service.create_savings_withdrawal(db, request)


# ---------------------------------------------------------------------------
# Read (fixed paths first)
# ---------------------------------------------------------------------------

@router.get(
    "",
    response_model=list[TransactionListItem],
    summary="List transactions",
)
async def list_transactions(
    from_date: datetime | None = Query(None, alias="from", description="Earliest occurred_at (inclusive)"),
    to_date: datetime | None = Query(None, alias="to", description="Latest occurred_at (inclusive)"),
    type: Literal[
        "expense", "income", "transfer", "savings_contribution", "savings_withdrawal"
    ] | None = Query(None, description="Filter by transaction kind"),
    wallet_id: str | None = Query(None, description="Only events with a posting on this wallet"),
    category_id: str | None = Query(None),
    category_type: Literal["expense", "income"] | None = Query(None),
    limit: int = Query(settings.LIST_DEFAULT_LIMIT, ge=1, le=settings.LIST_MAX_LIMIT),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_db),
):
    """
    List active transactions, newest first.

    Each item carries `display_amount_idr` (always positive) and
    `display_account` (a readable wallet/bucket label).
    """
    return await query_service.list_transactions(
        db,
        {
            "from": from_date,
            "to": to_date,
            "type": type,
            "wallet_id": wallet_id,
            "category_id": category_id,
            "category_type": category_type,
            "limit": limit,
            "offset": offset,
        },
    )


@router.get(
    "/stats",
    response_model=TransactionStats,
    summary="Per-kind totals over a date range",
)
async def get_transaction_stats(
    from_date: datetime | None = Query(None, alias="from"),
    to_date: datetime | None = Query(None, alias="to"),
    db: AsyncSession = Depends(get_db),
):
    """Totals and counts of active transactions. Missing bounds are unbounded."""
    return await stats_service.get_transaction_stats(db, from_date, to_date)


@router.post(
    "/bulk-delete",
    response_model=BulkDeleteResult,
    summary="Soft-delete up to 100 transactions",
)
async def bulk_delete_transactions(
    request: BulkDeleteRequest,
    db: AsyncSession = Depends(get_db),
):
    """
    Best-effort: every id that can be deleted is deleted, and ids that are
    unknown or already deleted come back in `failed_ids`.
    """
    return await deletion_service.bulk_delete_transactions(db, request.ids)


@router.get(
    "/{transaction_id}",
    response_model=TransactionWithPostings,
    summary="Get a single transaction",
)
async def get_transaction(
    transaction_id: str,
    db: AsyncSession = Depends(get_db),
):
    """Get one transaction with its postings. Soft-deleted ones are included."""
    transaction = await query_service.get_transaction_by_id(db, transaction_id)
    if transaction is None:
        raise NotFoundError("transaction", transaction_id, detail="Transaction not found")
    return transaction


# ---------------------------------------------------------------------------
# Update
# ---------------------------------------------------------------------------

@router.patch(
    "/{transaction_id}/expense",
    response_model=TransactionWithPostings,
    summary="Update an expense",
)
async def update_expense(
    transaction_id: str,
    changes: dict[str, Any] = Body(...),
    db: AsyncSession = Depends(get_db),
):
    return await transaction_service.update_expense(db, transaction_id, changes)


@router.patch(
    "/{transaction_id}/income",
    response_model=TransactionWithPostings,
    summary="Update an income",
)
async def update_income(
    transaction_id: str,
    changes: dict[str, Any] = Body(...),
    db: AsyncSession = Depends(get_db),
):
    """Send `"category_id": null` to remove the category."""
    return await transaction_service.update_income(db, transaction_id, changes)


@router.patch(
    "/{transaction_id}/transfer",
    response_model=TransactionWithPostings,
    summary="Update a transfer",
)
async def update_transfer(
    transaction_id: str,
    changes: dict[str, Any] = Body(...),
    db: AsyncSession = Depends(get_db),
):
    """The resulting from/to wallets must still differ."""
    return await transaction_service.update_transfer(db, transaction_id, changes)


@router.patch(
    "/{transaction_id}/savings-contribution",
    response_model=TransactionWithPostings,
    summary="Update a savings contribution",
)
async def update_savings_contribution(
    transaction_id: str,
    changes: dict[str, Any] = Body(...),
    db: AsyncSession = Depends(get_db),
):
    return await transaction_service.update_savings_contribution(db, transaction_id, changes)


@router.patch(
    "/{transaction_id}/savings-withdrawal",
    response_model=TransactionWithPostings,
    summary="Update a savings withdrawal",
)
async def update_savings_withdrawal(
    transaction_id: str,
    changes: dict[str, Any] = Body(...),
    db: AsyncSession = Depends(get_db),
):
    return await transaction_service.update_savings_withdrawal(db, transaction_id, changes)


# ---------------------------------------------------------------------------
# Delete / restore
# ---------------------------------------------------------------------------

@router.delete(
    "/{transaction_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Soft-delete a transaction",
)
async def delete_transaction(
    transaction_id: str,
    db: AsyncSession = Depends(get_db),
):
    """The transaction disappears from listings and stats but can be restored."""
    await deletion_service.delete_transaction(db, transaction_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post(
    "/{transaction_id}/restore",
    response_model=TransactionWithPostings,
    summary="Restore a soft-deleted transaction",
)
async def restore_transaction(
    transaction_id: str,
    db: AsyncSession = Depends(get_db),
):
    return await deletion_service.restore_transaction(db, transaction_id)
