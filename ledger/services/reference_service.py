"""
Reference validators — wallet, category and savings-bucket checks.

Wallets, categories and savings buckets are owned by other parts of the
application. The ledger only asks them two questions:

  - lookups: does this id exist, and is it archived (or, for a category,
    what type is it)?
  - validators: raise the right domain error if the answer rules the
    reference out for a new posting.

Every validator is a read-only query and runs BEFORE the command handler
writes anything, so an invalid reference never leaves partial state.

Category rule:
  A category of the wrong type is treated exactly like a missing one.
  Both raise ValidationError, because attaching either to an event would
  break the category-type invariant.

Savings buckets:
  Archival only matters on the write path (new contributions and
  withdrawals). Historical postings against an archived bucket stay valid,
  which is why `find_savings_bucket` reports archival rather than hiding
  archived rows.
"""

from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ledger.exceptions import NotFoundError, ValidationError
from ledger.models.category import Category
from ledger.models.savings_bucket import SavingsBucket
from ledger.models.wallet import Wallet


@dataclass(frozen=True)
class AccountLookup:
    """Answer from the wallet / savings-bucket collaborators."""
    found: bool
    archived: bool = False

    @property
    def usable(self) -> bool:
        return self.found and not self.archived


# ---------------------------------------------------------------------------
# Collaborator lookups
# ---------------------------------------------------------------------------

async def find_wallet(db: AsyncSession, wallet_id: str) -> AccountLookup:
    result = await db.execute(select(Wallet.archived).where(Wallet.id == wallet_id))
    archived = result.scalar_one_or_none()
    if archived is None:
        return AccountLookup(found=False)
    return AccountLookup(found=True, archived=archived)


async def find_savings_bucket(db: AsyncSession, bucket_id: str) -> AccountLookup:
    result = await db.execute(
        select(SavingsBucket.archived).where(SavingsBucket.id == bucket_id)
    )
    archived = result.scalar_one_or_none()
    if archived is None:
        return AccountLookup(found=False)
    return AccountLookup(found=True, archived=archived)


async def find_category_type(db: AsyncSession, category_id: str) -> str | None:
    """Return the category's declared type, or None if it is missing or archived."""
    result = await db.execute(
        select(Category.type)
        .where(Category.id == category_id)
        .where(Category.archived.is_(False))
    )
    return result.scalar_one_or_none()


# ---------------------------------------------------------------------------
# Validators
# ---------------------------------------------------------------------------

async def require_active_wallet(
    db: AsyncSession,
    wallet_id: str,
    label: str = "Wallet",
) -> None:
    """
    Confirm the wallet exists and is not archived.

    Args:
        db: Database session.
        wallet_id: The wallet to check.
        label: How the wallet is named in the error ("From wallet", ...).

    Raises:
        NotFoundError: If the wallet is missing or archived.
    """
    lookup = await find_wallet(db, wallet_id)
    if not lookup.usable:
        raise NotFoundError(
            "wallet",
            wallet_id,
            detail=f"{label} not found or archived",
        )


async def require_active_savings_bucket(db: AsyncSession, bucket_id: str) -> None:
    """
    Confirm the savings bucket exists and is not archived.

    Raises:
        NotFoundError: If the bucket is missing or archived.
    """
    lookup = await find_savings_bucket(db, bucket_id)
    if not lookup.usable:
        raise NotFoundError(
            "savings_bucket",
            bucket_id,
            detail="Savings bucket not found or archived",
        )


async def require_category_of_type(
    db: AsyncSession,
    category_id: str,
    expected_type: str,
) -> None:
    """
    Confirm the category exists and is declared for `expected_type`.

    Raises:
        ValidationError: If the category is missing, archived, or of the
                         other type.
    """
    category_type = await find_category_type(db, category_id)
    if category_type is None:
        raise ValidationError("Category not found or archived", field="category_id")
    if category_type != expected_type:
        raise ValidationError(
            f"Category must be of type '{expected_type}' "
            f"for {expected_type} transactions",
            field="category_id",
        )
