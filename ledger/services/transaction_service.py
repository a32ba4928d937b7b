"""
Transaction service — the command handlers of the ledger.

THIS IS THE MOST CRITICAL FILE IN THE PROJECT. It handles:
  - Creating each kind of transaction as one event plus its postings
  - Updating events and their postings in place
  - Idempotent creates (retried requests never duplicate an event)

Posting sign convention:
  Each kind has fixed posting "roles", each with a fixed sign. Creates
  and updates both derive posting amounts from this one table, so an
  update can never flip a leg's direction:

      expense               wallet -
      income                wallet +
      transfer              from -   to +
      savings_contribution  wallet - bucket +
      savings_withdrawal    bucket - wallet +

Order of checks on every write:
  1. Schema validation (the typed input structs in ledger.schemas)
  2. Idempotency replay (creates only)
  3. Reference validation: wallets, buckets, category type
  4. The write itself

Nothing is written until every check has passed.

Atomicity:
  The event and all of its postings are written inside ONE savepoint
  (`begin_nested()`), nested in whatever transaction the caller's session
  is running. A failure at any point rolls the whole write back; no reader
  ever sees an event without its postings, or half of a transfer.

Idempotency race:
  Two concurrent creates with the same key can both miss the pre-check.
  The UNIQUE constraint on idempotency_key then rejects the second insert;
  that IntegrityError is caught, the savepoint rolled back, and the event
  that won the race is returned. The race is settled by the database, not
  by a check-then-act in Python.
"""

import logging
import uuid
from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from ledger.exceptions import InvalidStateError, NotFoundError, ValidationError
from ledger.models.posting import Posting
from ledger.models.transaction_event import TransactionEvent, TransactionType
from ledger.schemas.common import parse_input, validate_entity_id
from ledger.schemas.transaction import (
    SAME_WALLET_MESSAGE,
    ExpenseCreate,
    ExpenseUpdate,
    IncomeCreate,
    IncomeUpdate,
    SavingsContributionCreate,
    SavingsContributionUpdate,
    SavingsWithdrawalCreate,
    SavingsWithdrawalUpdate,
    TransactionCreate,
    TransactionWithPostings,
    TransferCreate,
    TransferUpdate,
)
from ledger.services.query_service import get_transaction_by_id
from ledger.services.reference_service import (
    require_active_savings_bucket,
    require_active_wallet,
    require_category_of_type,
)

logger = logging.getLogger(__name__)


# Sign of each posting role, keyed by the stored type value
POSTING_SIGNS: dict[str, dict[str, int]] = {
    TransactionType.EXPENSE.value: {"wallet": -1},
    TransactionType.INCOME.value: {"wallet": 1},
    TransactionType.TRANSFER.value: {"from": -1, "to": 1},
    TransactionType.SAVINGS_CONTRIBUTION.value: {"wallet": -1, "bucket": 1},
    TransactionType.SAVINGS_WITHDRAWAL.value: {"bucket": -1, "wallet": 1},
}

# "Transaction is not <label>" for kind-specific updaters
_KIND_LABELS = {
    TransactionType.EXPENSE.value: "an expense",
    TransactionType.INCOME.value: "an income",
    TransactionType.TRANSFER.value: "a transfer",
    TransactionType.SAVINGS_CONTRIBUTION.value: "a savings contribution",
    TransactionType.SAVINGS_WITHDRAWAL.value: "a savings withdrawal",
}


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _new_posting(role: str, account_id: str, signed_amount: int) -> Posting:
    if role == "bucket":
        return Posting(savings_bucket_id=account_id, amount_idr=signed_amount)
    return Posting(wallet_id=account_id, amount_idr=signed_amount)


def _postings_by_role(event: TransactionEvent) -> dict[str, Posting]:
    """Map each posting of `event` to its role in POSTING_SIGNS."""
    roles: dict[str, Posting] = {}
    for posting in event.postings:
        if event.type == TransactionType.TRANSFER:
            roles["from" if posting.amount_idr < 0 else "to"] = posting
        elif posting.savings_bucket_id is not None:
            roles["bucket"] = posting
        else:
            roles["wallet"] = posting
    return roles


# ---------------------------------------------------------------------------
# Idempotency
# ---------------------------------------------------------------------------

async def _find_event_id_by_idempotency_key(db: AsyncSession, key: str) -> str | None:
    result = await db.execute(
        select(TransactionEvent.id).where(TransactionEvent.idempotency_key == key)
    )
    return result.scalar_one_or_none()


async def _replay(db: AsyncSession, key: str | None) -> TransactionWithPostings | None:
    """Return the event already recorded under `key`, if any."""
    if key is None:
        return None
    event_id = await _find_event_id_by_idempotency_key(db, key)
    if event_id is None:
        return None
    logger.info("Idempotency key matched existing transaction %s", event_id)
    return await get_transaction_by_id(db, event_id)


# ---------------------------------------------------------------------------
# Create
# ---------------------------------------------------------------------------

async def _record(
    db: AsyncSession,
    event_type: TransactionType,
    data,
    accounts: dict[str, str],
    category_id: str | None = None,
    payee: str | None = None,
) -> TransactionWithPostings:
    """
    Write one event and its postings atomically, then re-read it.

    `accounts` maps each posting role of `event_type` to a wallet or bucket
    id; the amount is signed per POSTING_SIGNS.
    """
    key = data.idempotency_key or str(uuid.uuid4())
    signs = POSTING_SIGNS[event_type.value]
    now = _now()

    event = TransactionEvent(
        type=event_type.value,
        occurred_at=data.occurred_at,
        note=data.note,
        payee=payee,
        category_id=category_id,
        idempotency_key=key,
        created_at=now,
        updated_at=now,
        postings=[
            _new_posting(role, accounts[role], sign * data.amount_idr)
            for role, sign in signs.items()
        ],
    )

    try:
        async with db.begin_nested():
            db.add(event)
            await db.flush()
    except IntegrityError as exc:
        # Lost an idempotency race: the key now belongs to another event
        existing = await _replay(db, key)
        if existing is None:
            # A referenced row went away after validation passed
            logger.warning(
                "Create of %s rejected by a foreign key: %s", event_type.value, exc.orig
            )
            raise NotFoundError(
                "reference",
                ", ".join(accounts.values()),
                detail="A referenced wallet, savings bucket or category no longer exists",
            ) from exc
        logger.warning(
            "Concurrent create with the same idempotency key, returning transaction %s",
            existing.id,
        )
        return existing

    logger.info("Created %s transaction %s", event_type.value, event.id)
    return await get_transaction_by_id(db, event.id)


async def create_expense(
    db: AsyncSession,
    data: ExpenseCreate | dict,
) -> TransactionWithPostings:
    """
    Record money spent from a wallet.

    Posts -amount to the wallet. The category must be an active expense
    category.

    Returns:
        The created event with its posting, or the existing event if the
        idempotency key was already used (the new request's fields are
        then ignored).

    Raises:
        ValidationError: Malformed input, or the category is missing or not
                         an expense category.
        NotFoundError: The wallet is missing or archived.
    """
    data = parse_input(ExpenseCreate, data)

    existing = await _replay(db, data.idempotency_key)
    if existing is not None:
        return existing

    await require_active_wallet(db, data.wallet_id)
    await require_category_of_type(db, data.category_id, TransactionType.EXPENSE.value)

    return await _record(
        db,
        TransactionType.EXPENSE,
        data,
        {"wallet": data.wallet_id},
        category_id=data.category_id,
        payee=data.payee,
    )


async def create_income(
    db: AsyncSession,
    data: IncomeCreate | dict,
) -> TransactionWithPostings:
    """
    Record money received into a wallet.

    Posts +amount to the wallet. The category is optional; when given it
    must be an active income category.

    Raises:
        ValidationError: Malformed input or wrong category type.
        NotFoundError: The wallet is missing or archived.
    """
    data = parse_input(IncomeCreate, data)

    existing = await _replay(db, data.idempotency_key)
    if existing is not None:
        return existing

    await require_active_wallet(db, data.wallet_id)
    if data.category_id is not None:
        await require_category_of_type(db, data.category_id, TransactionType.INCOME.value)

    return await _record(
        db,
        TransactionType.INCOME,
        data,
        {"wallet": data.wallet_id},
        category_id=data.category_id,
        payee=data.payee,
    )


async def create_transfer(
    db: AsyncSession,
    data: TransferCreate | dict,
) -> TransactionWithPostings:
    """
    Move money between two different wallets.

    Posts -amount to the source and +amount to the destination; the two
    legs always sum to zero.

    Raises:
        ValidationError: Malformed input, or both wallets are the same.
        NotFoundError: Either wallet is missing or archived.
    """
    data = parse_input(TransferCreate, data)

    existing = await _replay(db, data.idempotency_key)
    if existing is not None:
        return existing

    await require_active_wallet(db, data.from_wallet_id, label="Source wallet")
    await require_active_wallet(db, data.to_wallet_id, label="Destination wallet")

    return await _record(
        db,
        TransactionType.TRANSFER,
        data,
        {"from": data.from_wallet_id, "to": data.to_wallet_id},
    )


async def create_savings_contribution(
    db: AsyncSession,
    data: SavingsContributionCreate | dict,
) -> TransactionWithPostings:
    """
    Move money from a wallet into a savings bucket.

    Raises:
        ValidationError: Malformed input.
        NotFoundError: The wallet or bucket is missing or archived.
    """
    data = parse_input(SavingsContributionCreate, data)

    existing = await _replay(db, data.idempotency_key)
    if existing is not None:
        return existing

    await require_active_wallet(db, data.wallet_id)
    await require_active_savings_bucket(db, data.bucket_id)

    return await _record(
        db,
        TransactionType.SAVINGS_CONTRIBUTION,
        data,
        {"wallet": data.wallet_id, "bucket": data.bucket_id},
    )


async def create_savings_withdrawal(
    db: AsyncSession,
    data: SavingsWithdrawalCreate | dict,
) -> TransactionWithPostings:
    """
    Move money from a savings bucket back into a wallet.

    The bucket's balance is not checked: a withdrawal may take a bucket
    below zero.

    Raises:
        ValidationError: Malformed input.
        NotFoundError: The wallet or bucket is missing or archived.
    """
    data = parse_input(SavingsWithdrawalCreate, data)

    existing = await _replay(db, data.idempotency_key)
    if existing is not None:
        return existing

    await require_active_wallet(db, data.wallet_id)
    await require_active_savings_bucket(db, data.bucket_id)

    return await _record(
        db,
        TransactionType.SAVINGS_WITHDRAWAL,
        data,
        {"wallet": data.wallet_id, "bucket": data.bucket_id},
    )


_CREATE_HANDLERS = {
    ExpenseCreate: create_expense,
    IncomeCreate: create_income,
    TransferCreate: create_transfer,
    SavingsContributionCreate: create_savings_contribution,
    SavingsWithdrawalCreate: create_savings_withdrawal,
}


async def create_transaction(db: AsyncSession, data) -> TransactionWithPostings:
    """
    Create any kind of transaction from the tagged union.

    `data` is one of the create structs, or a dict whose "type" field
    selects the kind.
    """
    if not isinstance(data, tuple(_CREATE_HANDLERS)):
        data = parse_input(TransactionCreate, data)
    return await _CREATE_HANDLERS[type(data)](db, data)


# ---------------------------------------------------------------------------
# Update
# ---------------------------------------------------------------------------

async def _load_for_update(
    db: AsyncSession,
    transaction_id: str,
    expected_type: TransactionType,
) -> TransactionEvent:
    """
    Load an event for modification and check its preconditions.

    Raises:
        NotFoundError: No event has this id.
        InvalidStateError: The event is soft-deleted, or of another kind.
    """
    validate_entity_id(transaction_id)

    result = await db.execute(
        select(TransactionEvent)
        .where(TransactionEvent.id == transaction_id)
        .options(selectinload(TransactionEvent.postings))
        .execution_options(populate_existing=True)
    )
    event = result.scalar_one_or_none()

    if event is None:
        raise NotFoundError("transaction", transaction_id, detail="Transaction not found")
    if event.is_deleted:
        raise InvalidStateError("Cannot update a deleted transaction")
    if event.type != expected_type:
        raise InvalidStateError(f"Transaction is not {_KIND_LABELS[expected_type.value]}")

    return event


async def _apply(
    db: AsyncSession,
    event: TransactionEvent,
    changes: dict,
    event_fields: tuple[str, ...],
    account_changes: dict[str, str],
) -> TransactionWithPostings:
    """
    Apply validated changes to the event and its postings in one savepoint.

    Args:
        event_fields: Event columns the caller may change for this kind.
        account_changes: Posting role -> new wallet/bucket id.
    """
    signs = POSTING_SIGNS[event.type]

    async with db.begin_nested():
        for name in event_fields:
            if name in changes:
                setattr(event, name, changes[name])

        postings = _postings_by_role(event)
        for role, account_id in account_changes.items():
            if role == "bucket":
                postings[role].savings_bucket_id = account_id
            else:
                postings[role].wallet_id = account_id

        if "amount_idr" in changes:
            for role, sign in signs.items():
                postings[role].amount_idr = sign * changes["amount_idr"]

        # Posting-only changes leave the event row clean, so stamp it here
        event.updated_at = _now()
        await db.flush()

    logger.info(
        "Updated %s transaction %s (fields: %s)",
        event.type,
        event.id,
        ", ".join(sorted(changes)) or "none",
    )
    return await get_transaction_by_id(db, event.id)


async def update_expense(
    db: AsyncSession,
    transaction_id: str,
    data: ExpenseUpdate | dict,
) -> TransactionWithPostings:
    """
    Partially update an expense.

    Any subset of occurred_at, note, payee, category_id, wallet_id and
    amount_idr may be sent; everything else stays as it is.

    Raises:
        NotFoundError: Unknown transaction, or new wallet missing/archived.
        InvalidStateError: The transaction is deleted or not an expense.
        ValidationError: Malformed input, or new category not an expense one.
    """
    changes = parse_input(ExpenseUpdate, data).changes()
    event = await _load_for_update(db, transaction_id, TransactionType.EXPENSE)

    if "wallet_id" in changes:
        await require_active_wallet(db, changes["wallet_id"])
    if "category_id" in changes:
        await require_category_of_type(db, changes["category_id"], TransactionType.EXPENSE.value)

    accounts = {"wallet": changes["wallet_id"]} if "wallet_id" in changes else {}
    return await _apply(
        db, event, changes, ("occurred_at", "note", "payee", "category_id"), accounts
    )


async def update_income(
    db: AsyncSession,
    transaction_id: str,
    data: IncomeUpdate | dict,
) -> TransactionWithPostings:
    """
    Partially update an income. Sending category_id=None removes the category.

    Raises:
        NotFoundError: Unknown transaction, or new wallet missing/archived.
        InvalidStateError: The transaction is deleted or not an income.
        ValidationError: Malformed input, or new category not an income one.
    """
    changes = parse_input(IncomeUpdate, data).changes()
    event = await _load_for_update(db, transaction_id, TransactionType.INCOME)

    if "wallet_id" in changes:
        await require_active_wallet(db, changes["wallet_id"])
    if changes.get("category_id") is not None:
        await require_category_of_type(db, changes["category_id"], TransactionType.INCOME.value)

    accounts = {"wallet": changes["wallet_id"]} if "wallet_id" in changes else {}
    return await _apply(
        db, event, changes, ("occurred_at", "note", "payee", "category_id"), accounts
    )


async def update_transfer(
    db: AsyncSession,
    transaction_id: str,
    data: TransferUpdate | dict,
) -> TransactionWithPostings:
    """
    Partially update a transfer.

    The wallet pair is checked AFTER merging the change with the stored
    legs, so moving only one end onto the other end's wallet still fails.

    Raises:
        NotFoundError: Unknown transaction, or a new wallet missing/archived.
        InvalidStateError: The transaction is deleted or not a transfer.
        ValidationError: Malformed input, or from and to wallets would match.
    """
    changes = parse_input(TransferUpdate, data).changes()
    event = await _load_for_update(db, transaction_id, TransactionType.TRANSFER)

    legs = _postings_by_role(event)
    from_wallet_id = changes.get("from_wallet_id", legs["from"].wallet_id)
    to_wallet_id = changes.get("to_wallet_id", legs["to"].wallet_id)
    if from_wallet_id == to_wallet_id:
        field = "to_wallet_id" if "to_wallet_id" in changes else "from_wallet_id"
        raise ValidationError(SAME_WALLET_MESSAGE, field=field)

    accounts = {}
    if "from_wallet_id" in changes:
        await require_active_wallet(db, from_wallet_id, label="From wallet")
        accounts["from"] = from_wallet_id
    if "to_wallet_id" in changes:
        await require_active_wallet(db, to_wallet_id, label="To wallet")
        accounts["to"] = to_wallet_id

    return await _apply(db, event, changes, ("occurred_at", "note"), accounts)


async def _update_savings(
    db: AsyncSession,
    transaction_id: str,
    changes: dict,
    event_type: TransactionType,
) -> TransactionWithPostings:
    event = await _load_for_update(db, transaction_id, event_type)

    accounts = {}
    if "wallet_id" in changes:
        await require_active_wallet(db, changes["wallet_id"])
        accounts["wallet"] = changes["wallet_id"]
    if "bucket_id" in changes:
        await require_active_savings_bucket(db, changes["bucket_id"])
        accounts["bucket"] = changes["bucket_id"]

    return await _apply(db, event, changes, ("occurred_at", "note"), accounts)


async def update_savings_contribution(
    db: AsyncSession,
    transaction_id: str,
    data: SavingsContributionUpdate | dict,
) -> TransactionWithPostings:
    """Partially update a savings contribution (date, note, wallet, bucket, amount)."""
    changes = parse_input(SavingsContributionUpdate, data).changes()
    return await _update_savings(
        db, transaction_id, changes, TransactionType.SAVINGS_CONTRIBUTION
    )


async def update_savings_withdrawal(
    db: AsyncSession,
    transaction_id: str,
    data: SavingsWithdrawalUpdate | dict,
) -> TransactionWithPostings:
    """Partially update a savings withdrawal (date, note, wallet, bucket, amount)."""
    changes = parse_input(SavingsWithdrawalUpdate, data).changes()
    return await _update_savings(
        db, transaction_id, changes, TransactionType.SAVINGS_WITHDRAWAL
    )
