"""
Pydantic schemas for the transaction ledger.

Every transaction kind has its own strict input struct: a create struct
carrying exactly the references that kind needs, and an update struct in
which every field is optional. All monetary amounts are positive integers
in minor units; the services derive the posting signs.

The create structs share a `type` tag, so `TransactionCreate` is a closed
tagged union over the five kinds and Pydantic picks the variant from the
tag alone.

Update structs distinguish "not provided" from "provided as null" through
Pydantic's `model_fields_set`: `changes()` returns only the fields the
caller actually sent, with explicit nulls kept.
"""

from datetime import datetime
from typing import Annotated, Any, ClassVar, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator, model_validator

from ledger.config import settings
from ledger.schemas.common import EntityId, IdempotencyKey, to_utc

SAME_WALLET_MESSAGE = "From and to wallets must be different"

AmountIdr = Annotated[
    int,
    Field(
        ge=settings.MIN_AMOUNT_IDR,
        description=f"Amount in minor units (minimum {settings.MIN_AMOUNT_IDR})",
    ),
]


# ---------------------------------------------------------------------------
# Create inputs
# ---------------------------------------------------------------------------

class _CreateBase(BaseModel):
    model_config = ConfigDict(extra="forbid")

    occurred_at: datetime
    amount_idr: AmountIdr
    note: str | None = None
    idempotency_key: IdempotencyKey | None = None

    @field_validator("occurred_at")
    @classmethod
    def occurred_at_in_utc(cls, value: datetime) -> datetime:
        return to_utc(value)


class ExpenseCreate(_CreateBase):
    """Money spent from a wallet, against an expense category."""
    type: Literal["expense"] = "expense"
    wallet_id: EntityId
    category_id: EntityId
    payee: str | None = None


class IncomeCreate(_CreateBase):
    """Money received into a wallet; the income category is optional."""
    type: Literal["income"] = "income"
    wallet_id: EntityId
    category_id: EntityId | None = None
    payee: str | None = None


class TransferCreate(_CreateBase):
    """Money moved between two different wallets."""
    type: Literal["transfer"] = "transfer"
    from_wallet_id: EntityId
    to_wallet_id: EntityId

    @field_validator("to_wallet_id")
    @classmethod
    def wallets_must_differ(cls, value: str, info: ValidationInfo) -> str:
        """Cannot transfer money to the same wallet."""
        if info.data.get("from_wallet_id") == value:
            raise ValueError(SAME_WALLET_MESSAGE)
        return value


class SavingsContributionCreate(_CreateBase):
    """Money moved from a wallet into a savings bucket."""
    type: Literal["savings_contribution"] = "savings_contribution"
    wallet_id: EntityId
    bucket_id: EntityId


class SavingsWithdrawalCreate(_CreateBase):
    """Money moved from a savings bucket back into a wallet."""
    type: Literal["savings_withdrawal"] = "savings_withdrawal"
    wallet_id: EntityId
    bucket_id: EntityId


TransactionCreate = Annotated[
    Union[
        ExpenseCreate,
        IncomeCreate,
        TransferCreate,
        SavingsContributionCreate,
        SavingsWithdrawalCreate,
    ],
    Field(discriminator="type"),
]


# ---------------------------------------------------------------------------
# Update inputs
# ---------------------------------------------------------------------------

class _UpdateBase(BaseModel):
    model_config = ConfigDict(extra="forbid")

    # Fields that may be omitted but never cleared
    NOT_NULLABLE: ClassVar[tuple[str, ...]] = ("occurred_at", "amount_idr")

    occurred_at: datetime | None = None
    amount_idr: AmountIdr | None = None
    note: str | None = None

    @field_validator("occurred_at")
    @classmethod
    def occurred_at_in_utc(cls, value: datetime | None) -> datetime | None:
        return to_utc(value)

    @model_validator(mode="after")
    def required_fields_not_cleared(self):
        for name in self.NOT_NULLABLE:
            if name in self.model_fields_set and getattr(self, name) is None:
                raise ValueError(f"{name} cannot be null")
        return self

    def changes(self) -> dict[str, Any]:
        """The fields the caller sent, explicit nulls included."""
        return {name: getattr(self, name) for name in self.model_fields_set}


class ExpenseUpdate(_UpdateBase):
    NOT_NULLABLE: ClassVar[tuple[str, ...]] = ("occurred_at", "amount_idr", "wallet_id", "category_id")

    wallet_id: EntityId | None = None
    category_id: EntityId | None = None
    payee: str | None = None


class IncomeUpdate(_UpdateBase):
    NOT_NULLABLE: ClassVar[tuple[str, ...]] = ("occurred_at", "amount_idr", "wallet_id")

    wallet_id: EntityId | None = None
    # Null removes the category
    category_id: EntityId | None = None
    payee: str | None = None


class TransferUpdate(_UpdateBase):
    NOT_NULLABLE: ClassVar[tuple[str, ...]] = ("occurred_at", "amount_idr", "from_wallet_id", "to_wallet_id")

    from_wallet_id: EntityId | None = None
    to_wallet_id: EntityId | None = None

    @model_validator(mode="after")
    def wallets_must_differ(self):
        if (
            self.from_wallet_id is not None
            and self.from_wallet_id == self.to_wallet_id
        ):
            raise ValueError(SAME_WALLET_MESSAGE)
        return self


class SavingsContributionUpdate(_UpdateBase):
    NOT_NULLABLE: ClassVar[tuple[str, ...]] = ("occurred_at", "amount_idr", "wallet_id", "bucket_id")

    wallet_id: EntityId | None = None
    bucket_id: EntityId | None = None


class SavingsWithdrawalUpdate(_UpdateBase):
    NOT_NULLABLE: ClassVar[tuple[str, ...]] = ("occurred_at", "amount_idr", "wallet_id", "bucket_id")

    wallet_id: EntityId | None = None
    bucket_id: EntityId | None = None


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------

class TransactionListQuery(BaseModel):
    """Filters and pagination for listing transactions."""
    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    from_date: datetime | None = Field(None, alias="from")
    to_date: datetime | None = Field(None, alias="to")
    type: Literal[
        "expense", "income", "transfer", "savings_contribution", "savings_withdrawal"
    ] | None = None
    wallet_id: EntityId | None = None
    category_id: EntityId | None = None
    category_type: Literal["expense", "income"] | None = None
    limit: int = Field(settings.LIST_DEFAULT_LIMIT, ge=1, le=settings.LIST_MAX_LIMIT)
    offset: int = Field(0, ge=0)

    @field_validator("from_date", "to_date")
    @classmethod
    def bounds_in_utc(cls, value: datetime | None) -> datetime | None:
        return to_utc(value)


class BulkDeleteRequest(BaseModel):
    """Request body for POST /transactions/bulk-delete."""
    ids: list[EntityId]


# ---------------------------------------------------------------------------
# Responses
# ---------------------------------------------------------------------------

class PostingResponse(BaseModel):
    """One signed ledger leg."""
    id: str
    event_id: str
    wallet_id: str | None
    savings_bucket_id: str | None
    amount_idr: int
    created_at: datetime

    model_config = {"from_attributes": True}

    @field_validator("created_at")
    @classmethod
    def created_at_in_utc(cls, value: datetime) -> datetime:
        return to_utc(value)


class TransactionWithPostings(BaseModel):
    """An event together with the postings it owns."""
    id: str
    occurred_at: datetime
    type: str
    note: str | None
    payee: str | None
    category_id: str | None
    category_name: str | None = None
    deleted_at: datetime | None
    idempotency_key: str | None
    created_at: datetime
    updated_at: datetime
    postings: list[PostingResponse]

    model_config = {"from_attributes": True}

    # SQLite hands timestamps back without an offset; they are stored as UTC
    @field_validator("occurred_at", "deleted_at", "created_at", "updated_at")
    @classmethod
    def timestamps_in_utc(cls, value: datetime | None) -> datetime | None:
        return to_utc(value)


class TransactionListItem(TransactionWithPostings):
    """A listed event, with presentation fields derived from its postings."""
    display_amount_idr: int
    display_account: str


class BulkDeleteResult(BaseModel):
    """Outcome of a best-effort bulk soft delete."""
    deleted_count: int
    failed_ids: list[str]


class TransactionStats(BaseModel):
    """Per-kind totals (one leg per event) over a date window."""
    total_income: int = 0
    total_expense: int = 0
    total_transfers: int = 0
    total_savings_contributions: int = 0
    total_savings_withdrawals: int = 0
    transaction_count: int = 0
    count_by_type: dict[str, int] = Field(default_factory=dict)
