"""
TransactionEvent model — one user-visible financial occurrence.

Every movement of money is recorded as ONE event plus the signed postings
it owns (see posting.py). The event carries what the user sees (when it
happened, what kind it is, note/payee/category); the postings carry where
the money went.

Posting shape per kind (enforced by the command handlers):

    kind                   postings
    ---------------------  ----------------------------------------------
    expense                wallet  -amount
    income                 wallet  +amount
    transfer               wallet  -amount (from), wallet +amount (to)
    savings_contribution   wallet  -amount,        bucket +amount
    savings_withdrawal     bucket  -amount,        wallet +amount

Lifecycle:
  - `type` never changes after creation.
  - `deleted_at` is a soft-delete marker: NULL means active. Listing and
    aggregation ignore soft-deleted events; lookup by id still sees them.
  - `idempotency_key` is UNIQUE. A create call that repeats a key gets the
    original event back instead of a duplicate.
"""

import enum
import uuid
from datetime import datetime, timezone

from sqlalchemy import String, Text, DateTime, ForeignKey, CheckConstraint, Index
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ledger.database import Base


class TransactionType(str, enum.Enum):
    """
    The five kinds of ledger event.

    Inherits from str so members compare equal to the stored column value
    and serialize naturally to JSON.
    """

    EXPENSE = "expense"
    INCOME = "income"
    TRANSFER = "transfer"
    SAVINGS_CONTRIBUTION = "savings_contribution"
    SAVINGS_WITHDRAWAL = "savings_withdrawal"


TRANSACTION_TYPES = tuple(t.value for t in TransactionType)


def _now() -> datetime:
    return datetime.now(timezone.utc)


class TransactionEvent(Base):
    __tablename__ = "transaction_events"

    __table_args__ = (
        CheckConstraint(
            "type IN (" + ", ".join(f"'{t}'" for t in TRANSACTION_TYPES) + ")",
            name="ck_transaction_events_type",
        ),
        # Composite indexes backing the list filters
        Index("ix_transaction_events_type_occurred_at", "type", "occurred_at"),
        Index("ix_transaction_events_category_occurred_at", "category_id", "occurred_at"),
    )

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid.uuid4()),
    )

    # Business date of the event, supplied by the caller (not "now")
    occurred_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        index=True,
    )

    type: Mapped[str] = mapped_column(
        String(32),
        nullable=False,
    )

    note: Mapped[str | None] = mapped_column(Text, nullable=True)
    payee: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Required for expense, optional for income, NULL for the other kinds
    category_id: Mapped[str | None] = mapped_column(
        ForeignKey("categories.id"),
        nullable=True,
    )

    deleted_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    idempotency_key: Mapped[str | None] = mapped_column(
        String(36),
        unique=True,
        nullable=True,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=_now,
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=_now,
        onupdate=_now,
        nullable=False,
    )

    # --- Relationships ---
    # Negative leg first, so a transfer reads "from" then "to".
    postings: Mapped[list["Posting"]] = relationship(
        back_populates="event",
        order_by="Posting.amount_idr",
    )

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None
