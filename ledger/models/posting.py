"""
Posting model — one signed leg of a TransactionEvent.

A posting moves money into (+) or out of (-) exactly ONE account, which is
either a wallet or a savings bucket, never both and never neither. The
CHECK constraint below holds that at the database level even if a bug in
the application code tried otherwise.

Amounts are signed integers in the smallest currency unit (Rupiah has no
sub-unit in practice, so 1 == Rp 1). Integer arithmetic keeps every sum
exact.

Postings are exclusively owned by their event. Permanently deleting an
event must remove its postings first (foreign key ordering).
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import String, BigInteger, DateTime, ForeignKey, CheckConstraint, Index
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ledger.database import Base


class Posting(Base):
    __tablename__ = "postings"

    __table_args__ = (
        CheckConstraint(
            "(wallet_id IS NOT NULL AND savings_bucket_id IS NULL) OR "
            "(wallet_id IS NULL AND savings_bucket_id IS NOT NULL)",
            name="ck_postings_single_account",
        ),
        CheckConstraint("amount_idr <> 0", name="ck_postings_non_zero_amount"),
        Index("ix_postings_wallet_created_at", "wallet_id", "created_at"),
        Index("ix_postings_bucket_created_at", "savings_bucket_id", "created_at"),
    )

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid.uuid4()),
    )

    event_id: Mapped[str] = mapped_column(
        ForeignKey("transaction_events.id"),
        nullable=False,
        index=True,
    )

    wallet_id: Mapped[str | None] = mapped_column(
        ForeignKey("wallets.id"),
        nullable=True,
    )

    savings_bucket_id: Mapped[str | None] = mapped_column(
        ForeignKey("savings_buckets.id"),
        nullable=True,
    )

    # Positive = money entering the account, negative = money leaving
    amount_idr: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )

    # --- Relationships ---
    event: Mapped["TransactionEvent"] = relationship(
        back_populates="postings",
    )
