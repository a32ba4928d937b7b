"""
Category model — a label for spending or earning.

A category is declared either "expense" or "income". Expense events must
carry an expense category; income events may carry an income category.
Lifecycle is managed outside the ledger.
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import String, Boolean, DateTime, CheckConstraint
from sqlalchemy.orm import Mapped, mapped_column

from ledger.database import Base


class Category(Base):
    __tablename__ = "categories"

    __table_args__ = (
        CheckConstraint("type IN ('expense', 'income')", name="ck_categories_type"),
    )

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid.uuid4()),
    )

    name: Mapped[str] = mapped_column(
        String(255),
        unique=True,
        nullable=False,
    )

    type: Mapped[str] = mapped_column(
        String(10),
        nullable=False,
        default="expense",
    )

    archived: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        nullable=False,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )
