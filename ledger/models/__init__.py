"""
SQLAlchemy ORM models package.

All models are imported here so that:
  1. Base.metadata knows every table before create_all() runs
  2. Other modules can import from ledger.models directly
"""

from ledger.models.wallet import Wallet  # noqa: F401
from ledger.models.category import Category  # noqa: F401
from ledger.models.savings_bucket import SavingsBucket  # noqa: F401
from ledger.models.transaction_event import TransactionEvent, TransactionType, TRANSACTION_TYPES  # noqa: F401
from ledger.models.posting import Posting  # noqa: F401
