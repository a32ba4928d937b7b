"""
Pydantic schemas for balance endpoints.

A balance is never stored: it is the sum of the signed postings on one
wallet or savings bucket, over active (non-deleted) events.
"""

from typing import Literal

from pydantic import BaseModel


class BalanceResponse(BaseModel):
    """Computed balance of one wallet or savings bucket, in minor units."""
    account_id: str
    account_kind: Literal["wallet", "savings_bucket"]
    balance_idr: int
    posting_count: int
