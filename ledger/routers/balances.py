"""
Balances router — computed balances of wallets and savings buckets.

Endpoints:
  GET /balances/wallets/{wallet_id}          — Balance of one wallet
  GET /balances/savings-buckets/{bucket_id}  — Balance of one savings bucket

Balances are summed from postings on every request; nothing is cached.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from ledger.database import get_db
from ledger.schemas.balance import BalanceResponse
from ledger.services import balance_service

router = APIRouter()


@router.get(
    "/wallets/{wallet_id}",
    response_model=BalanceResponse,
    summary="Get a wallet balance",
)
async def get_wallet_balance(
    wallet_id: str,
    db: AsyncSession = Depends(get_db),
):
    """Sum of the wallet's postings over active transactions."""
    return await balance_service.get_wallet_balance(db, wallet_id)


@router.get(
    "/savings-buckets/{bucket_id}",
    response_model=BalanceResponse,
    summary="Get a savings bucket balance",
)
async def get_savings_bucket_balance(
    bucket_id: str,
    db: AsyncSession = Depends(get_db),
):
    return await balance_service.get_savings_bucket_balance(db, bucket_id)
