"""
Test fixtures for the ledger test suite.

This module provides shared fixtures used across all test files:

  - db_engine / db_session: Fresh in-memory SQLite database for each test
  - refs: Seeded wallets, categories and savings buckets (ids by role)
  - client: Async HTTP test client with the test database injected
  - make_expense / make_income / ...: small builders for create payloads

Key design decisions:
  - In-memory SQLite (sqlite+aiosqlite://) is used for speed and isolation.
    Each test gets a completely fresh database; no state leaks between tests.
  - Service tests call the ledger functions directly with db_session.
    HTTP tests go through the client, whose get_db override commits on
    success and rolls back on error, like production.
  - Reference rows are committed by the refs fixture, so both the session
    and the HTTP client see them.
"""

from datetime import datetime, timezone

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker

from ledger.database import Base, enable_sqlite_savepoints, get_db
from ledger.main import app
from ledger.models import Category, SavingsBucket, Wallet


# In-memory SQLite for fast, isolated tests
TEST_DATABASE_URL = "sqlite+aiosqlite://"

OCCURRED_AT = datetime(2026, 3, 15, 12, 0, tzinfo=timezone.utc)


@pytest_asyncio.fixture
async def db_engine():
    """Create a fresh async engine with all tables for each test."""
    engine = create_async_engine(TEST_DATABASE_URL)
    enable_sqlite_savepoints(engine)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(db_engine):
    """Provide an async session bound to the test engine."""
    async_session = async_sessionmaker(
        db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )
    async with async_session() as session:
        yield session


@pytest_asyncio.fixture
async def refs(db_session):
    """
    Seed the collaborator tables and return the ids by role.

    Two active wallets, one archived wallet, one expense and one income
    category, an archived expense category, one active and one archived
    savings bucket.
    """
    rows = {
        "wallet": Wallet(name="BCA Checking"),
        "other_wallet": Wallet(name="Cash", type="cash"),
        "archived_wallet": Wallet(name="Old Card", archived=True),
        "expense_category": Category(name="Groceries", type="expense"),
        "income_category": Category(name="Salary", type="income"),
        "archived_category": Category(name="Hobbies", type="expense", archived=True),
        "bucket": SavingsBucket(name="Emergency Fund"),
        "archived_bucket": SavingsBucket(name="Old Vacation", archived=True),
    }
    db_session.add_all(rows.values())
    await db_session.commit()
    return {role: row.id for role, row in rows.items()}


@pytest_asyncio.fixture
async def client(db_engine):
    """
    Async HTTP test client with the test database injected.

    This overrides the get_db dependency so all requests hit the
    in-memory test database instead of the real one.
    """
    async_session = async_sessionmaker(
        db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )

    async def override_get_db():
        async with async_session() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac

    app.dependency_overrides.clear()


# ---------------------------------------------------------------------------
# Payload builders
# ---------------------------------------------------------------------------

@pytest.fixture
def make_expense(refs):
    def build(**overrides):
        payload = {
            "occurred_at": OCCURRED_AT,
            "wallet_id": refs["wallet"],
            "category_id": refs["expense_category"],
            "amount_idr": 25_000,
        }
        payload.update(overrides)
        return payload
    return build


@pytest.fixture
def make_income(refs):
    def build(**overrides):
        payload = {
            "occurred_at": OCCURRED_AT,
            "wallet_id": refs["wallet"],
            "category_id": refs["income_category"],
            "amount_idr": 500_000,
        }
        payload.update(overrides)
        return payload
    return build


@pytest.fixture
def make_transfer(refs):
    def build(**overrides):
        payload = {
            "occurred_at": OCCURRED_AT,
            "from_wallet_id": refs["wallet"],
            "to_wallet_id": refs["other_wallet"],
            "amount_idr": 75_000,
        }
        payload.update(overrides)
        return payload
    return build


@pytest.fixture
def make_savings(refs):
    def build(**overrides):
        payload = {
            "occurred_at": OCCURRED_AT,
            "wallet_id": refs["wallet"],
            "bucket_id": refs["bucket"],
            "amount_idr": 200_000,
        }
        payload.update(overrides)
        return payload
    return build
