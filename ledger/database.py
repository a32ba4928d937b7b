"""
Database engine, session management, and base model class.

This module sets up SQLAlchemy 2.0 with async support. Key components:

  - engine: The async database engine (connection pool for production DBs)
  - AsyncSessionLocal: Factory for creating async database sessions
  - Base: Declarative base class that all ORM models inherit from
  - get_db(): FastAPI dependency that provides a session per request

Session lifecycle:
  The ledger services never open sessions themselves. The caller hands a
  session in as the first argument of every service function, and owns its
  transaction boundary. Over HTTP that caller is get_db(): the session
  commits when the request succeeds and rolls back on ANY exception, so a
  rejected write never leaves an event without its postings.
"""

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.orm import DeclarativeBase

from ledger.config import settings


def enable_sqlite_savepoints(async_engine: AsyncEngine) -> None:
    """
    Make SAVEPOINTs behave on SQLite.

    The sqlite3 driver opens transactions lazily and on its own terms, so a
    SAVEPOINT issued outside one becomes the outermost transaction and its
    RELEASE commits. Turning the driver's handling off and emitting BEGIN
    ourselves keeps every begin_nested() inside a real transaction.
    Foreign keys are switched on for the same connections.
    No-op for other backends.
    """
    if async_engine.dialect.name != "sqlite":
        return

    @event.listens_for(async_engine.sync_engine, "connect")
    def _disable_driver_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(async_engine.sync_engine, "begin")
    def _emit_begin(conn):
        conn.exec_driver_sql("BEGIN")


# echo=True in debug mode logs all SQL statements
engine = create_async_engine(
    settings.DATABASE_URL,
    echo=settings.DEBUG,
)
enable_sqlite_savepoints(engine)

# expire_on_commit=False prevents lazy-load errors after commit: accessing
# attributes on a committed object would otherwise trigger a synchronous
# DB call, which fails in async context.
AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy ORM models."""
    pass


async def get_db():
    """
    FastAPI dependency that provides a database session.

    Usage in a route:
        @router.get("/transactions")
        async def list_transactions(db: AsyncSession = Depends(get_db)):
            ...

    The session is committed on success and rolled back on any exception,
    then closed when the request completes.
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
