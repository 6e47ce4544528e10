import logging
from collections.abc import AsyncGenerator, AsyncIterator
from contextlib import asynccontextmanager

from sqlalchemy import event
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.orm import DeclarativeBase

from liftsync.config import settings
from liftsync.core.exceptions import InvariantViolation

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    pass


def _enable_sqlite_transactions(engine: AsyncEngine) -> None:
    """Let SQLAlchemy own BEGIN/SAVEPOINT and turn on foreign key enforcement."""

    @event.listens_for(engine.sync_engine, "connect")
    def _on_connect(dbapi_connection, connection_record) -> None:
        del connection_record
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine.sync_engine, "begin")
    def _on_begin(conn) -> None:
        conn.exec_driver_sql("BEGIN")


def create_engine_for(url: str, **kwargs) -> AsyncEngine:
    engine = create_async_engine(url, echo=False, future=True, **kwargs)
    if engine.dialect.name == "sqlite":
        _enable_sqlite_transactions(engine)
    return engine


def make_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False
    )


# Authoritative server store
engine = create_engine_for(settings.SQLALCHEMY_DATABASE_URI)
AsyncSessionLocal = make_session_factory(engine)

# On-device store
local_engine = create_engine_for(settings.LOCAL_DATABASE_URI)
LocalSessionLocal = make_session_factory(local_engine)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    async with AsyncSessionLocal() as session:
        try:
            yield session
        finally:
            await session.close()


async def init_local_store(target: AsyncEngine | None = None) -> None:
    """Create the device schema; the device has no migration runner."""
    target = target or local_engine
    async with target.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


@asynccontextmanager
async def transaction(db: AsyncSession) -> AsyncIterator[AsyncSession]:
    """Commit everything done inside the block, or roll all of it back."""
    try:
        yield db
        await db.commit()
    except IntegrityError as exc:
        await db.rollback()
        logger.exception("Store constraint rejected mutation; rolled back")
        raise InvariantViolation(f"Store constraint violated: {exc.orig}") from exc
    except BaseException:
        await db.rollback()
        raise
