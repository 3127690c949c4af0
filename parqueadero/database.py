import logging
from contextlib import asynccontextmanager

from sqlalchemy import event
from sqlalchemy.exc import (
    IntegrityError,
    InterfaceError,
    OperationalError,
    TimeoutError as PoolTimeoutError,
)
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from parqueadero.config import DATABASE_ECHO, DATABASE_URL, DB_BUSY_TIMEOUT, DB_POOL_TIMEOUT
from parqueadero.errors import PersistenceUnavailable

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    pass


def build_engine(url: str, **kwargs):
    if url.startswith("sqlite"):
        kwargs.setdefault("connect_args", {}).setdefault("timeout", DB_BUSY_TIMEOUT)
    engine = create_async_engine(url, echo=DATABASE_ECHO, **kwargs)

    if engine.dialect.name == "sqlite":
        # pysqlite/aiosqlite emit their own BEGIN lazily, which breaks SAVEPOINT.
        # IMMEDIATE takes the write lock up front, so concurrent units of work
        # queue on the busy timeout instead of failing on lock upgrade.
        @event.listens_for(engine.sync_engine, "connect")
        def _disable_driver_transactions(dbapi_connection, connection_record):
            dbapi_connection.isolation_level = None

        @event.listens_for(engine.sync_engine, "begin")
        def _emit_begin(conn):
            conn.exec_driver_sql("BEGIN IMMEDIATE")

    return engine


def build_sessionmaker(engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, expire_on_commit=False)


if DATABASE_URL.startswith("sqlite"):
    engine = build_engine(DATABASE_URL)
else:
    engine = build_engine(DATABASE_URL, pool_timeout=DB_POOL_TIMEOUT, pool_pre_ping=True)

SessionLocal = build_sessionmaker(engine)


def is_unique_violation(error: IntegrityError) -> bool:
    """True when the store refused a row because of a unique constraint."""
    reason = str(error.orig).lower()
    return "unique" in reason or "duplicate key" in reason


async def init_db(bind=None):
    import parqueadero.models  # noqa: F401

    async with (bind or engine).begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def get_db():
    async with SessionLocal() as session:
        yield session


@asynccontextmanager
async def unit_of_work(db: AsyncSession):
    """Commit everything done inside the block, or roll all of it back.

    Connection-level failures are reported as ``PersistenceUnavailable``.
    """
    try:
        yield db
        await db.commit()
    except (OperationalError, InterfaceError, PoolTimeoutError) as e:
        await db.rollback()
        logger.error(f"Storage failure, unit of work rolled back: {e}")
        raise PersistenceUnavailable() from e
    except BaseException:
        await db.rollback()
        raise
