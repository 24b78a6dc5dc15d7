"""Async database engine, connection pool and unit-of-work management."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator

from sqlalchemy import event
from sqlalchemy import exc as sa_exc
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from cadence.core.config import DatabaseConfig
from cadence.core.errors import DatabaseError, translate_error

logger = logging.getLogger("cadence.database")


class Base(DeclarativeBase):
    pass


def _engine_kwargs(database_url: str, config: DatabaseConfig) -> dict[str, Any]:
    connect_args: dict[str, Any] = {}
    kwargs: dict[str, Any] = {"echo": False, "pool_pre_ping": True}

    if database_url.startswith("sqlite"):
        connect_args["check_same_thread"] = False
        # sqlite3's busy timeout bounds how long a writer waits for the lock
        if config.lock_timeout is not None:
            connect_args["timeout"] = config.lock_timeout
    else:
        kwargs.update(
            pool_size=config.max_connections,
            max_overflow=0,
        )
        if config.wait_timeout is not None:
            kwargs["pool_timeout"] = config.wait_timeout
        if config.recycle_timeout is not None:
            kwargs["pool_recycle"] = config.recycle_timeout
        if database_url.startswith("postgresql+asyncpg"):
            if config.create_timeout is not None:
                connect_args["timeout"] = config.create_timeout
            if config.lock_timeout is not None:
                connect_args["server_settings"] = {
                    "lock_timeout": str(int(config.lock_timeout * 1000)),
                }

    kwargs["connect_args"] = connect_args
    return kwargs


def _install_hooks(engine: AsyncEngine, is_sqlite: bool) -> None:
    sync_engine = engine.sync_engine

    @event.listens_for(sync_engine, "connect")
    def on_connect(dbapi_connection, connection_record):
        logger.debug("connection established")
        if is_sqlite:
            # Take over transaction control from the driver so BEGIN IMMEDIATE
            # below is the statement that opens every transaction.
            dbapi_connection.isolation_level = None

    @event.listens_for(sync_engine, "checkout")
    def on_checkout(dbapi_connection, connection_record, connection_proxy):
        logger.debug("connection checked out")

    @event.listens_for(sync_engine, "checkin")
    def on_checkin(dbapi_connection, connection_record):
        logger.debug("connection returned to pool")

    if is_sqlite:
        @event.listens_for(sync_engine, "begin")
        def on_begin(conn):
            # SQLite has no row locks; taking the write lock up front keeps
            # concurrent claimers from selecting the same rows.
            conn.exec_driver_sql("BEGIN IMMEDIATE")


class Database:
    """Pooled async database handle.

    - Built on SQLAlchemy's asyncio engine (asyncpg / aiosqlite).
    - Health-checks connections before reuse (``pool_pre_ping``).
    - Logs pool lifecycle events on the ``cadence.database`` logger.
    - Translates failures into :mod:`cadence.core.errors`.
    """

    def __init__(self, database_url: str, config: DatabaseConfig | None = None):
        self.database_url = database_url
        self.config = config or DatabaseConfig()
        self.is_sqlite = database_url.startswith("sqlite")
        self.engine = create_async_engine(database_url, **_engine_kwargs(database_url, self.config))
        _install_hooks(self.engine, self.is_sqlite)
        self.session_factory = async_sessionmaker(
            self.engine, class_=AsyncSession, expire_on_commit=False, autoflush=False
        )

    @classmethod
    def single_gateway(cls, database_url: str) -> "Database":
        return cls(database_url, DatabaseConfig.single_gateway())

    @classmethod
    def multiple_gateways(cls, database_url: str) -> "Database":
        return cls(database_url, DatabaseConfig.multiple_gateways())

    @asynccontextmanager
    async def transaction(self, operation: str | None = None, **context: Any) -> AsyncIterator[AsyncSession]:
        """One unit of work: commit on success, roll back on any error.

        Database failures are re-raised as :class:`DatabaseError` subclasses;
        other exceptions raised by the body propagate unchanged after rollback.
        """
        body_error: BaseException | None = None
        try:
            async with self.session_factory() as session:
                async with session.begin():
                    # Check out the connection before the body runs so pool
                    # and connect failures never look like body failures.
                    await session.connection()
                    try:
                        yield session
                    except Exception as e:
                        if not isinstance(e, (DatabaseError, sa_exc.SQLAlchemyError)):
                            body_error = e
                        raise
        except DatabaseError as e:
            translate_error(e, operation)
            raise
        except Exception as e:
            if e is body_error:
                raise
            translated = translate_error(e, operation, **context)
            if translated is None:
                raise
            logger.warning(f"{operation or 'transaction'} failed: {translated}")
            raise translated from e

    async def create_tables(self) -> None:
        import cadence.models  # noqa: F401  registers the tables on Base.metadata

        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def drop_tables(self) -> None:
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)

    def status(self) -> dict[str, Any]:
        pool = self.engine.pool
        info: dict[str, Any] = {
            "backend": self.engine.dialect.name,
            "pool": type(pool).__name__,
            "max_connections": self.config.max_connections,
        }
        for name in ("size", "checkedin", "checkedout", "overflow"):
            attr = getattr(pool, name, None)
            if callable(attr):
                info[name] = attr()
        return info

    async def close(self) -> None:
        await self.engine.dispose()
        logger.info("Database pool closed")

    def __repr__(self) -> str:
        return f"Database(backend={self.engine.dialect.name!r}, max_connections={self.config.max_connections})"


# Process-wide handle used by the API and the poller.
_database: Database | None = None


def init_database(database_url: str, config: DatabaseConfig | None = None) -> Database:
    global _database
    _database = Database(database_url, config)
    return _database


def get_database() -> Database:
    if _database is None:
        raise RuntimeError("Database not initialised; call init_database() first")
    return _database


async def close_database() -> None:
    global _database
    if _database is not None:
        await _database.close()
        _database = None
