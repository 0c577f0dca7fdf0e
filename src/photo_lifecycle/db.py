"""Database engine and session management."""

from collections.abc import Generator
from contextlib import contextmanager
from typing import Any

from loguru import logger
from sqlalchemy import Engine, create_engine, event
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

from photo_lifecycle.config import DEFAULT_DATABASE_URL, DEFAULT_SQLITE_BUSY_TIMEOUT


class Base(DeclarativeBase):
    pass


def _configure_sqlite_transactions(engine: Engine) -> None:
    """
    Let SQLAlchemy emit BEGIN IMMEDIATE itself.

    Emitting BEGIN from SQLAlchemy makes SAVEPOINT work with pysqlite, which tag resolution
    needs to recover from unique-constraint conflicts without discarding the caller's
    pending work. IMMEDIATE takes the write lock up front: two writers that each hold a
    read lock and then try to write would otherwise fail with "database is locked"
    instead of waiting for each other.
    """

    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection: Any, _connection_record: Any) -> None:
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _on_begin(connection: Any) -> None:
        connection.exec_driver_sql("BEGIN IMMEDIATE")


def create_db_engine(
    database_url: str = DEFAULT_DATABASE_URL,
    *,
    echo: bool = False,
    busy_timeout: float = DEFAULT_SQLITE_BUSY_TIMEOUT,
) -> Engine:
    """
    Create an engine.

    SQLite engines get savepoint support, cross-thread access and wait up to
    ``busy_timeout`` seconds for another writer's transaction to finish.
    """
    if database_url.startswith("sqlite"):
        engine = create_engine(
            database_url,
            echo=echo,
            connect_args={"check_same_thread": False, "timeout": busy_timeout},
        )
        _configure_sqlite_transactions(engine)
    else:
        engine = create_engine(database_url, echo=echo, pool_pre_ping=True)
    logger.debug("database_engine_created", dialect=engine.dialect.name)
    return engine


def session_factory(engine: Engine) -> sessionmaker[Session]:
    return sessionmaker(bind=engine, expire_on_commit=False)


def init_db(engine: Engine) -> None:
    """Create all tables in the database."""
    # Import models so their tables are registered on Base.metadata.
    from photo_lifecycle import models  # noqa: F401, PLC0415

    Base.metadata.create_all(bind=engine)
    logger.debug("database_initialized", tables=sorted(Base.metadata.tables))


@contextmanager
def session_scope(factory: sessionmaker[Session]) -> Generator[Session, None, None]:
    """Yield a session that commits on success and rolls back on error."""
    session = factory()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
