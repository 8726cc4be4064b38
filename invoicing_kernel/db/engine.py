"""
Module: invoicing_kernel.db.engine
Responsibility: SQLAlchemy engine construction, session factories, and the
    transactional scope utility.  Engines are created and passed explicitly;
    there is no module-level engine.
Architecture position: Kernel > DB.  May import from db/base.py.

Invariants enforced:
    - PostgreSQL runs at READ COMMITTED with explicit row locks
      (``SELECT ... FOR UPDATE``) where a unit reads before it writes.
    - SQLite connections open every transaction with ``BEGIN IMMEDIATE`` so
      concurrent units serialize on the write lock instead of failing with
      lock-upgrade deadlocks.  Foreign keys are enforced.

Failure modes:
    - Connection pool exhaustion if pool_size + max_overflow is exceeded.
    - ``sqlite3.OperationalError: database is locked`` once busy_timeout
      elapses (surfaced by the repository as InfrastructureError).
"""

from contextlib import contextmanager
from typing import Generator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import QueuePool

from invoicing_kernel.db.base import Base
from invoicing_kernel.logging_config import get_logger

logger = get_logger("db.engine")


def create_engine_from_url(
    database_url: str,
    echo: bool = False,
    pool_size: int = 20,
    max_overflow: int = 10,
    pool_pre_ping: bool = True,
    pool_timeout: int = 30,
    pool_recycle: int = 1800,
    sqlite_busy_timeout: float = 30.0,
) -> Engine:
    """
    Build an Engine for ``database_url``.

    Args:
        database_url: SQLAlchemy URL (``postgresql+psycopg2://...`` or
            ``sqlite:///path/to/file.db``).
        echo: If True, log all SQL statements.
        pool_size: Connections kept in the pool.
        max_overflow: Connections allowed beyond pool_size.
        pool_pre_ping: Test connections before use.
        pool_timeout: Seconds to wait for a pooled connection.
        pool_recycle: Seconds after which a connection is recycled.
        sqlite_busy_timeout: Seconds SQLite waits for the write lock.

    Returns:
        SQLAlchemy Engine instance.
    """
    if database_url.startswith("sqlite"):
        engine = create_engine(
            database_url,
            echo=echo,
            poolclass=QueuePool,
            pool_size=pool_size,
            max_overflow=max_overflow,
            pool_timeout=pool_timeout,
            connect_args={"check_same_thread": False, "timeout": sqlite_busy_timeout},
        )
        _configure_sqlite(engine)
        dialect = "sqlite"
    else:
        engine = create_engine(
            database_url,
            echo=echo,
            poolclass=QueuePool,
            pool_size=pool_size,
            max_overflow=max_overflow,
            pool_pre_ping=pool_pre_ping,
            pool_timeout=pool_timeout,
            pool_recycle=pool_recycle,
            isolation_level="READ COMMITTED",
        )
        dialect = engine.dialect.name

    logger.info(
        "engine_initialized",
        extra={
            "dialect": dialect,
            "pool_size": pool_size,
            "max_overflow": max_overflow,
            "echo": echo,
        },
    )
    return engine


def _configure_sqlite(engine: Engine) -> None:
    """Take over pysqlite transaction handling so BEGIN is explicit."""

    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def create_session_factory(engine: Engine) -> sessionmaker[Session]:
    """Session factory bound to ``engine``; one session per unit of work."""
    return sessionmaker(bind=engine, expire_on_commit=False)


@contextmanager
def session_scope(factory: sessionmaker[Session]) -> Generator[Session, None, None]:
    """
    Provide a transactional scope around a series of operations.

    Postconditions: On normal exit, session is committed and closed.
        On exception, session is rolled back and closed, and the exception
        is re-raised to the caller.

    Usage:
        with session_scope(factory) as session:
            session.add(entity)
    """
    session = factory()
    logger.debug("transaction_started")
    try:
        yield session
        session.commit()
        logger.debug("transaction_committed")
    except Exception:
        session.rollback()
        logger.warning("transaction_rolled_back", exc_info=True)
        raise
    finally:
        session.close()


def create_tables(engine: Engine) -> None:
    """
    Create every table known to ``Base.metadata``.

    Importing ``invoicing_kernel.models`` registers all ORM models.
    """
    import invoicing_kernel.models  # noqa: F401

    Base.metadata.create_all(engine)
    logger.info("tables_created", extra={"table_count": len(Base.metadata.tables)})


def drop_tables(engine: Engine) -> None:
    """Drop all tables. Use with caution - primarily for testing."""
    import invoicing_kernel.models  # noqa: F401

    Base.metadata.drop_all(engine)
