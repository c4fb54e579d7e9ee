"""
Module: payout_kernel.db.engine
Responsibility: SQLAlchemy engine initialization, session factory creation,
    and transactional scope utilities.
Architecture position: Kernel > DB.  May import from db/base.py.  MUST NOT
    import from services/, selectors/, domain/, or outer layers (except for
    create_tables which imports models so metadata is complete).

Invariants enforced:
    - Services never reach for a module-level session.  They receive a
      ``sessionmaker`` (or any zero-argument callable returning a Session)
      and open explicit transactions through ``transaction_scope()``.
    - PostgreSQL sessions run at READ COMMITTED; row-level races are
      resolved by conditional UPDATEs, not by isolation level.
    - Connection pooling via QueuePool with pre-ping for server databases.

Failure modes:
    - RuntimeError if get_engine/get_session_factory is called before
      init_engine_from_url().
    - Connection pool exhaustion if pool_size + max_overflow is exceeded.
"""

import atexit
from contextlib import contextmanager
from typing import Callable, Generator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import QueuePool

from payout_kernel.logging_config import configure_logging, get_logger

logger = get_logger("db.engine")

# Engine and factory built by init_engine_from_url() for scripts
_engine: Engine | None = None
_SessionFactory: sessionmaker[Session] | None = None


def build_engine(
    database_url: str,
    echo: bool = False,
    pool_size: int = 20,
    max_overflow: int = 10,
    pool_pre_ping: bool = True,
    pool_timeout: int = 30,
    pool_recycle: int = 1800,
) -> Engine:
    """
    Create an engine for the given URL without touching module state.

    SQLite URLs get SQLAlchemy's default pool (pool sizing does not apply);
    every other backend gets a QueuePool at READ COMMITTED.
    """
    if database_url.startswith("sqlite"):
        engine = create_engine(database_url, echo=echo)
        _enable_sqlite_savepoints(engine)
        return engine

    return create_engine(
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


def _enable_sqlite_savepoints(engine: Engine) -> None:
    """
    Let SQLAlchemy emit BEGIN itself on pysqlite.

    The driver otherwise defers BEGIN until the first DML statement, which
    turns an outermost SAVEPOINT into a real transaction and RELEASE into a
    COMMIT.
    """

    @event.listens_for(engine, "connect")
    def _disable_driver_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _emit_begin(conn):
        conn.exec_driver_sql("BEGIN")


def init_engine_from_url(database_url: str, echo: bool = False, **pool_options) -> Engine:
    """
    Initialize the module-level engine used by the operator scripts.

    Second call overwrites the first.

    Returns:
        SQLAlchemy Engine instance.
    """
    global _engine, _SessionFactory

    _engine = build_engine(database_url, echo=echo, **pool_options)
    _SessionFactory = sessionmaker(bind=_engine, expire_on_commit=False)

    configure_logging()
    logger.info(
        "engine_initialized",
        extra={"dialect": _engine.dialect.name, "echo": echo},
    )

    return _engine


def get_engine() -> Engine:
    """
    Get the current engine instance.

    Raises:
        RuntimeError: If engine has not been initialized.
    """
    if _engine is None:
        raise RuntimeError("Engine not initialized. Call init_engine_from_url() first.")
    return _engine


def get_session_factory() -> sessionmaker[Session]:
    """
    Get the session factory for creating sessions.

    Raises:
        RuntimeError: If engine has not been initialized.
    """
    if _SessionFactory is None:
        raise RuntimeError("Engine not initialized. Call init_engine_from_url() first.")
    return _SessionFactory


@contextmanager
def transaction_scope(
    session_factory: Callable[[], Session],
) -> Generator[Session, None, None]:
    """
    Provide a transactional scope around one unit of work.

    Postconditions: On normal exit, session is committed and closed.
        On exception, session is rolled back and closed.  The exception
        is re-raised to the caller.

    Usage:
        with transaction_scope(session_factory) as session:
            session.add(entity)
            # Commits on successful exit, rolls back on exception
    """
    session = session_factory()
    logger.debug("transaction_started")
    try:
        yield session
        session.commit()
        logger.debug("transaction_committed")
    except Exception:
        session.rollback()
        logger.debug("transaction_rolled_back")
        raise
    finally:
        session.close()


def create_tables(engine: Engine | None = None) -> None:
    """
    Create all tables defined in the models.

    All ORM models are imported here so Base.metadata discovers their tables.
    """
    from payout_kernel.db.base import Base
    import payout_kernel.models  # noqa: F401

    Base.metadata.create_all(engine or get_engine())


def reset_engine() -> None:
    """
    Reset the engine and session factory.

    Useful for test cleanup.
    """
    global _engine, _SessionFactory

    if _engine is not None:
        _engine.dispose()
        _engine = None

    _SessionFactory = None


def _atexit_dispose():
    """Dispose the engine on process exit to release all pooled connections."""
    if _engine is not None:
        _engine.dispose()


atexit.register(_atexit_dispose)
