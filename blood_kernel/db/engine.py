"""
Module: blood_kernel.db.engine
Responsibility: SQLAlchemy engine initialization, session factory management,
    and transactional scope utilities.  This is the single point of database
    connection configuration for the entire system.
Architecture position: Kernel > DB.  May import from db/base.py and db/triggers.py.
    MUST NOT import from services/, selectors/, or outer layers (except for
    create_tables which imports the models so their tables are registered).

Invariants enforced:
    - SQLite (the default store) runs every transaction as
      ``BEGIN IMMEDIATE``: the database write lock is taken when the
      transaction starts, so read-then-write sequences (issue-by-ids,
      audit append) are serialized across connections and processes.
      ``SELECT ... FOR UPDATE`` is a no-op on SQLite and gives the same
      guarantee per row on PostgreSQL.
    - SQLite foreign keys are enforced on every connection.
    - Lock waits are bounded by ``busy_timeout_seconds`` (SQLite) or
      ``pool_timeout`` (pool checkout); nothing blocks indefinitely.

Failure modes:
    - RuntimeError if get_engine/get_session/get_session_factory called before
      init_engine_from_url().
    - OperationalError ("database is locked") when the busy timeout expires.
"""

import atexit
from contextlib import contextmanager
from typing import Generator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from blood_kernel.logging_config import configure_logging, get_logger

logger = get_logger("db.engine")

# Module-level engine and session factory
_engine: Engine | None = None
_SessionFactory: sessionmaker[Session] | None = None


def _install_sqlite_hooks(engine: Engine, busy_timeout_seconds: float) -> None:
    """
    Take over transaction control from pysqlite so every transaction is
    ``BEGIN IMMEDIATE`` and SAVEPOINT works.
    """

    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.execute(f"PRAGMA busy_timeout={int(busy_timeout_seconds * 1000)}")
        cursor.close()

    @event.listens_for(engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def init_engine_from_url(
    database_url: str,
    echo: bool = False,
    pool_size: int = 5,
    pool_timeout: float = 30,
    busy_timeout_seconds: float = 30.0,
) -> Engine:
    """
    Initialize the SQLAlchemy engine from a database URL.

    Postconditions: Module-level _engine and _SessionFactory are initialized.
        All subsequent get_engine/get_session calls use this engine.

    Args:
        database_url: e.g. ``sqlite:///blood_bank.db`` or a PostgreSQL URL.
        echo: If True, log all SQL statements.
        pool_size: Number of connections to keep in the pool.
        pool_timeout: Seconds to wait for a pooled connection.
        busy_timeout_seconds: SQLite lock wait before "database is locked".
    """
    global _engine, _SessionFactory

    url = make_url(database_url)
    dialect = url.get_backend_name()

    if dialect == "sqlite":
        in_memory = url.database in (None, "", ":memory:")
        kwargs: dict = {
            "connect_args": {
                "check_same_thread": False,
                "timeout": busy_timeout_seconds,
            },
        }
        if in_memory:
            kwargs["poolclass"] = StaticPool
        else:
            kwargs["pool_size"] = pool_size
            kwargs["pool_timeout"] = pool_timeout
        engine = create_engine(url, echo=echo, **kwargs)
        _install_sqlite_hooks(engine, busy_timeout_seconds)
    else:
        engine = create_engine(
            url,
            echo=echo,
            pool_size=pool_size,
            pool_timeout=pool_timeout,
            pool_pre_ping=True,
            isolation_level="READ COMMITTED",
        )

    _engine = engine
    _SessionFactory = sessionmaker(bind=_engine, expire_on_commit=False)

    configure_logging()
    logger.info(
        "engine_initialized",
        extra={
            "dialect": dialect,
            "database": url.render_as_string(hide_password=True),
            "pool_size": pool_size,
            "echo": echo,
        },
    )

    return _engine


def get_engine() -> Engine:
    """
    Raises:
        RuntimeError: If engine has not been initialized.
    """
    if _engine is None:
        raise RuntimeError("Engine not initialized. Call init_engine_from_url() first.")
    return _engine


def get_session() -> Session:
    """
    Raises:
        RuntimeError: If engine has not been initialized.
    """
    if _SessionFactory is None:
        raise RuntimeError("Engine not initialized. Call init_engine_from_url() first.")
    return _SessionFactory()


def get_session_factory() -> sessionmaker[Session]:
    """
    Get the session factory for creating sessions.

    Useful for multi-threaded scenarios where each thread needs its own session.

    Raises:
        RuntimeError: If engine has not been initialized.
    """
    if _SessionFactory is None:
        raise RuntimeError("Engine not initialized. Call init_engine_from_url() first.")
    return _SessionFactory


@contextmanager
def session_scope(
    factory: sessionmaker[Session] | None = None,
) -> Generator[Session, None, None]:
    """
    Provide a transactional scope around a series of operations.

    Postconditions: On normal exit, session is committed and closed.
        On exception, session is rolled back and closed.  The exception
        is re-raised to the caller.

    Usage:
        with session_scope() as session:
            session.add(entity)
            # Commits on successful exit, rolls back on exception
    """
    session = factory() if factory is not None else get_session()
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


def _import_models() -> None:
    """Import every ORM model so Base.metadata knows their tables."""
    import blood_kernel.models  # noqa: F401
    import blood_kernel.services.sequence_service  # noqa: F401


def create_tables(install_triggers: bool = True) -> None:
    """
    Create all tables and, by default, the database immutability triggers.

    Idempotent: existing tables and triggers are left in place.
    """
    from blood_kernel.db.base import Base

    engine = get_engine()
    _import_models()
    Base.metadata.create_all(engine)

    if install_triggers:
        from blood_kernel.db.triggers import install_immutability_triggers

        install_immutability_triggers(engine)

    logger.info("tables_created", extra={"triggers": install_triggers})


def drop_tables() -> None:
    """
    Drop all tables. Use with caution - primarily for testing.
    """
    from blood_kernel.db.base import Base
    from blood_kernel.db.triggers import uninstall_immutability_triggers

    engine = get_engine()
    _import_models()
    uninstall_immutability_triggers(engine)
    Base.metadata.drop_all(engine)


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


def is_sqlite() -> bool:
    """Check if the current engine is SQLite."""
    if _engine is None:
        return False
    return _engine.dialect.name == "sqlite"
