"""
Engine and session management for the payroll store.

One engine is registered per process with ``init_engine_from_url()``.
Services receive a ``Session`` and never commit; ``session_scope()`` (or
the batch settler, or a test fixture) decides when work is committed.

Dialects:
    PostgreSQL  production store.  READ COMMITTED plus ``SELECT ... FOR
                UPDATE`` on ledger and debt rows gives per-row
                serialization without whole-transaction retries.
    SQLite      tests and local runs.  pysqlite's own BEGIN handling is
                switched off so SAVEPOINTs (per-employee settlement)
                nest correctly; ``:memory:`` databases share a single
                connection.
"""

from contextlib import contextmanager
from typing import Any, Generator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import URL, Engine, make_url
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import QueuePool, StaticPool

from payroll_kernel.logging_config import configure_logging, get_logger

logger = get_logger("db.engine")

_engine: Engine | None = None
_sessions: sessionmaker[Session] | None = None

_NOT_INITIALIZED = "Engine not initialized. Call init_engine_from_url() first."


def _is_memory_sqlite(url: URL) -> bool:
    return url.database in (None, "", ":memory:")


def _install_sqlite_transaction_hooks(engine: Engine) -> None:
    @event.listens_for(engine, "connect")
    def _autocommit_driver(dbapi_connection, _record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _emit_begin(conn):
        conn.exec_driver_sql("BEGIN")


def _sqlite_engine(url: URL, echo: bool) -> Engine:
    options: dict[str, Any] = {"connect_args": {"check_same_thread": False}}
    if _is_memory_sqlite(url):
        options["poolclass"] = StaticPool
    engine = create_engine(url, echo=echo, **options)
    _install_sqlite_transaction_hooks(engine)
    return engine


def build_engine(
    database_url: str,
    echo: bool = False,
    pool_size: int = 20,
    max_overflow: int = 10,
    pool_timeout: int = 30,
    pool_recycle: int = 1800,
) -> Engine:
    """Create (but do not register) an engine tuned for the URL's dialect."""
    url = make_url(database_url)
    if url.get_backend_name() == "sqlite":
        return _sqlite_engine(url, echo)

    return create_engine(
        url,
        echo=echo,
        poolclass=QueuePool,
        pool_size=pool_size,
        max_overflow=max_overflow,
        pool_timeout=pool_timeout,
        pool_recycle=pool_recycle,
        pool_pre_ping=True,
        isolation_level="READ COMMITTED",
    )


def init_engine_from_url(database_url: str, echo: bool = False, **pool_options: Any) -> Engine:
    """
    Build the process engine and its session factory.

    Calling it again replaces the previous engine.  Logging is configured
    on first use so engine and service events share one JSON stream.
    """
    global _engine, _sessions

    configure_logging()
    _engine = build_engine(database_url, echo=echo, **pool_options)
    _sessions = sessionmaker(bind=_engine, expire_on_commit=False)

    logger.info("engine_initialized", extra={"dialect": _engine.dialect.name, "echo": echo})
    return _engine


def get_engine() -> Engine:
    if _engine is None:
        raise RuntimeError(_NOT_INITIALIZED)
    return _engine


def get_session() -> Session:
    if _sessions is None:
        raise RuntimeError(_NOT_INITIALIZED)
    return _sessions()


@contextmanager
def session_scope() -> Generator[Session, None, None]:
    """
    Commit on clean exit, roll back and re-raise on error, always close.

        with session_scope() as session:
            PayslipService(session).approve(payslip_id, actor_id)
    """
    session = get_session()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        logger.warning("transaction_rolled_back", exc_info=True)
        raise
    finally:
        session.close()


def create_tables(engine: Engine | None = None) -> None:
    """Create kernel, config and module tables."""
    from payroll_kernel.db.base import Base
    from payroll_modules._orm_registry import import_all_orm_models

    import_all_orm_models()
    Base.metadata.create_all(engine or get_engine())


def drop_tables(engine: Engine | None = None) -> None:
    from payroll_kernel.db.base import Base

    Base.metadata.drop_all(engine or get_engine())


def reset_engine() -> None:
    """Dispose the registered engine.  Test teardown only."""
    global _engine, _sessions

    if _engine is not None:
        _engine.dispose()
    _engine = None
    _sessions = None


def is_postgres() -> bool:
    return _engine is not None and _engine.dialect.name == "postgresql"
