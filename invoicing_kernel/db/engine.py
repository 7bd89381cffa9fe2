"""
Module: invoicing_kernel.db.engine
Responsibility: Engine construction, the process-wide session factory, and
    the ``session_scope`` transaction helper every service phase runs in.
Architecture position: Kernel > DB.  Imports db/base.py; create_tables also
    imports models/ so the metadata holds every table.

Invariants enforced:
    - PostgreSQL connections run at READ COMMITTED.  Exclusive read-then-write
      windows (number allocation, the customer party counter) take explicit
      SELECT ... FOR UPDATE row locks.
    - SQLite connections start every transaction with BEGIN IMMEDIATE, which
      takes the database write lock up front.  FOR UPDATE compiles to nothing
      on SQLite, so this is what serializes allocators there.
    - Sessions do not expire on commit: services hand committed ORM rows to
      DTO conversion after the transaction has closed.

Failure modes:
    - RuntimeError from get_engine/get_session/get_session_factory before
      init_engine_from_url().
    - OperationalError ("database is locked") once the SQLite busy timeout
      runs out; the allocator reports it as AllocationFailure.
"""

from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from invoicing_kernel.logging_config import get_logger

logger = get_logger("db.engine")

_engine: Engine | None = None
_session_factory: sessionmaker[Session] | None = None


def _sqlite_engine(url: str, echo: bool, busy_timeout: float) -> Engine:
    engine = create_engine(
        url,
        echo=echo,
        connect_args={"check_same_thread": False, "timeout": busy_timeout},
    )

    @event.listens_for(engine, "connect")
    def _manual_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")

    return engine


def build_engine(
    database_url: str,
    *,
    echo: bool = False,
    pool_size: int = 20,
    max_overflow: int = 10,
    pool_timeout: int = 30,
    busy_timeout: float = 30.0,
) -> Engine:
    """
    Create an engine for ``database_url`` without touching module state.

    Tests build one engine per test with this; the service goes through
    init_engine_from_url().  Pool settings apply to PostgreSQL only and
    ``busy_timeout`` (seconds) to SQLite only.
    """
    if database_url.startswith("sqlite"):
        return _sqlite_engine(database_url, echo, busy_timeout)
    return create_engine(
        database_url,
        echo=echo,
        pool_size=pool_size,
        max_overflow=max_overflow,
        pool_timeout=pool_timeout,
        pool_pre_ping=True,
        pool_recycle=1800,
        isolation_level="READ COMMITTED",
    )


def session_factory_for(engine: Engine) -> sessionmaker[Session]:
    return sessionmaker(bind=engine, expire_on_commit=False)


def init_engine_from_url(database_url: str, **options) -> Engine:
    """Build the process-wide engine and session factory (replacing any previous one)."""
    global _engine, _session_factory
    if _engine is not None:
        _engine.dispose()
    _engine = build_engine(database_url, **options)
    _session_factory = session_factory_for(_engine)
    logger.info(
        "engine_initialized",
        extra={"dialect": _engine.dialect.name, **options},
    )
    return _engine


def _require_initialized() -> sessionmaker[Session]:
    if _session_factory is None:
        raise RuntimeError("Database not initialized; call init_engine_from_url() first")
    return _session_factory


def get_engine() -> Engine:
    _require_initialized()
    return _engine


def get_session() -> Session:
    return _require_initialized()()


def get_session_factory() -> sessionmaker[Session]:
    """
    The process-wide session factory.

    The lifecycle manager takes a factory rather than a session: it opens
    one short transaction per issuance phase.
    """
    return _require_initialized()


@contextmanager
def session_scope(factory: sessionmaker[Session] | None = None) -> Iterator[Session]:
    """
    One transaction: commit on normal exit, roll back and re-raise otherwise.

    Usage::

        with session_scope(factory) as session:
            invoice = session.get(Invoice, invoice_id)
            invoice.error_message = None
    """
    session = (factory or _require_initialized())()
    try:
        yield session
        session.commit()
    except Exception as exc:
        session.rollback()
        logger.debug("transaction_rolled_back", extra={"error_type": type(exc).__name__})
        raise
    finally:
        session.close()


def create_tables(engine: Engine | None = None) -> None:
    from invoicing_kernel.db.base import Base
    import invoicing_kernel.models  # noqa: F401  (registers every table)

    Base.metadata.create_all(engine or get_engine())


def drop_tables(engine: Engine | None = None) -> None:
    """Drop every invoicing table. Tests only."""
    from invoicing_kernel.db.base import Base
    import invoicing_kernel.models  # noqa: F401

    Base.metadata.drop_all(engine or get_engine())


def reset_engine() -> None:
    global _engine, _session_factory
    if _engine is not None:
        _engine.dispose()
    _engine = None
    _session_factory = None


def is_postgres(engine: Engine | None = None) -> bool:
    target = engine or _engine
    return target is not None and target.dialect.name == "postgresql"
