"""
Module: billing_kernel.db.engine
Responsibility: Own the process-wide SQLAlchemy engine and session factory,
    and the ``session_scope`` transaction helper every repository call
    runs inside.
Architecture position: Kernel > DB.  Imports db/base.py and, lazily,
    billing_kernel.models (to register tables).  Nothing from services/ or
    domain/.

Invariants enforced:
    - One transaction per ``session_scope``: commit on success, rollback
      and re-raise on any exception, always close.
    - Sessions do not expire on commit, so DTO conversion after the
      transaction never triggers lazy loads.
    - SQLite connections enforce foreign keys and may be shared across the
      service threads; server databases run at READ COMMITTED and rely on
      the bill version column plus FOR UPDATE on sequence rows.

Failure modes:
    - RuntimeError when the engine is used before ``init_engine_from_url``.
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import Session, sessionmaker

from billing_kernel.logging_config import configure_logging, get_logger

logger = get_logger("db.engine")

_engine: Engine | None = None
_session_factory: sessionmaker[Session] | None = None


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def init_engine_from_url(
    database_url: str,
    *,
    echo: bool = False,
    pool_size: int = 10,
    busy_timeout: int = 30,
) -> Engine:
    """
    Create the engine and session factory for ``database_url``.

    ``sqlite:///bills.db`` for a single clinic workstation or tests,
    ``postgresql+<driver>://...`` for a shared server.  A second call
    replaces the previous engine without disposing it.
    """
    global _engine, _session_factory

    url = make_url(database_url)
    backend = url.get_backend_name()
    if backend == "sqlite":
        engine = create_engine(
            url,
            echo=echo,
            connect_args={"check_same_thread": False, "timeout": busy_timeout},
        )
        event.listen(engine, "connect", _enable_sqlite_foreign_keys)
    else:
        engine = create_engine(
            url,
            echo=echo,
            pool_size=pool_size,
            pool_pre_ping=True,
            pool_timeout=busy_timeout,
            isolation_level="READ COMMITTED",
        )

    _engine = engine
    _session_factory = sessionmaker(bind=engine, expire_on_commit=False)

    configure_logging()
    logger.info(
        "engine_initialized",
        extra={"backend": backend, "database": url.database, "echo": echo},
    )
    return engine


def get_engine() -> Engine:
    if _engine is None:
        raise RuntimeError("Database engine not initialized; call init_engine_from_url() first")
    return _engine


def get_session_factory() -> sessionmaker[Session]:
    """The factory SqlBillRepository is built with."""
    if _session_factory is None:
        raise RuntimeError("Database engine not initialized; call init_engine_from_url() first")
    return _session_factory


@contextmanager
def session_scope(factory: sessionmaker[Session] | None = None) -> Iterator[Session]:
    """
    Run the block in one transaction.

    Usage:
        with session_scope(factory) as session:
            session.add(model)
    """
    session = (factory or get_session_factory())()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        logger.debug("transaction_rolled_back", exc_info=True)
        raise
    finally:
        session.close()


def create_tables() -> None:
    """Create the bill, line item, payment and sequence tables if missing."""
    from billing_kernel.db.base import Base
    import billing_kernel.models  # noqa: F401  registers tables on Base.metadata

    Base.metadata.create_all(get_engine())
    logger.info("tables_created", extra={"tables": sorted(Base.metadata.tables)})


def drop_tables() -> None:
    from billing_kernel.db.base import Base
    import billing_kernel.models  # noqa: F401

    Base.metadata.drop_all(get_engine())


def reset_engine() -> None:
    """Dispose the engine and forget the session factory (tests)."""
    global _engine, _session_factory
    if _engine is not None:
        _engine.dispose()
    _engine = None
    _session_factory = None
