import logging
from contextlib import contextmanager
from typing import Any
from typing import Iterator

import dotenv
from sqlalchemy import Engine
from sqlalchemy import create_engine
from sqlalchemy import event
from sqlalchemy.orm import Session
from sqlalchemy.orm import declarative_base
from sqlalchemy.orm import sessionmaker

from cloudsync.config import get_settings

logger = logging.getLogger(__name__)

_settings = get_settings()

dotenv.load_dotenv()


# Create Base class
Base = declarative_base()


def _enable_sqlite_savepoints(engine: Engine) -> None:
    """Let SQLAlchemy own transaction boundaries on pysqlite connections.

    The stdlib driver issues its own BEGIN lazily and silently breaks
    ``SAVEPOINT``.  The push handler isolates every operation in a nested
    transaction so we switch the driver to autocommit and emit BEGIN ourselves.
    """

    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):  # noqa: ARG001
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN")


def make_engine(db_url: str, **kwargs) -> Engine:
    """Create a SQLAlchemy engine with the given URL and options.

    Args:
        db_url: Database connection URL
        **kwargs: Additional arguments for create_engine

    Returns:
        A SQLAlchemy Engine instance
    """
    connect_args = kwargs.pop("connect_args", {})
    is_sqlite = db_url.startswith("sqlite")
    if is_sqlite:
        if "check_same_thread" not in connect_args:
            connect_args["check_same_thread"] = False
        connect_args.setdefault("timeout", 30)
    else:
        kwargs.setdefault("pool_pre_ping", True)

    engine = create_engine(db_url, connect_args=connect_args, **kwargs)
    if is_sqlite:
        _enable_sqlite_savepoints(engine)
    return engine


def make_sessionmaker(engine: Engine) -> sessionmaker:
    """Create a sessionmaker bound to the given engine.

    ``expire_on_commit=False`` keeps attributes accessible after a commit so
    response models can be built from rows after the request transaction
    finished.
    """
    return sessionmaker(
        autocommit=False,
        autoflush=False,
        expire_on_commit=False,
        bind=engine,
    )


def _resolve_db_url() -> str:
    return _settings.database_url or ("sqlite:///:memory:" if _settings.testing else "sqlite:///./cloudsync.db")


# Default engine and sessionmaker instances for app usage.  Tests overwrite
# ``cloudsync.database.default_session_factory`` with their own factory.
default_engine = make_engine(_resolve_db_url())
default_session_factory = make_sessionmaker(default_engine)


def get_session_factory() -> sessionmaker:
    """Return the session factory services should use by default."""

    return default_session_factory


def get_db(session_factory: Any = None) -> Iterator[Session]:
    """Dependency provider for database sessions.

    Args:
        session_factory: Optional custom session factory

    Yields:
        SQLAlchemy Session object
    """
    factory = session_factory or get_session_factory()
    db = factory()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def db_session(session_factory: Any = None):
    """Database session context manager for services and background jobs.

    1. Auto-commit on success
    2. Auto-rollback on error
    3. Always close session

    Usage:
        with db_session() as db:
            run_workspace_gc(db, task)
    """
    factory = session_factory or get_session_factory()
    session = factory()

    try:
        yield session
        session.commit()
        logger.debug("Database session committed successfully")

    except Exception as e:
        session.rollback()
        logger.error(f"Database session rolled back due to error: {e}")
        raise

    finally:
        session.close()


def initialize_database(engine: Engine = None) -> None:
    """Create all tables on the given engine (defaults to ``default_engine``)."""

    # Import models so they register with Base before create_all
    from cloudsync.models import models  # noqa: F401
    from cloudsync.models import synced  # noqa: F401

    target_engine = engine or default_engine
    Base.metadata.create_all(bind=target_engine)
