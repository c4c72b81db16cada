import os

# Settings are cached on first import – flag the test run before anything
# from cloudsync is loaded.
os.environ["TESTING"] = "1"

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

import cloudsync.database as _db_mod  # noqa: E402
from cloudsync.database import Base  # noqa: E402
from cloudsync.database import get_db  # noqa: E402
from cloudsync.database import make_engine  # noqa: E402
from cloudsync.database import make_sessionmaker  # noqa: E402
from cloudsync.models import models  # noqa: E402,F401
from cloudsync.models import synced  # noqa: E402,F401
from cloudsync.schemas.sync import SyncOpIn  # noqa: E402

# Create a test database - using in-memory SQLite for tests
SQLALCHEMY_DATABASE_URL = "sqlite:///:memory:"

test_engine = make_engine(
    SQLALCHEMY_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,  # Use StaticPool for in-memory database
)

TestingSessionLocal = make_sessionmaker(test_engine)

# Services that open their own sessions resolve the default factory lazily
_db_mod.default_session_factory = TestingSessionLocal

# Import app after all engine setup is in place
from cloudsync.main import app  # noqa: E402

WORKSPACE = "ws-1"


@pytest.fixture
def db_session():
    """
    Creates a fresh database for each test, then tears it down after the test is done.
    """
    Base.metadata.create_all(bind=test_engine)

    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=test_engine)


@pytest.fixture
def client(db_session):
    """
    Create a FastAPI TestClient with the test database dependency.
    """

    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db

    client = TestClient(app, backend="asyncio")
    yield client

    app.dependency_overrides = {}


@pytest.fixture
def test_session_factory(db_session):
    """
    Returns a session factory using the test database.
    Used for cases where a service requires a session factory.
    Ensures all database operations in a test use the same connection.
    """

    def get_test_session():
        return db_session

    return get_test_session


@pytest.fixture
def make_op():
    """Build a :class:`SyncOpIn` with sensible defaults."""

    def _make(op_id, pk="t1", operation="put", payload=None, clock=1, hlc=None, device_id="d1", table_name="threads"):
        return SyncOpIn(
            op_id=op_id,
            table_name=table_name,
            operation=operation,
            pk=pk,
            payload=payload,
            clock=clock,
            hlc=hlc if hlc is not None else f"{clock}:0:{device_id}",
            device_id=device_id,
        )

    return _make
