"""
Shared pytest fixtures for all test modules.

Uses an in-memory SQLite database (StaticPool) so every test
function gets a clean, isolated database with no disk I/O and no state leakage.
The race tests build their own file-backed engine (see file_engine) because
they need one real connection per thread.
"""
import pytest
from datetime import datetime, timedelta
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from typing import Optional

from payrecon.config import Settings, get_settings
from payrecon.database import Base, get_db
from payrecon import models
from payrecon.services.ledger import Identity, Ledger, utcnow
from payrecon.services.reconciler import Reconciler


TEST_ENGINE = create_engine(
    "sqlite:///:memory:",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSession = sessionmaker(autocommit=False, autoflush=False, bind=TEST_ENGINE)

CLIENT_KEY = "test-client-key"
AUTH = {"Authorization": f"Bearer {CLIENT_KEY}"}


def make_settings(**overrides) -> Settings:
    values = dict(
        CLIENT_API_KEYS=CLIENT_KEY,
        ENVIRONMENT="test",
        PENDING_TTL_MINUTES=30,
        ALLOW_UNVERIFIED_COMPLETION=True,
        PAYTODAY_SHOP_HANDLE="test-shop",
    )
    values.update(overrides)
    return Settings(**values)


@pytest.fixture(autouse=True)
def reset_db():
    """Drop and recreate all tables before each test for full isolation."""
    Base.metadata.drop_all(bind=TEST_ENGINE)
    Base.metadata.create_all(bind=TEST_ENGINE)
    yield
    Base.metadata.drop_all(bind=TEST_ENGINE)


@pytest.fixture
def db(reset_db):
    """Yield a SQLAlchemy session backed by the in-memory test database."""
    session = TestingSession()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def settings():
    return make_settings()


@pytest.fixture
def ledger(db, settings):
    return Ledger(db, settings)


@pytest.fixture
def reconciler(ledger):
    return Reconciler(ledger)


@pytest.fixture
def client(db, settings):
    """
    FastAPI TestClient with the DB and settings dependencies overridden.
    The TestClient is NOT used as a context manager so the lifespan hook
    (settings validation, table creation on disk) is skipped.
    """
    from payrecon.main import app

    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_settings] = lambda: settings
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def file_engine(tmp_path):
    """File-backed SQLite engine; each thread gets its own connection."""
    engine = create_engine(
        f"sqlite:///{tmp_path / 'race.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


# ---------------------------------------------------------------------------
# Helper, not a fixture, so any test file can import and call it directly.
# ---------------------------------------------------------------------------
def make_txn(
    db,
    errand_id: str = "E1",
    payment_type: str = "first_half",
    status: str = "pending",
    amount: float = 250.00,
    currency: str = "NAD",
    created_at: Optional[datetime] = None,   # defaults to 1 minute ago (unexpired)
    transaction_id: Optional[str] = None,
    error_message: Optional[str] = None,
    reference: Optional[str] = None,
) -> models.PaymentTransaction:
    if created_at is None:
        created_at = utcnow() - timedelta(minutes=1)
    if reference is None:
        reference = f"{errand_id}_{payment_type}_{int(created_at.timestamp() * 1000)}"
    txn = models.PaymentTransaction(
        errand_id=errand_id,
        payment_type=payment_type,
        reference=reference,
        status=status,
        amount=amount,
        currency=currency,
        transaction_id=transaction_id,
        error_message=error_message,
        created_at=created_at,
        updated_at=created_at,
        completed_at=created_at if status == "completed" else None,
    )
    db.add(txn)
    db.commit()
    db.refresh(txn)
    return txn


def identity(errand_id: str = "E1", payment_type: str = "first_half") -> Identity:
    return Identity(errand_id, payment_type)
