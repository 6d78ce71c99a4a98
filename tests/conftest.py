"""
Shared pytest fixtures for all test modules.

Uses an in-memory SQLite database (StaticPool) so every test
function gets a clean, isolated database, a manual clock so lifecycle
timing is driven by the test, and a fake settlement feed so nothing
touches the network.
"""
import pytest
from datetime import datetime, timedelta
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from typing import Optional

from app.config import Settings
from app.database import Base, get_db
from app.dependencies import get_payment_service
from app.feeds.base import SettlementFeed
from app.errors import CollisionFeedError
from app.services.notifier import TelegramNotifier
from app.services.payload import crc16_ccitt
from app.services.payment import build_payment_service
from app import models


# ---------------------------------------------------------------------------
# In-memory database engine shared across all fixtures in a test session.
# StaticPool forces all SQLAlchemy connections to reuse the same underlying
# sqlite3 connection, which is required for in-memory SQLite.
# ---------------------------------------------------------------------------
TEST_ENGINE = create_engine(
    "sqlite:///:memory:",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSession = sessionmaker(autocommit=False, autoflush=False, bind=TEST_ENGINE)

BASE_TIME = datetime(2024, 1, 15, 10, 0, 0)

# Static merchant payload: tags 00, 01 (static), 26, 52, 53, 58, 59, 60, 61, 63
STATIC_BODY = (
    "000201"
    "010211"
    "26180014ID.CO.QRIS.WWW"
    "52045499"
    "5303360"
    "5802ID"
    "5909TOKO KITA"
    "6007JAKARTA"
    "610512345"
    "6304"
)
STATIC_PAYLOAD = STATIC_BODY + crc16_ccitt(STATIC_BODY)


class ManualClock:
    """Naive-UTC clock that only moves when the test says so."""

    def __init__(self, start: datetime = BASE_TIME):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


class FakeFeed(SettlementFeed):
    def __init__(self, records=None, error: Optional[Exception] = None):
        self.records = list(records or [])
        self.error = error
        self.calls = 0

    @property
    def feed_name(self) -> str:
        return "fake"

    async def fetch_recent_credits(self):
        self.calls += 1
        if self.error is not None:
            raise self.error
        return list(self.records)

    def add_credit(self, amount, qris="static", type_="CR"):
        self.records.append({"type": type_, "qris": qris, "amount": str(amount)})


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
def session_factory():
    return TestingSession


@pytest.fixture
def clock():
    return ManualClock()


@pytest.fixture
def feed():
    return FakeFeed()


@pytest.fixture
def unreachable_feed():
    return FakeFeed(error=CollisionFeedError("OrderKuota: ConnectTimeout"))


def make_settings(**overrides) -> Settings:
    values = {
        "qris_static_payload": STATIC_PAYLOAD,
        "orderkuota_merchant_id": "OK123",
        "orderkuota_api_key": "secret",
        "telegram_token": None,
        "owner_id": None,
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


@pytest.fixture
def settings():
    return make_settings()


@pytest.fixture
def service(settings, clock, feed):
    return build_payment_service(
        settings,
        TestingSession,
        clock=clock,
        feed_factory=lambda: feed,
        notifier=TelegramNotifier(None, None),
    )


@pytest.fixture
def client(db, service):
    """
    FastAPI TestClient with the DB and service dependencies overridden.
    The TestClient is NOT used as a context manager so the lifespan hook
    (background sweep tasks) is skipped; tests drive the lifecycle through
    the manual clock instead.
    """
    from app.main import app

    async def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_payment_service] = lambda: service
    yield TestClient(app)
    app.dependency_overrides.clear()


# ---------------------------------------------------------------------------
# Helper (not a fixture) so any test file can import and call it directly.
# ---------------------------------------------------------------------------
def make_txn(
    db,
    txn_id: str,
    final_amount: int = 10000,
    requested_amount: Optional[int] = None,
    status: str = models.STATUS_PENDING,
    created_at: Optional[datetime] = None,
    ttl: timedelta = timedelta(minutes=5),
    payload: Optional[str] = "PAYLOAD",
) -> models.Transaction:
    if created_at is None:
        created_at = BASE_TIME
    if requested_amount is None:
        requested_amount = final_amount
    txn = models.Transaction(
        id=txn_id,
        requested_amount=requested_amount,
        final_amount=final_amount,
        adjustment=final_amount - requested_amount,
        was_adjusted=final_amount != requested_amount,
        payload=payload,
        status=status,
        created_at=created_at,
        expires_at=created_at + ttl,
    )
    db.add(txn)
    db.commit()
    db.refresh(txn)
    return txn
