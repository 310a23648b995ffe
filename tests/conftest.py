"""Pytest fixtures for testing"""

import os

os.environ.setdefault("DATABASE_URL", "sqlite:///./test_payouts.db")
os.environ.setdefault("WEBHOOK_ENABLED", "false")

import pytest
from datetime import datetime, timezone
from typing import Callable, Generator
from zoneinfo import ZoneInfo
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from payout_gateway.api.main import create_app
from payout_gateway.api.dependencies import get_now
from payout_gateway.infrastructure.database.models import Base, BankAccount, PaymentRecord, WorkContract
from payout_gateway.infrastructure.database.session import get_db


# Test database
TEST_DATABASE_URL = "sqlite:///./test_payouts.db"
engine = create_engine(TEST_DATABASE_URL, connect_args={"check_same_thread": False})
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

TOKYO = ZoneInfo("Asia/Tokyo")


def utc(*args) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


@pytest.fixture
def tz() -> ZoneInfo:
    return TOKYO


@pytest.fixture
def db() -> Generator[Session, None, None]:
    """Create test database and session"""
    Base.metadata.create_all(bind=engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def now() -> datetime:
    """Feb 20 2024, 12:00 in Tokyo: January work is due, February is not"""
    return utc(2024, 2, 20, 3, 0)


@pytest.fixture
def client(db: Session, now: datetime) -> TestClient:
    """Create FastAPI test client with test database and a fixed clock"""
    app = create_app()

    def override_get_db():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_now] = lambda: now
    return TestClient(app)


@pytest.fixture
def add_contract(db: Session) -> Callable[..., WorkContract]:
    """Insert a completed contract"""

    def _add(
        contract_id: str,
        creator_id: str,
        final_price: int,
        completed_at: datetime | None,
        status: str = "completed",
        title: str = "Commission",
    ) -> WorkContract:
        contract = WorkContract(
            id=contract_id,
            title=title,
            creator_id=creator_id,
            requester_id="requester_1",
            final_price=final_price,
            status=status,
            completed_at=completed_at,
        )
        db.add(contract)
        db.commit()
        return contract

    return _add


@pytest.fixture
def add_bank_account(db: Session) -> Callable[[str], BankAccount]:
    """Register a payout account for a creator"""

    def _add(creator_id: str) -> BankAccount:
        account = BankAccount(
            creator_id=creator_id,
            bank_name="Mizuho",
            branch_name="Shibuya",
            account_type="ordinary",
            account_number="1234567",
            account_holder_name="CREATOR",
        )
        db.add(account)
        db.commit()
        return account

    return _add


@pytest.fixture
def add_payment(db: Session) -> Callable[..., PaymentRecord]:
    """Insert a ledger row directly"""

    def _add(contract_id: str, creator_id: str, completed_month: str, **values) -> PaymentRecord:
        record = PaymentRecord(
            contract_id=contract_id,
            creator_id=creator_id,
            completed_month=completed_month,
            **values,
        )
        db.add(record)
        db.commit()
        return record

    return _add
