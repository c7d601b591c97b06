"""Pytest fixtures for testing"""

import pytest
from datetime import date
from decimal import Decimal
from typing import Generator
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from ledger_engine.infrastructure.database.models import Base
from ledger_engine.schemas import FinancingCreate, FixedAccountCreate


# Test database
TEST_DATABASE_URL = "sqlite:///./test.db"
engine = create_engine(TEST_DATABASE_URL, connect_args={"check_same_thread": False})
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def session_factory() -> Generator[sessionmaker, None, None]:
    """Fresh schema per test; yields the session factory bound to it"""
    Base.metadata.create_all(bind=engine)
    try:
        yield TestingSessionLocal
    finally:
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db(session_factory: sessionmaker) -> Generator[Session, None, None]:
    """Create test database and session"""
    db = session_factory()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture
def financing_data() -> FinancingCreate:
    """1000.00 over 3 installments, 30 days apart"""
    return FinancingCreate(
        user_id="user_1",
        principal=Decimal("1000.00"),
        installment_count=3,
        start_date=date(2024, 1, 1),
        description="Notebook",
    )


@pytest.fixture
def fixed_account_data() -> FixedAccountCreate:
    """Monthly rent starting on the 31st"""
    return FixedAccountCreate(
        user_id="user_1",
        description="Rent",
        amount=Decimal("1500.00"),
        periodicity="monthly",
        type="expense",
        start_date=date(2024, 1, 31),
        reminder_days=3,
    )
