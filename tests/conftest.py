import os
import tempfile

# must be set before config is imported anywhere
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["FILE_UPLOAD_PATH"] = tempfile.mkdtemp(prefix="loan-uploads-")
os.environ["NOTIFY_DRY_RUN"] = "true"

from datetime import date
from unittest.mock import Mock

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from api.app import create_app
from core.models import Customer, Loan, LoanStatus, recompute_emi
from db.database import Base, get_db
import db.models  # noqa: F401


@pytest.fixture
def db_engine():
    # one shared in-memory database per test
    engine = create_engine(
        "sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool
    )
    Base.metadata.create_all(bind=engine)
    try:
        yield engine
    finally:
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture
def db_session(db_engine):
    session = sessionmaker(autocommit=False, autoflush=False, bind=db_engine)()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def publisher():
    return Mock()


@pytest.fixture
def client(db_engine, publisher):
    app = create_app(publisher=publisher)
    TestingSession = sessionmaker(autocommit=False, autoflush=False, bind=db_engine)

    def override_get_db():
        db = TestingSession()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    return TestClient(app)


@pytest.fixture
def make_customer():
    def _make(**overrides):
        data = {
            "id": "cust-1",
            "name": "Nimal Perera",
            "nic": "901234567V",
            "dob": date(1990, 5, 17),
            "address": "12 Lake Road, Kandy",
            "phone": "+94771234567",
            "email": "nimal@example.com",
            "marital_status": "married",
            "occupation": "Shop owner",
            "income": 100000,
        }
        data.update(overrides)
        return Customer.model_validate(data)
    return _make


@pytest.fixture
def make_loan():
    """
    Defaults: 100000 at 2% per month over 12 months, so the EMI is
    round(124000 / 12) = 10333.
    """
    def _make(**overrides):
        data = {
            "id": "L001",
            "customer_id": "cust-1",
            "type": "personal",
            "requested_amount": 100000,
            "interest_rate": 2,
            "period": 12,
            "period_unit": "months",
            "purpose": "Shop renovation",
            "status": LoanStatus.PENDING,
        }
        data.update(overrides)
        return recompute_emi(Loan.model_validate(data))
    return _make


@pytest.fixture
def customer_payload():
    return {
        "name": "Nimal Perera",
        "nic": "901234567V",
        "dob": "1990-05-17",
        "address": "12 Lake Road, Kandy",
        "phone": "+94771234567",
        "email": "nimal@example.com",
        "marital_status": "married",
        "occupation": "Shop owner",
        "income": 100000,
    }


@pytest.fixture
def loan_payload():
    return {
        "type": "personal",
        "requested_amount": 100000,
        "interest_rate": 2,
        "period": 12,
        "period_unit": "months",
        "purpose": "Shop renovation",
    }
