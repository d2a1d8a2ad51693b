"""
Shared fixtures: in-memory database, users and price table.
"""
import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.db.base import Base
import app.db.models  # noqa: F401
from app.db.models.user import User
from app.core.plan_limits import build_price_table
from tests.helpers import PRICE_BASIC, PRICE_ELITE, PRICE_PREMIUM


# Setup in-memory SQLite database for testing
TEST_DATABASE_URL = "sqlite:///:memory:"
test_engine = create_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=test_engine)


@pytest.fixture(scope="function")
def db():
    """Create a fresh database for each test."""
    Base.metadata.create_all(bind=test_engine)
    db = TestSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=test_engine)


@pytest.fixture
def price_table():
    return build_price_table(basic=PRICE_BASIC, premium=PRICE_PREMIUM, elite=PRICE_ELITE)


@pytest.fixture
def make_user(db):
    """Create a user, optionally linked to a Stripe customer."""
    def _make_user(email="u1@example.com", customer_id="cus_U1"):
        user = User(full_name="Test User", email=email, stripe_customer_id=customer_id)
        db.add(user)
        db.commit()
        db.refresh(user)
        return user
    return _make_user


@pytest.fixture
def linked_user(make_user):
    """User U1 linked to Stripe customer cus_U1."""
    return make_user()
