"""
Test fixtures for consultancy-directory tests.

Provides database/backend fixtures, a fresh circuit breaker per test, and
JWT helpers for admin endpoints.
"""

import pytest
from datetime import datetime, timedelta, timezone
from typing import Generator, List
import jwt
from sqlmodel import Session, SQLModel, create_engine
from sqlalchemy.pool import StaticPool

from app.core.config import settings
from app.core.circuit_breaker import set_circuit_breaker
from app.models.agency import Agency, AgencyStatus
from app.models.review import Review, ReviewStatus
from app.services.backend import SQLModelBackend
from app.services.bulk_upload import upload_jobs


TEST_JWT_SECRET = "test-secret-key-that-is-long-enough-for-hs256"

# Use in-memory SQLite for unit tests (fast, isolated)
TEST_DATABASE_URL = "sqlite:///:memory:"


def pytest_collection_modifyitems(config, items):
    """Skip integration tests in CI (they need a real hosted backend)."""
    import os

    if os.environ.get("CI") == "true":
        skip_integration = pytest.mark.skip(reason="Integration tests skipped in CI (no backend)")
        for item in items:
            if "integration" in item.keywords:
                item.add_marker(skip_integration)


@pytest.fixture(autouse=True)
def reset_shared_state(monkeypatch):
    """Fresh process-wide circuit breaker, empty job table and a known JWT secret for every test."""
    set_circuit_breaker(None)
    upload_jobs.clear()
    monkeypatch.setattr(settings, "SUPABASE_JWT_SECRET", TEST_JWT_SECRET)
    yield
    set_circuit_breaker(None)
    upload_jobs.clear()


@pytest.fixture(scope="function")
def test_engine():
    """Create a test database engine with in-memory SQLite."""
    engine = create_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    yield engine
    SQLModel.metadata.drop_all(engine)


@pytest.fixture(scope="function")
def test_session(test_engine) -> Generator[Session, None, None]:
    """Provide a test database session."""
    with Session(test_engine) as session:
        yield session


@pytest.fixture
def backend(test_engine) -> SQLModelBackend:
    return SQLModelBackend(test_engine)


@pytest.fixture
def sample_agencies(test_session: Session) -> List[Agency]:
    """A mix of approved, pending and rejected agencies."""
    now = datetime.now(timezone.utc)
    agencies = [
        Agency(
            id="a1",
            name="Global Pathways",
            location="Pune",
            description="UK and Ireland admissions",
            contact_email="info@globalpathways.in",
            trust_score=92,
            price=1500,
            status=AgencyStatus.APPROVED.value,
            is_verified=True,
            created_at=now - timedelta(days=3),
        ),
        Agency(
            id="a2",
            name="Beacon Overseas",
            location="Mumbai",
            description="Canada visa and university counselling",
            contact_email="hello@beacon.in",
            trust_score=75,
            price=3000,
            status=AgencyStatus.APPROVED.value,
            created_at=now - timedelta(days=2),
        ),
        Agency(
            id="a3",
            name="4 Corners Education",
            location="Pune",
            description="Australia specialists",
            contact_email="team@4corners.in",
            trust_score=60,
            price=500,
            status=AgencyStatus.APPROVED.value,
            created_at=now - timedelta(days=1),
        ),
        Agency(
            id="a4",
            name="Awaiting Review Ltd",
            location="Delhi",
            description="New agency",
            contact_email="new@review.in",
            status=AgencyStatus.PENDING.value,
            created_at=now,
        ),
        Agency(
            id="a5",
            name="Rejected Co",
            location="Pune",
            description="Did not pass checks",
            contact_email="no@rejected.in",
            status=AgencyStatus.REJECTED.value,
            created_at=now,
        ),
    ]
    for agency in agencies:
        test_session.add(agency)
    test_session.commit()
    return agencies


@pytest.fixture
def sample_reviews(test_session: Session, sample_agencies) -> List[Review]:
    """Reviews of a1 in every status; two approved ones average 4.5."""
    now = datetime.now(timezone.utc)
    reviews = [
        Review(id="r1", agency_id="a1", user_id="user-2", rating=5, content="Got my UK visa",
               status=ReviewStatus.APPROVED.value, created_at=now - timedelta(days=2)),
        Review(id="r2", agency_id="a1", user_id="user-1", rating=4, content="Helpful counsellors",
               status=ReviewStatus.APPROVED.value, created_at=now - timedelta(days=1)),
        Review(id="r3", agency_id="a1", user_id="user-3", rating=1, content="Awaiting moderation",
               status=ReviewStatus.PENDING.value, created_at=now),
        Review(id="r4", agency_id="a1", user_id="user-4", rating=1, content="Spam",
               status=ReviewStatus.REJECTED.value, created_at=now),
    ]
    for review in reviews:
        test_session.add(review)
    test_session.commit()
    return reviews


def make_token(user_id: str = "user-1", role: str = "user", email: str = "user@example.com", **overrides) -> str:
    """Sign a JWT shaped like the auth provider's access tokens."""
    payload = {
        "sub": user_id,
        "email": email,
        "aud": "authenticated",
        "role": "authenticated",
        "app_metadata": {"role": role},
        "exp": datetime.now(timezone.utc) + timedelta(hours=1),
        **overrides,
    }
    return jwt.encode(payload, TEST_JWT_SECRET, algorithm="HS256")


@pytest.fixture
def admin_headers() -> dict:
    return {"Authorization": f"Bearer {make_token(user_id='admin-1', role='super_admin', email='admin@example.com')}"}


@pytest.fixture
def user_headers() -> dict:
    return {"Authorization": f"Bearer {make_token()}"}


@pytest.fixture
def token_factory():
    """make_token, for tests that need custom claims."""
    return make_token
