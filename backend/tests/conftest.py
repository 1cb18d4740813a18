"""Pytest configuration and fixtures"""
import os
from datetime import datetime, timedelta
from typing import Callable, Generator, List, Optional

# Settings are read at import time
os.environ.setdefault("DATABASE_URL", "sqlite:///./test.db")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from app.api.deps import get_clock
from app.database import Base, get_db
from app.main import app
from app.models.admin_user import AdminUser
from app.services.runtime_policy import PolicyConfig, RuntimePolicyStore
from app.services.users import create_admin_user, enroll_two_factor
from app.config import settings

# Use a SQLite file so threads can open their own connections
TEST_DATABASE_URL = "sqlite:///./test.db"

engine = create_engine(TEST_DATABASE_URL, connect_args={"check_same_thread": False})
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

PASSWORD = "correct-horse-battery-staple"


class FakeClock:
    """Injectable wall clock; starts at the real time so JWT expiry still holds"""

    def __init__(self, start: Optional[datetime] = None):
        self.now = start or datetime.utcnow()

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture(scope="function")
def db() -> Generator[Session, None, None]:
    """Create a fresh database for each test"""
    Base.metadata.create_all(bind=engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def session_factory(db: Session) -> sessionmaker:
    """Factory for extra sessions on the test database (one per thread)"""
    return TestingSessionLocal


@pytest.fixture
def password() -> str:
    """Password every account made by ``make_user`` logs in with"""
    return PASSWORD


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def policy_store() -> Generator[RuntimePolicyStore, None, None]:
    """Fresh runtime policy per test: dual approval on, break-glass off, min reason 12"""
    store = RuntimePolicyStore(
        PolicyConfig(
            dual_approval_required=True,
            break_glass_enabled=False,
            break_glass_min_reason_length=12,
        )
    )
    previous = app.state.runtime_policy
    app.state.runtime_policy = store
    yield store
    app.state.runtime_policy = previous


@pytest.fixture(scope="function")
def client(db: Session, clock: FakeClock, policy_store: RuntimePolicyStore) -> Generator[TestClient, None, None]:
    """Anonymous test client with database session and clock overrides"""

    def override_get_db():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_clock] = lambda: clock
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def make_user(db: Session) -> Callable[..., AdminUser]:
    """Create an active admin account; ``two_factor=True`` enrolls TOTP and backup codes.

    The enrollment (secret + plain backup codes) is kept on ``user.enrollment``.
    """
    counter = {"n": 0}

    def _make_user(role: str = "admin", email: Optional[str] = None, two_factor: bool = False) -> AdminUser:
        counter["n"] += 1
        email = email or f"{role}{counter['n']}@exams.example"
        user = create_admin_user(db, email=email, name=f"{role.title()} {counter['n']}", role=role, password=PASSWORD)
        enrollment = enroll_two_factor(db, user) if two_factor else None
        db.commit()
        user.enrollment = enrollment
        return user

    return _make_user


@pytest.fixture
def login(client: TestClient) -> Generator[Callable[..., TestClient], None, None]:
    """Log a user in through POST /auth/login on a client of their own.

    Each admin needs a separate cookie jar. The returned client sends the
    CSRF header on every request.
    """
    clients: List[TestClient] = []

    def _login(user: AdminUser, code: Optional[str] = None, user_agent: str = "Mozilla/5.0 (Windows NT 10.0) Chrome/120.0") -> TestClient:
        session_client = TestClient(app)
        clients.append(session_client)
        body = {"email": user.email, "password": PASSWORD}
        if code:
            body["code"] = code
        response = session_client.post("/auth/login", json=body, headers={"User-Agent": user_agent})
        assert response.status_code == 200, response.text
        data = response.json()["data"]
        session_client.headers[settings.CSRF_HEADER_NAME] = data["csrfToken"]
        session_client.session_id = data["sessionId"]
        return session_client

    yield _login

    for session_client in clients:
        session_client.close()


@pytest.fixture
def step_up() -> Callable[..., str]:
    """Issue a step-up token for a logged-in client"""

    def _step_up(session_client: TestClient, user: AdminUser, code: Optional[str] = None) -> str:
        body = {"email": user.email, "password": PASSWORD}
        if code:
            body["code"] = code
        response = session_client.post("/auth/admin/step-up", json=body)
        assert response.status_code == 200, response.text
        return response.json()["data"]["token"]

    return _step_up


@pytest.fixture
def sample_announcement() -> dict:
    """Sample announcement payload for tests"""
    return {
        "title": "SSC CGL 2026 Tier-I admit cards released",
        "type": "admit_card",
        "category": "central",
        "organization": "Staff Selection Commission",
        "content": "Admit cards for Tier-I are available on the regional portals.",
        "external_link": "https://ssc.example/admit-card",
    }
