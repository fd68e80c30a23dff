import time
from typing import Generator

import pytest
from fastapi.testclient import TestClient
from passlib.context import CryptContext

from sweetshop.auth import PasswordHasher, TokenService
from sweetshop.config import Settings
from sweetshop.db import init_db, make_engine, make_sessionmaker
from sweetshop.main import create_app

TEST_SECRET = "test-secret-0123456789abcdef0123456789abcdef"


class FakeClock:
    """Callable clock the token service reads; tests move it forward."""

    def __init__(self, start: float | None = None):
        self.now = start if start is not None else time.time()

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def hasher() -> PasswordHasher:
    # Few rounds keep the suite fast; the scheme is the production one
    return PasswordHasher(CryptContext(schemes=["pbkdf2_sha256"], pbkdf2_sha256__rounds=1000))


@pytest.fixture
def token_secret() -> str:
    return TEST_SECRET


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def token_service(clock) -> TokenService:
    return TokenService(TEST_SECRET, ttl_seconds=60 * 60 * 24, clock=clock)


@pytest.fixture
def settings() -> Settings:
    return Settings(database_url="sqlite://", jwt_secret=TEST_SECRET, log_level="WARNING")


@pytest.fixture
def app(settings, token_service, hasher):
    return create_app(settings, token_service=token_service, hasher=hasher)


@pytest.fixture
def client(app) -> Generator:
    with TestClient(app) as c:
        yield c


@pytest.fixture
def db_session(app) -> Generator:
    # Same in-memory database the app's routes use
    db = app.state.SessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture
def file_sessionmaker(tmp_path):
    # Thread-concurrency tests need real separate connections, so a file DB
    engine = make_engine(f"sqlite:///{tmp_path / 'shop.db'}", timeout=30)
    init_db(engine)
    try:
        yield make_sessionmaker(engine)
    finally:
        engine.dispose()


@pytest.fixture
def register_and_login(client):
    """Register an account and return auth headers for it."""

    def _register_and_login(email: str, password: str = "password123", role: str = "customer") -> dict:
        r = client.post("/api/auth/register", json={"email": email, "password": password, "role": role})
        assert r.status_code == 201, r.text
        r = client.post("/api/auth/login", json={"email": email, "password": password})
        assert r.status_code == 200, r.text
        return {"Authorization": f"Bearer {r.json()['token']}"}

    return _register_and_login


@pytest.fixture
def admin_headers(register_and_login) -> dict:
    return register_and_login("admin@example.com", "adminpass", role="admin")


@pytest.fixture
def customer_headers(register_and_login) -> dict:
    return register_and_login("customer@example.com", "custpass", role="customer")
