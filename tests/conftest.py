import os

os.environ["ENCODE_KEY"] = "test-encode-key-with-enough-length-for-hs256"
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["REDIS_HOST"] = ""
os.environ["AUTH_DOMAIN"] = "readia.test"
os.environ["AUTH_URI"] = "https://readia.test"
os.environ["APP_NAME"] = "Readia.io"

from typing import Generator

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from main import app
from app.client.wallet import EvmAccountSigner, SolanaKeypairSigner
from app.core.dependencies import build_auth_services, get_auth_services
from app.db.base import Base
from app.db.session import get_db
from app.services.nonce_store import MemoryNonceStore
from app.services.rate_limiter import RateLimiter
from app.services.session_store import MemorySessionStore


# Create in-memory SQLite database for testing
SQLALCHEMY_DATABASE_URL = "sqlite:///:memory:"
engine = create_engine(
    SQLALCHEMY_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base.metadata.create_all(bind=engine)


def override_get_db() -> Generator:
    """Override database dependency for testing"""
    try:
        db = TestingSessionLocal()
        yield db
    finally:
        db.close()


@pytest.fixture
def db_session():
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture(autouse=True)
def clean_tables():
    yield
    with engine.begin() as conn:
        for table in reversed(Base.metadata.sorted_tables):
            conn.execute(table.delete())


@pytest.fixture
def auth_services():
    """Fresh in-memory stores per test, with a limiter loose enough not to interfere"""
    return build_auth_services(
        nonce_store=MemoryNonceStore(),
        session_store=MemorySessionStore(),
        rate_limiter=RateLimiter(max_per_minute=600.0, burst=100),
    )


@pytest.fixture
def client(auth_services) -> TestClient:
    """Create a test client for the FastAPI application"""
    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_auth_services] = lambda: auth_services
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def evm_signer() -> EvmAccountSigner:
    return EvmAccountSigner.generate()


@pytest.fixture
def solana_signer() -> SolanaKeypairSigner:
    return SolanaKeypairSigner.generate()
