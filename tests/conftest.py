"""
Shared test fixtures and configuration.

This module provides pytest fixtures for:
- In-memory repositories and a controllable clock
- Domain services wired to them
- A recording email provider
- Test client setup with admin credentials
"""

from collections.abc import Generator
from unittest.mock import Mock

import pytest
from fastapi.testclient import TestClient

from src.adapters.auth.allowlist import AllowlistAccessPolicy
from src.adapters.auth.credentials import hash_password
from src.adapters.repository.memory import (
    MemoryDatabase,
    MemoryOutboxRepository,
    MemoryReviewRepository,
)
from src.api.main import app
from src.config.settings import get_settings
from src.domain.dispatcher import Dispatcher
from src.domain.review import ReviewService
from src.domain.tokens import TokenStore
from tests.support import (
    ADMIN_PASSWORD,
    CRON_SECRET,
    PAYMENT_ADMIN,
    PROFILE_ADMIN,
    SUPER_ADMIN,
    TCC_ADMIN,
    FrozenClock,
    RecordingProvider,
)


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock()


@pytest.fixture
def db() -> MemoryDatabase:
    return MemoryDatabase()


@pytest.fixture
def review_repository(db: MemoryDatabase) -> MemoryReviewRepository:
    return MemoryReviewRepository(db)


@pytest.fixture
def outbox_repository(db: MemoryDatabase) -> MemoryOutboxRepository:
    return MemoryOutboxRepository(db)


@pytest.fixture
def access_policy() -> AllowlistAccessPolicy:
    return AllowlistAccessPolicy(
        super_admins=SUPER_ADMIN,
        payment_admins=PAYMENT_ADMIN,
        profile_admins=PROFILE_ADMIN,
        tcc_admins=TCC_ADMIN,
    )


@pytest.fixture
def token_store(review_repository: MemoryReviewRepository, clock: FrozenClock) -> TokenStore:
    return TokenStore(repository=review_repository, ttl_seconds=3600, clock=clock)


@pytest.fixture
def review_service(
    review_repository: MemoryReviewRepository,
    token_store: TokenStore,
    access_policy: AllowlistAccessPolicy,
    clock: FrozenClock,
) -> ReviewService:
    return ReviewService(
        repository=review_repository,
        tokens=token_store,
        access=access_policy,
        base_url="https://review.example.com",
        clock=clock,
    )


@pytest.fixture
def provider() -> RecordingProvider:
    return RecordingProvider()


@pytest.fixture
def sleep() -> Mock:
    return Mock()


@pytest.fixture
def dispatcher(
    outbox_repository: MemoryOutboxRepository,
    provider: RecordingProvider,
    sleep: Mock,
    clock: FrozenClock,
) -> Dispatcher:
    return Dispatcher(outbox=outbox_repository, provider=provider, sleep=sleep, clock=clock)


@pytest.fixture(scope="session")
def admin_password_hash() -> str:
    """bcrypt hash of ADMIN_PASSWORD at the minimum cost to keep tests fast."""
    return hash_password(ADMIN_PASSWORD, rounds=4)


@pytest.fixture
def app_env(monkeypatch: pytest.MonkeyPatch, admin_password_hash: str) -> Generator[None, None, None]:
    """Environment for running the real app on the in-memory backend."""
    credentials = ",".join(
        f'"{email}": "{admin_password_hash}"'
        for email in (SUPER_ADMIN, PAYMENT_ADMIN, PROFILE_ADMIN, TCC_ADMIN)
    )
    monkeypatch.setenv("STORAGE_BACKEND", "memory")
    monkeypatch.setenv("RESEND_API_KEY", "")
    monkeypatch.setenv("APP_BASE_URL", "https://review.example.com")
    monkeypatch.setenv("EMAIL_MODE", "FULL")
    monkeypatch.setenv("EMAIL_THROTTLE_MS", "0")
    monkeypatch.setenv("CRON_SECRET", CRON_SECRET)
    monkeypatch.setenv("ADMIN_SUPER_EMAILS", SUPER_ADMIN)
    monkeypatch.setenv("ADMIN_PAYMENT_EMAILS", PAYMENT_ADMIN)
    monkeypatch.setenv("ADMIN_PROFILE_EMAILS", PROFILE_ADMIN)
    monkeypatch.setenv("ADMIN_TCC_EMAILS", TCC_ADMIN)
    monkeypatch.setenv("ADMIN_CREDENTIALS", "{" + credentials + "}")
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def app_client(app_env: None) -> Generator[TestClient, None, None]:
    """Test client for the real application (lifespan runs on enter)."""
    with TestClient(app) as client:
        yield client
