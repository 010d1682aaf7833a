"""
Shared fixtures for adversarial tests.

Every backend-dependent test runs against the in-memory repositories and,
when a database is reachable, against PostgreSQL as well.
"""

from collections.abc import Generator

import pytest
from psycopg_pool import ConnectionPool, PoolTimeout

from src.adapters.auth.allowlist import AllowlistAccessPolicy
from src.adapters.repository.memory import (
    MemoryDatabase,
    MemoryOutboxRepository,
    MemoryReviewRepository,
)
from src.adapters.repository.postgres import (
    PostgresOutboxRepository,
    PostgresReviewRepository,
    run_migrations,
)
from src.config.settings import get_settings
from src.domain.review import ReviewService
from src.domain.tokens import TokenStore
from tests.support import PAYMENT_ADMIN, PROFILE_ADMIN, SUPER_ADMIN, TCC_ADMIN, Backend


@pytest.fixture(scope="module")
def pool() -> Generator[ConnectionPool, None, None]:
    """Create connection pool for adversarial tests, skipping if the database is down."""
    settings = get_settings()
    pool = ConnectionPool(conninfo=settings.database_url, min_size=1, max_size=10, open=False)
    try:
        pool.open(wait=True, timeout=5)
    except PoolTimeout:
        pool.close()
        pytest.skip("PostgreSQL is not reachable")
    run_migrations(pool)
    yield pool
    pool.close()


@pytest.fixture(params=["memory", "postgres"])
def backend(request: pytest.FixtureRequest) -> Backend:
    if request.param == "memory":
        db = MemoryDatabase()
        return Backend("memory", MemoryReviewRepository(db), MemoryOutboxRepository(db))

    pool = request.getfixturevalue("pool")
    with pool.connection() as conn:
        conn.execute("TRUNCATE email_outbox, deep_link_tokens, registrations")
        conn.commit()
    return Backend("postgres", PostgresReviewRepository(pool), PostgresOutboxRepository(pool))


@pytest.fixture
def service(backend: Backend) -> ReviewService:
    return ReviewService(
        repository=backend.reviews,
        tokens=TokenStore(repository=backend.reviews),
        access=AllowlistAccessPolicy(
            super_admins=SUPER_ADMIN,
            payment_admins=PAYMENT_ADMIN,
            profile_admins=PROFILE_ADMIN,
            tcc_admins=TCC_ADMIN,
        ),
        base_url="https://review.example.com",
    )
