"""Repository adapters - Database and in-memory implementations."""

from .memory import MemoryDatabase, MemoryOutboxRepository, MemoryReviewRepository
from .postgres import PostgresOutboxRepository, PostgresReviewRepository, run_migrations

__all__ = [
    "MemoryDatabase",
    "MemoryOutboxRepository",
    "MemoryReviewRepository",
    "PostgresOutboxRepository",
    "PostgresReviewRepository",
    "run_migrations",
]
