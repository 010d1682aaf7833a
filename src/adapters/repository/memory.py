"""
In-memory repository adapter - Implements ReviewRepository and OutboxRepository.

Thread-safe process-local storage used for development and tests. A single
re-entrant lock serializes transactions; a transaction that raises restores
the snapshot taken when it started, so partial writes are never visible.
"""

import copy
import threading
import uuid
from collections.abc import Generator, Iterable
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from src.domain.models import (
    OutboxEntry,
    OutboxStatus,
    Registration,
    UpdateToken,
)


@dataclass
class MemoryDatabase:
    """Shared state for the in-memory repositories."""

    registrations: dict[str, Registration] = field(default_factory=dict)
    tokens: dict[str, UpdateToken] = field(default_factory=dict)
    outbox: dict[str, OutboxEntry] = field(default_factory=dict)
    outbox_order: dict[str, int] = field(default_factory=dict)
    lock: threading.RLock = field(default_factory=threading.RLock)

    def snapshot(self) -> tuple[dict, dict, dict, dict]:
        return (
            copy.deepcopy(self.registrations),
            copy.deepcopy(self.tokens),
            copy.deepcopy(self.outbox),
            dict(self.outbox_order),
        )

    def restore(self, snapshot: tuple[dict, dict, dict, dict]) -> None:
        self.registrations, self.tokens, self.outbox, self.outbox_order = snapshot


class _MemoryTransaction:
    """ReviewTransaction over a locked MemoryDatabase."""

    def __init__(self, db: MemoryDatabase) -> None:
        self._db = db

    def get_registration(self, registration_id: str) -> Registration | None:
        registration = self._db.registrations.get(registration_id)
        return copy.deepcopy(registration) if registration else None

    def insert_registration(self, registration: Registration) -> None:
        self._db.registrations[registration.id] = copy.deepcopy(registration)

    def save_registration(self, registration: Registration) -> None:
        self._db.registrations[registration.id] = copy.deepcopy(registration)

    def insert_token(self, token: UpdateToken) -> None:
        self._db.tokens[token.token_hash] = copy.deepcopy(token)

    def find_token(self, token_hash: str) -> UpdateToken | None:
        token = self._db.tokens.get(token_hash)
        return copy.deepcopy(token) if token else None

    def consume_token(self, token_hash: str, now: datetime) -> UpdateToken | None:
        token = self._db.tokens.get(token_hash)
        if token is None or token.used or now >= token.expires_at:
            return None
        token.used = True
        token.used_at = now
        return copy.deepcopy(token)

    def enqueue_email(
        self, template: str, to_email: str, payload: dict[str, Any], now: datetime
    ) -> str:
        entry_id = str(uuid.uuid4())
        self._db.outbox[entry_id] = OutboxEntry(
            id=entry_id,
            template=template,
            to_email=to_email,
            payload=copy.deepcopy(payload),
            status=OutboxStatus.PENDING,
            created_at=now,
            updated_at=now,
        )
        self._db.outbox_order[entry_id] = len(self._db.outbox_order)
        return entry_id


class MemoryReviewRepository:
    """
    Implements ReviewRepository protocol in memory.

    Uses structural subtyping - no explicit inheritance from Protocol.
    """

    def __init__(self, db: MemoryDatabase) -> None:
        self._db = db

    @contextmanager
    def transaction(self) -> Generator[_MemoryTransaction, None, None]:
        with self._db.lock:
            snapshot = self._db.snapshot()
            try:
                yield _MemoryTransaction(self._db)
            except BaseException:
                self._db.restore(snapshot)
                raise

    def get_registration(self, registration_id: str) -> Registration | None:
        with self._db.lock:
            registration = self._db.registrations.get(registration_id)
            return copy.deepcopy(registration) if registration else None

    def find_token(self, token_hash: str) -> UpdateToken | None:
        with self._db.lock:
            token = self._db.tokens.get(token_hash)
            return copy.deepcopy(token) if token else None


class MemoryOutboxRepository:
    """
    Implements OutboxRepository protocol in memory.

    Status transitions are conditional on the expected prior status and
    performed under the database lock.
    """

    def __init__(self, db: MemoryDatabase) -> None:
        self._db = db

    def list_pending(self, limit: int | None = None) -> list[OutboxEntry]:
        with self._db.lock:
            pending = [e for e in self._db.outbox.values() if e.status == OutboxStatus.PENDING]
            order = self._db.outbox_order
            pending.sort(key=lambda e: (e.created_at, order.get(e.id, 0)))
            if limit is not None:
                pending = pending[:limit]
            return [copy.deepcopy(e) for e in pending]

    def count_pending(self) -> int:
        with self._db.lock:
            return sum(1 for e in self._db.outbox.values() if e.status == OutboxStatus.PENDING)

    def claim(self, entry_id: str, now: datetime) -> bool:
        with self._db.lock:
            entry = self._db.outbox.get(entry_id)
            if entry is None or entry.status != OutboxStatus.PENDING:
                return False
            entry.status = OutboxStatus.IN_PROGRESS
            entry.attempts += 1
            entry.updated_at = now
            return True

    def complete(
        self,
        entry_id: str,
        status: OutboxStatus,
        now: datetime,
        error: str | None = None,
    ) -> None:
        with self._db.lock:
            if self._transition(entry_id, OutboxStatus.IN_PROGRESS, status, now):
                entry = self._db.outbox[entry_id]
                entry.last_error = error
                if status == OutboxStatus.SENT:
                    entry.sent_at = now

    def block(self, entry_id: str, now: datetime) -> bool:
        return self._transition(entry_id, OutboxStatus.PENDING, OutboxStatus.BLOCKED, now)

    def requeue(self, entry_ids: Iterable[str], now: datetime) -> int:
        count = 0
        with self._db.lock:
            for entry_id in entry_ids:
                entry = self._db.outbox.get(entry_id)
                if entry is not None and entry.status in (OutboxStatus.ERROR, OutboxStatus.BLOCKED):
                    entry.status = OutboxStatus.PENDING
                    entry.last_error = None
                    entry.updated_at = now
                    count += 1
        return count

    def release_stale(self, older_than: datetime, now: datetime) -> int:
        count = 0
        with self._db.lock:
            for entry in self._db.outbox.values():
                if entry.status == OutboxStatus.IN_PROGRESS and entry.updated_at < older_than:
                    entry.status = OutboxStatus.PENDING
                    entry.updated_at = now
                    count += 1
        return count

    def stats(self) -> dict[str, Any]:
        with self._db.lock:
            counts = {status.value: 0 for status in OutboxStatus}
            oldest: datetime | None = None
            for entry in self._db.outbox.values():
                counts[entry.status.value] += 1
                if entry.status == OutboxStatus.PENDING and entry.created_at is not None:
                    if oldest is None or entry.created_at < oldest:
                        oldest = entry.created_at
            return {"counts": counts, "oldest_pending": oldest}

    def get(self, entry_id: str) -> OutboxEntry | None:
        with self._db.lock:
            entry = self._db.outbox.get(entry_id)
            return copy.deepcopy(entry) if entry else None

    def _transition(
        self, entry_id: str, expected: OutboxStatus, status: OutboxStatus, now: datetime
    ) -> bool:
        with self._db.lock:
            entry = self._db.outbox.get(entry_id)
            if entry is None or entry.status != expected:
                return False
            entry.status = status
            entry.updated_at = now
            return True

