"""
PostgreSQL repository adapter - Implements ReviewRepository and OutboxRepository.

This module provides the PostgreSQL implementation of the domain's
repository ports using psycopg3 with raw SQL.

Concurrency Design:
-------------------
1. **Review transitions** run in one transaction per operation. The
   registration row is locked with SELECT ... FOR UPDATE, so concurrent
   reviewers serialize per registration and the status update, token insert
   and outbox insert commit or roll back together.

2. **Token consumption** is a single conditional UPDATE
   (used = FALSE AND expires_at > now). Two concurrent submissions cannot
   both see an unused token.

3. **Outbox claims** are conditional UPDATEs guarded by the expected prior
   status (pending -> in_progress). Overlapping dispatcher runs cannot
   claim the same row.

Every psycopg error is re-raised as the domain's StorageError.
"""

import json
import logging
from collections.abc import Generator, Iterable
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Any

import psycopg
from psycopg.rows import dict_row
from psycopg.types.json import Jsonb
from psycopg_pool import ConnectionPool

from src.domain.exceptions import StorageError
from src.domain.models import (
    Dimension,
    DimensionStatus,
    OutboxEntry,
    OutboxStatus,
    Registration,
    RegistrationStatus,
    UpdateToken,
)

logger = logging.getLogger(__name__)

_REGISTRATION_COLUMNS = """
    id, email, full_name, status, payment_status, profile_status, tcc_status,
    created_at, updated_at
"""

_TOKEN_COLUMNS = """
    id, token_hash, registration_id, dimension, admin_email, notes, used, used_at,
    expires_at, created_at
"""

_OUTBOX_COLUMNS = """
    id, template, to_email, payload, status, attempts, last_error, created_at,
    sent_at, updated_at
"""


def _registration_from_row(row: dict[str, Any]) -> Registration:
    return Registration(
        id=row["id"],
        email=row["email"],
        full_name=row["full_name"],
        status=RegistrationStatus(row["status"]),
        checklist={
            Dimension.PAYMENT: DimensionStatus(row["payment_status"]),
            Dimension.PROFILE: DimensionStatus(row["profile_status"]),
            Dimension.TCC: DimensionStatus(row["tcc_status"]),
        },
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def _token_from_row(row: dict[str, Any]) -> UpdateToken:
    return UpdateToken(
        id=row["id"],
        token_hash=row["token_hash"],
        registration_id=row["registration_id"],
        dimension=Dimension(row["dimension"]),
        admin_email=row["admin_email"],
        notes=row["notes"],
        used=row["used"],
        used_at=row["used_at"],
        expires_at=row["expires_at"],
        created_at=row["created_at"],
    )


def _outbox_from_row(row: dict[str, Any]) -> OutboxEntry:
    payload = row["payload"]
    if isinstance(payload, str):
        payload = json.loads(payload)
    return OutboxEntry(
        id=row["id"],
        template=row["template"],
        to_email=row["to_email"],
        payload=payload or {},
        status=OutboxStatus(row["status"]),
        attempts=row["attempts"],
        last_error=row["last_error"],
        created_at=row["created_at"],
        sent_at=row["sent_at"],
        updated_at=row["updated_at"],
    )


class _PostgresTransaction:
    """ReviewTransaction bound to one pooled connection."""

    def __init__(self, conn: psycopg.Connection) -> None:
        self._conn = conn

    def get_registration(self, registration_id: str) -> Registration | None:
        sql = f"SELECT {_REGISTRATION_COLUMNS} FROM registrations WHERE id = %s FOR UPDATE"
        with self._conn.cursor(row_factory=dict_row) as cursor:
            cursor.execute(sql, (registration_id,))
            row = cursor.fetchone()
        return _registration_from_row(row) if row else None

    def insert_registration(self, registration: Registration) -> None:
        sql = """
            INSERT INTO registrations
                (id, email, full_name, status, payment_status, profile_status, tcc_status,
                 created_at, updated_at)
            VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s)
        """
        checklist = registration.checklist
        self._conn.execute(
            sql,
            (
                registration.id,
                registration.email,
                registration.full_name,
                registration.status.value,
                checklist[Dimension.PAYMENT].value,
                checklist[Dimension.PROFILE].value,
                checklist[Dimension.TCC].value,
                registration.created_at,
                registration.updated_at,
            ),
        )

    def save_registration(self, registration: Registration) -> None:
        sql = """
            UPDATE registrations
            SET status = %s, payment_status = %s, profile_status = %s, tcc_status = %s,
                updated_at = %s
            WHERE id = %s
        """
        checklist = registration.checklist
        self._conn.execute(
            sql,
            (
                registration.status.value,
                checklist[Dimension.PAYMENT].value,
                checklist[Dimension.PROFILE].value,
                checklist[Dimension.TCC].value,
                registration.updated_at,
                registration.id,
            ),
        )

    def insert_token(self, token: UpdateToken) -> None:
        sql = """
            INSERT INTO deep_link_tokens
                (id, token_hash, registration_id, dimension, admin_email, notes, used,
                 expires_at, created_at)
            VALUES (%s, %s, %s, %s, %s, %s, FALSE, %s, %s)
        """
        self._conn.execute(
            sql,
            (
                token.id,
                token.token_hash,
                token.registration_id,
                token.dimension.value,
                token.admin_email,
                token.notes,
                token.expires_at,
                token.created_at,
            ),
        )

    def find_token(self, token_hash: str) -> UpdateToken | None:
        sql = f"SELECT {_TOKEN_COLUMNS} FROM deep_link_tokens WHERE token_hash = %s"
        with self._conn.cursor(row_factory=dict_row) as cursor:
            cursor.execute(sql, (token_hash,))
            row = cursor.fetchone()
        return _token_from_row(row) if row else None

    def consume_token(self, token_hash: str, now: datetime) -> UpdateToken | None:
        # Single conditional UPDATE: the row lock taken by UPDATE makes a
        # concurrent consumer re-check used = FALSE and match nothing
        sql = f"""
            UPDATE deep_link_tokens
            SET used = TRUE, used_at = %s
            WHERE token_hash = %s AND used = FALSE AND expires_at > %s
            RETURNING {_TOKEN_COLUMNS}
        """
        with self._conn.cursor(row_factory=dict_row) as cursor:
            cursor.execute(sql, (now, token_hash, now))
            row = cursor.fetchone()
        return _token_from_row(row) if row else None

    def enqueue_email(
        self, template: str, to_email: str, payload: dict[str, Any], now: datetime
    ) -> str:
        sql = """
            INSERT INTO email_outbox (id, template, to_email, payload, status, created_at, updated_at)
            VALUES (gen_random_uuid()::text, %s, %s, %s, 'pending', %s, %s)
            RETURNING id
        """
        with self._conn.cursor() as cursor:
            cursor.execute(sql, (template, to_email, Jsonb(payload), now, now))
            row = cursor.fetchone()
        return row[0]


class PostgresReviewRepository:
    """
    Implements ReviewRepository protocol via psycopg3.

    Uses structural subtyping - no explicit inheritance from Protocol.
    All SQL uses parameterized queries for security.
    """

    def __init__(self, pool: ConnectionPool) -> None:
        """
        Initialize repository with connection pool.

        Args:
            pool: psycopg3 ConnectionPool for database connections
        """
        self._pool = pool

    @contextmanager
    def transaction(self) -> Generator[_PostgresTransaction, None, None]:
        """
        Open a transaction on a pooled connection.

        The pool commits when the block exits normally and rolls back when
        it raises (domain errors included).
        """
        try:
            with self._pool.connection() as conn:
                yield _PostgresTransaction(conn)
        except psycopg.Error as e:
            logger.error("Review transaction failed: %s", e)
            raise StorageError("Review storage unavailable") from e

    def get_registration(self, registration_id: str) -> Registration | None:
        sql = f"SELECT {_REGISTRATION_COLUMNS} FROM registrations WHERE id = %s"
        try:
            with self._pool.connection() as conn, conn.cursor(row_factory=dict_row) as cursor:
                cursor.execute(sql, (registration_id,))
                row = cursor.fetchone()
        except psycopg.Error as e:
            raise StorageError("Review storage unavailable") from e
        return _registration_from_row(row) if row else None

    def find_token(self, token_hash: str) -> UpdateToken | None:
        try:
            with self._pool.connection() as conn:
                return _PostgresTransaction(conn).find_token(token_hash)
        except psycopg.Error as e:
            raise StorageError("Token storage unavailable") from e


class PostgresOutboxRepository:
    """
    Implements OutboxRepository protocol via psycopg3.

    Each status change is a single conditional UPDATE guarded by the
    expected prior status; rowcount tells whether this caller won.
    """

    def __init__(self, pool: ConnectionPool) -> None:
        self._pool = pool

    def list_pending(self, limit: int | None = None) -> list[OutboxEntry]:
        # LIMIT NULL means no limit
        sql = f"""
            SELECT {_OUTBOX_COLUMNS} FROM email_outbox
            WHERE status = 'pending'
            ORDER BY created_at ASC, seq ASC
            LIMIT %s
        """
        rows = self._fetch_all(sql, (limit,))
        return [_outbox_from_row(row) for row in rows]

    def count_pending(self) -> int:
        rows = self._fetch_all(
            "SELECT COUNT(*) AS total FROM email_outbox WHERE status = 'pending'", ()
        )
        return rows[0]["total"]

    def claim(self, entry_id: str, now: datetime) -> bool:
        sql = """
            UPDATE email_outbox
            SET status = 'in_progress', attempts = attempts + 1, updated_at = %s
            WHERE id = %s AND status = 'pending'
        """
        return self._execute(sql, (now, entry_id)) == 1

    def complete(
        self,
        entry_id: str,
        status: OutboxStatus,
        now: datetime,
        error: str | None = None,
    ) -> None:
        sql = """
            UPDATE email_outbox
            SET status = %s, last_error = %s, updated_at = %s,
                sent_at = CASE WHEN %s = 'sent' THEN %s ELSE sent_at END
            WHERE id = %s AND status = 'in_progress'
        """
        rowcount = self._execute(sql, (status.value, error, now, status.value, now, entry_id))
        if rowcount != 1:
            logger.warning("Outbox entry %s was not in progress when completing", entry_id)

    def block(self, entry_id: str, now: datetime) -> bool:
        sql = """
            UPDATE email_outbox
            SET status = 'blocked', updated_at = %s
            WHERE id = %s AND status = 'pending'
        """
        return self._execute(sql, (now, entry_id)) == 1

    def requeue(self, entry_ids: Iterable[str], now: datetime) -> int:
        ids = list(entry_ids)
        if not ids:
            return 0
        sql = """
            UPDATE email_outbox
            SET status = 'pending', last_error = NULL, updated_at = %s
            WHERE id = ANY(%s) AND status IN ('error', 'blocked')
        """
        return self._execute(sql, (now, ids))

    def release_stale(self, older_than: datetime, now: datetime) -> int:
        sql = """
            UPDATE email_outbox
            SET status = 'pending', updated_at = %s
            WHERE status = 'in_progress' AND updated_at < %s
        """
        return self._execute(sql, (now, older_than))

    def stats(self) -> dict[str, Any]:
        counts = {status.value: 0 for status in OutboxStatus}
        for row in self._fetch_all(
            "SELECT status, COUNT(*) AS total FROM email_outbox GROUP BY status", ()
        ):
            counts[row["status"]] = row["total"]
        oldest = self._fetch_all(
            "SELECT MIN(created_at) AS oldest FROM email_outbox WHERE status = 'pending'", ()
        )[0]["oldest"]
        return {"counts": counts, "oldest_pending": oldest}

    def get(self, entry_id: str) -> OutboxEntry | None:
        rows = self._fetch_all(f"SELECT {_OUTBOX_COLUMNS} FROM email_outbox WHERE id = %s", (entry_id,))
        return _outbox_from_row(rows[0]) if rows else None

    def _fetch_all(self, sql: str, params: tuple) -> list[dict[str, Any]]:
        try:
            with self._pool.connection() as conn, conn.cursor(row_factory=dict_row) as cursor:
                cursor.execute(sql, params)
                return cursor.fetchall()
        except psycopg.Error as e:
            logger.error("Outbox query failed: %s", e)
            raise StorageError("Outbox storage unavailable") from e

    def _execute(self, sql: str, params: tuple) -> int:
        try:
            with self._pool.connection() as conn, conn.cursor() as cursor:
                cursor.execute(sql, params)
                conn.commit()
                return cursor.rowcount
        except psycopg.Error as e:
            logger.error("Outbox update failed: %s", e)
            raise StorageError("Outbox storage unavailable") from e


def run_migrations(pool: ConnectionPool) -> None:
    """
    Execute all SQL migration files from the migrations directory.

    Migrations are executed in sorted order (alphabetically by filename).
    Each migration should be idempotent (use IF NOT EXISTS, etc.).

    Args:
        pool: psycopg3 ConnectionPool instance
    """
    # Structure: src/adapters/repository/postgres.py -> migrations/
    migrations_dir = Path(__file__).parent.parent.parent.parent / "migrations"

    if not migrations_dir.exists():
        logger.warning(f"Migrations directory not found: {migrations_dir}")
        return

    sql_files = sorted(migrations_dir.glob("*.sql"))

    if not sql_files:
        logger.info("No migration files found")
        return

    logger.info(f"Running {len(sql_files)} migration(s)")

    for sql_file in sql_files:
        logger.info(f"Executing migration: {sql_file.name}")
        try:
            sql_content = sql_file.read_text()

            with pool.connection() as conn:
                conn.execute(sql_content)

            logger.info(f"Migration complete: {sql_file.name}")
        except Exception as e:
            logger.error(f"Migration failed: {sql_file.name} - {e}")
            raise RuntimeError(f"Database migration failed: {sql_file.name}") from e
