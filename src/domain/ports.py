"""
Port interfaces - Protocol definitions for infrastructure abstraction.

This module defines the interfaces (ports) that the domain requires
from infrastructure. Adapters implement these protocols.
"""

from collections.abc import Iterable
from contextlib import AbstractContextManager
from datetime import datetime
from typing import Any, Protocol

from .models import (
    Dimension,
    EmailMessage,
    OutboxEntry,
    OutboxStatus,
    Registration,
    UpdateToken,
)


class ReviewTransaction(Protocol):
    """
    Unit of work for one review operation.

    Everything written through a transaction is committed together when
    the context exits normally, and discarded when it raises.
    """

    def get_registration(self, registration_id: str) -> Registration | None:
        """
        Load a registration and lock it for the rest of the transaction.

        Returns:
            Registration, or None if no such id
        """
        ...

    def insert_registration(self, registration: Registration) -> None: ...

    def save_registration(self, registration: Registration) -> None:
        """Persist status, checklist and updated_at of a locked registration."""
        ...

    def insert_token(self, token: UpdateToken) -> None: ...

    def find_token(self, token_hash: str) -> UpdateToken | None: ...

    def consume_token(self, token_hash: str, now: datetime) -> UpdateToken | None:
        """
        Atomically mark an unused, unexpired token as used.

        Implementations must use a conditional update so that concurrent
        consumers cannot both succeed.

        Returns:
            The consumed token, or None if it was not consumable
        """
        ...

    def enqueue_email(
        self, template: str, to_email: str, payload: dict[str, Any], now: datetime
    ) -> str:
        """
        Append an outbox entry in PENDING state.

        Returns:
            Id of the new outbox entry
        """
        ...


class ReviewRepository(Protocol):
    """Port interface for registration, token and outbox writes."""

    def transaction(self) -> AbstractContextManager[ReviewTransaction]: ...

    def get_registration(self, registration_id: str) -> Registration | None: ...

    def find_token(self, token_hash: str) -> UpdateToken | None: ...


class OutboxRepository(Protocol):
    """Port interface for outbox draining. Used only by the dispatcher and admin tools."""

    def list_pending(self, limit: int | None = None) -> list[OutboxEntry]:
        """Return PENDING entries ordered by created_at ascending (oldest first)."""
        ...

    def count_pending(self) -> int: ...

    def claim(self, entry_id: str, now: datetime) -> bool:
        """
        Transition PENDING -> IN_PROGRESS and increment attempts.

        Conditional on the current status, so overlapping dispatcher runs
        cannot claim the same row.

        Returns:
            True if this caller now owns the entry
        """
        ...

    def complete(
        self,
        entry_id: str,
        status: OutboxStatus,
        now: datetime,
        error: str | None = None,
    ) -> None:
        """Transition a claimed entry to SENT or ERROR."""
        ...

    def block(self, entry_id: str, now: datetime) -> bool:
        """Transition PENDING -> BLOCKED. Returns False if the row was not PENDING."""
        ...

    def requeue(self, entry_ids: Iterable[str], now: datetime) -> int:
        """
        Transition ERROR or BLOCKED entries back to PENDING.

        Returns:
            Number of entries requeued
        """
        ...

    def release_stale(self, older_than: datetime, now: datetime) -> int:
        """
        Transition IN_PROGRESS entries last touched before older_than back to PENDING.

        Recovers claims left behind by a run that stopped mid-delivery.

        Returns:
            Number of entries released
        """
        ...

    def stats(self) -> dict[str, Any]:
        """Return counts per status and the oldest pending created_at."""
        ...

    def get(self, entry_id: str) -> OutboxEntry | None: ...


class EmailProvider(Protocol):
    """Port interface for email delivery."""

    def send(self, message: EmailMessage) -> str | None:
        """
        Deliver a rendered message.

        Returns:
            Provider message id, if any

        Raises:
            ProviderRateLimited: Provider answered 429
            ProviderError: Any other delivery failure
        """
        ...


class AccessPolicy(Protocol):
    """Port interface for the RBAC gate."""

    def can_review_dimension(self, actor: str, dimension: Dimension) -> bool: ...

    def can_approve(self, actor: str) -> bool: ...

    def is_admin(self, actor: str) -> bool: ...
