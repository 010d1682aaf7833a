"""
Domain models - Review states, tokens and outbox entries.

Review State Machine (per registration)
=======================================

Overall status:
- WAITING_FOR_REVIEW: Initial state, reviewers work through the checklist
- WAITING_FOR_UPDATE: At least one dimension awaits an applicant update
- APPROVED: Terminal, all dimensions passed (or lenient manual approval)
- REJECTED: Terminal

Valid Transitions:
    WAITING_FOR_REVIEW -> WAITING_FOR_UPDATE  (request_update)
    WAITING_FOR_UPDATE -> WAITING_FOR_REVIEW  (submit_update / last mark_pass)
    WAITING_FOR_*      -> APPROVED            (final mark_pass / approve)
    WAITING_FOR_*      -> REJECTED            (reject)

Each dimension (payment, profile, tcc) moves independently between
PENDING, UPDATE_REQUESTED and PASSED while the registration is not terminal.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from .exceptions import InvalidDimension


class Dimension(str, Enum):
    """Review checklist dimensions."""

    PAYMENT = "payment"
    PROFILE = "profile"
    TCC = "tcc"

    @classmethod
    def parse(cls, value: object) -> "Dimension":
        """
        Parse a raw dimension value.

        Raises:
            InvalidDimension: If value is missing or unknown
        """
        if isinstance(value, cls):
            return value
        if not isinstance(value, str):
            raise InvalidDimension(value)
        try:
            return cls(value)
        except ValueError:
            raise InvalidDimension(value) from None


class DimensionStatus(str, Enum):
    """Per-dimension review status."""

    PENDING = "pending"
    UPDATE_REQUESTED = "update_requested"
    PASSED = "passed"


class RegistrationStatus(str, Enum):
    """Overall registration status."""

    WAITING_FOR_REVIEW = "waiting_for_review"
    WAITING_FOR_UPDATE = "waiting_for_update"
    APPROVED = "approved"
    REJECTED = "rejected"

    @property
    def is_terminal(self) -> bool:
        return self in (RegistrationStatus.APPROVED, RegistrationStatus.REJECTED)


class OutboxStatus(str, Enum):
    """
    Delivery status of an outbox entry.

    Only PENDING entries are selected by the dispatcher. IN_PROGRESS marks a
    row claimed by a running dispatcher. Capped entries are left PENDING.
    """

    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    SENT = "sent"
    BLOCKED = "blocked"
    ERROR = "error"


class EmailMode(str, Enum):
    """Dispatcher delivery mode."""

    DRY_RUN = "DRY_RUN"
    FULL = "FULL"
    CAPPED = "CAPPED"


def default_checklist() -> dict[Dimension, DimensionStatus]:
    return {dimension: DimensionStatus.PENDING for dimension in Dimension}


@dataclass
class Registration:
    """One applicant's registration and its review checklist."""

    id: str
    email: str
    full_name: str
    status: RegistrationStatus = RegistrationStatus.WAITING_FOR_REVIEW
    checklist: dict[Dimension, DimensionStatus] = field(default_factory=default_checklist)
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def all_passed(self) -> bool:
        return all(
            self.checklist.get(dimension) == DimensionStatus.PASSED for dimension in Dimension
        )

    @property
    def awaiting_update(self) -> bool:
        return any(
            status == DimensionStatus.UPDATE_REQUESTED for status in self.checklist.values()
        )


@dataclass
class UpdateToken:
    """Persisted deep-link token. The plaintext value is never stored."""

    id: str
    token_hash: str
    registration_id: str
    dimension: Dimension
    expires_at: datetime
    admin_email: str | None = None
    notes: str | None = None
    used: bool = False
    used_at: datetime | None = None
    created_at: datetime | None = None


@dataclass
class IssuedToken:
    """Result of minting a token: plaintext returned once, plus its record."""

    value: str
    record: UpdateToken


@dataclass
class TokenValidation:
    """
    Externally visible validation outcome.

    Carries no failure reason - invalid tokens are indistinguishable.
    """

    valid: bool
    registration_id: str | None = None
    dimension: Dimension | None = None
    notes: str | None = None


@dataclass
class OutboxEntry:
    """Pending or processed notification intent."""

    id: str
    template: str
    to_email: str
    payload: dict[str, Any]
    status: OutboxStatus = OutboxStatus.PENDING
    attempts: int = 0
    last_error: str | None = None
    created_at: datetime | None = None
    sent_at: datetime | None = None
    updated_at: datetime | None = None


@dataclass
class EmailMessage:
    """Rendered email ready for a provider."""

    to: str
    subject: str
    html: str
    text: str | None = None
    tags: dict[str, str] = field(default_factory=dict)


@dataclass
class ReviewResult:
    """Outcome of a review operation."""

    registration: Registration
    dimension: Dimension | None = None
    all_passed: bool = False
    outbox_ids: list[str] = field(default_factory=list)
    token_id: str | None = None
