"""
Domain exceptions - Semantic error types for registration review.

This module defines domain-specific exceptions that communicate
business rule violations without leaking infrastructure details.
The API layer maps each of them to exactly one HTTP status.
"""

from enum import Enum


class ReviewError(Exception):
    """Base class for review domain errors."""

    pass


class InvalidDimension(ReviewError):
    """Dimension is missing or not one of payment, profile, tcc."""

    def __init__(self, dimension: object = None) -> None:
        super().__init__("Invalid dimension. Must be payment, profile, or tcc")
        self.dimension = dimension


class Forbidden(ReviewError):
    """Principal is not authorized for the requested action."""

    def __init__(self, actor: str | None = None, action: str | None = None) -> None:
        super().__init__("forbidden")
        self.actor = actor
        self.action = action


class RegistrationNotFound(ReviewError):
    """No registration with the given id."""

    pass


class InvalidTransition(ReviewError):
    """Requested transition is not allowed from the current state."""

    pass


class NotReady(ReviewError):
    """Strict approval attempted before all dimensions passed."""

    pass


class TokenInvalidReason(str, Enum):
    """
    Internal reason a deep-link token failed.

    Logged for operators only. Callers always see a single invalid outcome.
    """

    NOT_FOUND = "not_found"
    EXPIRED = "expired"
    ALREADY_USED = "already_used"


class TokenInvalid(ReviewError):
    """Deep-link token is unknown, expired or already used."""

    def __init__(self, reason: TokenInvalidReason = TokenInvalidReason.NOT_FOUND) -> None:
        super().__init__("This link is no longer valid")
        self.reason = reason


class ProviderError(ReviewError):
    """Email provider rejected a delivery attempt."""

    pass


class ProviderRateLimited(ProviderError):
    """Email provider answered 429; the attempt may be retried."""

    def __init__(self, message: str = "Rate limited", retry_after: float | None = None) -> None:
        super().__init__(message)
        self.retry_after = retry_after


class UnknownTemplate(ReviewError):
    """Outbox entry references a template with no renderer."""

    pass


class StorageError(ReviewError):
    """Storage layer failure. Fatal for the current operation."""

    pass
