"""
Domain layer - Pure business logic with zero framework imports.

This package contains the review state machine, the deep-link token
service and the outbox dispatcher. It defines its own port interfaces
for infrastructure abstraction, ensuring true hexagonal architecture
decoupling.
"""

from .dispatcher import DispatchConfig, Dispatcher, DispatchReport
from .exceptions import (
    Forbidden,
    InvalidDimension,
    InvalidTransition,
    NotReady,
    ProviderError,
    ProviderRateLimited,
    RegistrationNotFound,
    ReviewError,
    StorageError,
    TokenInvalid,
    TokenInvalidReason,
    UnknownTemplate,
)
from .models import (
    Dimension,
    DimensionStatus,
    EmailMessage,
    EmailMode,
    OutboxEntry,
    OutboxStatus,
    Registration,
    RegistrationStatus,
    ReviewResult,
    TokenValidation,
    UpdateToken,
)
from .ports import AccessPolicy, EmailProvider, OutboxRepository, ReviewRepository
from .review import ReviewService
from .tokens import TokenStore

__all__ = [
    "AccessPolicy",
    "Dimension",
    "DimensionStatus",
    "DispatchConfig",
    "DispatchReport",
    "Dispatcher",
    "EmailMessage",
    "EmailMode",
    "EmailProvider",
    "Forbidden",
    "InvalidDimension",
    "InvalidTransition",
    "NotReady",
    "OutboxEntry",
    "OutboxRepository",
    "OutboxStatus",
    "ProviderError",
    "ProviderRateLimited",
    "Registration",
    "RegistrationNotFound",
    "RegistrationStatus",
    "ReviewError",
    "ReviewRepository",
    "ReviewResult",
    "ReviewService",
    "StorageError",
    "TokenInvalid",
    "TokenInvalidReason",
    "TokenStore",
    "TokenValidation",
    "UnknownTemplate",
    "UpdateToken",
]
