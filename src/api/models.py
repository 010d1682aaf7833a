"""
API request and response models.

Pydantic models for FastAPI endpoint validation and OpenAPI schema generation.
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, EmailStr, Field


class RegisterRequest(BaseModel):
    """Request model for applicant registration."""

    model_config = ConfigDict(populate_by_name=True)

    email: EmailStr
    full_name: str = Field(..., min_length=1, max_length=200, alias="fullName")


class RegisterResponse(BaseModel):
    """Response model for successful registration."""

    ok: bool = True
    id: str
    status: str


class RegistrationResponse(BaseModel):
    """Admin view of a registration."""

    id: str
    email: str
    full_name: str
    status: str
    checklist: dict[str, str]
    created_at: datetime | None = None
    updated_at: datetime | None = None


class DimensionRequest(BaseModel):
    """
    Request model for dimension-scoped review actions.

    The dimension is validated by the domain so that a missing or unknown
    value yields 400 rather than a schema error.
    """

    dimension: Any = Field(default=None, description="payment, profile or tcc")


class RequestUpdateRequest(DimensionRequest):
    """Request model for asking the applicant to update a dimension."""

    notes: str | None = Field(default=None, max_length=2000)


class ReviewActionResponse(BaseModel):
    """Response model for request-update and mark-pass."""

    ok: bool = True
    id: str
    dimension: str
    status: str
    message: str


class MarkPassResponse(ReviewActionResponse):
    """Response model for mark-pass. all_passed is true only on the auto-approving call."""

    all_passed: bool = False


class ApproveRequest(BaseModel):
    """Optional body for manual approval."""

    model_config = ConfigDict(populate_by_name=True)

    badge_url: str | None = Field(default=None, alias="badgeUrl")


class RejectRequest(BaseModel):
    """Optional body for rejection."""

    reason: str | None = Field(default=None, max_length=2000)


class DecisionResponse(BaseModel):
    """Response model for approve and reject."""

    ok: bool = True
    id: str
    status: str
    message: str


class TokenCheckResponse(BaseModel):
    """Response model for a valid deep link."""

    valid: bool
    registration_id: str | None = None
    dimension: str | None = None
    notes: str | None = None


class DispatchRequest(BaseModel):
    """Body of POST /dispatch-emails."""

    model_config = ConfigDict(populate_by_name=True)

    batch_size: int | None = Field(default=None, ge=1, le=100, alias="batchSize")
    dry_run: bool = Field(default=False, alias="dryRun")


class DispatchResponse(BaseModel):
    """Counters report of one dispatcher run."""

    model_config = ConfigDict(populate_by_name=True)

    ok: bool
    dry_run: bool = Field(alias="dryRun")
    sent: int
    would_send: int = Field(alias="wouldSend")
    capped: int
    blocked: int
    errors: int
    remaining: int
    rate_limited: int = Field(alias="rateLimited")
    retries: int
    timestamp: datetime


class OutboxStatsResponse(BaseModel):
    """Outbox counts per status."""

    counts: dict[str, int]
    oldest_pending: datetime | None = None


class RetryRequest(BaseModel):
    """Outbox entries to move back to pending."""

    ids: list[str] = Field(..., min_length=1, max_length=100)


class RetryResponse(BaseModel):
    ok: bool = True
    requeued: int


class ErrorResponse(BaseModel):
    """Standard error response model."""

    detail: str
