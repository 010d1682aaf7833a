"""
API v1 routes.

Defines REST endpoints for registration, admin review and the applicant
deep-link update flow.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, Query, status

from src.api.dependencies import get_current_admin, get_review_service, get_token_store
from src.api.models import (
    ApproveRequest,
    DecisionResponse,
    DimensionRequest,
    ErrorResponse,
    MarkPassResponse,
    RegisterRequest,
    RegisterResponse,
    RegistrationResponse,
    RejectRequest,
    RequestUpdateRequest,
    ReviewActionResponse,
    TokenCheckResponse,
)
from src.domain.exceptions import (
    Forbidden,
    InvalidDimension,
    InvalidTransition,
    NotReady,
    RegistrationNotFound,
    ReviewError,
    StorageError,
    TokenInvalid,
)
from src.domain.models import Registration
from src.domain.review import ReviewService
from src.domain.tokens import TokenStore

logger = logging.getLogger(__name__)

router = APIRouter(tags=["v1"])

INVALID_LINK = "This link is no longer valid"

_STATUS_BY_ERROR: list[tuple[type[ReviewError], int]] = [
    (InvalidDimension, status.HTTP_400_BAD_REQUEST),
    (NotReady, status.HTTP_400_BAD_REQUEST),
    (TokenInvalid, status.HTTP_401_UNAUTHORIZED),
    (Forbidden, status.HTTP_403_FORBIDDEN),
    (InvalidTransition, status.HTTP_409_CONFLICT),
]

_REVIEW_RESPONSES = {
    400: {"model": ErrorResponse, "description": "Invalid dimension or not ready"},
    401: {"description": "Missing or invalid admin credentials"},
    403: {"model": ErrorResponse, "description": "Not authorized for this action"},
    404: {"model": ErrorResponse, "description": "Registration not found"},
    409: {"model": ErrorResponse, "description": "Transition not allowed"},
}


def to_http_exception(exc: ReviewError) -> HTTPException:
    """Map a domain error to its HTTP status. Unmapped errors become 500."""
    if isinstance(exc, StorageError):
        logger.error("Storage failure: %s", exc.__cause__ or exc)
        return HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Storage unavailable",
        )
    if isinstance(exc, RegistrationNotFound):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Registration not found")
    for error_type, status_code in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return HTTPException(status_code=status_code, detail=str(exc))
    logger.error("Unhandled review error: %r", exc)
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Internal error"
    )


def _registration_response(registration: Registration) -> RegistrationResponse:
    return RegistrationResponse(
        id=registration.id,
        email=registration.email,
        full_name=registration.full_name,
        status=registration.status.value,
        checklist={dim.value: value.value for dim, value in registration.checklist.items()},
        created_at=registration.created_at,
        updated_at=registration.updated_at,
    )


@router.post(
    "/register",
    response_model=RegisterResponse,
    status_code=status.HTTP_201_CREATED,
    responses={422: {"description": "Validation error"}},
    summary="Register an applicant",
    description="Create a registration awaiting review. "
    "A confirmation email with the tracking id is queued.",
)
async def register(
    request_data: RegisterRequest,
    service: ReviewService = Depends(get_review_service),
) -> RegisterResponse:
    try:
        registration = service.register(request_data.email, request_data.full_name)
    except ReviewError as e:
        raise to_http_exception(e) from None
    return RegisterResponse(id=registration.id, status=registration.status.value)


@router.get(
    "/registrations/{registration_id}",
    response_model=RegistrationResponse,
    responses=_REVIEW_RESPONSES,
    summary="Get a registration",
)
async def get_registration(
    registration_id: str,
    admin: str = Depends(get_current_admin),
    service: ReviewService = Depends(get_review_service),
) -> RegistrationResponse:
    try:
        registration = service.get(registration_id, admin)
    except ReviewError as e:
        raise to_http_exception(e) from None
    return _registration_response(registration)


@router.post(
    "/registrations/{registration_id}/request-update",
    response_model=ReviewActionResponse,
    status_code=status.HTTP_201_CREATED,
    responses=_REVIEW_RESPONSES,
    summary="Request an update on one dimension",
    description="Mark the dimension as update requested, issue a single-use "
    "deep link and queue the update email.",
)
async def request_update(
    registration_id: str,
    request_data: RequestUpdateRequest | None = None,
    admin: str = Depends(get_current_admin),
    service: ReviewService = Depends(get_review_service),
) -> ReviewActionResponse:
    """
    Ask the applicant to fix one dimension.

    - **dimension**: payment, profile or tcc
    - **notes**: Optional reviewer notes included in the email
    """
    body = request_data or RequestUpdateRequest()
    try:
        result = service.request_update(registration_id, body.dimension, body.notes, admin)
    except ReviewError as e:
        raise to_http_exception(e) from None
    return ReviewActionResponse(
        id=result.registration.id,
        dimension=result.dimension.value,
        status=result.registration.status.value,
        message=f"Update requested for {result.dimension.value} dimension",
    )


@router.post(
    "/registrations/{registration_id}/mark-pass",
    response_model=MarkPassResponse,
    responses=_REVIEW_RESPONSES,
    summary="Mark one dimension as passed",
    description="Idempotent. The call that passes the last dimension "
    "auto-approves the registration and reports all_passed=true.",
)
async def mark_pass(
    registration_id: str,
    request_data: DimensionRequest | None = None,
    admin: str = Depends(get_current_admin),
    service: ReviewService = Depends(get_review_service),
) -> MarkPassResponse:
    body = request_data or DimensionRequest()
    try:
        result = service.mark_pass(registration_id, body.dimension, admin)
    except ReviewError as e:
        raise to_http_exception(e) from None

    dimension = result.dimension.value
    suffix = " - Registration auto-approved" if result.all_passed else ""
    return MarkPassResponse(
        id=result.registration.id,
        dimension=dimension,
        status=result.registration.status.value,
        message=f"Dimension {dimension} marked as passed{suffix}",
        all_passed=result.all_passed,
    )


@router.post(
    "/registrations/{registration_id}/approve",
    response_model=DecisionResponse,
    responses=_REVIEW_RESPONSES,
    summary="Approve a registration",
)
async def approve(
    registration_id: str,
    request_data: ApproveRequest | None = None,
    admin: str = Depends(get_current_admin),
    service: ReviewService = Depends(get_review_service),
) -> DecisionResponse:
    badge_url = request_data.badge_url if request_data else None
    try:
        result = service.approve(registration_id, admin, badge_url=badge_url)
    except ReviewError as e:
        raise to_http_exception(e) from None
    return DecisionResponse(
        id=result.registration.id,
        status=result.registration.status.value,
        message="approved",
    )


@router.post(
    "/registrations/{registration_id}/reject",
    response_model=DecisionResponse,
    responses=_REVIEW_RESPONSES,
    summary="Reject a registration",
)
async def reject(
    registration_id: str,
    request_data: RejectRequest | None = None,
    admin: str = Depends(get_current_admin),
    service: ReviewService = Depends(get_review_service),
) -> DecisionResponse:
    reason = request_data.reason if request_data else None
    try:
        result = service.reject(registration_id, admin, reason=reason)
    except ReviewError as e:
        raise to_http_exception(e) from None
    return DecisionResponse(
        id=result.registration.id,
        status=result.registration.status.value,
        message="rejected",
    )


@router.get(
    "/update",
    response_model=TokenCheckResponse,
    responses={401: {"model": ErrorResponse, "description": INVALID_LINK}},
    summary="Check a deep link",
    description="Validate an update token without consuming it.",
)
async def check_update_link(
    token: str = Query(..., min_length=1),
    tokens: TokenStore = Depends(get_token_store),
) -> TokenCheckResponse:
    try:
        validation = tokens.validate(token)
    except ReviewError as e:
        raise to_http_exception(e) from None

    # Unknown, expired and used tokens share one generic answer
    if not validation.valid:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=INVALID_LINK)
    return TokenCheckResponse(
        valid=True,
        registration_id=validation.registration_id,
        dimension=validation.dimension.value,
        notes=validation.notes,
    )


@router.post(
    "/update",
    response_model=ReviewActionResponse,
    responses={
        401: {"model": ErrorResponse, "description": INVALID_LINK},
        409: {"model": ErrorResponse, "description": "Registration is not awaiting an update"},
    },
    summary="Submit an update through a deep link",
    description="Consume the token and send the dimension back to review.",
)
async def submit_update(
    token: str = Query(..., min_length=1),
    service: ReviewService = Depends(get_review_service),
) -> ReviewActionResponse:
    try:
        result = service.submit_update(token)
    except TokenInvalid:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=INVALID_LINK) from None
    except ReviewError as e:
        raise to_http_exception(e) from None
    return ReviewActionResponse(
        id=result.registration.id,
        dimension=result.dimension.value,
        status=result.registration.status.value,
        message=f"Update received for {result.dimension.value} dimension",
    )
