"""
FastAPI dependencies - Dependency injection factories.

This module provides Depends() factories for injecting
domain services and infrastructure adapters into routes.
"""

import logging
import secrets

from fastapi import Depends, Header, HTTPException, Request, status
from fastapi.security import HTTPBasic, HTTPBasicCredentials

from src.adapters.auth.allowlist import AllowlistAccessPolicy
from src.adapters.auth.credentials import BcryptCredentialVerifier
from src.config.settings import Settings, get_settings
from src.domain.dispatcher import Dispatcher
from src.domain.ports import AccessPolicy, EmailProvider, OutboxRepository, ReviewRepository
from src.domain.review import ReviewService
from src.domain.tokens import TokenStore

logger = logging.getLogger(__name__)


def get_review_repository(request: Request) -> ReviewRepository:
    """
    Get review repository from app state.

    The repository is created during app lifespan startup and stored in app.state.
    """
    return request.app.state.review_repository


def get_outbox_repository(request: Request) -> OutboxRepository:
    """Get outbox repository from app state."""
    return request.app.state.outbox_repository


def get_email_provider(request: Request) -> EmailProvider:
    """Get email provider from app state."""
    return request.app.state.email_provider


def get_access_policy(settings: Settings = Depends(get_settings)) -> AccessPolicy:
    """Build the RBAC gate from the configured admin allowlists."""
    return AllowlistAccessPolicy(
        super_admins=settings.admin_super_emails,
        payment_admins=settings.admin_payment_emails,
        profile_admins=settings.admin_profile_emails,
        tcc_admins=settings.admin_tcc_emails,
    )


def get_token_store(
    repository: ReviewRepository = Depends(get_review_repository),
    settings: Settings = Depends(get_settings),
) -> TokenStore:
    return TokenStore(repository=repository, ttl_seconds=settings.token_ttl_seconds)


def get_review_service(
    repository: ReviewRepository = Depends(get_review_repository),
    tokens: TokenStore = Depends(get_token_store),
    access: AccessPolicy = Depends(get_access_policy),
    settings: Settings = Depends(get_settings),
) -> ReviewService:
    """
    Create review service with injected dependencies.

    Wires together the repository, token store and RBAC gate for the domain service.
    """
    return ReviewService(
        repository=repository,
        tokens=tokens,
        access=access,
        base_url=settings.app_base_url,
        lenient_approval=settings.lenient_approval,
    )


def get_dispatcher(
    outbox: OutboxRepository = Depends(get_outbox_repository),
    provider: EmailProvider = Depends(get_email_provider),
) -> Dispatcher:
    return Dispatcher(outbox=outbox, provider=provider)


def get_credential_verifier(settings: Settings = Depends(get_settings)) -> BcryptCredentialVerifier:
    return BcryptCredentialVerifier(settings.admin_credentials)


# HTTP BASIC AUTH security scheme for OpenAPI documentation
http_basic = HTTPBasic()


def get_current_admin(
    credentials: HTTPBasicCredentials = Depends(http_basic),
    verifier: BcryptCredentialVerifier = Depends(get_credential_verifier),
) -> str:
    """
    Authenticate an admin from the HTTP BASIC AUTH header.

    FastAPI's HTTPBasic automatically:
    - Returns 401 for missing Authorization header
    - Returns 401 for malformed base64 encoding
    - Parses base64(email:password) format

    Returns:
        Normalized admin email (stripped, lowercased)

    Raises:
        HTTPException: 401 when the password does not match
    """
    email = credentials.username.strip().lower()
    if not verifier.verify(email, credentials.password):
        logger.warning("Admin authentication failed for %s", email)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid credentials",
            headers={"WWW-Authenticate": "Basic"},
        )
    return email


def require_cron_secret(
    authorization: str | None = Header(default=None),
    x_cron_secret: str | None = Header(default=None),
    settings: Settings = Depends(get_settings),
) -> None:
    """
    Guard for the dispatcher trigger.

    Accepts the shared secret as "Authorization: Bearer <secret>" or as
    "X-Cron-Secret: <secret>". Without a configured secret every call is refused.
    """
    expected = settings.cron_secret
    if not expected:
        logger.warning("Dispatch refused: CRON_SECRET is not configured")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="unauthorized")

    candidates = []
    if authorization and authorization.lower().startswith("bearer "):
        candidates.append(authorization[7:].strip())
    if x_cron_secret:
        candidates.append(x_cron_secret.strip())

    # Compare every candidate so the result does not depend on which header matched
    matched = False
    for candidate in candidates:
        if secrets.compare_digest(candidate.encode(), expected.encode()):
            matched = True
    if not matched:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="unauthorized")
