"""
Deep-link token service - Single-use update tokens.

Tokens are bound to a (registration, dimension) pair and carried in the
update link emailed to the applicant. Only a SHA-256 digest is persisted;
the plaintext is returned once from issue() and never again.

Every failure (unknown, expired, already used) is reported to callers as
one invalid outcome. The specific reason is logged for operators only.
"""

import hashlib
import logging
import secrets
import uuid
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone

from .exceptions import TokenInvalidReason
from .models import Dimension, IssuedToken, TokenValidation, UpdateToken
from .ports import ReviewRepository

logger = logging.getLogger(__name__)

DEFAULT_TOKEN_TTL_SECONDS = 86400  # 24 hours


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def hash_token(token: str) -> str:
    """Digest used as the lookup key for a plaintext token."""
    return hashlib.sha256(token.encode()).hexdigest()


@dataclass
class TokenStore:
    """
    Issues, validates and consumes deep-link tokens.

    Persistence goes through the review repository so that issuing a token
    can share a transaction with the review transition that requested it.
    """

    repository: ReviewRepository
    ttl_seconds: int = DEFAULT_TOKEN_TTL_SECONDS
    clock: Callable[[], datetime] = field(default=utcnow)

    def mint(
        self,
        registration_id: str,
        dimension: Dimension,
        ttl_seconds: int | None = None,
        admin_email: str | None = None,
        notes: str | None = None,
    ) -> IssuedToken:
        """
        Generate a token and its record without persisting it.

        Used by ReviewService to insert the token inside its own transaction.
        """
        value = secrets.token_urlsafe(32)
        now = self.clock()
        ttl = self.ttl_seconds if ttl_seconds is None else ttl_seconds
        record = UpdateToken(
            id=str(uuid.uuid4()),
            token_hash=hash_token(value),
            registration_id=registration_id,
            dimension=Dimension.parse(dimension),
            expires_at=now + timedelta(seconds=ttl),
            admin_email=admin_email,
            notes=notes,
            used=False,
            created_at=now,
        )
        return IssuedToken(value=value, record=record)

    def issue(
        self,
        registration_id: str,
        dimension: Dimension,
        ttl_seconds: int | None = None,
        admin_email: str | None = None,
        notes: str | None = None,
    ) -> str:
        """
        Create and store a new token.

        Returns:
            Plaintext token (not retrievable again)
        """
        issued = self.mint(registration_id, dimension, ttl_seconds, admin_email, notes)
        with self.repository.transaction() as tx:
            tx.insert_token(issued.record)
        logger.info(
            "Issued update token %s for registration %s (%s)",
            issued.record.id,
            registration_id,
            issued.record.dimension.value,
        )
        return issued.value

    def check(self, token: str) -> tuple[UpdateToken | None, TokenInvalidReason | None]:
        """
        Look up a token and classify it.

        Returns:
            (record, None) if valid, otherwise (record or None, reason)
        """
        record = self.repository.find_token(hash_token(token))
        return record, self.classify(record, self.clock())

    @staticmethod
    def classify(record: UpdateToken | None, now: datetime) -> TokenInvalidReason | None:
        if record is None:
            return TokenInvalidReason.NOT_FOUND
        if record.used:
            return TokenInvalidReason.ALREADY_USED
        if now >= record.expires_at:
            return TokenInvalidReason.EXPIRED
        return None

    def validate(self, token: str) -> TokenValidation:
        """Return a reason-free validation outcome."""
        record, reason = self.check(token)
        if reason is not None or record is None:
            logger.info("Update token rejected: %s", reason.value if reason else "unknown")
            return TokenValidation(valid=False)
        return TokenValidation(
            valid=True,
            registration_id=record.registration_id,
            dimension=record.dimension,
            notes=record.notes,
        )

    def consume(self, token: str) -> bool:
        """
        Atomically validate and mark a token as used.

        Returns:
            True for exactly one caller per token; False otherwise
        """
        with self.repository.transaction() as tx:
            record = tx.consume_token(hash_token(token), self.clock())
        if record is None:
            logger.info("Update token consume refused")
            return False
        logger.info("Update token %s consumed", record.id)
        return True
