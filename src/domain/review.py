"""
Review domain service - Multi-dimension review state machine.

This module contains the core business logic for reviewing registrations.
Each registration carries a three-dimension checklist (payment, profile,
tcc) and an overall status. Every transition runs inside one repository
transaction together with the outbox entry (and, for update requests, the
deep-link token) it produces, so state and notifications never diverge.

Authorization is delegated to the AccessPolicy port:
- request_update / mark_pass: reviewer for the dimension (super admin: all)
- approve / reject: super admin only

Validation order for every admin operation:
    dimension -> authorization -> existence -> state
"""

import logging
import uuid
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from .exceptions import (
    Forbidden,
    InvalidTransition,
    NotReady,
    RegistrationNotFound,
    TokenInvalid,
    TokenInvalidReason,
)
from .models import (
    Dimension,
    DimensionStatus,
    Registration,
    RegistrationStatus,
    ReviewResult,
)
from .ports import AccessPolicy, ReviewRepository, ReviewTransaction
from .templates import (
    TEMPLATE_APPROVAL,
    TEMPLATE_REGISTRATION_CREATED,
    TEMPLATE_REJECTION,
    update_template,
)
from .tokens import TokenStore, hash_token, utcnow

logger = logging.getLogger(__name__)


@dataclass
class ReviewService:
    """
    Domain service for registration review.

    Owns every status transition of a registration and the notification
    intents those transitions emit.
    """

    repository: ReviewRepository
    tokens: TokenStore
    access: AccessPolicy
    base_url: str = "http://localhost:8080"
    lenient_approval: bool = False
    clock: Callable[[], datetime] = field(default=utcnow)

    def register(self, email: str, full_name: str) -> Registration:
        """
        Create a registration and queue its confirmation email.

        Args:
            email: Applicant email (will be normalized)
            full_name: Applicant display name

        Returns:
            The new registration in WAITING_FOR_REVIEW
        """
        now = self.clock()
        registration = Registration(
            id=str(uuid.uuid4()),
            email=self._normalize_email(email),
            full_name=full_name.strip(),
            created_at=now,
            updated_at=now,
        )
        with self.repository.transaction() as tx:
            tx.insert_registration(registration)
            tx.enqueue_email(
                TEMPLATE_REGISTRATION_CREATED,
                registration.email,
                self._base_payload(registration),
                now,
            )
        logger.info("Registration %s created", registration.id)
        return registration

    def get(self, registration_id: str, actor: str) -> Registration:
        """
        Load a registration for an admin.

        Raises:
            Forbidden: If actor is not an admin
            RegistrationNotFound: If no such registration
        """
        if not self.access.is_admin(actor):
            raise Forbidden(actor, "view")
        registration = self.repository.get_registration(registration_id)
        if registration is None:
            raise RegistrationNotFound(registration_id)
        return registration

    def request_update(
        self, registration_id: str, dimension: object, notes: str | None, actor: str
    ) -> ReviewResult:
        """
        Ask the applicant to update one dimension.

        Marks the dimension UPDATE_REQUESTED, moves the registration to
        WAITING_FOR_UPDATE, mints a fresh deep-link token and queues an
        update-<dimension> email carrying the link. Earlier tokens for the
        same dimension stay valid until used or expired.

        Raises:
            InvalidDimension: If dimension is missing or unknown
            Forbidden: If actor may not review the dimension
            RegistrationNotFound: If no such registration
            InvalidTransition: If the registration is approved or rejected
        """
        dim = Dimension.parse(dimension)
        self._authorize_dimension(actor, dim)
        now = self.clock()

        with self.repository.transaction() as tx:
            registration = self._load(tx, registration_id)
            if registration.status.is_terminal:
                raise InvalidTransition(
                    f"Registration is {registration.status.value}; updates are closed"
                )

            registration.checklist[dim] = DimensionStatus.UPDATE_REQUESTED
            registration.status = RegistrationStatus.WAITING_FOR_UPDATE
            registration.updated_at = now
            tx.save_registration(registration)

            issued = self.tokens.mint(registration.id, dim, admin_email=actor, notes=notes)
            tx.insert_token(issued.record)

            payload = self._base_payload(registration)
            payload.update(
                {
                    "dimension": dim.value,
                    "notes": notes or "",
                    "tokenId": issued.record.id,
                    "ctaUrl": self._deep_link(issued.value),
                    "expiresAt": issued.record.expires_at.isoformat(),
                }
            )
            outbox_id = tx.enqueue_email(update_template(dim), registration.email, payload, now)

        logger.info(
            "Update requested on %s for registration %s by %s",
            dim.value,
            registration.id,
            actor,
        )
        return ReviewResult(
            registration=registration,
            dimension=dim,
            outbox_ids=[outbox_id],
            token_id=issued.record.id,
        )

    def mark_pass(self, registration_id: str, dimension: object, actor: str) -> ReviewResult:
        """
        Mark one dimension as passed.

        Idempotent for an already passed dimension. When this call makes all
        three dimensions PASSED the registration is approved and an approval
        email is queued in the same transaction; the result then reports
        all_passed=True.

        Raises:
            InvalidDimension: If dimension is missing or unknown
            Forbidden: If actor may not review the dimension
            RegistrationNotFound: If no such registration
            InvalidTransition: If changing a dimension of a closed registration
        """
        dim = Dimension.parse(dimension)
        self._authorize_dimension(actor, dim)
        now = self.clock()

        with self.repository.transaction() as tx:
            registration = self._load(tx, registration_id)

            if registration.checklist.get(dim) == DimensionStatus.PASSED:
                return ReviewResult(registration=registration, dimension=dim)

            if registration.status.is_terminal:
                raise InvalidTransition(
                    f"Registration is {registration.status.value}; review is closed"
                )

            registration.checklist[dim] = DimensionStatus.PASSED
            registration.updated_at = now
            outbox_ids: list[str] = []

            all_passed = registration.all_passed
            if all_passed:
                registration.status = RegistrationStatus.APPROVED
                outbox_ids.append(
                    tx.enqueue_email(
                        TEMPLATE_APPROVAL,
                        registration.email,
                        self._base_payload(registration),
                        now,
                    )
                )
            else:
                registration.status = self._open_status(registration)
            tx.save_registration(registration)

        logger.info(
            "Dimension %s passed for registration %s by %s%s",
            dim.value,
            registration.id,
            actor,
            " - auto-approved" if all_passed else "",
        )
        return ReviewResult(
            registration=registration,
            dimension=dim,
            all_passed=all_passed,
            outbox_ids=outbox_ids,
        )

    def approve(
        self, registration_id: str, actor: str, badge_url: str | None = None
    ) -> ReviewResult:
        """
        Manually approve a registration.

        Requires every dimension PASSED unless lenient_approval is enabled.
        Approving an approved registration is a no-op.

        Raises:
            Forbidden: If actor may not approve
            RegistrationNotFound: If no such registration
            InvalidTransition: If the registration was rejected
            NotReady: If strict and some dimension is not PASSED
        """
        if not self.access.can_approve(actor):
            raise Forbidden(actor, "approve")
        now = self.clock()

        with self.repository.transaction() as tx:
            registration = self._load(tx, registration_id)
            if registration.status == RegistrationStatus.APPROVED:
                return ReviewResult(registration=registration)
            if registration.status == RegistrationStatus.REJECTED:
                raise InvalidTransition("Registration is rejected")
            if not registration.all_passed and not self.lenient_approval:
                raise NotReady("not ready")

            registration.status = RegistrationStatus.APPROVED
            registration.updated_at = now
            tx.save_registration(registration)

            payload = self._base_payload(registration)
            if badge_url:
                payload["badgeUrl"] = badge_url
            outbox_id = tx.enqueue_email(TEMPLATE_APPROVAL, registration.email, payload, now)

        if not registration.all_passed:
            logger.warning(
                "Registration %s approved by %s with incomplete checklist (lenient approval)",
                registration.id,
                actor,
            )
        logger.info("Registration %s approved by %s", registration.id, actor)
        return ReviewResult(registration=registration, outbox_ids=[outbox_id])

    def reject(
        self, registration_id: str, actor: str, reason: str | None = None
    ) -> ReviewResult:
        """
        Reject a registration. REJECTED is terminal.

        Raises:
            Forbidden: If actor may not approve/reject
            RegistrationNotFound: If no such registration
            InvalidTransition: If the registration was approved
        """
        if not self.access.can_approve(actor):
            raise Forbidden(actor, "reject")
        now = self.clock()

        with self.repository.transaction() as tx:
            registration = self._load(tx, registration_id)
            if registration.status == RegistrationStatus.REJECTED:
                return ReviewResult(registration=registration)
            if registration.status == RegistrationStatus.APPROVED:
                raise InvalidTransition("Registration is approved")

            registration.status = RegistrationStatus.REJECTED
            registration.updated_at = now
            tx.save_registration(registration)

            payload = self._base_payload(registration)
            if reason:
                payload["reason"] = reason
            outbox_id = tx.enqueue_email(TEMPLATE_REJECTION, registration.email, payload, now)

        logger.info("Registration %s rejected by %s", registration.id, actor)
        return ReviewResult(registration=registration, outbox_ids=[outbox_id])

    def submit_update(self, token: str) -> ReviewResult:
        """
        Accept an applicant's resubmission through a deep link.

        Consumes the token and resets its dimension to PENDING in a single
        transaction. If the registration is not awaiting an update the
        transaction rolls back and the token stays unused.

        Raises:
            TokenInvalid: If the token is unknown, expired or used
            InvalidTransition: If the registration is not WAITING_FOR_UPDATE
        """
        now = self.clock()
        with self.repository.transaction() as tx:
            record = tx.consume_token(hash_token(token), now)
            if record is None:
                reason = self.tokens.classify(tx.find_token(hash_token(token)), now)
                logger.info("Resubmission refused: %s", reason.value if reason else "unknown")
                raise TokenInvalid(reason or TokenInvalidReason.ALREADY_USED)

            registration = self._load(tx, record.registration_id)
            if registration.status != RegistrationStatus.WAITING_FOR_UPDATE:
                raise InvalidTransition(
                    f"Registration is {registration.status.value}, expected waiting_for_update"
                )

            registration.checklist[record.dimension] = DimensionStatus.PENDING
            registration.status = self._open_status(registration)
            registration.updated_at = now
            tx.save_registration(registration)

        logger.info(
            "Resubmission received on %s for registration %s",
            record.dimension.value,
            registration.id,
        )
        return ReviewResult(registration=registration, dimension=record.dimension)

    def _authorize_dimension(self, actor: str, dimension: Dimension) -> None:
        if not self.access.can_review_dimension(actor, dimension):
            logger.warning("Actor %s denied review of %s", actor, dimension.value)
            raise Forbidden(actor, dimension.value)

    def _load(self, tx: ReviewTransaction, registration_id: str) -> Registration:
        registration = tx.get_registration(registration_id)
        if registration is None:
            raise RegistrationNotFound(registration_id)
        return registration

    def _open_status(self, registration: Registration) -> RegistrationStatus:
        """Overall status of a non-terminal registration given its checklist."""
        if registration.awaiting_update:
            return RegistrationStatus.WAITING_FOR_UPDATE
        return RegistrationStatus.WAITING_FOR_REVIEW

    def _base_payload(self, registration: Registration) -> dict[str, Any]:
        return {
            "registrationId": registration.id,
            "applicantName": registration.full_name,
        }

    def _deep_link(self, token: str) -> str:
        return f"{self.base_url.rstrip('/')}/update?token={token}"

    def _normalize_email(self, email: str) -> str:
        """
        Normalize email address for consistent storage and lookup.

        Applies: strip whitespace + lowercase
        """
        return email.strip().lower()
