"""
Allowlist RBAC adapter - Implements AccessPolicy protocol.

Roles come from comma-separated email allowlists: a super admin may review
every dimension and approve or reject; a dimension admin may review only
their own dimension.
"""

from collections.abc import Iterable

from src.domain.models import Dimension


def parse_email_list(raw: str | Iterable[str] | None) -> frozenset[str]:
    """Split a comma-separated allowlist into normalized (stripped, lowercased) emails."""
    if raw is None:
        return frozenset()
    items = raw.split(",") if isinstance(raw, str) else raw
    return frozenset(item.strip().lower() for item in items if item and item.strip())


class AllowlistAccessPolicy:
    """
    Implements AccessPolicy protocol from static allowlists.

    Uses structural subtyping - no explicit inheritance from Protocol.
    """

    def __init__(
        self,
        super_admins: str | Iterable[str] | None = None,
        payment_admins: str | Iterable[str] | None = None,
        profile_admins: str | Iterable[str] | None = None,
        tcc_admins: str | Iterable[str] | None = None,
    ) -> None:
        self._super_admins = parse_email_list(super_admins)
        self._dimension_admins = {
            Dimension.PAYMENT: parse_email_list(payment_admins),
            Dimension.PROFILE: parse_email_list(profile_admins),
            Dimension.TCC: parse_email_list(tcc_admins),
        }

    def can_review_dimension(self, actor: str, dimension: Dimension) -> bool:
        actor = actor.strip().lower()
        return actor in self._super_admins or actor in self._dimension_admins[dimension]

    def can_approve(self, actor: str) -> bool:
        return actor.strip().lower() in self._super_admins

    def is_admin(self, actor: str) -> bool:
        actor = actor.strip().lower()
        if actor in self._super_admins:
            return True
        return any(actor in admins for admins in self._dimension_admins.values())
