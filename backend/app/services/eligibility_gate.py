"""Role-based eligibility gate for magic link sign-in.

Applied twice: when a link is requested and again when it is clicked,
because a role can change between the two.

Rules, in order:
1. Allow-list configured: the role must be on it.
2. Deny-list configured: the role must not be on it.
3. Both empty: everyone is eligible.

When both lists are configured the allow-list narrows first and the
deny-list can still veto.
"""

from collections.abc import Iterable
from dataclasses import dataclass

from app.core.config import Settings

ROLE_NOT_ALLOWED = "User role not allowed"
ROLE_DISALLOWED = "User role disallowed"


@dataclass(frozen=True)
class EligibilityDecision:
    """Outcome of an eligibility check.

    Attributes:
        eligible: Whether a link may be issued or redeemed.
        reason: Audit reason when not eligible, None otherwise.
    """

    eligible: bool
    reason: str | None = None


class RoleEligibilityGate:
    """Allow/deny policy over role identifiers.

    Args:
        allowed_roles: Roles permitted to use magic links. Empty = no allow-list.
        disallowed_roles: Roles refused magic links. Empty = no deny-list.
    """

    def __init__(
        self,
        allowed_roles: Iterable[str] = (),
        disallowed_roles: Iterable[str] = (),
    ) -> None:
        self._allowed = frozenset(allowed_roles)
        self._disallowed = frozenset(disallowed_roles)

    @classmethod
    def from_settings(cls, settings: Settings) -> "RoleEligibilityGate":
        """Build the gate from configured role lists."""
        return cls(
            allowed_roles=settings.magic_link_allowed_roles,
            disallowed_roles=settings.magic_link_disallowed_roles,
        )

    def check(self, role: str | None) -> EligibilityDecision:
        """Evaluate the policy for a role.

        Args:
            role: Role identifier of the user; None for users without a role.

        Returns:
            EligibilityDecision with the rejection reason when ineligible.
        """
        if self._allowed and role not in self._allowed:
            return EligibilityDecision(eligible=False, reason=ROLE_NOT_ALLOWED)
        if self._disallowed and role in self._disallowed:
            return EligibilityDecision(eligible=False, reason=ROLE_DISALLOWED)
        return EligibilityDecision(eligible=True)

    def is_eligible(self, role: str | None) -> bool:
        """Shorthand for ``check(role).eligible``."""
        return self.check(role).eligible
