"""
Role-based and ownership-based access control.

All role logic lives in the POLICY table below. The gate is a pure
function of (principal, resource kind, action, resource owner) and the
table: no I/O, no side effects. Anything the table does not name is denied.
"""

import enum
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional, Tuple

from booking_backend.app.core.exceptions import AuthorizationDeniedError
from booking_backend.app.domain.records import Booking, Principal
from booking_backend.app.models.enums import PolicyAction, ResourceKind, UserRole


class Decision(str, enum.Enum):
    """Outcome of a policy check."""
    ALLOW = "ALLOW"
    DENY = "DENY"


class Rule(str, enum.Enum):
    """Policy table cell."""
    ALLOW = "ALLOW"  # unconditional
    OWNER_ONLY = "OWNER_ONLY"  # resource_owner_id must equal principal.id


PolicyKey = Tuple[UserRole, ResourceKind, PolicyAction]


def _build_policy() -> Mapping[PolicyKey, Rule]:
    table: Dict[PolicyKey, Rule] = {}

    for kind in ResourceKind:
        for action in PolicyAction:
            # Super admins can do everything
            table[(UserRole.SUPER_ADMIN, kind, action)] = Rule.ALLOW
            # Admins can do everything except manage super admin accounts
            if kind != ResourceKind.SUPER_ADMIN_ACCOUNT:
                table[(UserRole.ADMIN, kind, action)] = Rule.ALLOW

    # Agents act on their own bookings and services only
    for action in (
        PolicyAction.CREATE,
        PolicyAction.READ,
        PolicyAction.UPDATE,
        PolicyAction.ANNOTATE,
        PolicyAction.TRANSITION,
        PolicyAction.CANCEL,
        PolicyAction.UPDATE_PAYMENT,
    ):
        table[(UserRole.AGENT, ResourceKind.BOOKING, action)] = Rule.OWNER_ONLY
    table[(UserRole.AGENT, ResourceKind.BOOKING, PolicyAction.LIST)] = Rule.ALLOW

    for action in (PolicyAction.CREATE, PolicyAction.READ, PolicyAction.UPDATE, PolicyAction.DELETE):
        table[(UserRole.AGENT, ResourceKind.SERVICE, action)] = Rule.OWNER_ONLY

    # Customers book freely and manage only their own bookings
    table[(UserRole.USER, ResourceKind.BOOKING, PolicyAction.CREATE)] = Rule.ALLOW
    table[(UserRole.USER, ResourceKind.BOOKING, PolicyAction.LIST)] = Rule.ALLOW
    for action in (PolicyAction.READ, PolicyAction.CANCEL, PolicyAction.ANNOTATE):
        table[(UserRole.USER, ResourceKind.BOOKING, action)] = Rule.OWNER_ONLY

    return MappingProxyType(table)


# Initialized once at import, never mutated
POLICY: Mapping[PolicyKey, Rule] = _build_policy()


def _coerce(enum_cls, value: Any):
    try:
        return enum_cls(value)
    except ValueError:
        return None


class AuthorizationGate:
    """
    Policy evaluator mapping (role, resource kind, action) to allow/deny.

    Usage:
        gate = AuthorizationGate()
        gate.enforce(principal, ResourceKind.BOOKING, PolicyAction.READ,
                     resource_owner_id=booking.user_id)
    """

    def __init__(self, policy: Mapping[PolicyKey, Rule] = POLICY):
        self._policy = policy

    def check(
        self,
        principal: Principal,
        resource_kind: ResourceKind,
        action: PolicyAction,
        resource_owner_id: Optional[str] = None
    ) -> Decision:
        """
        Evaluate the policy.

        Args:
            principal: Acting identity
            resource_kind: Kind of resource being acted on
            action: Attempted action
            resource_owner_id: Owner of the resource, for ownership rules

        Returns:
            Decision.ALLOW or Decision.DENY (fail-closed on anything unknown)
        """
        role = _coerce(UserRole, principal.role)
        kind = _coerce(ResourceKind, resource_kind)
        act = _coerce(PolicyAction, action)
        if role is None or kind is None or act is None:
            return Decision.DENY

        rule = self._policy.get((role, kind, act))
        if rule is None:
            return Decision.DENY

        if rule == Rule.ALLOW:
            return Decision.ALLOW

        if resource_owner_id is not None and resource_owner_id == principal.id:
            return Decision.ALLOW
        return Decision.DENY

    def enforce(
        self,
        principal: Principal,
        resource_kind: ResourceKind,
        action: PolicyAction,
        resource_owner_id: Optional[str] = None
    ) -> None:
        """
        Enforce the policy, raise AuthorizationDeniedError on DENY.
        """
        if self.check(principal, resource_kind, action, resource_owner_id) == Decision.DENY:
            raise self.denied(principal, resource_kind, action)

    @staticmethod
    def denied(
        principal: Principal,
        resource_kind: ResourceKind,
        action: PolicyAction
    ) -> AuthorizationDeniedError:
        """Build the error reported for a DENY decision."""
        role = getattr(principal.role, "value", principal.role)
        kind = getattr(resource_kind, "value", resource_kind)
        act = getattr(action, "value", action)
        return AuthorizationDeniedError(
            message=f"Access denied. {role} may not {act} this {kind}.",
            details={"resource_kind": kind, "action": act}
        )

    @staticmethod
    def booking_owner_id(principal: Principal, user_id: str, agent_id: str) -> Optional[str]:
        """
        The owner id compared against the principal for a booking.

        For Users: the booking's customer
        For Agents: the agent assigned to the booking
        For Admins: None (their rules are unconditional)
        """
        role = _coerce(UserRole, principal.role)
        if role == UserRole.USER:
            return user_id
        if role == UserRole.AGENT:
            return agent_id
        return None

    @classmethod
    def owner_id_for(cls, principal: Principal, booking: Booking) -> Optional[str]:
        return cls.booking_owner_id(principal, booking.user_id, booking.agent_id)

    @staticmethod
    def scope_for(principal: Principal) -> Optional[Dict[str, str]]:
        """
        Filter narrowing applied to booking lists.

        For Users: restricted to their own bookings
        For Agents: restricted to bookings assigned to them
        For Admins: empty dict (no narrowing)
        Unknown roles: None (nothing is visible)
        """
        role = _coerce(UserRole, principal.role)
        if role == UserRole.USER:
            return {"user_id": principal.id}
        if role == UserRole.AGENT:
            return {"agent_id": principal.id}
        if role in (UserRole.ADMIN, UserRole.SUPER_ADMIN):
            return {}
        return None
