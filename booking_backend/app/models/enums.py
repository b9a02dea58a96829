"""
Role and policy enumerations.

Defines the roles, resource kinds and actions the authorization gate reasons about.
"""

import enum


class UserRole(str, enum.Enum):
    """
    User role enumeration.

    Roles:
        USER: Customer who books services
        AGENT: Service provider assigned to bookings
        ADMIN: Platform operator
        SUPER_ADMIN: Supreme user, manages admins
    """
    USER = "USER"
    AGENT = "AGENT"
    ADMIN = "ADMIN"
    SUPER_ADMIN = "SUPER_ADMIN"


class ResourceKind(str, enum.Enum):
    """Kinds of resources guarded by the policy table."""
    BOOKING = "BOOKING"
    SERVICE = "SERVICE"
    AGENT_ACCOUNT = "AGENT_ACCOUNT"
    USER_ACCOUNT = "USER_ACCOUNT"
    ADMIN_ACCOUNT = "ADMIN_ACCOUNT"
    SUPER_ADMIN_ACCOUNT = "SUPER_ADMIN_ACCOUNT"
    AUDIT_LOG = "AUDIT_LOG"


class PolicyAction(str, enum.Enum):
    """Actions a principal may attempt on a resource."""
    CREATE = "CREATE"
    READ = "READ"
    LIST = "LIST"
    UPDATE = "UPDATE"
    ANNOTATE = "ANNOTATE"  # customer-editable fields only (booking notes)
    TRANSITION = "TRANSITION"
    CANCEL = "CANCEL"
    UPDATE_PAYMENT = "UPDATE_PAYMENT"
    DELETE = "DELETE"
