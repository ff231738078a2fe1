"""Enums for the moderation core - these define the valid values for roles, statuses and audit actions."""
from enum import Enum


class Role(str, Enum):
    """Coarse-grained account classification."""
    USER = "USER"
    ADMIN = "ADMIN"
    SUPER_ADMIN = "SUPER_ADMIN"


class AdStatus(str, Enum):
    """The six states an Ad can be in. No other states are allowed."""
    DRAFT = "DRAFT"
    PENDING_APPROVAL = "PENDING_APPROVAL"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    SUSPENDED = "SUSPENDED"  # Temporarily hidden by an admin
    EXPIRED = "EXPIRED"  # Set by an external scheduler only


class AuditAction(str, Enum):
    """Privileged actions recorded in the audit trail."""
    USER_CREATED = "user.created"
    USER_UPDATED = "user.updated"
    USER_BLOCKED = "user.blocked"
    USER_UNBLOCKED = "user.unblocked"
    USER_SUSPENDED = "user.suspended"
    AD_APPROVED = "ad.approved"
    AD_REJECTED = "ad.rejected"
    AD_EDITED = "ad.edited"
    AD_DELETED = "ad.deleted"
    PERMISSION_ASSIGNED = "permission.assigned"
    PERMISSION_REVOKED = "permission.revoked"
    ADMIN_CREATED = "admin.created"
    ADMIN_UPDATED = "admin.updated"
