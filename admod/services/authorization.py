"""
Layered authorization: authentication, then role, then fine-grained permissions.

Which checks an operation needs is declared once, in OPERATION_POLICIES.
AccessGuard evaluates a policy in a fixed order before any operation touches
state. SUPER_ADMIN satisfies every role and permission requirement; that rule
lives here in code and is never stored as grant rows.
"""
import logging
from dataclasses import dataclass, field
from typing import AbstractSet, Dict, FrozenSet, Optional

from admod.errors import (
    AuthenticationRequired,
    InsufficientPermission,
    InsufficientRole,
    RoleNotEligible,
)
from admod.models.enums import Role
from admod.models.subject import Subject
from admod.services.permission_store import PermissionStore

logger = logging.getLogger(__name__)

ADMIN_ROLES = frozenset({Role.ADMIN, Role.SUPER_ADMIN})


class Operation:
    """Operation names used as keys of OPERATION_POLICIES."""
    AD_LIST = "ads.list"
    AD_VIEW = "ads.view"
    AD_LIST_FOR_OWNER = "ads.list_for_owner"
    AD_CREATE = "ads.create"
    AD_UPDATE = "ads.update"
    AD_DELETE = "ads.delete"
    AD_APPROVE = "ads.approve"
    AD_REJECT = "ads.reject"
    AD_SUSPEND = "ads.suspend"
    AD_UNSUSPEND = "ads.unsuspend"
    PERMISSION_LIST = "permissions.list"
    PERMISSION_GRANTS_FOR = "permissions.grants_for"
    PERMISSION_ASSIGN = "permissions.assign"
    PERMISSION_REVOKE = "permissions.revoke"
    AUDIT_LIST = "audit.list"


@dataclass(frozen=True)
class OperationPolicy:
    authenticated: bool = False
    roles: FrozenSet[Role] = field(default_factory=frozenset)
    permissions: FrozenSet[str] = field(default_factory=frozenset)


OPERATION_POLICIES: Dict[str, OperationPolicy] = {
    # Public, but authorization-aware (visibility depends on the subject)
    Operation.AD_LIST: OperationPolicy(),
    Operation.AD_VIEW: OperationPolicy(),

    # Any authenticated account; ownership is checked by AdLifecycle
    Operation.AD_LIST_FOR_OWNER: OperationPolicy(authenticated=True),
    Operation.AD_CREATE: OperationPolicy(authenticated=True),
    Operation.AD_UPDATE: OperationPolicy(authenticated=True),
    Operation.AD_DELETE: OperationPolicy(authenticated=True),

    # Moderation
    Operation.AD_APPROVE: OperationPolicy(True, ADMIN_ROLES, frozenset({"ads.approve"})),
    Operation.AD_REJECT: OperationPolicy(True, ADMIN_ROLES, frozenset({"ads.reject"})),
    Operation.AD_SUSPEND: OperationPolicy(True, ADMIN_ROLES, frozenset({"ads.edit"})),
    Operation.AD_UNSUSPEND: OperationPolicy(True, ADMIN_ROLES, frozenset({"ads.edit"})),

    # Permission management
    Operation.PERMISSION_LIST: OperationPolicy(True, ADMIN_ROLES),
    Operation.PERMISSION_GRANTS_FOR: OperationPolicy(True, ADMIN_ROLES),
    Operation.PERMISSION_ASSIGN: OperationPolicy(True, frozenset({Role.SUPER_ADMIN}), frozenset({"admins.manage"})),
    Operation.PERMISSION_REVOKE: OperationPolicy(True, frozenset({Role.SUPER_ADMIN}), frozenset({"admins.manage"})),
    Operation.AUDIT_LIST: OperationPolicy(True, ADMIN_ROLES, frozenset({"admins.manage"})),
}


class RoleAuthorizer:
    """Pure role check."""

    def authorize(self, subject: Optional[Subject], required_roles: AbstractSet[Role]) -> bool:
        if not required_roles:
            return True
        if subject is None:
            return False
        if subject.is_super_admin:
            return True
        return subject.role in required_roles

    def enforce(self, subject: Optional[Subject], required_roles: AbstractSet[Role]) -> None:
        if not self.authorize(subject, required_roles):
            raise InsufficientRole(required_roles)


class PermissionAuthorizer:
    """
    Checks that a subject holds ALL of a set of permissions.

    AND semantics let an operation demand a conjunction of capabilities.
    Only ADMIN accounts can hold grants; SUPER_ADMIN bypasses the check.
    """

    def __init__(self, store: PermissionStore):
        self.store = store

    def missing(self, subject: Optional[Subject], required_permissions: AbstractSet[str]) -> FrozenSet[str]:
        """Required permissions the subject does not hold."""
        required = frozenset(required_permissions)
        if not required:
            return frozenset()
        if subject is None:
            return required
        if subject.is_super_admin:
            return frozenset()
        if subject.role != Role.ADMIN:
            return required

        held = {permission.name for permission in self.store.grants_for(subject.id)}
        return required - held

    def authorize(self, subject: Optional[Subject], required_permissions: AbstractSet[str]) -> bool:
        return not self.missing(subject, required_permissions)

    def enforce(self, subject: Optional[Subject], required_permissions: AbstractSet[str]) -> None:
        missing = self.missing(subject, required_permissions)
        if not missing:
            return
        if subject is None or subject.role != Role.ADMIN:
            raise RoleNotEligible(missing)
        raise InsufficientPermission(missing)


class AccessGuard:
    """Runs the checks an operation declares, in order: authentication, role, permissions."""

    def __init__(
        self,
        roles: RoleAuthorizer,
        permissions: PermissionAuthorizer,
        policies: Optional[Dict[str, OperationPolicy]] = None,
    ):
        self.roles = roles
        self.permissions = permissions
        self.policies = policies if policies is not None else OPERATION_POLICIES

    def policy_for(self, operation: str) -> OperationPolicy:
        try:
            return self.policies[operation]
        except KeyError:
            raise ValueError(f"No access policy declared for operation {operation!r}") from None

    def enforce(self, operation: str, subject: Optional[Subject]) -> None:
        policy = self.policy_for(operation)
        try:
            if policy.authenticated and subject is None:
                raise AuthenticationRequired()
            self.roles.enforce(subject, policy.roles)
            self.permissions.enforce(subject, policy.permissions)
        except (AuthenticationRequired, InsufficientRole, InsufficientPermission) as exc:
            logger.info(
                "denied %s for subject %s: %s",
                operation, subject.id if subject else "anonymous", exc.code
            )
            raise

    def allows(self, operation: str, subject: Optional[Subject]) -> bool:
        policy = self.policy_for(operation)
        if policy.authenticated and subject is None:
            return False
        return (
            self.roles.authorize(subject, policy.roles)
            and self.permissions.authorize(subject, policy.permissions)
        )
