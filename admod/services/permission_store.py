"""
Storage for the permission catalog and admin grants.

This component is pure storage: it does not check that an admin_id actually
belongs to an ADMIN account. Eligibility is decided by PermissionAuthorizer.
"""
import logging
from typing import List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from admod.models.domain import AdminPermission, Permission
from admod.models.enums import AuditAction
from admod.services.audit_recorder import AuditRecorder

logger = logging.getLogger(__name__)

# resource, action, description
DEFAULT_PERMISSIONS = [
    ("ads", "approve", "Approve ads"),
    ("ads", "reject", "Reject ads"),
    ("ads", "edit", "Edit any ad"),
    ("ads", "delete", "Delete any ad"),
    ("ads", "manage", "Manage ads (suspend, unsuspend, edit, delete)"),
    ("users", "view", "View all users"),
    ("users", "block", "Block users"),
    ("users", "suspend", "Suspend users"),
    ("messages", "view", "View all messages"),
    ("categories", "manage", "Manage categories"),
    ("admins", "manage", "Manage admin users"),
    ("reports", "view", "View reports"),
    ("reports", "manage", "Manage reports"),
]


class PermissionStore:
    """Reads and writes the admin-to-permission mapping."""

    def __init__(self, db: Session, audit: Optional[AuditRecorder] = None):
        self.db = db
        self.audit = audit

    # Catalog

    def list_all(self) -> List[Permission]:
        """All permissions, ordered by resource then action."""
        return self.db.query(Permission).order_by(Permission.resource, Permission.action).all()

    def get(self, permission_id: str) -> Optional[Permission]:
        return self.db.query(Permission).filter(Permission.id == permission_id).first()

    def find_by_name(self, name: str) -> Optional[Permission]:
        return self.db.query(Permission).filter(Permission.name == name).first()

    def create(self, resource: str, action: str, description: Optional[str] = None) -> Permission:
        """Create resource.action, or return it unchanged if it already exists."""
        name = f"{resource}.{action}"
        existing = self.find_by_name(name)
        if existing:
            return existing

        permission = Permission(name=name, resource=resource, action=action, description=description)
        self.db.add(permission)
        self.db.commit()
        self.db.refresh(permission)
        return permission

    def seed_catalog(self) -> List[Permission]:
        """Install the default catalog. Safe to run on every start."""
        return [self.create(resource, action, description) for resource, action, description in DEFAULT_PERMISSIONS]

    # Grants

    def grants_for(self, admin_id: str) -> List[Permission]:
        """Permissions granted to admin_id; empty if none."""
        return (
            self.db.query(Permission)
            .join(AdminPermission, AdminPermission.permission_id == Permission.id)
            .filter(AdminPermission.admin_id == admin_id)
            .order_by(Permission.resource, Permission.action)
            .all()
        )

    def _find_grant(self, admin_id: str, permission_id: str) -> Optional[AdminPermission]:
        return self.db.query(AdminPermission).filter(
            AdminPermission.admin_id == admin_id,
            AdminPermission.permission_id == permission_id
        ).first()

    def assign(self, admin_id: str, permission_id: str, actor_id: Optional[str] = None) -> AdminPermission:
        """
        Grant permission_id to admin_id.

        Idempotent: an existing pair is returned unchanged and nothing is audited.
        A new grant is audited when an acting admin is given.
        """
        existing = self._find_grant(admin_id, permission_id)
        if existing:
            return existing

        grant = AdminPermission(admin_id=admin_id, permission_id=permission_id)
        self.db.add(grant)
        try:
            self.db.flush()
        except IntegrityError:
            # Lost an insert race against a concurrent assign of the same pair
            self.db.rollback()
            existing = self._find_grant(admin_id, permission_id)
            if existing is None:
                raise
            return existing

        if self.audit is not None and actor_id is not None:
            self.audit.log(
                action=AuditAction.PERMISSION_ASSIGNED,
                acting_admin_id=actor_id,
                entity_type="permission",
                entity_id=permission_id,
                new_values={"admin_id": admin_id, "permission_id": permission_id},
                description=f"Permission {permission_id} assigned to admin {admin_id}",
            )

        self.db.commit()
        self.db.refresh(grant)
        logger.info("permission %s assigned to admin %s", permission_id, admin_id)
        return grant

    def revoke(self, admin_id: str, permission_id: str, actor_id: Optional[str] = None) -> None:
        """Remove the grant if present. Revoking a missing grant is a no-op."""
        removed = self.db.query(AdminPermission).filter(
            AdminPermission.admin_id == admin_id,
            AdminPermission.permission_id == permission_id
        ).delete(synchronize_session="fetch")

        if removed and self.audit is not None and actor_id is not None:
            self.audit.log(
                action=AuditAction.PERMISSION_REVOKED,
                acting_admin_id=actor_id,
                entity_type="permission",
                entity_id=permission_id,
                old_values={"admin_id": admin_id, "permission_id": permission_id},
                description=f"Permission {permission_id} revoked from admin {admin_id}",
            )

        self.db.commit()
        if removed:
            logger.info("permission %s revoked from admin %s", permission_id, admin_id)
