"""
Audit log model - an append-only record of privileged actions.

Entries are written by AdLifecycle and PermissionStore in the same
transaction as the change they describe.
"""
from sqlalchemy import Column, DateTime, Enum as SQLEnum, JSON, String, Text, event

from admod.database import Base
from admod.models.domain import new_id, utcnow
from admod.models.enums import AuditAction


class AuditEntry(Base):
    """
    Immutable audit entry.

    Invariants:
    - Once written, never edited or deleted
    - Append-only
    """
    __tablename__ = "audit_logs"

    id = Column(String(36), primary_key=True, default=new_id)
    action = Column(SQLEnum(AuditAction, values_callable=lambda e: [m.value for m in e]), nullable=False, index=True)
    acting_admin_id = Column(String(36), nullable=False, index=True)
    entity_type = Column(String(50), nullable=False)  # e.g. "ad", "permission"
    entity_id = Column(String(36), nullable=False, index=True)
    old_values = Column(JSON, nullable=True)
    new_values = Column(JSON, nullable=True)
    description = Column(Text, nullable=True)
    ip_address = Column(String(45), nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow, index=True)


class AuditImmutabilityError(RuntimeError):
    """Raised when code attempts to change or remove a persisted audit entry."""


@event.listens_for(AuditEntry, "before_update")
def _refuse_update(mapper, connection, target):
    raise AuditImmutabilityError(f"Audit entry {target.id} is write-once")


@event.listens_for(AuditEntry, "before_delete")
def _refuse_delete(mapper, connection, target):
    raise AuditImmutabilityError(f"Audit entry {target.id} is write-once")
