"""Domain models - users, ads, the permission catalog and admin grants."""
import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Enum as SQLEnum,
    ForeignKey,
    Integer,
    JSON,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from admod.database import Base
from admod.models.enums import AdStatus, Role


def utcnow() -> datetime:
    """Naive UTC timestamp, the form every DateTime column stores."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def new_id() -> str:
    return str(uuid.uuid4())


class User(Base):
    """
    Account data the core reads to build a Subject.

    User management (creation, blocking, suspension) lives outside this service.
    """
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=new_id)
    email = Column(String(255), nullable=False, unique=True)
    role = Column(SQLEnum(Role), nullable=False, default=Role.USER)
    is_blocked = Column(Boolean, nullable=False, default=False)
    is_suspended = Column(Boolean, nullable=False, default=False)
    suspended_until = Column(DateTime, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    grants = relationship("AdminPermission", back_populates="admin", cascade="all, delete-orphan")


class Ad(Base):
    """
    The moderated entity. Status changes only through AdLifecycle.

    Invariants:
    - Status is always one of the six allowed states
    - approved_at is set once per approval lineage and never overwritten
    - rejection_reason is non-empty whenever status is REJECTED
    - Never hard-deleted; deleted_at hides the row from every lookup
    """
    __tablename__ = "ads"

    id = Column(String(36), primary_key=True, default=new_id)
    owner_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)

    # Opaque payload
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    price = Column(Numeric(10, 2), nullable=False, default=0)
    metadata_json = Column("metadata", JSON, nullable=True)
    views = Column(Integer, nullable=False, default=0)

    status = Column(SQLEnum(AdStatus), nullable=False, default=AdStatus.PENDING_APPROVAL, index=True)

    approved_by = Column(String(36), nullable=True)
    approved_at = Column(DateTime, nullable=True)
    rejected_by = Column(String(36), nullable=True)
    rejected_at = Column(DateTime, nullable=True)
    rejection_reason = Column(Text, nullable=True)

    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)
    deleted_at = Column(DateTime, nullable=True)  # Soft delete

    # Optimistic concurrency counter, bumped on every UPDATE
    version = Column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    owner = relationship("User")


class Permission(Base):
    """
    A fine-grained capability named resource.action (e.g. ads.approve).

    Flat catalog, immutable once created.
    """
    __tablename__ = "permissions"

    id = Column(String(36), primary_key=True, default=new_id)
    name = Column(String(100), nullable=False, unique=True)
    resource = Column(String(100), nullable=False)
    action = Column(String(100), nullable=False)
    description = Column(Text, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    grants = relationship("AdminPermission", back_populates="permission", cascade="all, delete-orphan")


class AdminPermission(Base):
    """
    Grant of one permission to one admin. Grants form a set: no ordering, no priority.

    SUPER_ADMIN accounts never need rows here; their bypass is evaluated in code.
    """
    __tablename__ = "admin_permissions"
    __table_args__ = (
        UniqueConstraint("admin_id", "permission_id", name="uq_admin_permission"),
    )

    id = Column(String(36), primary_key=True, default=new_id)
    admin_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    permission_id = Column(String(36), ForeignKey("permissions.id"), nullable=False)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    admin = relationship("User", back_populates="grants")
    permission = relationship("Permission", back_populates="grants")


class OwnerMessage(Base):
    """Message delivered to an ad owner by the moderation flow (e.g. rejection notice)."""
    __tablename__ = "owner_messages"

    id = Column(String(36), primary_key=True, default=new_id)
    ad_id = Column(String(36), ForeignKey("ads.id"), nullable=False, index=True)
    sender_id = Column(String(36), nullable=False)
    recipient_id = Column(String(36), nullable=False, index=True)
    text = Column(Text, nullable=False)
    created_at = Column(DateTime, nullable=False, default=utcnow)
