"""
Request-scoped wiring of the core components.

Every component receives its collaborators explicitly here; the resolved
caller is threaded into each operation as a plain argument.
"""
from datetime import timedelta
from typing import Callable, Optional

from fastapi import Depends, Header
from sqlalchemy.orm import Session

from admod.config import Settings, get_settings
from admod.database import SessionLocal, get_db
from admod.models.subject import Subject
from admod.services.ad_lifecycle import AdLifecycle, build_lifecycle
from admod.services.audit_recorder import AuditRecorder
from admod.services.authorization import AccessGuard, PermissionAuthorizer, RoleAuthorizer
from admod.services.identity import IdentityResolver, TokenService, load_subject_by_id
from admod.services.permission_store import PermissionStore


def get_session_factory() -> Callable[[], Session]:
    """Factory for sessions that must live outside the request transaction."""
    return SessionLocal


def get_token_service(settings: Settings = Depends(get_settings)) -> TokenService:
    return TokenService(
        secret=settings.jwt_secret,
        algorithm=settings.jwt_algorithm,
        ttl=timedelta(minutes=settings.access_token_ttl_minutes),
    )


def get_identity_resolver(
    db: Session = Depends(get_db),
    tokens: TokenService = Depends(get_token_service),
) -> IdentityResolver:
    return IdentityResolver(tokens, lambda subject_id: load_subject_by_id(db, subject_id))


def get_optional_subject(
    authorization: Optional[str] = Header(default=None, alias="Authorization"),
    resolver: IdentityResolver = Depends(get_identity_resolver),
) -> Optional[Subject]:
    return resolver.resolve_optional(authorization)


def get_current_subject(
    authorization: Optional[str] = Header(default=None, alias="Authorization"),
    resolver: IdentityResolver = Depends(get_identity_resolver),
) -> Subject:
    return resolver.resolve_required(authorization)


def get_audit_recorder(db: Session = Depends(get_db)) -> AuditRecorder:
    return AuditRecorder(db)


def get_permission_store(
    db: Session = Depends(get_db),
    audit: AuditRecorder = Depends(get_audit_recorder),
) -> PermissionStore:
    return PermissionStore(db, audit)


def get_permission_authorizer(store: PermissionStore = Depends(get_permission_store)) -> PermissionAuthorizer:
    return PermissionAuthorizer(store)


def get_access_guard(permissions: PermissionAuthorizer = Depends(get_permission_authorizer)) -> AccessGuard:
    return AccessGuard(RoleAuthorizer(), permissions)


def get_lifecycle(
    db: Session = Depends(get_db),
    session_factory: Callable[[], Session] = Depends(get_session_factory),
) -> AdLifecycle:
    return build_lifecycle(db, session_factory=session_factory)
