"""API routes for ad moderation and permission management."""
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from admod.api.dependencies import (
    get_access_guard,
    get_audit_recorder,
    get_current_subject,
    get_lifecycle,
    get_optional_subject,
    get_permission_store,
)
from admod.api.schemas import (
    AdCreate,
    AdPage,
    AdReject,
    AdResponse,
    AdUpdate,
    AuditEntryResponse,
    AuditPageResponse,
    ErrorResponse,
    GrantRequest,
    GrantResponse,
    PermissionResponse,
)
from admod.database import get_db
from admod.errors import Forbidden, NotFound
from admod.models.enums import AdStatus, AuditAction
from admod.models.subject import Subject
from admod.services.ad_lifecycle import AdLifecycle
from admod.services.audit_recorder import AuditRecorder
from admod.services.authorization import AccessGuard, Operation
from admod.services.identity import load_subject_by_id
from admod.services.permission_store import PermissionStore

router = APIRouter()

MAX_PAGE_SIZE = 100

REFUSALS = {
    403: {"model": ErrorResponse, "description": "Refusal - caller not entitled"},
    404: {"model": ErrorResponse, "description": "Ad not found or not visible"},
    409: {"model": ErrorResponse, "description": "Refusal - invalid status transition"},
}


# Public (optional auth) endpoints
@router.get("/ads", response_model=AdPage)
def list_ads(
    status_filter: Optional[AdStatus] = Query(None, alias="status"),
    owner_id: Optional[str] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=MAX_PAGE_SIZE),
    subject: Optional[Subject] = Depends(get_optional_subject),
    lifecycle: AdLifecycle = Depends(get_lifecycle),
):
    """List ads. Anonymous callers and regular users only see APPROVED ads."""
    items, total = lifecycle.list_ads(subject, status=status_filter, owner_id=owner_id, page=page, limit=limit)
    return AdPage(items=[AdResponse.model_validate(ad) for ad in items], total=total, page=page, limit=limit)


@router.get("/ads/user/{owner_id}", response_model=List[AdResponse])
def list_owner_ads(
    owner_id: str,
    subject: Subject = Depends(get_current_subject),
    lifecycle: AdLifecycle = Depends(get_lifecycle),
):
    """All ads of one owner, any status (owner or admin only)."""
    return lifecycle.list_for_owner(owner_id, subject)


@router.get("/ads/{ad_id}", response_model=AdResponse, responses=REFUSALS)
def get_ad(
    ad_id: str,
    subject: Optional[Subject] = Depends(get_optional_subject),
    lifecycle: AdLifecycle = Depends(get_lifecycle),
):
    """Get an ad. Counts a view when the ad is APPROVED."""
    return lifecycle.view(ad_id, subject, count_view=True)


# Owner endpoints
@router.post("/ads", response_model=AdResponse, status_code=status.HTTP_201_CREATED)
def create_ad(
    ad_data: AdCreate,
    subject: Subject = Depends(get_current_subject),
    lifecycle: AdLifecycle = Depends(get_lifecycle),
):
    """Create a new ad in PENDING_APPROVAL state."""
    return lifecycle.create(
        subject,
        title=ad_data.title,
        description=ad_data.description,
        price=ad_data.price,
        metadata=ad_data.metadata,
    )


@router.patch("/ads/{ad_id}", response_model=AdResponse, responses=REFUSALS)
def update_ad(
    ad_id: str,
    ad_data: AdUpdate,
    subject: Subject = Depends(get_current_subject),
    lifecycle: AdLifecycle = Depends(get_lifecycle),
):
    """
    Update an ad (owner or admin).
    Side effect: an owner edit of an APPROVED or REJECTED ad sends it back to PENDING_APPROVAL.
    """
    return lifecycle.update(ad_id, subject, ad_data.model_dump(exclude_unset=True))


@router.delete("/ads/{ad_id}", status_code=status.HTTP_204_NO_CONTENT, responses=REFUSALS)
def delete_ad(
    ad_id: str,
    subject: Subject = Depends(get_current_subject),
    lifecycle: AdLifecycle = Depends(get_lifecycle),
):
    """Soft-delete an ad (owner, or admin with ads.delete)."""
    lifecycle.delete(ad_id, subject)


# Moderation endpoints
@router.post("/ads/{ad_id}/approve", response_model=AdResponse, responses=REFUSALS)
def approve_ad(
    ad_id: str,
    subject: Subject = Depends(get_current_subject),
    lifecycle: AdLifecycle = Depends(get_lifecycle),
):
    """Approve an ad (requires ads.approve)."""
    return lifecycle.approve(ad_id, subject)


@router.post("/ads/{ad_id}/reject", response_model=AdResponse, responses=REFUSALS)
def reject_ad(
    ad_id: str,
    reject_data: AdReject,
    subject: Subject = Depends(get_current_subject),
    lifecycle: AdLifecycle = Depends(get_lifecycle),
):
    """Reject an ad with a reason (requires ads.reject). The owner is notified."""
    return lifecycle.reject(ad_id, subject, reject_data.reason)


@router.post("/ads/{ad_id}/suspend", response_model=AdResponse, responses=REFUSALS)
def suspend_ad(
    ad_id: str,
    subject: Subject = Depends(get_current_subject),
    lifecycle: AdLifecycle = Depends(get_lifecycle),
):
    """Suspend an ad (requires ads.edit)."""
    return lifecycle.suspend(ad_id, subject)


@router.post("/ads/{ad_id}/unsuspend", response_model=AdResponse, responses=REFUSALS)
def unsuspend_ad(
    ad_id: str,
    subject: Subject = Depends(get_current_subject),
    lifecycle: AdLifecycle = Depends(get_lifecycle),
):
    """Lift a suspension (requires ads.edit)."""
    return lifecycle.unsuspend(ad_id, subject)


# Permission endpoints
@router.get("/permissions", response_model=List[PermissionResponse])
def list_permissions(
    subject: Subject = Depends(get_current_subject),
    guard: AccessGuard = Depends(get_access_guard),
    store: PermissionStore = Depends(get_permission_store),
):
    guard.enforce(Operation.PERMISSION_LIST, subject)
    return store.list_all()


@router.get("/permissions/admin/{admin_id}", response_model=List[PermissionResponse])
def get_admin_permissions(
    admin_id: str,
    subject: Subject = Depends(get_current_subject),
    guard: AccessGuard = Depends(get_access_guard),
    store: PermissionStore = Depends(get_permission_store),
):
    """Super admins may inspect any admin; an admin only their own grants."""
    guard.enforce(Operation.PERMISSION_GRANTS_FOR, subject)
    if not subject.is_super_admin and subject.id != admin_id:
        raise Forbidden("You can only view your own permissions")
    return store.grants_for(admin_id)


@router.post("/permissions/assign", response_model=GrantResponse)
def assign_permission(
    grant_data: GrantRequest,
    db: Session = Depends(get_db),
    subject: Subject = Depends(get_current_subject),
    guard: AccessGuard = Depends(get_access_guard),
    store: PermissionStore = Depends(get_permission_store),
):
    guard.enforce(Operation.PERMISSION_ASSIGN, subject)
    if load_subject_by_id(db, grant_data.admin_id) is None:
        raise NotFound(f"Admin with ID {grant_data.admin_id} not found")
    if store.get(grant_data.permission_id) is None:
        raise NotFound(f"Permission with ID {grant_data.permission_id} not found")
    return store.assign(grant_data.admin_id, grant_data.permission_id, actor_id=subject.id)


@router.delete("/permissions/revoke")
def revoke_permission(
    grant_data: GrantRequest,
    subject: Subject = Depends(get_current_subject),
    guard: AccessGuard = Depends(get_access_guard),
    store: PermissionStore = Depends(get_permission_store),
):
    guard.enforce(Operation.PERMISSION_REVOKE, subject)
    store.revoke(grant_data.admin_id, grant_data.permission_id, actor_id=subject.id)
    return {"message": "Permission revoked successfully"}


# Audit endpoints
@router.get("/audit-logs", response_model=AuditPageResponse)
def list_audit_logs(
    admin_id: Optional[str] = None,
    action: Optional[AuditAction] = None,
    entity_type: Optional[str] = None,
    entity_id: Optional[str] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=MAX_PAGE_SIZE),
    subject: Subject = Depends(get_current_subject),
    guard: AccessGuard = Depends(get_access_guard),
    audit: AuditRecorder = Depends(get_audit_recorder),
):
    guard.enforce(Operation.AUDIT_LIST, subject)
    result = audit.find(
        admin_id=admin_id, action=action, entity_type=entity_type, entity_id=entity_id, page=page, limit=limit
    )
    return AuditPageResponse(
        items=[AuditEntryResponse.model_validate(entry) for entry in result.items],
        total=result.total,
        page=result.page,
        limit=result.limit,
    )
