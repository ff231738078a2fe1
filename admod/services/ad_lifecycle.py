"""
Ad lifecycle state machine.

This is the core enforcement mechanism - every status change of an Ad MUST
go through here. Each transition runs as one unit against the database:
read the current status under a row lock, check the guard, write the new
status and its audit entry, commit. A guard violation rolls the session back,
so a refused transition leaves no state change and no audit entry.
"""
import logging
from datetime import datetime
from decimal import Decimal
from typing import Any, Callable, Dict, List, Optional, Tuple

from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from admod.errors import (
    AlreadyApproved,
    AlreadyRejected,
    AlreadySuspended,
    Forbidden,
    NotFound,
    NotSuspended,
    ReasonRequired,
    ValidationError,
)
from admod.models.domain import Ad, utcnow
from admod.models.enums import AdStatus, AuditAction
from admod.models.subject import Subject
from admod.repositories.ads import AdRepository
from admod.services.audit_recorder import AuditRecorder
from admod.services.authorization import AccessGuard, Operation, PermissionAuthorizer, RoleAuthorizer
from admod.services.notifier import MessageNotifier, OwnerNotifier, rejection_notice
from admod.services.permission_store import PermissionStore

logger = logging.getLogger(__name__)

# Payload fields an edit may touch; status and moderation fields are never among them
UPDATABLE_FIELDS = ("title", "description", "price", "metadata")

# Backed by NOT NULL columns
REQUIRED_FIELDS = ("title", "price")

# Owner edits of these states send the ad back to the moderation queue
RESUBMIT_ON_EDIT = (AdStatus.APPROVED, AdStatus.REJECTED)


def _jsonable(value: Any) -> Any:
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, datetime):
        return value.isoformat()
    return value


def _payload_attr(field: str) -> str:
    return "metadata_json" if field == "metadata" else field


class AdLifecycle:
    """Owns the Ad status state machine and its transition operations."""

    def __init__(
        self,
        db: Session,
        guard: AccessGuard,
        permissions: PermissionAuthorizer,
        audit: AuditRecorder,
        notifier: Optional[OwnerNotifier] = None,
        clock: Callable[[], datetime] = utcnow,
        max_attempts: int = 2,
    ):
        self.db = db
        self.ads = AdRepository(db)
        self.guard = guard
        self.permissions = permissions
        self.audit = audit
        self.notifier = notifier
        self.clock = clock
        self.max_attempts = max_attempts

    # Visibility

    @staticmethod
    def can_see(ad: Ad, subject: Optional[Subject]) -> bool:
        """Strangers only ever see APPROVED ads; owners and admins see every status."""
        if ad.status == AdStatus.APPROVED:
            return True
        if subject is None:
            return False
        return subject.is_admin or ad.owner_id == subject.id

    def _load_visible(self, ad_id: str, subject: Optional[Subject], for_update: bool = False) -> Ad:
        ad = self.ads.get(ad_id, for_update=for_update)
        # Hidden ads are reported as missing, not forbidden, to avoid disclosing them
        if ad is None or not self.can_see(ad, subject):
            raise NotFound(f"Ad with ID {ad_id} not found")
        return ad

    def _transition(self, ad_id: str, subject: Subject, apply: Callable[[Ad], None]) -> Ad:
        """
        Run apply() against a freshly locked copy of the ad and commit.

        If a concurrent writer got there first (version mismatch at flush),
        the work is rolled back and re-run once against the new state, so
        guards such as "already approved" observe the winner's result.
        """
        for attempt in range(1, self.max_attempts + 1):
            try:
                ad = self._load_visible(ad_id, subject, for_update=True)
                apply(ad)
                self.db.commit()
            except StaleDataError:
                self.db.rollback()
                if attempt == self.max_attempts:
                    raise
                logger.info("ad %s changed concurrently, re-evaluating transition", ad_id)
                continue
            except Exception:
                self.db.rollback()
                raise
            self.db.refresh(ad)
            return ad
        raise RuntimeError("unreachable")  # pragma: no cover

    # Reads

    def view(self, ad_id: str, subject: Optional[Subject] = None, count_view: bool = True) -> Ad:
        """
        Fetch an ad as seen by subject.

        Side effect: views is incremented iff the ad is APPROVED and count_view is set.
        """
        self.guard.enforce(Operation.AD_VIEW, subject)
        ad = self._load_visible(ad_id, subject)

        if count_view and ad.status == AdStatus.APPROVED:
            # Counter bump as a single UPDATE so it never contends with transitions
            self.db.query(Ad).filter(Ad.id == ad.id).update(
                {Ad.views: Ad.views + 1}, synchronize_session=False
            )
            self.db.commit()
            self.db.refresh(ad)

        return ad

    def list_ads(
        self,
        subject: Optional[Subject] = None,
        status: Optional[AdStatus] = None,
        owner_id: Optional[str] = None,
        page: int = 1,
        limit: int = 20,
    ) -> Tuple[List[Ad], int]:
        """Public listing. Non-admins only ever see APPROVED ads, whatever status they ask for."""
        self.guard.enforce(Operation.AD_LIST, subject)
        if subject is None or not subject.is_admin:
            status = AdStatus.APPROVED
        return self.ads.list(status=status, owner_id=owner_id, page=page, limit=limit)

    def list_for_owner(self, owner_id: str, subject: Subject) -> List[Ad]:
        """All of an owner's ads, any status. Only the owner and admins may ask."""
        self.guard.enforce(Operation.AD_LIST_FOR_OWNER, subject)
        if not subject.is_admin and subject.id != owner_id:
            raise Forbidden("You can only view your own ads")
        return self.ads.list_for_owner(owner_id)

    # Owner operations

    def create(
        self,
        subject: Subject,
        title: str,
        description: Optional[str] = None,
        price: Any = 0,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Ad:
        """Create an ad owned by subject. New ads always enter the moderation queue."""
        self.guard.enforce(Operation.AD_CREATE, subject)
        if not title or not title.strip():
            raise ValidationError("Title is required")

        ad = Ad(
            owner_id=subject.id,
            title=title,
            description=description,
            price=price,
            metadata_json=metadata,
            status=AdStatus.PENDING_APPROVAL,
        )
        self.ads.add(ad)
        self.db.commit()
        self.db.refresh(ad)
        logger.info("ad %s created by %s", ad.id, subject.id)
        return ad

    def update(self, ad_id: str, subject: Subject, changes: Dict[str, Any]) -> Ad:
        """
        Edit an ad's payload.

        Side effects:
        - Owner editing an APPROVED or REJECTED ad resubmits it: PENDING_APPROVAL,
          rejection reason cleared. approved_at is kept.
        - Admin editing someone else's ad is audited.
        """
        self.guard.enforce(Operation.AD_UPDATE, subject)
        unknown = set(changes) - set(UPDATABLE_FIELDS)
        if unknown:
            raise ValidationError(f"Fields cannot be updated: {', '.join(sorted(unknown))}")
        cleared = sorted(f for f in REQUIRED_FIELDS if f in changes and changes[f] is None)
        if cleared:
            raise ValidationError(f"Fields cannot be empty: {', '.join(cleared)}")
        if "title" in changes and not changes["title"].strip():
            raise ValidationError("Title is required")

        def apply(ad: Ad) -> None:
            is_owner = ad.owner_id == subject.id
            if not is_owner and not subject.is_admin:
                raise Forbidden("You can only update your own ads")

            previous_status = ad.status
            if is_owner and ad.status in RESUBMIT_ON_EDIT:
                ad.status = AdStatus.PENDING_APPROVAL
                ad.rejection_reason = None

            old_values = {f: _jsonable(getattr(ad, _payload_attr(f))) for f in changes}
            old_title = ad.title
            for field, value in changes.items():
                setattr(ad, _payload_attr(field), value)

            if not is_owner:
                self.audit.log(
                    action=AuditAction.AD_EDITED,
                    acting_admin_id=subject.id,
                    entity_type="ad",
                    entity_id=ad.id,
                    old_values=old_values,
                    new_values={f: _jsonable(v) for f, v in changes.items()},
                    description=f"Ad edited by admin: {old_title}",
                )

            if ad.status != previous_status:
                logger.info("ad %s resubmitted by owner (%s -> %s)", ad.id, previous_status.value, ad.status.value)

        return self._transition(ad_id, subject, apply)

    def delete(self, ad_id: str, subject: Subject) -> Ad:
        """
        Soft-delete an ad. Status is left untouched.

        The owner may always delete their own ad; another admin needs ads.delete.
        """
        self.guard.enforce(Operation.AD_DELETE, subject)

        def apply(ad: Ad) -> None:
            is_owner = ad.owner_id == subject.id
            if not is_owner:
                if not subject.is_admin:
                    raise Forbidden("You can only delete your own ads")
                if not self.permissions.authorize(subject, {"ads.delete"}):
                    raise Forbidden("You do not have permission to delete ads")

            ad.deleted_at = self.clock()

            if not is_owner:
                self.audit.log(
                    action=AuditAction.AD_DELETED,
                    acting_admin_id=subject.id,
                    entity_type="ad",
                    entity_id=ad.id,
                    description=f"Ad deleted by admin: {ad.title}",
                )

        ad = self._transition(ad_id, subject, apply)
        logger.info("ad %s deleted by %s", ad_id, subject.id)
        return ad

    # Moderation

    def approve(self, ad_id: str, subject: Subject) -> Ad:
        """
        Approve an ad.

        approved_at is only set when it is still empty, so the first approval
        date survives owner edits and re-approvals.
        """
        self.guard.enforce(Operation.AD_APPROVE, subject)

        def apply(ad: Ad) -> None:
            if ad.status == AdStatus.APPROVED:
                raise AlreadyApproved()

            previous_status = ad.status
            ad.status = AdStatus.APPROVED
            ad.approved_by = subject.id
            if ad.approved_at is None:
                ad.approved_at = self.clock()
            ad.rejection_reason = None

            self.audit.log(
                action=AuditAction.AD_APPROVED,
                acting_admin_id=subject.id,
                entity_type="ad",
                entity_id=ad.id,
                old_values={"status": previous_status.value},
                new_values={"status": AdStatus.APPROVED.value},
                description=f"Ad approved: {ad.title}",
            )

        ad = self._transition(ad_id, subject, apply)
        logger.info("ad %s approved by %s", ad_id, subject.id)
        return ad

    def reject(self, ad_id: str, subject: Subject, reason: Optional[str]) -> Ad:
        """
        Reject an ad with a reason, then tell the owner.

        The owner notice is best effort: it is sent after the rejection is
        committed and a failure is logged, never raised.
        """
        self.guard.enforce(Operation.AD_REJECT, subject)

        def apply(ad: Ad) -> None:
            if ad.status == AdStatus.REJECTED:
                raise AlreadyRejected()
            if reason is None or not reason.strip():
                raise ReasonRequired()

            previous_status = ad.status
            ad.status = AdStatus.REJECTED
            ad.rejected_by = subject.id
            ad.rejected_at = self.clock()
            ad.rejection_reason = reason.strip()

            self.audit.log(
                action=AuditAction.AD_REJECTED,
                acting_admin_id=subject.id,
                entity_type="ad",
                entity_id=ad.id,
                old_values={"status": previous_status.value},
                new_values={"status": AdStatus.REJECTED.value, "rejectionReason": ad.rejection_reason},
                description=f"Ad rejected: {ad.title}",
            )

        ad = self._transition(ad_id, subject, apply)
        logger.info("ad %s rejected by %s", ad_id, subject.id)

        if self.notifier is not None:
            try:
                self.notifier.notify_owner(ad.id, rejection_notice(ad.title, ad.rejection_reason), subject.id)
            except Exception:
                logger.exception("Failed to send rejection message to owner of ad %s", ad.id)

        return ad

    def suspend(self, ad_id: str, subject: Subject) -> Ad:
        """Temporarily hide an ad. Any non-suspended status may be suspended."""
        self.guard.enforce(Operation.AD_SUSPEND, subject)

        def apply(ad: Ad) -> None:
            if ad.status == AdStatus.SUSPENDED:
                raise AlreadySuspended()

            previous_status = ad.status
            ad.status = AdStatus.SUSPENDED

            self.audit.log(
                action=AuditAction.AD_EDITED,
                acting_admin_id=subject.id,
                entity_type="ad",
                entity_id=ad.id,
                old_values={"status": previous_status.value},
                new_values={"status": AdStatus.SUSPENDED.value},
                description=f"Ad suspended: {ad.title}",
            )

        ad = self._transition(ad_id, subject, apply)
        logger.info("ad %s suspended by %s", ad_id, subject.id)
        return ad

    def unsuspend(self, ad_id: str, subject: Subject) -> Ad:
        """Lift a suspension: back to APPROVED if the ad was ever approved, else PENDING_APPROVAL."""
        self.guard.enforce(Operation.AD_UNSUSPEND, subject)

        def apply(ad: Ad) -> None:
            if ad.status != AdStatus.SUSPENDED:
                raise NotSuspended()

            ad.status = AdStatus.APPROVED if ad.approved_at is not None else AdStatus.PENDING_APPROVAL

            self.audit.log(
                action=AuditAction.AD_EDITED,
                acting_admin_id=subject.id,
                entity_type="ad",
                entity_id=ad.id,
                old_values={"status": AdStatus.SUSPENDED.value},
                new_values={"status": ad.status.value},
                description=f"Ad unsuspended: {ad.title}",
            )

        ad = self._transition(ad_id, subject, apply)
        logger.info("ad %s unsuspended by %s", ad_id, subject.id)
        return ad


def build_lifecycle(
    db: Session,
    session_factory: Optional[Callable[[], Session]] = None,
    clock: Callable[[], datetime] = utcnow,
) -> AdLifecycle:
    """Assemble the lifecycle and its collaborators for one request."""
    audit = AuditRecorder(db)
    permissions = PermissionAuthorizer(PermissionStore(db, audit))
    guard = AccessGuard(RoleAuthorizer(), permissions)
    notifier = MessageNotifier(session_factory) if session_factory is not None else None
    return AdLifecycle(db, guard, permissions, audit, notifier=notifier, clock=clock)
