"""
Tests for concurrent moderation of the same ad.

Two request sessions on a file-backed database race to approve one ad.
Exactly one approval lands; the other caller sees AlreadyApproved.
"""
import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from admod.database import Base
from admod.errors import AlreadyApproved
from admod.models.audit import AuditEntry
from admod.models.domain import Ad, User
from admod.models.enums import AdStatus, AuditAction, Role
from admod.models.subject import Subject
from admod.services.ad_lifecycle import build_lifecycle
from admod.services.permission_store import PermissionStore


@pytest.fixture
def file_sessions(tmp_path):
    engine = create_engine(
        f"sqlite:///{tmp_path / 'race.db'}",
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(engine)
    yield sessionmaker(bind=engine, autocommit=False, autoflush=False)
    engine.dispose()


@pytest.fixture
def race(file_sessions):
    """An owner's pending ad and two moderators, each with ads.approve."""
    db = file_sessions()
    try:
        store = PermissionStore(db)
        store.seed_catalog()
        approve = store.find_by_name("ads.approve")

        owner = User(email="owner@example.com", role=Role.USER)
        first = User(email="first@example.com", role=Role.ADMIN)
        second = User(email="second@example.com", role=Role.ADMIN)
        db.add_all([owner, first, second])
        db.commit()
        store.assign(first.id, approve.id)
        store.assign(second.id, approve.id)

        ad = Ad(owner_id=owner.id, title="Vintage radio", price=40, status=AdStatus.PENDING_APPROVAL)
        db.add(ad)
        db.commit()
        return ad.id, Subject.from_user(first), Subject.from_user(second)
    finally:
        db.close()


class TestConcurrentApproval:
    def test_second_approval_sees_first(self, file_sessions, race):
        """The later of two sequential sessions observes the earlier commit."""
        ad_id, first, second = race
        db_a, db_b = file_sessions(), file_sessions()
        try:
            lifecycle_a = build_lifecycle(db_a)
            lifecycle_b = build_lifecycle(db_b)

            # Session A has the ad cached as PENDING_APPROVAL
            assert lifecycle_a.view(ad_id, first).status == AdStatus.PENDING_APPROVAL

            lifecycle_b.approve(ad_id, second)
            with pytest.raises(AlreadyApproved):
                lifecycle_a.approve(ad_id, first)

            ad = db_a.query(Ad).filter(Ad.id == ad_id).one()
            assert ad.approved_by == second.id
        finally:
            db_a.close()
            db_b.close()

    def test_interleaved_approval_is_retried(self, file_sessions, race, monkeypatch):
        """
        INVARIANT: When another session commits between our read and our write,
        the stale write is discarded and the transition is re-evaluated.
        """
        ad_id, first, second = race
        db_a, db_b = file_sessions(), file_sessions()
        try:
            lifecycle_a = build_lifecycle(db_a)
            lifecycle_b = build_lifecycle(db_b)

            original_get = lifecycle_a.ads.get
            calls = []

            def racing_get(requested_id, for_update=False):
                ad = original_get(requested_id, for_update=for_update)
                if not calls:
                    # The other moderator wins right after our first read
                    lifecycle_b.approve(requested_id, second)
                calls.append(requested_id)
                return ad

            monkeypatch.setattr(lifecycle_a.ads, "get", racing_get)

            with pytest.raises(AlreadyApproved):
                lifecycle_a.approve(ad_id, first)

            assert len(calls) == 2

            check = file_sessions()
            try:
                ad = check.query(Ad).filter(Ad.id == ad_id).one()
                assert ad.status == AdStatus.APPROVED
                assert ad.approved_by == second.id
                approvals = check.query(AuditEntry).filter(AuditEntry.action == AuditAction.AD_APPROVED).all()
                assert [entry.acting_admin_id for entry in approvals] == [second.id]
            finally:
                check.close()
        finally:
            db_a.close()
            db_b.close()
