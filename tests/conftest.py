"""Pytest configuration and shared fixtures."""
from datetime import datetime, timedelta

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from admod.database import Base
from admod.models.audit import AuditEntry  # noqa: F401
from admod.models.domain import User
from admod.models.enums import Role
from admod.models.subject import Subject
from admod.services.ad_lifecycle import AdLifecycle
from admod.services.audit_recorder import AuditRecorder
from admod.services.authorization import AccessGuard, PermissionAuthorizer, RoleAuthorizer
from admod.services.permission_store import PermissionStore


class FakeClock:
    """Deterministic clock; advance() moves time forward."""

    def __init__(self, start=datetime(2024, 1, 1, 12, 0, 0)):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now = self.now + timedelta(**kwargs)
        return self.now


class RecordingNotifier:
    """Collects owner notices instead of delivering them."""

    def __init__(self):
        self.sent = []

    def notify_owner(self, ad_id, text, sender_id):
        self.sent.append((ad_id, text, sender_id))


class FailingNotifier:
    def notify_owner(self, ad_id, text, sender_id):
        raise ConnectionError("message service unavailable")


@pytest.fixture
def engine():
    """A fresh in-memory database for each test, shared by every session."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autocommit=False, autoflush=False)


@pytest.fixture
def db_session(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def failing_notifier():
    return FailingNotifier()


@pytest.fixture
def audit(db_session):
    return AuditRecorder(db_session)


@pytest.fixture
def store(db_session, audit):
    store = PermissionStore(db_session, audit)
    store.seed_catalog()
    return store


@pytest.fixture
def permission_authorizer(store):
    return PermissionAuthorizer(store)


@pytest.fixture
def guard(permission_authorizer):
    return AccessGuard(RoleAuthorizer(), permission_authorizer)


@pytest.fixture
def make_lifecycle(db_session, guard, permission_authorizer, audit, clock):
    """Build a lifecycle around the shared session with a chosen notifier."""
    def factory(notifier=None):
        return AdLifecycle(db_session, guard, permission_authorizer, audit, notifier=notifier, clock=clock)
    return factory


@pytest.fixture
def lifecycle(make_lifecycle, notifier):
    return make_lifecycle(notifier)


def _make_user(db_session, email, role, **kwargs):
    user = User(email=email, role=role, **kwargs)
    db_session.add(user)
    db_session.commit()
    db_session.refresh(user)
    return user


@pytest.fixture
def make_user(db_session):
    def factory(email, role=Role.USER, **kwargs):
        return Subject.from_user(_make_user(db_session, email, role, **kwargs))
    return factory


@pytest.fixture
def owner(make_user):
    return make_user("owner@example.com")


@pytest.fixture
def stranger(make_user):
    return make_user("stranger@example.com")


@pytest.fixture
def admin(make_user):
    """ADMIN without any grants."""
    return make_user("admin@example.com", Role.ADMIN)


@pytest.fixture
def super_admin(make_user):
    return make_user("root@example.com", Role.SUPER_ADMIN)


@pytest.fixture
def grant(store):
    """Grant permissions to an admin by name."""
    def assign(subject, *names):
        for name in names:
            store.assign(subject.id, store.find_by_name(name).id)
    return assign


@pytest.fixture
def moderator(make_user, grant):
    """ADMIN holding ads.approve, ads.reject and ads.edit."""
    subject = make_user("moderator@example.com", Role.ADMIN)
    grant(subject, "ads.approve", "ads.reject", "ads.edit")
    return subject


@pytest.fixture
def pending_ad(lifecycle, owner):
    """An ad fresh from its owner, awaiting moderation."""
    return lifecycle.create(owner, title="Mountain bike", description="26 inch, good condition", price=150)


@pytest.fixture
def approved_ad(lifecycle, pending_ad, moderator):
    return lifecycle.approve(pending_ad.id, moderator)

