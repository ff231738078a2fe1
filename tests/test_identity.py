"""
Tests for resolving the caller from a bearer credential.

Optional resolution never raises: every failure mode means "anonymous".
"""
from datetime import timedelta

import jwt
import pytest

from admod.errors import AuthenticationRequired, InvalidCredential
from admod.models.enums import Role
from admod.services.identity import (
    IdentityResolver,
    TokenService,
    extract_token,
    load_subject_by_id,
)

SECRET = "test-secret-with-enough-bytes-for-hs256"


@pytest.fixture
def tokens():
    return TokenService(SECRET, ttl=timedelta(minutes=5))


@pytest.fixture
def resolver(db_session, tokens, clock):
    return IdentityResolver(tokens, lambda subject_id: load_subject_by_id(db_session, subject_id), clock=clock)


class TestTokenService:
    def test_issue_and_verify(self, tokens):
        verified = tokens.verify(tokens.issue("user-1", scope="ads"))

        assert verified.subject_id == "user-1"
        assert verified.claims["scope"] == "ads"

    def test_expired_token(self):
        expired = TokenService(SECRET, ttl=timedelta(seconds=-30))

        with pytest.raises(InvalidCredential):
            expired.verify(expired.issue("user-1"))

    def test_wrong_secret(self, tokens):
        forged = TokenService("another-secret-with-enough-bytes-too").issue("user-1")

        with pytest.raises(InvalidCredential):
            tokens.verify(forged)

    def test_token_without_subject(self, tokens):
        raw = jwt.encode({"role": "ADMIN"}, SECRET, algorithm="HS256")

        with pytest.raises(InvalidCredential):
            tokens.verify(raw)


class TestExtractToken:
    @pytest.mark.parametrize("raw, expected", [
        (None, None),
        ("", None),
        ("abc", "abc"),
        ("Bearer abc", "abc"),
        ("bearer   abc ", "abc"),
        ("   ", None),
    ])
    def test_extract(self, raw, expected):
        assert extract_token(raw) == expected


class TestResolveOptional:
    def test_valid_token_resolves_subject(self, resolver, tokens, admin):
        subject = resolver.resolve_optional(f"Bearer {tokens.issue(admin.id)}")

        assert subject == admin
        assert subject.role == Role.ADMIN

    @pytest.mark.parametrize("credential", [None, "", "Bearer", "Bearer not.a.jwt", "garbage"])
    def test_unusable_credentials_mean_anonymous(self, resolver, credential):
        assert resolver.resolve_optional(credential) is None

    def test_expired_token_means_anonymous(self, resolver, owner):
        expired = TokenService(SECRET, ttl=timedelta(seconds=-30)).issue(owner.id)
        assert resolver.resolve_optional(expired) is None

    def test_unknown_account_means_anonymous(self, resolver, tokens):
        assert resolver.resolve_optional(tokens.issue("deleted-user")) is None

    def test_blocked_account_means_anonymous(self, resolver, tokens, make_user):
        blocked = make_user("blocked@example.com", Role.ADMIN, is_blocked=True)
        assert resolver.resolve_optional(tokens.issue(blocked.id)) is None

    def test_running_suspension_means_anonymous(self, resolver, tokens, make_user, clock):
        suspended = make_user(
            "suspended@example.com", is_suspended=True, suspended_until=clock.now + timedelta(days=2)
        )
        assert resolver.resolve_optional(tokens.issue(suspended.id)) is None

    def test_elapsed_suspension_resolves(self, resolver, tokens, make_user, clock):
        """A suspension whose end date has passed no longer applies."""
        suspended = make_user(
            "suspended@example.com", is_suspended=True, suspended_until=clock.now + timedelta(days=2)
        )
        clock.advance(days=3)

        assert resolver.resolve_optional(tokens.issue(suspended.id)) == suspended


class TestResolveRequired:
    def test_resolves_subject(self, resolver, tokens, owner):
        assert resolver.resolve_required(tokens.issue(owner.id)) == owner

    def test_missing_credential_raises(self, resolver):
        with pytest.raises(AuthenticationRequired):
            resolver.resolve_required(None)

    def test_blocked_account_raises(self, resolver, tokens, make_user):
        blocked = make_user("blocked@example.com", is_blocked=True)

        with pytest.raises(AuthenticationRequired):
            resolver.resolve_required(tokens.issue(blocked.id))
