"""
Identity resolution from bearer credentials.

resolve_optional backs routes that are public to anonymous callers but
privilege-aware for authenticated ones. It never raises: a missing, malformed
or expired token, an unknown account, and a blocked or currently suspended
account all resolve to "no subject".
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Optional

import jwt
from sqlalchemy.orm import Session

from admod.errors import AuthenticationRequired, InvalidCredential
from admod.models.domain import User, utcnow
from admod.models.subject import Subject

logger = logging.getLogger(__name__)

BEARER_PREFIX = "bearer "


@dataclass(frozen=True)
class VerifiedToken:
    subject_id: str
    claims: Dict[str, Any] = field(default_factory=dict)


class TokenService:
    """Signs and verifies HS256 access tokens."""

    def __init__(self, secret: str, algorithm: str = "HS256", ttl: timedelta = timedelta(minutes=60)):
        self.secret = secret
        self.algorithm = algorithm
        self.ttl = ttl

    def issue(self, subject_id: str, **claims: Any) -> str:
        now = datetime.now(timezone.utc)
        payload = {
            "sub": str(subject_id),
            "iat": int(now.timestamp()),
            "exp": int((now + self.ttl).timestamp()),
            **claims,
        }
        return jwt.encode(payload, self.secret, algorithm=self.algorithm)

    def verify(self, raw_token: str) -> VerifiedToken:
        try:
            payload = jwt.decode(raw_token, self.secret, algorithms=[self.algorithm])
        except jwt.ExpiredSignatureError as exc:
            raise InvalidCredential("Token has expired") from exc
        except jwt.InvalidTokenError as exc:
            raise InvalidCredential("Invalid token") from exc

        subject_id = payload.get("sub")
        if not isinstance(subject_id, str) or not subject_id:
            raise InvalidCredential("Token has no subject")
        return VerifiedToken(subject_id=subject_id, claims=payload)


def load_subject_by_id(db: Session, subject_id: str) -> Optional[Subject]:
    user = db.query(User).filter(User.id == subject_id).first()
    if user is None:
        return None
    return Subject.from_user(user)


def extract_token(raw_credential: Optional[str]) -> Optional[str]:
    """Accept a bare token or an Authorization header value."""
    if not raw_credential:
        return None
    credential = raw_credential.strip()
    if credential.lower().startswith(BEARER_PREFIX):
        credential = credential[len(BEARER_PREFIX):].strip()
    return credential or None


class IdentityResolver:
    def __init__(
        self,
        tokens: TokenService,
        load_subject: Callable[[str], Optional[Subject]],
        clock: Callable[[], datetime] = utcnow,
    ):
        self.tokens = tokens
        self.load_subject = load_subject
        self.clock = clock

    def resolve_optional(self, raw_credential: Optional[str]) -> Optional[Subject]:
        token = extract_token(raw_credential)
        if token is None:
            return None

        try:
            verified = self.tokens.verify(token)
        except InvalidCredential as exc:
            logger.debug("ignoring credential: %s", exc.message)
            return None

        subject = self.load_subject(verified.subject_id)
        if subject is None:
            logger.debug("token subject %s has no account", verified.subject_id)
            return None

        # A sanctioned account is treated exactly like an anonymous caller
        if subject.is_sanctioned(self.clock()):
            logger.info("subject %s is blocked or suspended; treating as anonymous", subject.id)
            return None

        return subject

    def resolve_required(self, raw_credential: Optional[str]) -> Subject:
        """Stricter variant for routes that require authentication."""
        subject = self.resolve_optional(raw_credential)
        if subject is None:
            raise AuthenticationRequired()
        return subject
