"""The resolved caller identity, rebuilt per request from stored user data."""
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from admod.models.enums import Role


@dataclass(frozen=True)
class Subject:
    id: str
    role: Role
    blocked: bool = False
    suspended: bool = False
    suspended_until: Optional[datetime] = None

    @property
    def is_super_admin(self) -> bool:
        return self.role == Role.SUPER_ADMIN

    @property
    def is_admin(self) -> bool:
        """ADMIN or SUPER_ADMIN."""
        return self.role in (Role.ADMIN, Role.SUPER_ADMIN)

    def is_sanctioned(self, now: datetime) -> bool:
        """Blocked, or suspended with the suspension still running at `now`."""
        if self.blocked:
            return True
        return bool(self.suspended and self.suspended_until and self.suspended_until > now)

    @classmethod
    def from_user(cls, user) -> "Subject":
        return cls(
            id=user.id,
            role=user.role,
            blocked=bool(user.is_blocked),
            suspended=bool(user.is_suspended),
            suspended_until=user.suspended_until,
        )
