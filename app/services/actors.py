from dataclasses import dataclass
from typing import Optional
from uuid import UUID

from app.models.user import User, UserRole


@dataclass(frozen=True)
class Actor:
    """Whoever is driving a workflow step: a signed-in user or the completion sweep."""

    id: Optional[UUID]
    role: UserRole
    name: str = ""
    email: Optional[str] = None

    @classmethod
    def from_user(cls, user: User) -> "Actor":
        return cls(id=user.id, role=UserRole(user.role), name=user.full_name, email=user.email)

    @property
    def is_system(self) -> bool:
        return self.role == UserRole.SYSTEM


SYSTEM_ACTOR = Actor(id=None, role=UserRole.SYSTEM, name="system")
