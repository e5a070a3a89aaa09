"""
auth/models.py -- Domain types for authentication entities.

Pattern: Data class (pure data container, zero logic beyond the role
predicate). Mirrors directory/models.py -- dataclasses own domain shape;
stores and routes do the work.

Layer rule: no imports from api/ or directory/.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class Role(str, Enum):
    employee = "employee"
    HR = "HR"
    admin = "admin"


# Roles allowed to manage departments and employees.
MANAGER_ROLES: frozenset[Role] = frozenset({Role.HR, Role.admin})

# Roles an admin may hand out through POST /auth/create-user.
ADMIN_CREATABLE_ROLES: frozenset[Role] = frozenset({Role.HR, Role.admin})


def can_manage(role: Role) -> bool:
    """Return True if the role may create, update or delete directory records."""
    return role in MANAGER_ROLES


@dataclass
class User:
    """A login account in the credential store.

    email is stored trimmed and lower-cased; the store enforces uniqueness on
    that normalized form. hashed_password is only populated on reads that need
    it (login) and never leaves the API.
    """

    email: str
    role: str  # "employee", "HR", "admin"
    id: int | None = None
    hashed_password: str | None = None
    created_at: str | None = None


@dataclass(frozen=True)
class Principal:
    """The authenticated identity resolved for one request.

    Produced by auth.dependencies.get_current_user and passed explicitly into
    every handler that needs it. Frozen so no downstream code can alter the
    role it was authorized with.
    """

    id: int
    email: str
    role: Role

    @classmethod
    def from_user(cls, user: User) -> "Principal":
        return cls(id=user.id, email=user.email, role=Role(user.role))
