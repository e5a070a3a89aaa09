"""
directory/models.py -- Domain dataclasses for the HR directory.

These are pure data containers with zero logic. Referential checks,
uniqueness translation and filtering live in directory/store.py.

Separation of concerns: these dataclasses are the directory's domain truth,
just as auth/models.py is the credential store's. Neither imports the other;
an Employee refers to a User only by id.
"""

from dataclasses import dataclass
from typing import Optional


@dataclass
class Department:
    """An organizational unit. name is stored trimmed and is unique.

    id is None before the record is written to the database.
    """

    name: str
    id: Optional[int] = None
    created_at: str = ""  # ISO 8601, set by store on insert


@dataclass
class Employee:
    """A person in the directory, optionally linked to one login account.

    user_id is None for an unlinked employee. The store's UNIQUE constraint
    on the column allows any number of NULLs but at most one employee per
    account.

    department_name is filled in by read queries (join), never written.
    joining_date is an ISO 8601 UTC timestamp; the store defaults it to the
    insert time when empty.
    """

    name: str
    email: str
    department_id: int
    role: str = "employee"  # "employee" | "HR" | "admin"
    joining_date: str = ""
    user_id: Optional[int] = None
    id: Optional[int] = None
    department_name: Optional[str] = None
