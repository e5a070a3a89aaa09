"""
directory/linkage.py -- Employee-to-account link resolution.

Accounts live in the credential store (auth/store.py) and employees in the
directory store; neither store knows about the other. The set of accounts
that can still be linked is therefore computed here, on every call:

    unlinked = all users - { e.user_id : e in employees, e.user_id is not None }

No result is cached: users and employees change independently, and a stale
candidate list would offer accounts that another request just linked.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from auth.models import User
    from auth.store import UserStore
    from directory.store import DirectoryStore


def list_unlinked_users(user_store: UserStore, directory: DirectoryStore) -> list[User]:
    """Return accounts not referenced by any employee, ordered by email."""
    linked = directory.linked_user_ids()
    return [u for u in user_store.list_users() if u.id not in linked]
