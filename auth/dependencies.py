"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication and
role authorization.

get_current_user() is the authenticate step: it reads the
Authorization: Bearer <token> header, verifies the token, re-loads the
account from the credential store and returns an immutable Principal.
require_roles() builds the authorize step on top of it.

Handlers receive the Principal as an explicit argument:
    @router.post("/departments")
    def create(principal: Principal = Depends(require_manager)): ...

Nothing is cached between requests: every call re-verifies the token and
re-reads the account, so a deleted account or a changed role takes effect on
the next request.

Layer rule: no imports from api/ or directory/.
  auth/dependencies.py may import from fastapi (for Request) because this
  module is part of the FastAPI dependency injection system.
"""

from __future__ import annotations

from collections.abc import Callable

from fastapi import Depends, Request

from auth.models import Principal, Role, can_manage
from auth.store import UserStore
from auth.tokens import TokenExpiredError, TokenMalformedError, TokenSignatureError, verify_access_token
from core.errors import Forbidden, Unauthenticated


def _bearer_token(request: Request) -> str | None:
    auth_header = request.headers.get("Authorization", "")
    scheme, _, token = auth_header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def get_current_user(request: Request) -> Principal:
    """Require authentication. Raises Unauthenticated (401) with a reason."""
    token = _bearer_token(request)
    if token is None:
        raise Unauthenticated("You are not logged in! Please log in to get access.")

    try:
        claims = verify_access_token(token)
    except TokenExpiredError as exc:
        raise Unauthenticated("Your token has expired! Please log in again.") from exc
    except (TokenMalformedError, TokenSignatureError) as exc:
        raise Unauthenticated("Invalid token. Please log in again.") from exc

    user_store: UserStore = request.app.state.user_store
    user = user_store.get_by_id(claims.user_id)
    if user is None:
        raise Unauthenticated("The user belonging to this token no longer exists.")
    return Principal.from_user(user)


def require_roles(*roles: Role) -> Callable[..., Principal]:
    """Build a dependency that requires one of the given roles.

    Raises Unauthenticated (401) if the request is not authenticated and
    Forbidden (403) if the principal's role is not allowed.
    """
    allowed = frozenset(roles)

    def dependency(principal: Principal = Depends(get_current_user)) -> Principal:
        if principal.role not in allowed:
            raise Forbidden("You do not have permission to perform this action.")
        return principal

    return dependency


def require_manager(principal: Principal = Depends(get_current_user)) -> Principal:
    """Require a role that can manage directory records (HR or admin)."""
    if not can_manage(principal.role):
        raise Forbidden("You do not have permission to perform this action.")
    return principal


require_admin = require_roles(Role.admin)
