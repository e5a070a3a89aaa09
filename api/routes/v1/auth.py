"""
api/routes/v1/auth.py -- Account provisioning and login endpoints.

Routes:
  POST /api/auth/signup       -- public signup; role is always "employee"
  POST /api/auth/login        -- email/password login; returns a bearer token
  GET  /api/auth/me           -- current account (requires auth)
  POST /api/auth/create-user  -- create an HR or admin account (admin only)

Security:
  POST /signup and POST /login are rate-limited per client address.
  authenticate_user() provides timing equalization -- use it, never inline.
  Login returns the same 401 message for an unknown email and a wrong
  password so the response does not reveal which accounts exist.
  Cache-Control: no-store on every response that carries a token.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from api.limiter import limiter
from api.models import (
    AdminUserCreate,
    AuthResponse,
    EmailAddress,
    LoginRequest,
    SignupRequest,
    UserCreatedResponse,
    UserPublic,
)
from auth.dependencies import get_current_user, require_admin
from auth.models import ADMIN_CREATABLE_ROLES, Principal, Role, User
from auth.store import UserStore
from auth.tokens import authenticate_user, create_access_token, hash_password
from core.config import get_settings
from core.errors import Forbidden, InvalidArgument, ValidationFailed

logger = logging.getLogger("hrm.api")

_settings = get_settings()

# Auth policy:
# - POST /api/auth/signup:       public
# - POST /api/auth/login:        public
# - GET  /api/auth/me:           requires auth (get_current_user)
# - POST /api/auth/create-user:  requires admin (require_admin)
router = APIRouter()


def _token_response(status_code: int, message: str, user: User) -> JSONResponse:
    token = create_access_token(user.id, user.role)
    resp = JSONResponse(
        status_code=status_code,
        content=AuthResponse(
            message=message,
            token=token,
            expires_in=_settings.token_expire_seconds,
            user=UserPublic.from_user(user),
        ).model_dump(mode="json"),
    )
    resp.headers["Cache-Control"] = "no-store"
    return resp


# ---------------------------------------------------------------------------
# Public endpoints
# ---------------------------------------------------------------------------


@limiter.limit(_settings.login_rate_limit)
@router.post("/auth/signup", response_model=AuthResponse, status_code=201)
def signup(request: Request, body: SignupRequest) -> JSONResponse:
    """Create an employee account and log it in.

    The role is forced to "employee" regardless of the payload; HR and admin
    accounts can only be created by an admin via /auth/create-user.
    """
    user_store: UserStore = request.app.state.user_store
    user_id = user_store.create_user(
        User(email=body.email, role=Role.employee.value, hashed_password=hash_password(body.password))
    )
    created = user_store.get_by_id(user_id)
    return _token_response(201, "Account created successfully.", created)


@limiter.limit(_settings.login_rate_limit)
@router.post("/auth/login", response_model=AuthResponse)
def login(request: Request, body: LoginRequest) -> JSONResponse:
    """Authenticate with email and password; return a bearer token."""
    if not body.email or not body.password:
        raise InvalidArgument("Please provide email and password.")

    user_store: UserStore = request.app.state.user_store
    user = authenticate_user(user_store, body.email, body.password)
    if user is None:
        logger.info("Failed login attempt from %s", request.client.host if request.client else "unknown")
        resp = JSONResponse(
            status_code=401,
            content={"code": "bad_credentials", "message": "Incorrect email or password."},
        )
        resp.headers["Cache-Control"] = "no-store"
        return resp

    return _token_response(200, "Logged in successfully.", user)


# ---------------------------------------------------------------------------
# Authenticated endpoints
# ---------------------------------------------------------------------------


@router.get("/auth/me", response_model=UserPublic)
def me(principal: Principal = Depends(get_current_user)) -> UserPublic:
    """Return the public fields of the currently authenticated account."""
    return UserPublic(id=principal.id, email=principal.email, role=principal.role)


@router.post("/auth/create-user", response_model=UserCreatedResponse, status_code=201)
def create_user(
    request: Request,
    body: AdminUserCreate,
    principal: Principal = Depends(require_admin),
) -> UserCreatedResponse:
    """Create an HR or admin account. Admin only.

    Employee accounts are refused here: they come from public signup.
    """
    if not body.email or not body.password or not body.role:
        raise InvalidArgument("Email, password, and role are required.")
    if body.role not in {r.value for r in ADMIN_CREATABLE_ROLES}:
        raise Forbidden(f'Cannot create users with the "{body.role}" role via this endpoint.')

    # Same format rule as signup, checked after the role gate.
    try:
        email = EmailAddress(email=body.email).email
    except ValidationError as exc:
        raise ValidationFailed(errors=["email: Please fill a valid email address."]) from exc

    user_store: UserStore = request.app.state.user_store
    user_id = user_store.create_user(User(email=email, role=body.role, hashed_password=hash_password(body.password)))
    logger.info("Admin id=%s created user id=%s role=%s", principal.id, user_id, body.role)
    created = user_store.get_by_id(user_id)
    return UserCreatedResponse(
        message=f"User created successfully with role: {body.role}.",
        user=UserPublic.from_user(created),
    )
