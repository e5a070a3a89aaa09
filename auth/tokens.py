"""
auth/tokens.py -- JWT issue/verify and password hashing.

Security design decisions:
  JWT: python-jose with HS256. Tokens are signed with SECRET_KEY and carry
       user_id, role, iat and exp. verify_access_token() raises a distinct
       TokenError subclass per failure mode (expired, malformed, bad
       signature) so the auth gateway can give differentiated feedback.

  Passwords: bcrypt, used directly. The _DUMMY_HASH constant enables timing
       equalization in authenticate_user() so response time does not reveal
       whether an email is registered.

  SECRET_KEY: sourced from core.config.get_settings(). Settings refuses to
       start in production without one (see core/config.py).

Layer rule: no imports from api/ or directory/. Import from core/ is allowed.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING

import bcrypt
from jose import ExpiredSignatureError, JWTError, jwt
from jose.exceptions import JWTClaimsError

from auth.models import Role
from core.config import get_settings

if TYPE_CHECKING:
    from auth.models import User
    from auth.store import UserStore

logger = logging.getLogger("hrm.auth")

# ---------------------------------------------------------------------------
# Config -- read once at module load via the lru_cache singleton
# ---------------------------------------------------------------------------

_settings = get_settings()

_ALGORITHM = "HS256"

# bcrypt only looks at the first 72 bytes of a password; newer releases raise
# instead of truncating, so the cut is made explicitly on both hash and verify.
_BCRYPT_MAX_BYTES = 72


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------


class TokenError(Exception):
    """Base class for every reason a bearer token is rejected."""


class TokenExpiredError(TokenError):
    """Signature is valid but the exp claim is in the past."""


class TokenMalformedError(TokenError):
    """Not a decodable JWT, or a JWT without the identity claims."""


class TokenSignatureError(TokenError):
    """Decodable, but signed with another key or an unexpected algorithm."""


@dataclass(frozen=True)
class TokenClaims:
    user_id: int
    role: Role


# ---------------------------------------------------------------------------
# Password hashing
# ---------------------------------------------------------------------------


def _password_bytes(plain: str) -> bytes:
    return plain.encode("utf-8")[:_BCRYPT_MAX_BYTES]


def hash_password(plain: str) -> str:
    """Return a bcrypt hash of the given plaintext password."""
    return bcrypt.hashpw(_password_bytes(plain), bcrypt.gensalt()).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext password matches the bcrypt hash."""
    try:
        return bcrypt.checkpw(_password_bytes(plain), hashed.encode("utf-8"))
    except ValueError:
        # Corrupt or non-bcrypt hash in the store
        return False


# Timing equalization dummy hash.
# Computed once at module load so the first login attempt is not measurably
# slower than subsequent ones.
_DUMMY_HASH: str = hash_password("hrm_timing_dummy")


# ---------------------------------------------------------------------------
# JWT encode / verify
# ---------------------------------------------------------------------------


def create_access_token(user_id: int, role: Role | str, expires_delta: timedelta | None = None) -> str:
    """Encode a signed JWT carrying the user's identity and role.

    Args:
        user_id:       Primary key of the user in the credential store.
        role:          The user's role at issue time.
        expires_delta: Token lifetime. Defaults to Settings.token_expire_seconds.
                       Tests pass a negative delta to mint an already-expired token.
    """
    if expires_delta is None:
        expires_delta = timedelta(seconds=_settings.token_expire_seconds)
    now = datetime.now(timezone.utc)
    payload = {
        "sub": str(user_id),
        "user_id": user_id,
        "role": Role(role).value,
        "iat": now,
        "exp": now + expires_delta,
    }
    return jwt.encode(payload, _settings.secret_key, algorithm=_ALGORITHM)


def verify_access_token(token: str) -> TokenClaims:
    """Verify a JWT and return its identity claims.

    Raises:
        TokenMalformedError: the string is not a JWT, a registered claim has the
                             wrong shape, or user_id/role is missing.
        TokenExpiredError:   signature verifies but exp has passed.
        TokenSignatureError: signature or algorithm does not verify.
    """
    try:
        jwt.get_unverified_header(token)
    except JWTError as exc:
        raise TokenMalformedError("Token could not be decoded.") from exc

    try:
        payload = jwt.decode(token, _settings.secret_key, algorithms=[_ALGORITHM])
    except ExpiredSignatureError as exc:
        raise TokenExpiredError("Token has expired.") from exc
    except JWTClaimsError as exc:
        raise TokenMalformedError("Token claims are invalid.") from exc
    except JWTError as exc:
        raise TokenSignatureError("Token signature is invalid.") from exc

    try:
        return TokenClaims(user_id=int(payload["user_id"]), role=Role(payload["role"]))
    except (KeyError, TypeError, ValueError) as exc:
        raise TokenMalformedError("Token is missing identity claims.") from exc


# ---------------------------------------------------------------------------
# User authentication (constant-time)
# ---------------------------------------------------------------------------


def authenticate_user(store: UserStore, email: str, password: str) -> User | None:
    """Authenticate an email/password login with timing equalization.

    Always runs bcrypt whether or not the account exists:
    - Unknown email: bcrypt runs against _DUMMY_HASH (same cost as real check)
    - Wrong password: bcrypt runs against the real hash (same cost)

    Returns the User on success, None on any failure. Callers must not
    distinguish the two failure cases in their response.
    """
    user = store.get_by_email(email)
    if user is None or user.hashed_password is None:
        verify_password(password, _DUMMY_HASH)
        return None
    if not verify_password(password, user.hashed_password):
        return None
    return user
