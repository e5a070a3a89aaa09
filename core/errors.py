"""
core/errors.py -- Error taxonomy shared by the stores, the auth gateway and
the HTTP surface.

Stores and dependencies raise these; api/main.py owns the single exception
handler that turns them into the JSON error envelope. Each class carries its
HTTP status and machine-readable code so the mapping lives in one place.

Layer rule: no imports from api/, auth/ or directory/.
"""

from __future__ import annotations

from typing import Optional


class HRMError(Exception):
    """Base class for every expected, client-facing failure."""

    status_code: int = 500
    code: str = "internal_error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class Unauthenticated(HRMError):
    """No token, an invalid or expired token, or a principal that no longer exists."""

    status_code = 401
    code = "unauthenticated"


class Forbidden(HRMError):
    status_code = 403
    code = "forbidden"


class InvalidArgument(HRMError):
    """A required argument is missing or malformed outside of schema validation."""

    status_code = 400
    code = "invalid_argument"


class ValidationFailed(HRMError):
    """One or more field constraints were violated. errors holds one message per field."""

    status_code = 400
    code = "validation_failed"

    def __init__(self, message: str = "Validation failed.", errors: Optional[list[str]] = None) -> None:
        super().__init__(message)
        self.errors = errors or []


class Conflict(HRMError):
    """A uniqueness (or restrict-delete) constraint was hit. field names the constraint."""

    status_code = 400
    code = "conflict"

    def __init__(self, message: str, field: Optional[str] = None) -> None:
        super().__init__(message)
        self.field = field


class NotFound(HRMError):
    status_code = 404
    code = "not_found"
