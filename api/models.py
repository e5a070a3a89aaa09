"""
API request and response models for the HRM REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py and
directory/models.py, which own the internal domain representation. Route
handlers map between the two.

Field format rules (email shape, alphabetic names, role membership) are
enforced here; a violation becomes a 400 validation_failed response with one
message per field (see the RequestValidationError handler in api/main.py).
"""

import re
from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, ValidationError, field_validator, model_validator

from auth.models import Role, User
from directory.models import Department, Employee

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

NAME_PATTERN = r"^[a-zA-Z\s]+$"

_NAME_RE = re.compile(NAME_PATTERN)


def _check_email(value, handler) -> Optional[str]:
    """Wrap-validator body for EmailStr fields: trim, validate, lower-case.

    email-validator's own error text is replaced with the single client-facing
    message.
    """
    if isinstance(value, str):
        value = value.strip()
    try:
        email = handler(value)
    except ValidationError as exc:
        raise ValueError("Please fill a valid email address.") from exc
    return email.lower() if email is not None else None


def _check_name(value: str) -> str:
    if not _NAME_RE.match(value):
        raise ValueError("Name must contain only alphabetic characters and spaces.")
    return value


def _empty_to_none(value):
    """Map "" to None so an empty form field means "no link"."""
    if isinstance(value, str) and not value.strip():
        return None
    return value


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Treat naive datetimes as UTC and convert aware ones to UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


# ---------------------------------------------------------------------------
# Errors and health
# ---------------------------------------------------------------------------


class ErrorResponse(BaseModel):
    """Error envelope returned on every 4xx/5xx response.

    errors is present for validation failures (one message per field);
    field is present for conflicts (the violated unique field).
    """

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    errors: Optional[list[str]] = None
    field: Optional[str] = None


class MessageResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    message: str


class HealthResponse(BaseModel):
    """Response for GET /api/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "ok"
    version: str


# ---------------------------------------------------------------------------
# Auth -- request models
# ---------------------------------------------------------------------------


class EmailAddress(BaseModel):
    """A single normalized email address. Also used by the create-user CLI."""

    model_config = ConfigDict(extra="ignore")

    email: EmailStr

    @field_validator("email", mode="wrap")
    @classmethod
    def validate_email(cls, value, handler) -> str:
        return _check_email(value, handler)


class SignupRequest(EmailAddress):
    """Request body for POST /api/auth/signup.

    Any role in the payload is ignored (extra fields are dropped): public
    signups always create employee accounts.
    """

    password: str = Field(min_length=1, max_length=255)


class LoginRequest(BaseModel):
    """Request body for POST /api/auth/login.

    Both fields are optional at the schema level so a missing field produces
    the route's own 400 message instead of a schema error.
    """

    email: Optional[str] = None
    password: Optional[str] = None


class AdminUserCreate(BaseModel):
    """Request body for POST /api/auth/create-user.

    role is a plain string here: anything other than HR/admin is a 403 from
    the route, not a schema error.
    """

    email: Optional[str] = Field(default=None, max_length=255)
    password: Optional[str] = Field(default=None, max_length=255)
    role: Optional[str] = None


# ---------------------------------------------------------------------------
# Auth -- response models
# ---------------------------------------------------------------------------


class UserPublic(BaseModel):
    """The public fields of an account. Never carries the password hash."""

    model_config = ConfigDict(frozen=True)

    id: int
    email: str
    role: Role

    @classmethod
    def from_user(cls, user: User) -> "UserPublic":
        return cls(id=user.id, email=user.email, role=Role(user.role))


class AuthResponse(BaseModel):
    """Response for signup and login: a bearer token plus the account."""

    model_config = ConfigDict(frozen=True)

    message: str
    token: str
    token_type: str = "bearer"
    expires_in: int
    user: UserPublic


class UserCreatedResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    message: str
    user: UserPublic


# ---------------------------------------------------------------------------
# Departments
# ---------------------------------------------------------------------------


class DepartmentCreate(BaseModel):
    """Request body for POST /api/departments."""

    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(min_length=1, max_length=100)


class DepartmentUpdate(BaseModel):
    """Request body for PUT /api/departments/{id}. Only supplied fields change."""

    model_config = ConfigDict(str_strip_whitespace=True)

    name: Optional[str] = Field(default=None, min_length=1, max_length=100)

    @model_validator(mode="after")
    def reject_null_name(self) -> "DepartmentUpdate":
        if "name" in self.model_fields_set and self.name is None:
            raise ValueError("Department name is required.")
        return self


class DepartmentResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    name: str

    @classmethod
    def from_department(cls, dept: Department) -> "DepartmentResponse":
        return cls(id=dept.id, name=dept.name)


# ---------------------------------------------------------------------------
# Employees
# ---------------------------------------------------------------------------


class EmployeeCreate(BaseModel):
    """Request body for POST /api/employees.

    user_id may be omitted, null or "" -- all three create an unlinked employee.
    """

    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(min_length=1, max_length=100)
    email: EmailStr
    department_id: int
    role: Role = Role.employee
    joining_date: Optional[datetime] = None
    user_id: Optional[int] = None

    @field_validator("email", mode="wrap")
    @classmethod
    def validate_email(cls, value, handler) -> str:
        return _check_email(value, handler)

    @field_validator("name")
    @classmethod
    def validate_name(cls, value: str) -> str:
        return _check_name(value)

    @field_validator("user_id", mode="before")
    @classmethod
    def blank_user_id(cls, value):
        return _empty_to_none(value)

    @field_validator("joining_date")
    @classmethod
    def joining_date_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return _as_utc(value)


class EmployeeUpdate(BaseModel):
    """Request body for PUT /api/employees/{id}. Only supplied fields change.

    user_id distinguishes three cases via model_fields_set:
      absent        -> link untouched
      null or ""    -> link removed
      integer       -> link set
    Every other field may be omitted but not sent as null.
    """

    model_config = ConfigDict(str_strip_whitespace=True)

    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    email: Optional[EmailStr] = None
    department_id: Optional[int] = None
    role: Optional[Role] = None
    joining_date: Optional[datetime] = None
    user_id: Optional[int] = None

    @field_validator("email", mode="wrap")
    @classmethod
    def validate_email(cls, value, handler) -> Optional[str]:
        return _check_email(value, handler)

    @field_validator("name")
    @classmethod
    def validate_name(cls, value: Optional[str]) -> Optional[str]:
        return _check_name(value) if value is not None else None

    @field_validator("user_id", mode="before")
    @classmethod
    def blank_user_id(cls, value):
        return _empty_to_none(value)

    @field_validator("joining_date")
    @classmethod
    def joining_date_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return _as_utc(value)

    @model_validator(mode="after")
    def reject_nulls(self) -> "EmployeeUpdate":
        nulls = sorted(f for f in self.model_fields_set - {"user_id"} if getattr(self, f) is None)
        if nulls:
            raise ValueError(f"Fields cannot be null: {', '.join(nulls)}.")
        return self

    def changes(self) -> dict:
        """Return the supplied fields as store-ready values (user_id may be None)."""
        updates: dict = {}
        for name in self.model_fields_set:
            value = getattr(self, name)
            if isinstance(value, Role):
                value = value.value
            elif isinstance(value, datetime):
                value = value.isoformat()
            updates[name] = value
        return updates


class LinkedUser(BaseModel):
    """The account linked to an employee, resolved from the credential store."""

    model_config = ConfigDict(frozen=True)

    id: int
    email: str
    role: Role


class EmployeeResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    name: str
    email: str
    department_id: int
    department_name: Optional[str] = None
    role: Role
    joining_date: str
    user_id: Optional[int] = None
    user: Optional[LinkedUser] = None

    @classmethod
    def from_employee(cls, emp: Employee, user: Optional[User] = None) -> "EmployeeResponse":
        linked = LinkedUser(id=user.id, email=user.email, role=Role(user.role)) if user is not None else None
        return cls(
            id=emp.id,
            name=emp.name,
            email=emp.email,
            department_id=emp.department_id,
            department_name=emp.department_name,
            role=Role(emp.role),
            joining_date=emp.joining_date,
            user_id=emp.user_id,
            user=linked,
        )
