"""
api/routes/v1/employees.py -- Employee management and account-linking routes.

Routes (in registration order to avoid FastAPI path capture conflicts):
  GET    /api/employees/unlinked-users  -- accounts with no employee record (HR/admin)
  GET    /api/employees                 -- filtered list (any authenticated user)
  POST   /api/employees                 -- create (HR/admin)
  PUT    /api/employees/{id}            -- partial update, incl. link/unlink (HR/admin)
  DELETE /api/employees/{id}            -- delete (HR/admin)

Linking:
  An employee references at most one account (employees.user_id is UNIQUE)
  and the account must exist in the credential store. On update, user_id
  sent as null or "" removes the link; omitting it keeps the current link.

Responses carry the resolved department name (SQL join in the directory
store) and the linked account's email/role (one batched credential-store
lookup per request).
"""

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Request

from api.models import EmployeeCreate, EmployeeResponse, EmployeeUpdate, MessageResponse, UserPublic
from auth.dependencies import get_current_user, require_manager
from auth.models import Principal
from auth.store import UserStore
from core.errors import NotFound, ValidationFailed
from directory.linkage import list_unlinked_users
from directory.models import Employee
from directory.store import DirectoryStore

router = APIRouter(dependencies=[Depends(get_current_user)])


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _parse_department_filter(raw: Optional[str]) -> Optional[int]:
    if raw is None or not raw.strip():
        return None
    try:
        return int(raw)
    except ValueError as exc:
        raise ValidationFailed(errors=["department_id: must be an integer."]) from exc


def _parse_date_filter(raw: Optional[str]) -> Optional[date]:
    if raw is None or not raw.strip():
        return None
    try:
        return date.fromisoformat(raw.strip()[:10])
    except ValueError as exc:
        raise ValidationFailed(errors=["joining_date: must be a date in YYYY-MM-DD format."]) from exc


def _require_user(user_store: UserStore, user_id: int) -> None:
    if user_store.get_by_id(user_id) is None:
        raise ValidationFailed(errors=[f"user_id: User account {user_id} does not exist."])


def _to_responses(user_store: UserStore, employees: list[Employee]) -> list[EmployeeResponse]:
    users = user_store.get_many({e.user_id for e in employees if e.user_id is not None})
    return [EmployeeResponse.from_employee(e, users.get(e.user_id)) for e in employees]


def _load(request: Request, emp_id: int) -> EmployeeResponse:
    directory: DirectoryStore = request.app.state.directory
    user_store: UserStore = request.app.state.user_store
    emp = directory.get_employee(emp_id)
    if emp is None:
        raise NotFound("Employee not found.")
    return _to_responses(user_store, [emp])[0]


# ---------------------------------------------------------------------------
# GET /employees/unlinked-users (must be before /employees/{emp_id})
# ---------------------------------------------------------------------------


@router.get("/employees/unlinked-users", response_model=list[UserPublic])
def unlinked_users(
    request: Request,
    principal: Principal = Depends(require_manager),
) -> list[UserPublic]:
    """Return accounts that no employee is linked to -- the link candidates."""
    users = list_unlinked_users(request.app.state.user_store, request.app.state.directory)
    return [UserPublic.from_user(u) for u in users]


# ---------------------------------------------------------------------------
# GET /employees
# ---------------------------------------------------------------------------


@router.get("/employees", response_model=list[EmployeeResponse])
def list_employees(
    request: Request,
    search: Optional[str] = None,
    department_id: Optional[str] = None,
    joining_date: Optional[str] = None,
) -> list[EmployeeResponse]:
    """Return employees ordered by name.

    Query params (all optional, empty means "no filter", combined with AND):
      search        -- case-insensitive substring of name or email
      department_id -- exact department
      joining_date  -- YYYY-MM-DD; matches the whole UTC day
    """
    directory: DirectoryStore = request.app.state.directory
    employees = directory.list_employees(
        search=search.strip() if search and search.strip() else None,
        department_id=_parse_department_filter(department_id),
        joining_date=_parse_date_filter(joining_date),
    )
    return _to_responses(request.app.state.user_store, employees)


# ---------------------------------------------------------------------------
# POST /employees
# ---------------------------------------------------------------------------


@router.post("/employees", response_model=EmployeeResponse, status_code=201)
def create_employee(
    request: Request,
    body: EmployeeCreate,
    principal: Principal = Depends(require_manager),
) -> EmployeeResponse:
    directory: DirectoryStore = request.app.state.directory
    if body.user_id is not None:
        _require_user(request.app.state.user_store, body.user_id)
    emp_id = directory.create_employee(
        Employee(
            name=body.name,
            email=body.email,
            department_id=body.department_id,
            role=body.role.value,
            joining_date=body.joining_date.isoformat() if body.joining_date else "",
            user_id=body.user_id,
        )
    )
    return _load(request, emp_id)


# ---------------------------------------------------------------------------
# PUT /employees/{emp_id}
# ---------------------------------------------------------------------------


@router.put("/employees/{emp_id}", response_model=EmployeeResponse)
def update_employee(
    request: Request,
    emp_id: int,
    body: EmployeeUpdate,
    principal: Principal = Depends(require_manager),
) -> EmployeeResponse:
    """Update any subset of fields. user_id null/"" unlinks; omitted keeps the link."""
    directory: DirectoryStore = request.app.state.directory
    if directory.get_employee(emp_id) is None:
        raise NotFound("Employee not found.")
    updates = body.changes()
    if updates.get("user_id") is not None:
        _require_user(request.app.state.user_store, updates["user_id"])
    if not directory.update_employee(emp_id, **updates):
        raise NotFound("Employee not found.")
    return _load(request, emp_id)


# ---------------------------------------------------------------------------
# DELETE /employees/{emp_id}
# ---------------------------------------------------------------------------


@router.delete("/employees/{emp_id}", response_model=MessageResponse)
def delete_employee(
    request: Request,
    emp_id: int,
    principal: Principal = Depends(require_manager),
) -> MessageResponse:
    directory: DirectoryStore = request.app.state.directory
    if not directory.delete_employee(emp_id):
        raise NotFound("Employee not found.")
    return MessageResponse(message="Employee deleted successfully.")
