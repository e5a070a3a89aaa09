"""
api/routes/v1/departments.py -- Department management routes.

Routes:
  GET    /api/departments        -- list, ordered by name (any authenticated user)
  POST   /api/departments        -- create (HR/admin)
  PUT    /api/departments/{id}   -- partial update (HR/admin)
  DELETE /api/departments/{id}   -- delete; refused while employees reference it (HR/admin)

Uniqueness of the (trimmed) name is enforced by the store; a duplicate
surfaces as Conflict -> 400.
"""

from fastapi import APIRouter, Depends, Request

from api.models import DepartmentCreate, DepartmentResponse, DepartmentUpdate, MessageResponse
from auth.dependencies import get_current_user, require_manager
from auth.models import Principal
from core.errors import NotFound
from directory.models import Department
from directory.store import DirectoryStore

# Router-level dependency: every department route requires authentication.
# Mutating routes additionally depend on require_manager.
router = APIRouter(dependencies=[Depends(get_current_user)])


def _not_found(dept_id: int) -> NotFound:
    return NotFound(f"Department {dept_id} not found.")


@router.get("/departments", response_model=list[DepartmentResponse])
def list_departments(request: Request) -> list[DepartmentResponse]:
    """Return all departments ordered by name."""
    directory: DirectoryStore = request.app.state.directory
    return [DepartmentResponse.from_department(d) for d in directory.list_departments()]


@router.post("/departments", response_model=DepartmentResponse, status_code=201)
def create_department(
    request: Request,
    body: DepartmentCreate,
    principal: Principal = Depends(require_manager),
) -> DepartmentResponse:
    directory: DirectoryStore = request.app.state.directory
    dept_id = directory.create_department(Department(name=body.name))
    return DepartmentResponse.from_department(directory.get_department(dept_id))


@router.put("/departments/{dept_id}", response_model=DepartmentResponse)
def update_department(
    request: Request,
    dept_id: int,
    body: DepartmentUpdate,
    principal: Principal = Depends(require_manager),
) -> DepartmentResponse:
    """Rename a department. Only supplied fields change."""
    directory: DirectoryStore = request.app.state.directory
    if not directory.update_department(dept_id, **body.model_dump(exclude_unset=True)):
        raise _not_found(dept_id)
    updated = directory.get_department(dept_id)
    if updated is None:
        raise _not_found(dept_id)
    return DepartmentResponse.from_department(updated)


@router.delete("/departments/{dept_id}", response_model=MessageResponse)
def delete_department(
    request: Request,
    dept_id: int,
    principal: Principal = Depends(require_manager),
) -> MessageResponse:
    directory: DirectoryStore = request.app.state.directory
    if not directory.delete_department(dept_id):
        raise _not_found(dept_id)
    return MessageResponse(message="Department deleted successfully.")
