"""
directory/store.py -- SQLAlchemy-backed persistence layer for departments and
employees.

Uses SQLAlchemy Core (not ORM) so the dataclasses in directory/models.py stay
the authoritative domain representation. Swapping SQLite for PostgreSQL is a
connection string change.

Pattern: Repository + Data Mapper. DirectoryStore is the repository; the
_row_to_* functions are the mappers. Route handlers never touch SQL directly.

Uniqueness (department name, employee email, employee user_id) is enforced by
UNIQUE constraints, never by read-then-write checks, so the database is the
serialization point for concurrent creates. IntegrityError is translated to
Conflict naming the violated field.

employees.user_id is nullable and UNIQUE: SQL treats NULLs as distinct, so
any number of employees can be unlinked while a linked account belongs to at
most one employee.

Deleting a department that employees still reference is refused (restrict
policy); creating or moving an employee into a missing department fails
validation. The existence checks only produce the friendly messages: the
employees.department_id foreign key (enforced on SQLite via
PRAGMA foreign_keys=ON) decides races between a delete and an insert.

Security: all queries use bound parameters. No f-strings in SQL.

Usage:
    store = DirectoryStore("sqlite:///:memory:")
    dept_id = store.create_department(Department(name="Engineering"))
    emp_id = store.create_employee(Employee(name="Ada", email="ada@corp.com", department_id=dept_id))
    store.update_employee(emp_id, user_id=None)   # unlink
    store.close()
"""

import logging
from datetime import date, datetime, time, timedelta, timezone
from typing import Optional

from sqlalchemy import (
    Column,
    ForeignKey,
    Integer,
    MetaData,
    String,
    Table,
    UniqueConstraint,
    create_engine,
    event,
    func,
    or_,
    select,
)
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import IntegrityError

from core.config import get_settings
from core.errors import Conflict, ValidationFailed
from directory.models import Department, Employee

logger = logging.getLogger("hrm.directory")

# Fields update_employee() accepts. Anything else is a programming error.
_EMPLOYEE_FIELDS = frozenset({"name", "email", "department_id", "role", "joining_date", "user_id"})

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

metadata = MetaData()

_departments = Table(
    "departments",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("name", String(100), nullable=False),
    Column("created_at", String(32), nullable=False),
    UniqueConstraint("name", name="uq_departments_name"),
)

_employees = Table(
    "employees",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("name", String(100), nullable=False),
    Column("email", String(255), nullable=False),
    Column("department_id", Integer, ForeignKey("departments.id"), nullable=False, index=True),
    Column("role", String(30), nullable=False, server_default="employee"),
    Column("joining_date", String(32), nullable=False),  # ISO 8601 UTC
    Column("user_id", Integer),  # references users.id in the credential store
    UniqueConstraint("email", name="uq_employees_email"),
    UniqueConstraint("user_id", name="uq_employees_user_id"),
)

# Client-facing messages per violated unique field.
_CONFLICT_MESSAGES: dict[str, str] = {
    "name": "Duplicate department name.",
    "email": "An employee with that email already exists.",
    "user_id": "That user account is already linked to another employee.",
}


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _set_sqlite_pragmas(dbapi_conn, connection_record) -> None:
    """Per connection: WAL journal mode, and foreign key enforcement (off by default in SQLite)."""
    dbapi_conn.execute("PRAGMA journal_mode=WAL")
    dbapi_conn.execute("PRAGMA foreign_keys=ON")


def _violated_field(exc: IntegrityError, table: str, fields: tuple[str, ...]) -> Optional[str]:
    """Return which unique field an IntegrityError is about, or None.

    SQLite reports "UNIQUE constraint failed: employees.email"; PostgreSQL
    reports the constraint name ("uq_employees_email"). Both are matched.
    """
    detail = str(exc.orig)
    for field in fields:
        if f"{table}.{field}" in detail or f"uq_{table}_{field}" in detail:
            return field
    return None


def _conflict(exc: IntegrityError, table: str, fields: tuple[str, ...]) -> Conflict:
    field = _violated_field(exc, table, fields)
    message = _CONFLICT_MESSAGES.get(field, "Duplicate value violates a uniqueness constraint.")
    return Conflict(message, field=field)


def _is_foreign_key_violation(exc: IntegrityError) -> bool:
    """SQLite: "FOREIGN KEY constraint failed"; PostgreSQL: "violates foreign key constraint"."""
    return "foreign key" in str(exc.orig).lower()


def _missing_department(dept_id: Optional[int]) -> ValidationFailed:
    return ValidationFailed(errors=[f"department_id: Department {dept_id} does not exist."])


def _department_in_use(count: Optional[int] = None) -> Conflict:
    held = f"{count} employee(s)" if count else "employees"
    return Conflict(f"Department still has {held}. Reassign or delete them first.", field="department_id")


def day_bounds(day: date) -> tuple[str, str]:
    """Return the ISO 8601 UTC bounds [day 00:00, day+1 00:00) for a calendar day.

    Stored joining dates are UTC isoformat strings, so lexical comparison
    against these bounds is a correct range check.
    """
    start = datetime.combine(day, time.min, tzinfo=timezone.utc)
    return start.isoformat(), (start + timedelta(days=1)).isoformat()


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class DirectoryStore:
    def __init__(self, db_url: Optional[str] = None) -> None:
        db_url = db_url or get_settings().database_url
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            # FastAPI runs sync handlers in a thread pool, so pooled SQLite
            # connections cross threads.
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _set_sqlite_pragmas)
        metadata.create_all(self.engine)

    # ------------------------------------------------------------------
    # Departments
    # ------------------------------------------------------------------

    def list_departments(self) -> list[Department]:
        """Return all departments ordered by name."""
        with self.engine.connect() as conn:
            rows = conn.execute(_departments.select().order_by(_departments.c.name)).fetchall()
        return [_row_to_department(r) for r in rows]

    def get_department(self, dept_id: int) -> Optional[Department]:
        """Fetch a single department by ID. Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_departments.select().where(_departments.c.id == dept_id)).fetchone()
        return _row_to_department(row) if row is not None else None

    def create_department(self, dept: Department) -> int:
        """Insert a department and return its ID. Raises Conflict on a duplicate name."""
        with self.engine.connect() as conn:
            try:
                result = conn.execute(_departments.insert().values(name=dept.name.strip(), created_at=_now_iso()))
                conn.commit()
            except IntegrityError as exc:
                conn.rollback()
                raise _conflict(exc, "departments", ("name",)) from exc
        return result.inserted_primary_key[0]

    def update_department(self, dept_id: int, **fields) -> bool:
        """Update mutable fields (currently only name) on a department.

        Returns True if the department exists, False if dept_id was not found.
        Raises Conflict if the new name is taken.
        """
        if "name" in fields:
            fields["name"] = fields["name"].strip()
        with self.engine.connect() as conn:
            if not fields:
                return _department_exists(conn, dept_id)
            try:
                result = conn.execute(_departments.update().where(_departments.c.id == dept_id).values(**fields))
                conn.commit()
            except IntegrityError as exc:
                conn.rollback()
                raise _conflict(exc, "departments", ("name",)) from exc
        return result.rowcount > 0

    def delete_department(self, dept_id: int) -> bool:
        """Delete a department. Returns False if dept_id was not found.

        Raises Conflict(field="department_id") while employees still reference
        the department; nothing is deleted in that case. The count gives the
        message; the foreign key catches an employee inserted after the count.
        """
        with self.engine.connect() as conn:
            in_use = conn.execute(
                select(func.count()).select_from(_employees).where(_employees.c.department_id == dept_id)
            ).scalar()
            if in_use:
                raise _department_in_use(in_use)
            try:
                result = conn.execute(_departments.delete().where(_departments.c.id == dept_id))
                conn.commit()
            except IntegrityError as exc:
                conn.rollback()
                if _is_foreign_key_violation(exc):
                    raise _department_in_use() from exc
                raise
        return result.rowcount > 0

    # ------------------------------------------------------------------
    # Employees
    # ------------------------------------------------------------------

    def list_employees(
        self,
        search: Optional[str] = None,
        department_id: Optional[int] = None,
        joining_date: Optional[date] = None,
    ) -> list[Employee]:
        """Return employees matching every supplied filter, ordered by name.

        search        -- case-insensitive substring of name OR email
        department_id -- exact match
        joining_date  -- any time within that UTC calendar day
        """
        stmt = select(_employees, _departments.c.name.label("department_name")).select_from(
            _employees.outerjoin(_departments, _employees.c.department_id == _departments.c.id)
        )
        if search:
            stmt = stmt.where(
                or_(
                    _employees.c.name.icontains(search, autoescape=True),
                    _employees.c.email.icontains(search, autoescape=True),
                )
            )
        if department_id is not None:
            stmt = stmt.where(_employees.c.department_id == department_id)
        if joining_date is not None:
            start, end = day_bounds(joining_date)
            stmt = stmt.where((_employees.c.joining_date >= start) & (_employees.c.joining_date < end))
        stmt = stmt.order_by(_employees.c.name, _employees.c.id)
        with self.engine.connect() as conn:
            rows = conn.execute(stmt).fetchall()
        return [_row_to_employee(r) for r in rows]

    def get_employee(self, emp_id: int) -> Optional[Employee]:
        """Fetch a single employee (with department name) by ID. Returns None if not found."""
        stmt = (
            select(_employees, _departments.c.name.label("department_name"))
            .select_from(_employees.outerjoin(_departments, _employees.c.department_id == _departments.c.id))
            .where(_employees.c.id == emp_id)
        )
        with self.engine.connect() as conn:
            row = conn.execute(stmt).fetchone()
        return _row_to_employee(row) if row is not None else None

    def create_employee(self, emp: Employee) -> int:
        """Insert an employee and return its ID.

        Raises ValidationFailed if department_id does not exist, and
        Conflict(field="email" | "user_id") on a uniqueness violation.
        """
        with self.engine.connect() as conn:
            _require_department(conn, emp.department_id)
            try:
                result = conn.execute(
                    _employees.insert().values(
                        name=emp.name,
                        email=emp.email.strip().lower(),
                        department_id=emp.department_id,
                        role=emp.role,
                        joining_date=emp.joining_date or _now_iso(),
                        user_id=emp.user_id,
                    )
                )
                conn.commit()
            except IntegrityError as exc:
                conn.rollback()
                if _is_foreign_key_violation(exc):
                    raise _missing_department(emp.department_id) from exc
                raise _conflict(exc, "employees", ("email", "user_id")) from exc
        return result.inserted_primary_key[0]

    def update_employee(self, emp_id: int, **fields) -> bool:
        """Update any subset of an employee's fields.

        Passing user_id=None removes the link (the column becomes NULL);
        omitting user_id leaves the existing link untouched.

        Returns True if the employee exists, False if emp_id was not found.
        """
        unknown = set(fields) - _EMPLOYEE_FIELDS
        if unknown:
            raise ValueError(f"Unknown employee fields: {unknown!r}")
        if "email" in fields:
            fields["email"] = fields["email"].strip().lower()
        with self.engine.connect() as conn:
            if not fields:
                return _employee_exists(conn, emp_id)
            if "department_id" in fields:
                _require_department(conn, fields["department_id"])
            try:
                result = conn.execute(_employees.update().where(_employees.c.id == emp_id).values(**fields))
                conn.commit()
            except IntegrityError as exc:
                conn.rollback()
                if _is_foreign_key_violation(exc):
                    raise _missing_department(fields.get("department_id")) from exc
                raise _conflict(exc, "employees", ("email", "user_id")) from exc
        return result.rowcount > 0

    def delete_employee(self, emp_id: int) -> bool:
        """Delete an employee. Returns True if deleted, False if not found."""
        with self.engine.connect() as conn:
            result = conn.execute(_employees.delete().where(_employees.c.id == emp_id))
            conn.commit()
        return result.rowcount > 0

    def linked_user_ids(self) -> set[int]:
        """Return every user_id currently referenced by an employee."""
        with self.engine.connect() as conn:
            rows = conn.execute(select(_employees.c.user_id).where(_employees.c.user_id.isnot(None))).fetchall()
        return {r.user_id for r in rows}

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Referential checks (run on the caller's connection)
# ---------------------------------------------------------------------------


def _department_exists(conn: Connection, dept_id: int) -> bool:
    return conn.execute(select(_departments.c.id).where(_departments.c.id == dept_id)).first() is not None


def _employee_exists(conn: Connection, emp_id: int) -> bool:
    return conn.execute(select(_employees.c.id).where(_employees.c.id == emp_id)).first() is not None


def _require_department(conn: Connection, dept_id: int) -> None:
    if not _department_exists(conn, dept_id):
        raise _missing_department(dept_id)


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern -- DB row -> domain dataclass)
# ---------------------------------------------------------------------------


def _row_to_department(row) -> Department:
    return Department(id=row.id, name=row.name, created_at=row.created_at)


def _row_to_employee(row) -> Employee:
    return Employee(
        id=row.id,
        name=row.name,
        email=row.email,
        department_id=row.department_id,
        role=row.role,
        joining_date=row.joining_date,
        user_id=row.user_id,
        department_name=getattr(row, "department_name", None),
    )
