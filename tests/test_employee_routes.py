"""
tests/test_employee_routes.py -- Integration tests for /api/employees and
account linking.

Coverage:
  - Create with defaults, field format rules, duplicate email
  - List filters (search, department, joining day) and their AND combination
  - Link / unlink / keep-link semantics on update
  - One account links to at most one employee
  - GET /employees/unlinked-users tracks links as they change
"""

from __future__ import annotations

import pytest

from auth.models import Role, User
from auth.tokens import hash_password


@pytest.fixture(scope="module")
def depts(api) -> dict[str, int]:
    """Two departments shared by the tests in this module."""
    ids = {}
    for name in ("Research", "Support"):
        resp = api.client.post("/api/departments", json={"name": name}, headers=api.headers(Role.admin))
        ids[name] = resp.json()["id"]
    return ids


def _new_user(api, email: str) -> int:
    return api.user_store.create_user(User(email=email, role="employee", hashed_password=hash_password("pw-123456")))


def _create(api, **body):
    return api.client.post("/api/employees", json=body, headers=api.headers(Role.HR))


def _unlinked_ids(api) -> set[int]:
    resp = api.client.get("/api/employees/unlinked-users", headers=api.headers(Role.HR))
    assert resp.status_code == 200, resp.text
    return {u["id"] for u in resp.json()}


class TestEmployeeCreate:
    def test_create_with_defaults(self, api, depts) -> None:
        resp = _create(api, name="Ada Lovelace", email="Ada@Corp.com", department_id=depts["Research"])
        assert resp.status_code == 201, f"Expected 201, got {resp.status_code}: {resp.text}"
        data = resp.json()
        assert data["email"] == "ada@corp.com"
        assert data["role"] == "employee"
        assert data["department_name"] == "Research"
        assert data["joining_date"], "joining_date defaults to now"
        assert data["user_id"] is None
        assert data["user"] is None

    def test_invalid_name(self, api, depts) -> None:
        resp = _create(api, name="R2D2", email="r2@corp.com", department_id=depts["Research"])
        assert resp.status_code == 400
        body = resp.json()
        assert body["code"] == "validation_failed"
        assert "name: Name must contain only alphabetic characters and spaces." in body["errors"]

    def test_invalid_email(self, api, depts) -> None:
        resp = _create(api, name="No Email", email="nope", department_id=depts["Research"])
        assert resp.status_code == 400
        assert "email: Please fill a valid email address." in resp.json()["errors"]

    def test_invalid_role(self, api, depts) -> None:
        resp = _create(api, name="Bad Role", email="badrole@corp.com", department_id=depts["Research"], role="boss")
        assert resp.status_code == 400
        assert resp.json()["code"] == "validation_failed"

    def test_duplicate_email(self, api, depts) -> None:
        _create(api, name="First Copy", email="copy@corp.com", department_id=depts["Research"])
        resp = _create(api, name="Second Copy", email="COPY@corp.com", department_id=depts["Support"])
        assert resp.status_code == 400
        assert resp.json()["code"] == "conflict"
        assert resp.json()["field"] == "email"

    def test_unknown_user_id(self, api, depts) -> None:
        resp = _create(api, name="Ghost Link", email="ghostlink@corp.com", department_id=depts["Research"], user_id=424242)
        assert resp.status_code == 400
        assert resp.json()["errors"] == ["user_id: User account 424242 does not exist."]

    def test_blank_user_id_means_unlinked(self, api, depts) -> None:
        resp = _create(api, name="Blank Link", email="blank@corp.com", department_id=depts["Research"], user_id="")
        assert resp.status_code == 201
        assert resp.json()["user_id"] is None

    def test_employee_role_cannot_create(self, api, depts) -> None:
        resp = api.client.post(
            "/api/employees",
            json={"name": "Sneaky", "email": "sneaky@corp.com", "department_id": depts["Research"]},
            headers=api.headers(Role.employee),
        )
        assert resp.status_code == 403


class TestEmployeeList:
    @pytest.fixture(scope="class")
    def roster(self, api, depts) -> dict[str, int]:
        rows = [
            ("Filter Alice", "falice@corp.com", "Research", "2024-03-05T09:00:00Z"),
            ("Filter Bob", "fbob@corp.com", "Support", "2024-03-05T23:30:00Z"),
            ("Filter Carol", "fcarol@corp.com", "Research", "2024-03-06T00:00:00Z"),
        ]
        ids = {}
        for name, email, dept, joined in rows:
            resp = _create(api, name=name, email=email, department_id=depts[dept], joining_date=joined)
            assert resp.status_code == 201, resp.text
            ids[name] = resp.json()["id"]
        return ids

    def _names(self, api, **params) -> list[str]:
        resp = api.client.get("/api/employees", params=params, headers=api.headers(Role.employee))
        assert resp.status_code == 200, f"Expected 200, got {resp.status_code}: {resp.text}"
        return [e["name"] for e in resp.json()]

    def test_search_matches_name_case_insensitively(self, api, roster) -> None:
        assert self._names(api, search="filter a") == ["Filter Alice"]

    def test_search_matches_email(self, api, roster) -> None:
        assert self._names(api, search="FBOB@") == ["Filter Bob"]

    def test_department_filter(self, api, roster, depts) -> None:
        names = self._names(api, search="filter", department_id=depts["Research"])
        assert names == ["Filter Alice", "Filter Carol"]

    def test_joining_date_matches_whole_utc_day(self, api, roster) -> None:
        assert self._names(api, search="filter", joining_date="2024-03-05") == ["Filter Alice", "Filter Bob"]

    def test_filters_combine_with_and(self, api, roster, depts) -> None:
        names = self._names(api, search="filter", department_id=depts["Support"], joining_date="2024-03-05")
        assert names == ["Filter Bob"]

    def test_empty_params_mean_no_filter(self, api, roster) -> None:
        everything = self._names(api)
        assert self._names(api, search="", department_id="", joining_date="") == everything
        assert {"Filter Alice", "Filter Bob", "Filter Carol"} <= set(everything)

    def test_ordered_by_name(self, api, roster) -> None:
        names = self._names(api)
        assert names == sorted(names)

    @pytest.mark.parametrize("params", [{"department_id": "abc"}, {"joining_date": "yesterday"}])
    def test_malformed_filters(self, api, params: dict) -> None:
        resp = api.client.get("/api/employees", params=params, headers=api.headers(Role.HR))
        assert resp.status_code == 400
        assert resp.json()["code"] == "validation_failed"

    def test_list_requires_auth(self, api) -> None:
        assert api.client.get("/api/employees").status_code == 401


class TestEmployeeUpdate:
    def test_partial_update(self, api, depts) -> None:
        emp_id = _create(api, name="Mover", email="mover@corp.com", department_id=depts["Research"]).json()["id"]
        resp = api.client.put(
            f"/api/employees/{emp_id}",
            json={"department_id": depts["Support"], "role": "HR"},
            headers=api.headers(Role.HR),
        )
        assert resp.status_code == 200, resp.text
        data = resp.json()
        assert data["department_name"] == "Support"
        assert data["role"] == "HR"
        assert data["name"] == "Mover"

    def test_null_field_rejected(self, api, depts) -> None:
        emp_id = _create(api, name="Nullable", email="nullable@corp.com", department_id=depts["Research"]).json()["id"]
        resp = api.client.put(f"/api/employees/{emp_id}", json={"name": None}, headers=api.headers(Role.HR))
        assert resp.status_code == 400
        assert api.directory.get_employee(emp_id).name == "Nullable"

    def test_move_to_missing_department(self, api, depts) -> None:
        emp_id = _create(api, name="Stray", email="stray@corp.com", department_id=depts["Research"]).json()["id"]
        resp = api.client.put(f"/api/employees/{emp_id}", json={"department_id": 99999}, headers=api.headers(Role.HR))
        assert resp.status_code == 400
        assert resp.json()["code"] == "validation_failed"

    def test_update_unknown_employee(self, api) -> None:
        resp = api.client.put("/api/employees/99999", json={"name": "Nobody"}, headers=api.headers(Role.HR))
        assert resp.status_code == 404

    def test_delete(self, api, depts) -> None:
        emp_id = _create(api, name="Leaver", email="leaver@corp.com", department_id=depts["Support"]).json()["id"]
        resp = api.client.delete(f"/api/employees/{emp_id}", headers=api.headers(Role.admin))
        assert resp.status_code == 200
        assert resp.json() == {"message": "Employee deleted successfully."}
        assert api.client.delete(f"/api/employees/{emp_id}", headers=api.headers(Role.admin)).status_code == 404


class TestLinking:
    def test_link_shows_account(self, api, depts) -> None:
        uid = _new_user(api, "linked-one@corp.com")
        resp = _create(api, name="Linked One", email="l1@corp.com", department_id=depts["Research"], user_id=uid)
        assert resp.status_code == 201, resp.text
        data = resp.json()
        assert data["user_id"] == uid
        assert data["user"] == {"id": uid, "email": "linked-one@corp.com", "role": "employee"}

    def test_account_links_to_one_employee(self, api, depts) -> None:
        uid = _new_user(api, "only-once@corp.com")
        first = _create(api, name="Holder", email="holder@corp.com", department_id=depts["Research"], user_id=uid)
        assert first.status_code == 201
        second = _create(api, name="Claimant", email="claimant@corp.com", department_id=depts["Research"], user_id=uid)
        assert second.status_code == 400, f"Expected 400, got {second.status_code}: {second.text}"
        assert second.json()["code"] == "conflict"
        assert second.json()["field"] == "user_id"

    def test_relink_via_update_is_conflict(self, api, depts) -> None:
        uid = _new_user(api, "relink@corp.com")
        _create(api, name="Owner", email="owner@corp.com", department_id=depts["Research"], user_id=uid)
        other = _create(api, name="Other", email="other@corp.com", department_id=depts["Research"]).json()["id"]
        resp = api.client.put(f"/api/employees/{other}", json={"user_id": uid}, headers=api.headers(Role.HR))
        assert resp.status_code == 400
        assert resp.json()["field"] == "user_id"

    @pytest.mark.parametrize("unlink_value", [None, ""])
    def test_unlink(self, api, depts, unlink_value) -> None:
        tag = "null" if unlink_value is None else "blank"
        uid = _new_user(api, f"unlink-{tag}@corp.com")
        emp_id = _create(
            api, name=f"Unlinker {tag}", email=f"unlinker-{tag}@corp.com", department_id=depts["Support"], user_id=uid
        ).json()["id"]
        assert uid not in _unlinked_ids(api)

        resp = api.client.put(f"/api/employees/{emp_id}", json={"user_id": unlink_value}, headers=api.headers(Role.HR))
        assert resp.status_code == 200, resp.text
        assert resp.json()["user_id"] is None
        assert resp.json()["user"] is None
        assert uid in _unlinked_ids(api)

    def test_omitted_user_id_keeps_link(self, api, depts) -> None:
        uid = _new_user(api, "keeper@corp.com")
        emp_id = _create(api, name="Keeper", email="keep@corp.com", department_id=depts["Support"], user_id=uid).json()["id"]
        resp = api.client.put(f"/api/employees/{emp_id}", json={"name": "Keeper Renamed"}, headers=api.headers(Role.HR))
        assert resp.status_code == 200
        assert resp.json()["user_id"] == uid

    def test_link_to_unknown_account(self, api, depts) -> None:
        emp_id = _create(api, name="Lonely", email="lonely@corp.com", department_id=depts["Support"]).json()["id"]
        resp = api.client.put(f"/api/employees/{emp_id}", json={"user_id": 777777}, headers=api.headers(Role.HR))
        assert resp.status_code == 400
        assert api.directory.get_employee(emp_id).user_id is None


class TestUnlinkedUsers:
    def test_seeded_accounts_start_unlinked(self, api) -> None:
        ids = _unlinked_ids(api)
        assert set(api.user_ids.values()) <= ids

    def test_ordered_by_email(self, api) -> None:
        emails = [u["email"] for u in api.client.get("/api/employees/unlinked-users", headers=api.headers(Role.admin)).json()]
        assert emails == sorted(emails)

    def test_deleting_employee_frees_account(self, api, depts) -> None:
        uid = _new_user(api, "freed@corp.com")
        emp_id = _create(api, name="Freed", email="freed-emp@corp.com", department_id=depts["Research"], user_id=uid).json()["id"]
        assert uid not in _unlinked_ids(api)
        api.client.delete(f"/api/employees/{emp_id}", headers=api.headers(Role.HR))
        assert uid in _unlinked_ids(api)

    def test_employee_role_forbidden(self, api) -> None:
        resp = api.client.get("/api/employees/unlinked-users", headers=api.headers(Role.employee))
        assert resp.status_code == 403

    def test_requires_auth(self, api) -> None:
        assert api.client.get("/api/employees/unlinked-users").status_code == 401
