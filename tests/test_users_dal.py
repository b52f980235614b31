import logging

import pytest
from sqlalchemy.exc import OperationalError

from rolegate.core.errors import BadRequestError, NothingToUpdateError
from rolegate.core.roles import Privilege, Role
from rolegate.services import users
from tests.helpers import assigned_roles


def _make(wh, email="a@x.com", roles=(Role.ADMIN, Role.FINANCE), privileges=None):
    privileges = privileges or {Role.ADMIN: Privilege.EDITOR, Role.FINANCE: Privilege.VIEWER}
    return users.create_user(wh, "A", email, "p", list(roles), privileges)


def test_create_user_round_trip(warehouse):
    u = _make(warehouse)
    assert users.get_user_privilege_for_role(warehouse, u.user_id, Role.ADMIN) == Privilege.EDITOR
    assert users.get_user_privilege_for_role(warehouse, u.user_id, Role.FINANCE) == Privilege.VIEWER
    assert users.get_user_privilege_for_role(warehouse, u.user_id, Role.LEARNER) is None

    stored = users.get_user_by_id(warehouse, u.user_id)
    assert stored.email == "a@x.com"
    assert stored.roles == [Role.ADMIN, Role.FINANCE]
    assert assigned_roles(warehouse, u.user_id) == {Role.ADMIN, Role.FINANCE}


def test_lookups_return_none_when_absent(warehouse):
    assert users.get_user_by_email(warehouse, "nobody@x.com") is None
    assert users.get_user_by_id(warehouse, "missing-id") is None


def test_email_lookup_excluding_self(warehouse):
    a = _make(warehouse, "a@x.com")
    b = _make(warehouse, "b@x.com")
    assert users.get_user_by_email_excluding_user_id(warehouse, "a@x.com", a.user_id) is None
    assert users.get_user_by_email_excluding_user_id(warehouse, "a@x.com", b.user_id).user_id == a.user_id


def test_get_all_users_newest_first(warehouse):
    first = _make(warehouse, "1@x.com")
    second = _make(warehouse, "2@x.com")
    assert [u.user_id for u in users.get_all_users(warehouse)] == [second.user_id, first.user_id]


def test_get_users_by_role_only_live_assignments(warehouse):
    admin = _make(warehouse, "admin@x.com", [Role.ADMIN], {Role.ADMIN: Privilege.EDITOR})
    _make(warehouse, "fin@x.com", [Role.FINANCE], {Role.FINANCE: Privilege.VIEWER})
    assert [u.user_id for u in users.get_users_by_role(warehouse, Role.ADMIN)] == [admin.user_id]
    assert users.get_users_by_role(warehouse, Role.USER) == []


def test_update_user_partial(warehouse):
    u = _make(warehouse)
    updated = users.update_user(warehouse, u.user_id, {"name": "B"})
    assert updated.name == "B"
    assert updated.email == u.email
    assert updated.password == "p"


def test_update_user_empty_payload(warehouse):
    u = _make(warehouse)
    with pytest.raises(NothingToUpdateError):
        users.update_user(warehouse, u.user_id, {})
    with pytest.raises(NothingToUpdateError):
        users.update_user(warehouse, u.user_id, {"name": None, "unknown": "x"})


def test_update_roles_keeps_tables_consistent(warehouse):
    u = _make(warehouse)
    updated = users.update_user_roles_and_privileges(
        warehouse, u.user_id,
        [Role.FINANCE, Role.LEARNER],
        {Role.FINANCE: Privilege.EDITOR, Role.LEARNER: Privilege.VIEWER},
    )
    assert updated.roles == [Role.FINANCE, Role.LEARNER]
    assert assigned_roles(warehouse, u.user_id) == {Role.FINANCE, Role.LEARNER}
    assert users.get_user_privilege_for_role(warehouse, u.user_id, Role.FINANCE) == Privilege.EDITOR
    assert users.get_user_privilege_for_role(warehouse, u.user_id, Role.LEARNER) == Privilege.VIEWER
    assert users.get_user_privilege_for_role(warehouse, u.user_id, Role.ADMIN) is None


def test_update_roles_missing_user(warehouse):
    assert users.update_user_roles_and_privileges(warehouse, "missing", [Role.USER], {Role.USER: Privilege.VIEWER}) is None


def test_delete_user_removes_every_row(warehouse):
    u = _make(warehouse)
    users.delete_user(warehouse, u.user_id)
    assert users.get_user_by_id(warehouse, u.user_id) is None
    assert assigned_roles(warehouse, u.user_id) == set()


def test_delete_missing_user_fails(warehouse):
    with pytest.raises(BadRequestError):
        users.delete_user(warehouse, "missing")


def test_partial_write_is_logged_and_propagated(warehouse, monkeypatch, caplog):
    real = warehouse.execute
    calls = {"n": 0}

    def failing(stmt):
        calls["n"] += 1
        if calls["n"] == 3:  # users, admin 已写入，finance 失败
            raise OperationalError("INSERT INTO finance", {}, Exception("store down"))
        return real(stmt)

    monkeypatch.setattr(warehouse, "execute", failing)
    caplog.set_level(logging.INFO, logger="rolegate")
    with pytest.raises(OperationalError):
        _make(warehouse)

    failed = [r.getMessage() for r in caplog.records if "user_saga_step_failed" in r.getMessage()]
    assert failed
    assert '"table": "finance"' in failed[0]
    assert "insert_admin" in failed[0]


def test_role_assignment_row(warehouse):
    u = _make(warehouse)
    a = users.get_role_assignment(warehouse, u.user_id, Role.ADMIN)
    assert a.user_id == u.user_id
    assert a.privilege == Privilege.EDITOR
    assert a.created_at is not None
    assert users.get_role_assignment(warehouse, u.user_id, Role.USER) is None


def test_created_at_keeps_utc_on_read_back(warehouse):
    u = _make(warehouse)
    stored = users.get_user_by_id(warehouse, u.user_id)
    assert stored.created_at.tzinfo is not None
    assert stored.public()["created_at"] == u.public()["created_at"]
    assert users.get_all_users(warehouse)[0].public()["created_at"] == u.public()["created_at"]

    assignment = users.get_role_assignment(warehouse, u.user_id, Role.ADMIN)
    assert assignment.created_at.tzinfo is not None
    assert assignment.created_at == u.created_at
