from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

import jwt
import pytest
from pydantic import ValidationError
from sqlalchemy.exc import OperationalError

from rolegate.core import authz
from rolegate.core.authz import AuthorizationEngine, OperationPolicy, resolve_identity
from rolegate.core.errors import ForbiddenError, UnauthorizedError
from rolegate.core.roles import Privilege, Role
from rolegate.services import users


def _user(wh, privileges, email="u@x.com"):
    return users.create_user(wh, "U", email, "p", list(privileges), privileges)


def test_authentication_gate(warehouse):
    engine = AuthorizationEngine(warehouse)
    for anonymous in (None, {}, False):
        with pytest.raises(UnauthorizedError):
            engine.authenticate(anonymous)
    minimal = SimpleNamespace()
    assert engine.authenticate(minimal) is minimal


def test_rbac_gate(warehouse):
    engine = AuthorizationEngine(warehouse)
    u = _user(warehouse, {Role.FINANCE: Privilege.VIEWER})
    assert engine.check_roles(u, OperationPolicy())
    assert engine.check_roles(u, OperationPolicy(required_roles=(Role.ADMIN, Role.FINANCE)))
    assert engine.check_roles(u, OperationPolicy(required_roles=(Role.ADMIN,))) is False


@pytest.mark.parametrize("role", list(Role))
def test_privilege_escalation_law(warehouse, role):
    engine = AuthorizationEngine(warehouse)
    editor = _user(warehouse, {role: Privilege.EDITOR}, "editor@x.com")
    viewer = _user(warehouse, {role: Privilege.VIEWER}, "viewer@x.com")

    assert engine.check_privilege(editor, OperationPolicy(required_roles=(role,), required_privilege=Privilege.VIEWER))
    assert engine.check_privilege(editor, OperationPolicy(required_roles=(role,), required_privilege=Privilege.EDITOR))
    assert engine.check_privilege(viewer, OperationPolicy(required_roles=(role,), required_privilege=Privilege.VIEWER))
    with pytest.raises(ForbiddenError):
        engine.check_privilege(viewer, OperationPolicy(required_roles=(role,), required_privilege=Privilege.EDITOR))


def test_pbac_uses_identity_roles_when_operation_declares_none(warehouse):
    engine = AuthorizationEngine(warehouse)
    u = _user(warehouse, {Role.LEARNER: Privilege.VIEWER, Role.FINANCE: Privilege.EDITOR})
    assert engine.check_privilege(u, OperationPolicy(required_privilege=Privilege.EDITOR))
    assert engine.check_privilege(u, OperationPolicy())


def test_pbac_skips_roles_identity_does_not_hold(warehouse):
    engine = AuthorizationEngine(warehouse)
    u = _user(warehouse, {Role.FINANCE: Privilege.EDITOR})
    with pytest.raises(ForbiddenError) as exc:
        engine.check_privilege(u, OperationPolicy(required_roles=(Role.ADMIN,), required_privilege=Privilege.VIEWER))
    assert "VIEWER" in exc.value.message


def test_pbac_denies_with_zero_candidates(warehouse):
    engine = AuthorizationEngine(warehouse)
    u = users.create_user(warehouse, "N", "n@x.com", "p", [], {})
    with pytest.raises(ForbiddenError):
        engine.check_privilege(u, OperationPolicy(required_privilege=Privilege.VIEWER))


def test_pbac_reads_live_privilege_not_snapshot(warehouse):
    engine = AuthorizationEngine(warehouse)
    u = _user(warehouse, {Role.ADMIN: Privilege.EDITOR})
    users.update_user_roles_and_privileges(warehouse, u.user_id, [Role.ADMIN], {Role.ADMIN: Privilege.VIEWER})
    # u 仍是旧快照（roles 未变），权限以库里为准
    with pytest.raises(ForbiddenError):
        engine.check_privilege(u, OperationPolicy(required_roles=(Role.ADMIN,), required_privilege=Privilege.EDITOR))


def test_pbac_store_error_propagates(warehouse, monkeypatch):
    engine = AuthorizationEngine(warehouse)
    u = _user(warehouse, {Role.ADMIN: Privilege.EDITOR})

    def boom(*args, **kwargs):
        raise OperationalError("SELECT privilege", {}, Exception("store down"))

    monkeypatch.setattr(authz.users, "get_user_privilege_for_role", boom)
    with pytest.raises(OperationalError):
        engine.check_privilege(u, OperationPolicy(required_roles=(Role.ADMIN,), required_privilege=Privilege.EDITOR))


def test_authorize_admin_viewer_cannot_edit(warehouse):
    engine = AuthorizationEngine(warehouse)
    u = _user(warehouse, {Role.ADMIN: Privilege.VIEWER})
    with pytest.raises(ForbiddenError):
        engine.authorize(u, OperationPolicy(required_roles=(Role.ADMIN,), required_privilege=Privilege.EDITOR))
    assert engine.authorize(u, OperationPolicy(required_roles=(Role.ADMIN,))) is u


def test_authorize_short_circuits(warehouse, monkeypatch):
    engine = AuthorizationEngine(warehouse)
    u = _user(warehouse, {Role.LEARNER: Privilege.EDITOR})
    called = []
    monkeypatch.setattr(authz.users, "get_user_privilege_for_role", lambda *a: called.append(a))
    with pytest.raises(ForbiddenError):
        engine.authorize(u, OperationPolicy(required_roles=(Role.ADMIN,), required_privilege=Privilege.VIEWER))
    with pytest.raises(UnauthorizedError):
        engine.authorize(None, OperationPolicy(required_roles=(Role.ADMIN,), required_privilege=Privilege.VIEWER))
    assert called == []


def test_resolve_identity(warehouse, auth):
    assert resolve_identity(warehouse, None) is None

    user = auth.register("A", "a@x.com", "p")
    token = auth.generate_token(user)
    users.update_user(warehouse, user.user_id, {"name": "Renamed"})
    assert resolve_identity(warehouse, token).name == "Renamed"

    with pytest.raises(UnauthorizedError) as exc:
        resolve_identity(warehouse, "not-a-jwt")
    assert exc.value.message == "Invalid token"

    expired = jwt.encode(
        {"sub": user.user_id, "exp": datetime.now(timezone.utc) - timedelta(minutes=1)},
        "test-secret", algorithm="HS256",
    )
    with pytest.raises(UnauthorizedError) as exc:
        resolve_identity(warehouse, expired)
    assert exc.value.message == "Token expired"

    forged = jwt.encode({"sub": user.user_id}, "other-secret", algorithm="HS256")
    with pytest.raises(UnauthorizedError):
        resolve_identity(warehouse, forged)

    users.delete_user(warehouse, user.user_id)
    with pytest.raises(UnauthorizedError):
        resolve_identity(warehouse, token)


def test_operation_policy_is_immutable_and_validated():
    policy = OperationPolicy(required_roles=("ADMIN",), required_privilege="EDITOR")
    assert policy.required_roles == (Role.ADMIN,)
    assert policy.required_privilege is Privilege.EDITOR
    with pytest.raises(ValidationError):
        policy.required_privilege = Privilege.VIEWER
    with pytest.raises(ValidationError):
        OperationPolicy(required_roles=("JANITOR",))
    assert hash(policy) == hash(OperationPolicy(required_roles=(Role.ADMIN,), required_privilege=Privilege.EDITOR))
