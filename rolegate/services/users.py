"""
模块职能：
- 数据访问层：共享 users 表 + 每角色表的读写。
- 负责多表一致性：users.roles 数组 与 "哪些角色表里有该用户的行" 必须一致。

没有跨表事务，多表写入按固定顺序逐步提交（_Saga）：
- create：先写 users，再逐个写角色表
- 改角色：先动角色表（删 / 增 / 原地改权限），最后重写 users.roles
- delete：先删各角色表的行，最后删 users
某一步失败：记录已完成步骤后原样上抛，不回滚、不重试（重试可能写出重复的角色行）。

"查不到"返回 None，不抛异常；存储异常原样上抛。

日志：
- user_created / user_updated / user_roles_updated / user_deleted
- user_saga_step_failed（表名、操作、已完成步骤）
"""
import uuid
from datetime import datetime, timezone
from typing import Callable, Dict, Iterable, List, Optional

from sqlalchemy import delete, insert, select, update

from rolegate.core.errors import BadRequestError, NothingToUpdateError
from rolegate.core.models import RoleAssignment, User
from rolegate.core.roles import Privilege, Role, USERS_TABLE, role_table_name, unique_roles
from rolegate.infra.db import Warehouse
from rolegate.infra.logger import emit, emit_error
from rolegate.schema.generator import role_table_schema, users_table_schema

UPDATABLE_FIELDS = ("name", "email", "password", "roles")


def _now():
    return datetime.now(timezone.utc)


def _users(wh: Warehouse):
    return wh.table(USERS_TABLE, users_table_schema())


def _role_table(wh: Warehouse, role: Role):
    return wh.table(role_table_name(role), role_table_schema())


def _as_utc(value: datetime) -> datetime:
    # SQLite 读回的是不带时区的时间，写入时一律是 UTC
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _to_user(row: dict) -> User:
    return User(
        user_id=row["userId"],
        name=row["name"],
        email=row["email"],
        password=row["password"],
        roles=row.get("roles") or [],
        created_at=_as_utc(row["created_at"]),
    )


def _role_values(roles: Iterable[Role]) -> List[str]:
    return [r.value for r in unique_roles(roles)]


class _Saga:
    """按顺序执行多表写入步骤；失败时记下已完成的步骤再上抛。"""

    def __init__(self, op: str, user_id: str):
        self.op = op
        self.user_id = user_id
        self.completed: List[str] = []

    def step(self, name: str, table: str, fn: Callable[[], object]):
        try:
            fn()
        except Exception as e:
            emit_error(
                "user_saga_step_failed",
                op=self.op, user_id=self.user_id, table=table, step=name,
                completed=list(self.completed), error=str(e),
            )
            raise
        self.completed.append(name)


# ---------------- create ----------------

def create_user(wh: Warehouse, name: str, email: str, password: str,
                roles: Iterable[Role], privileges: Dict[Role, Privilege]) -> User:
    """
    写 users 一行，再给每个角色写一行权限。
    privileges 必须覆盖 roles 的每一项（由调用方保证）；邮箱唯一性也由调用方检查。
    """
    roles = unique_roles(roles)
    user = User(
        user_id=str(uuid.uuid4()),
        name=name,
        email=email,
        password=password,
        roles=roles,
        created_at=_now(),
    )
    saga = _Saga("create_user", user.user_id)
    saga.step("insert_user", USERS_TABLE, lambda: wh.execute(insert(_users(wh)).values(
        userId=user.user_id, name=name, email=email, password=password,
        roles=_role_values(roles), created_at=user.created_at,
    )))
    for role in roles:
        privilege = Privilege(privileges[role])
        saga.step(f"insert_{role_table_name(role)}", role_table_name(role),
                  lambda role=role, privilege=privilege: wh.execute(insert(_role_table(wh, role)).values(
                      userId=user.user_id, privilege=privilege.value, created_at=user.created_at,
                  )))

    emit("user_created", user_id=user.user_id, roles=_role_values(roles))
    return user


# ---------------- read ----------------

def _first_user(wh: Warehouse, *conds) -> Optional[User]:
    t = _users(wh)
    rows = wh.execute(select(t).where(*conds).limit(1))
    return _to_user(rows[0]) if rows else None


def get_user_by_email(wh: Warehouse, email: str) -> Optional[User]:
    return _first_user(wh, _users(wh).c.email == email)


def get_user_by_id(wh: Warehouse, user_id: str) -> Optional[User]:
    return _first_user(wh, _users(wh).c.userId == user_id)


def get_user_by_email_excluding_user_id(wh: Warehouse, email: str, exclude_user_id: str) -> Optional[User]:
    """改邮箱时查重：允许用户保留自己的邮箱。"""
    t = _users(wh)
    return _first_user(wh, t.c.email == email, t.c.userId != exclude_user_id)


def get_role_assignment(wh: Warehouse, user_id: str, role: Role) -> Optional[RoleAssignment]:
    t = _role_table(wh, role)
    rows = wh.execute(select(t).where(t.c.userId == user_id).limit(1))
    if not rows:
        return None
    return RoleAssignment(user_id=rows[0]["userId"], privilege=rows[0]["privilege"], created_at=_as_utc(rows[0]["created_at"]))


def get_user_privilege_for_role(wh: Warehouse, user_id: str, role: Role) -> Optional[Privilege]:
    """用户不在该角色里返回 None（不是错误）。"""
    assignment = get_role_assignment(wh, user_id, role)
    return assignment.privilege if assignment else None


def get_all_users(wh: Warehouse) -> List[User]:
    t = _users(wh)
    return [_to_user(r) for r in wh.execute(select(t).order_by(t.c.created_at.desc()))]


def get_users_by_role(wh: Warehouse, role: Role) -> List[User]:
    """只返回在该角色表里有行的用户。"""
    u, r = _users(wh), _role_table(wh, role)
    stmt = (select(u)
            .where(u.c.userId.in_(select(r.c.userId)))
            .order_by(u.c.created_at.desc()))
    return [_to_user(row) for row in wh.execute(stmt)]


# ---------------- update ----------------

def update_user(wh: Warehouse, user_id: str, fields: Dict[str, object]) -> Optional[User]:
    """只更新传入的字段（name/email/password/roles 各自可选）；全空则报 NothingToUpdateError。"""
    values = {k: v for k, v in fields.items() if k in UPDATABLE_FIELDS and v is not None}
    if not values:
        raise NothingToUpdateError(user_id)
    if "roles" in values:
        values["roles"] = _role_values(values["roles"])

    t = _users(wh)
    wh.execute(update(t).where(t.c.userId == user_id).values(**values))
    emit("user_updated", user_id=user_id, fields=sorted(values))
    return get_user_by_id(wh, user_id)


def update_user_roles_and_privileges(wh: Warehouse, user_id: str, new_roles: Iterable[Role],
                                     new_privileges: Dict[Role, Privilege]) -> Optional[User]:
    """
    对比当前角色与 new_roles：
    - 去掉的角色：删角色表的行
    - 新增的角色：插入角色表的行
    - 保留的角色：原地改 privilege
    最后才重写 users.roles；中途失败时更可能留下"有行无标记"，可检测、可清理。
    """
    current = get_user_by_id(wh, user_id)
    if current is None:
        return None

    new_roles = unique_roles(new_roles)
    old = set(current.roles)
    removed = [r for r in current.roles if r not in new_roles]
    added = [r for r in new_roles if r not in old]
    kept = [r for r in new_roles if r in old]
    now = _now()

    saga = _Saga("update_roles", user_id)
    for role in removed:
        t = _role_table(wh, role)
        saga.step(f"delete_{t.name}", t.name,
                  lambda t=t: wh.execute(delete(t).where(t.c.userId == user_id)))
    for role in added:
        t = _role_table(wh, role)
        privilege = Privilege(new_privileges[role])
        saga.step(f"insert_{t.name}", t.name,
                  lambda t=t, privilege=privilege: wh.execute(insert(t).values(
                      userId=user_id, privilege=privilege.value, created_at=now,
                  )))
    for role in kept:
        if role not in new_privileges:
            continue
        t = _role_table(wh, role)
        privilege = Privilege(new_privileges[role])
        saga.step(f"update_{t.name}", t.name,
                  lambda t=t, privilege=privilege: wh.execute(
                      update(t).where(t.c.userId == user_id).values(privilege=privilege.value)))

    users = _users(wh)
    saga.step("rewrite_roles", USERS_TABLE, lambda: wh.execute(
        update(users).where(users.c.userId == user_id).values(roles=_role_values(new_roles))))

    emit("user_roles_updated", user_id=user_id,
         added=_role_values(added), removed=_role_values(removed), kept=_role_values(kept))
    return get_user_by_id(wh, user_id)


# ---------------- delete ----------------

def delete_user(wh: Warehouse, user_id: str):
    user = get_user_by_id(wh, user_id)
    if user is None:
        raise BadRequestError("User not found")

    saga = _Saga("delete_user", user_id)
    for role in user.roles:
        t = _role_table(wh, role)
        saga.step(f"delete_{t.name}", t.name,
                  lambda t=t: wh.execute(delete(t).where(t.c.userId == user_id)))
    users = _users(wh)
    saga.step("delete_user", USERS_TABLE,
              lambda: wh.execute(delete(users).where(users.c.userId == user_id)))
    emit("user_deleted", user_id=user_id, roles=_role_values(user.roles))
