"""模块职能：

角色 / 权限登记表（整个系统唯一的枚举来源）。

- Role：部门角色（USER / LEARNER / ADMIN / FINANCE），每个角色对应一张同名小写表
- Privilege：两级权限 VIEWER < EDITOR（EDITOR 隐含 VIEWER，不单独存储）

增删 Role 成员是改变"每角色表"集合的唯一手段；这里全部是纯函数，无副作用。"""
from enum import Enum
from typing import List, Optional

USERS_TABLE = "users"


class Role(str, Enum):
    USER = "USER"
    LEARNER = "LEARNER"
    ADMIN = "ADMIN"
    FINANCE = "FINANCE"


class Privilege(str, Enum):
    VIEWER = "VIEWER"
    EDITOR = "EDITOR"


def all_roles() -> List[Role]:
    return list(Role)


def all_privileges() -> List[Privilege]:
    return list(Privilege)


def is_valid_role(value) -> bool:
    try:
        Role(value)
    except ValueError:
        return False
    return True


def is_valid_privilege(value) -> bool:
    try:
        Privilege(value)
    except ValueError:
        return False
    return True


def role_table_name(role: Role) -> str:
    """角色 → 表名：只做小写折叠，不做其他变换。"""
    return Role(role).value.lower()


def privilege_satisfies(held: Optional[Privilege], required: Privilege) -> bool:
    """
    权限比较：
    - 相等即满足
    - 需要 VIEWER 时，EDITOR 也满足（提升规则）
    - held 为 None（未分配）永远不满足
    """
    if held is None:
        return False
    held = Privilege(held)
    required = Privilege(required)
    if held == required:
        return True
    return required == Privilege.VIEWER and held == Privilege.EDITOR


def unique_roles(roles) -> List[Role]:
    """去重并保持首次出现的顺序；成员集合不允许重复。"""
    seen = []
    for r in roles:
        r = Role(r)
        if r not in seen:
            seen.append(r)
    return seen
