""""模块职能：

只根据 Role 登记表推导表结构（纯函数，无 I/O）：

users_table_schema()：共享 users 表（userId/name/email/password/roles[REPEATED]/created_at）

role_table_schema()：每角色表的统一结构（userId/privilege/created_at）

all_role_table_schemas()：{表名: 结构}，每个 Role 一项

expected_table_names()：全部每角色表名（不含 users）

往 Role 里加一个成员，这里的输出就会跟着变，不需要改代码。"""
from typing import Dict, List

from rolegate.core.roles import Role, role_table_name


def _field(name: str, type_: str, mode: str = "REQUIRED") -> dict:
    return {"name": name, "type": type_, "mode": mode}


def users_table_schema() -> List[dict]:
    return [
        _field("userId", "STRING"),
        _field("name", "STRING"),
        _field("email", "STRING"),
        _field("password", "STRING"),
        _field("roles", "STRING", "REPEATED"),  # Role 值数组
        _field("created_at", "TIMESTAMP"),
    ]


def role_table_schema() -> List[dict]:
    return [
        _field("userId", "STRING"),
        _field("privilege", "STRING"),  # EDITOR / VIEWER
        _field("created_at", "TIMESTAMP"),
    ]


def expected_table_names() -> List[str]:
    return [role_table_name(r) for r in Role]


def all_role_table_schemas() -> Dict[str, List[dict]]:
    return {name: role_table_schema() for name in expected_table_names()}
