from sqlalchemy import select

from rolegate.core.roles import Role, role_table_name
from rolegate.schema.generator import role_table_schema


def assigned_roles(wh, user_id):
    """直接查库：哪些角色表里有该用户的行。"""
    found = set()
    for role in Role:
        t = wh.table(role_table_name(role), role_table_schema())
        if wh.execute(select(t.c.userId).where(t.c.userId == user_id)):
            found.add(role)
    return found
