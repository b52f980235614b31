""""定义领域数据结构（pydantic）：

User：身份记录（user_id/name/email/password/roles/created_at），只存在于 users 表

RoleAssignment：每个 (User, Role) 一行（user_id/privilege/created_at），只存在于该角色的表

ValidationResult / MigrationResult：校验与迁移的即时结果，不落库

CreateUserInput / UpdateUserInput：管理员创建、修改用户时的入参

对外返回用户数据时一律走 User.public()，去掉口令字段。"""
from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, Field, field_validator

from rolegate.core.roles import Privilege, Role, USERS_TABLE, unique_roles


class User(BaseModel):
    user_id: str
    name: str
    email: str
    password: str
    roles: List[Role] = Field(default_factory=list)
    created_at: datetime

    def public(self) -> dict:
        data = self.model_dump(mode="json", exclude={"password"})
        # 对外字段名与存储列一致
        data["userId"] = data.pop("user_id")
        return data


class RoleAssignment(BaseModel):
    user_id: str
    privilege: Privilege
    created_at: datetime


class ValidationResult(BaseModel):
    all_tables_exist: bool
    missing_tables: List[str] = Field(default_factory=list)
    existing_tables: List[str] = Field(default_factory=list)
    users_table_exists: bool

    def all_missing(self) -> List[str]:
        """角色表缺失 + users 表缺失，一并列出。"""
        missing = list(self.missing_tables)
        if not self.users_table_exists:
            missing.append(USERS_TABLE)
        return missing


class FailedTable(BaseModel):
    table: str
    error: str


class MigrationResult(BaseModel):
    created: List[str] = Field(default_factory=list)
    failed: List[FailedTable] = Field(default_factory=list)


class CreateUserInput(BaseModel):
    name: str
    email: str
    password: str
    roles: List[Role] = Field(default_factory=list)
    privileges: Dict[Role, Privilege] = Field(default_factory=dict)

    @field_validator("roles")
    @classmethod
    def dedupe_roles(cls, v):
        return unique_roles(v)


class UpdateUserInput(BaseModel):
    name: Optional[str] = None
    email: Optional[str] = None
    password: Optional[str] = None  # 为空表示保持原口令
    roles: Optional[List[Role]] = None
    privileges: Optional[Dict[Role, Privilege]] = None

    @field_validator("roles")
    @classmethod
    def dedupe_roles(cls, v):
        return None if v is None else unique_roles(v)
