"""
模块职能：
- 认证服务：注册、登录、管理员建 / 改 / 删用户、签发令牌。
- 把"查不到"翻译成领域错误（登录查不到 → 401，改 / 删查不到 → 400）。

日志（不记录明文口令与令牌）：
- auth_register_attempt / auth_register_conflict / auth_register_success
- auth_login_attempt / auth_login_failed / auth_login_success
- admin_user_create / admin_user_update / admin_user_delete
"""
from typing import Dict, Iterable, List, Optional

from rolegate.core.errors import BadRequestError, ConflictError, MissingPrivilegeError, UnauthorizedError
from rolegate.core.models import CreateUserInput, UpdateUserInput, User
from rolegate.core.roles import Privilege, Role
from rolegate.core.security import create_access_token, verify_password
from rolegate.infra.db import Warehouse
from rolegate.infra.logger import emit
from rolegate.services import users


def require_privilege_coverage(roles: Iterable[Role], privileges: Optional[Dict[Role, Privilege]]):
    """每个分配的角色都必须显式给出权限，没有默认值。"""
    privileges = privileges or {}
    for role in roles:
        if not privileges.get(role):
            raise MissingPrivilegeError(role)


class AuthService:
    def __init__(self, wh: Warehouse):
        self.wh = wh

    def _ensure_email_free(self, email: str):
        if users.get_user_by_email(self.wh, email):
            raise ConflictError("User with this email already exists")

    def register(self, name: str, email: str, password: str) -> User:
        emit("auth_register_attempt", email=email)
        try:
            self._ensure_email_free(email)
        except ConflictError:
            emit("auth_register_conflict", email=email)
            raise
        # 自助注册固定为 LEARNER / VIEWER
        user = users.create_user(
            self.wh, name, email, password,
            roles=[Role.LEARNER],
            privileges={Role.LEARNER: Privilege.VIEWER},
        )
        emit("auth_register_success", user_id=user.user_id)
        return user

    def login(self, email: str, password: str) -> User:
        emit("auth_login_attempt", email=email)
        user = users.get_user_by_email(self.wh, email)
        if not user or not verify_password(password, user.password):
            # 不区分"用户不存在"和"口令错误"
            emit("auth_login_failed", email=email, reason="not_found_or_bad_password")
            raise UnauthorizedError("Invalid credentials")
        emit("auth_login_success", user_id=user.user_id, roles=[r.value for r in user.roles])
        return user

    def create_user_by_admin(self, dto: CreateUserInput) -> User:
        self._ensure_email_free(dto.email)
        require_privilege_coverage(dto.roles, dto.privileges)
        user = users.create_user(self.wh, dto.name, dto.email, dto.password, dto.roles, dto.privileges)
        emit("admin_user_create", user_id=user.user_id)
        return user

    def update_user_by_admin(self, user_id: str, dto: UpdateUserInput) -> User:
        existing = users.get_user_by_id(self.wh, user_id)
        if not existing:
            raise BadRequestError("User not found")

        if dto.email and dto.email != existing.email:
            if users.get_user_by_email_excluding_user_id(self.wh, dto.email, user_id):
                raise ConflictError("Email already in use by another user")

        if dto.roles is not None and dto.privileges is not None:
            require_privilege_coverage(dto.roles, dto.privileges)
            users.update_user_roles_and_privileges(self.wh, user_id, dto.roles, dto.privileges)

        # 空字符串一律视为"不修改"，尤其不能用空口令覆盖原口令
        basic = {k: v for k, v in (("name", dto.name), ("email", dto.email), ("password", dto.password)) if v}
        if basic:
            users.update_user(self.wh, user_id, basic)

        emit("admin_user_update", user_id=user_id, fields=sorted(basic),
             roles_changed=dto.roles is not None and dto.privileges is not None)
        return users.get_user_by_id(self.wh, user_id)

    def delete_user_by_admin(self, user_id: str):
        if not users.get_user_by_id(self.wh, user_id):
            raise BadRequestError("User not found")
        users.delete_user(self.wh, user_id)
        emit("admin_user_delete", user_id=user_id)

    def get_all_users(self) -> List[User]:
        return users.get_all_users(self.wh)

    def get_users_by_department(self, role: Role) -> List[User]:
        return users.get_users_by_role(self.wh, role)

    def generate_token(self, user: User) -> str:
        # roles 只是快照，权限判断会回查数据库
        return create_access_token({
            "sub": user.user_id,
            "email": user.email,
            "roles": [r.value for r in user.roles],
        })
