"""
领域错误分类（由服务层 / 授权层抛出，传输层统一转成 HTTP 响应）：
- ConflictError      409：邮箱重复（创建或修改邮箱）
- BadRequestError    400：角色缺少权限、空更新、目标用户不存在
- UnauthorizedError  401：令牌缺失/无效/过期、口令不匹配
- ForbiddenError     403：角色不匹配（RBAC）、权限不足（PBAC）

"查不到"不是错误，数据访问层直接返回 None；存储层异常（SQLAlchemyError）原样上抛。
"""
from typing import List


class RoleGateError(Exception):
    status_code = 500

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class ConflictError(RoleGateError):
    status_code = 409


class BadRequestError(RoleGateError):
    status_code = 400


class UnauthorizedError(RoleGateError):
    status_code = 401


class ForbiddenError(RoleGateError):
    status_code = 403


class NothingToUpdateError(BadRequestError):
    def __init__(self, user_id: str):
        self.user_id = user_id
        super().__init__("No fields to update")


class MissingPrivilegeError(BadRequestError):
    def __init__(self, role):
        self.role = role
        super().__init__(f"Privilege not provided for role: {getattr(role, 'value', role)}")


class MissingTablesError(RuntimeError):
    """启动闸门：AUTO_MIGRATE 关闭且有表缺失时抛出，message 中列出缺失表名。"""

    def __init__(self, missing: List[str]):
        self.missing = list(missing)
        super().__init__(
            f"Database tables missing: {', '.join(self.missing)}. "
            "Run `python -m scripts.migrate_tables migrate` or set AUTO_MIGRATE=true to auto-create."
        )
