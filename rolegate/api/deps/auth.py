from typing import Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from rolegate.core.authz import AuthorizationEngine, OperationPolicy, resolve_identity
from rolegate.core.models import User
from rolegate.infra.db import Warehouse, get_warehouse
from rolegate.services.auth import AuthService

bearer_scheme = HTTPBearer(auto_error=False)


def get_auth_service(wh: Warehouse = Depends(get_warehouse)) -> AuthService:
    return AuthService(wh)


def get_optional_user(
    request: Request,
    creds: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    wh: Warehouse = Depends(get_warehouse),
) -> Optional[User]:
    """
    解析 Authorization: Bearer <token>。
    无令牌 → 匿名（None）；令牌无效 / 过期 / 用户已不存在 → 401。
    """
    user = resolve_identity(wh, creds.credentials if creds else None)
    request.state.user_id = user.user_id if user else None
    return user


def get_current_user(
    user: Optional[User] = Depends(get_optional_user),
    wh: Warehouse = Depends(get_warehouse),
) -> User:
    return AuthorizationEngine(wh).authenticate(user)


def require(*roles, privilege=None):
    """
    路由依赖工厂：require(Role.ADMIN, privilege=Privilege.EDITOR)
    依次执行 认证 → RBAC → PBAC，通过后返回当前用户。
    """
    policy = OperationPolicy(required_roles=tuple(roles), required_privilege=privilege)

    def _dep(
        user: Optional[User] = Depends(get_optional_user),
        wh: Warehouse = Depends(get_warehouse),
    ) -> User:
        return AuthorizationEngine(wh).authorize(user, policy)

    return _dep
