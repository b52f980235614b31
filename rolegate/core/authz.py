"""
授权引擎：每个受保护操作按固定顺序过三道闸，任一失败即短路：

1) 令牌校验（resolve_identity）：无令牌 → 匿名；有令牌则验签 + 查有效期，
   过期 / 无效都返回 401；成功后按 id 回查完整用户（不信任令牌里的快照）
2) 认证闸（authenticate）：上下文里必须有身份（只查"有没有"，不查内容）
3) RBAC（check_roles）：操作未声明角色则放行；否则身份角色与声明角色有交集才放行，
   无交集返回 False（不抛异常，由传输层转成 403）
4) PBAC（check_privilege）：操作未声明权限则放行；否则在候选角色里逐个回查实时权限，
   任一满足即放行（EDITOR 满足 VIEWER 要求）；都不满足抛 ForbiddenError。
   回查时的存储异常原样上抛，不当作拒绝。

每个操作的要求用 OperationPolicy 显式描述。

日志：authz_unauthenticated / authz_rbac_denied / authz_pbac_denied
"""
from typing import Optional, Tuple

from pydantic import BaseModel, ConfigDict

from rolegate.core.errors import ForbiddenError, UnauthorizedError
from rolegate.core.models import User
from rolegate.core.roles import Privilege, Role, privilege_satisfies
from rolegate.core.security import decode_access_token
from rolegate.infra.db import Warehouse
from rolegate.infra.logger import emit
from rolegate.services import users


class OperationPolicy(BaseModel):
    model_config = ConfigDict(frozen=True)

    required_roles: Tuple[Role, ...] = ()
    required_privilege: Optional[Privilege] = None


def resolve_identity(wh: Warehouse, token: Optional[str]) -> Optional[User]:
    if not token:
        return None
    payload = decode_access_token(token)
    user = users.get_user_by_id(wh, payload["sub"])
    if not user:
        emit("auth_token_user_missing", user_id=payload["sub"])
        raise UnauthorizedError("User not found")
    return user


class AuthorizationEngine:
    def __init__(self, wh: Warehouse):
        self.wh = wh

    def authenticate(self, identity) -> User:
        if not identity:
            emit("authz_unauthenticated")
            raise UnauthorizedError("Authentication required")
        return identity

    def check_roles(self, identity: User, policy: OperationPolicy) -> bool:
        if not policy.required_roles:
            return True
        held = set(getattr(identity, "roles", None) or [])
        if held.intersection(policy.required_roles):
            return True
        emit("authz_rbac_denied", user_id=getattr(identity, "user_id", None),
             required=[r.value for r in policy.required_roles])
        return False

    def check_privilege(self, identity: User, policy: OperationPolicy) -> bool:
        required = policy.required_privilege
        if required is None:
            return True

        held = list(getattr(identity, "roles", None) or [])
        candidates = policy.required_roles or tuple(held)
        for role in candidates:
            if role not in held:
                continue
            live = users.get_user_privilege_for_role(self.wh, identity.user_id, role)
            if privilege_satisfies(live, required):
                return True

        emit("authz_pbac_denied", user_id=getattr(identity, "user_id", None),
             required=Privilege(required).value, candidates=[Role(r).value for r in candidates])
        raise ForbiddenError(f"User does not have required privilege: {Privilege(required).value}")

    def authorize(self, identity, policy: OperationPolicy) -> User:
        user = self.authenticate(identity)
        if not self.check_roles(user, policy):
            raise ForbiddenError("Insufficient role")
        self.check_privilege(user, policy)
        return user
