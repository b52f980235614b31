"""
管理员路由（/api/v1/admin/...）：
- 建 / 改 / 删用户：需要 ADMIN 角色 + EDITOR 权限
- 用户列表、按部门（角色）列用户：只需要 ADMIN 角色
- 禁止删除当前登录的自己（这是路由层的策略，不在服务层）
"""
from fastapi import APIRouter, Depends

from rolegate.api.deps.auth import get_auth_service, require
from rolegate.core.errors import BadRequestError
from rolegate.core.models import CreateUserInput, UpdateUserInput, User
from rolegate.core.roles import Privilege, Role, is_valid_role
from rolegate.services.auth import AuthService

router = APIRouter(tags=["admin"])

admin_editor = require(Role.ADMIN, privilege=Privilege.EDITOR)
admin_any = require(Role.ADMIN)


@router.post("/create-user")
def create_user(body: CreateUserInput, _: User = Depends(admin_editor),
                svc: AuthService = Depends(get_auth_service)):
    user = svc.create_user_by_admin(body)
    return {"success": True, "message": "User created successfully", "data": user.public()}


@router.get("/users")
def list_users(_: User = Depends(admin_any), svc: AuthService = Depends(get_auth_service)):
    data = [u.public() for u in svc.get_all_users()]
    return {"success": True, "data": data, "count": len(data)}


@router.get("/department/{role}")
def list_department(role: str, _: User = Depends(admin_any),
                    svc: AuthService = Depends(get_auth_service)):
    if not is_valid_role(role):
        return {"success": False, "message": "Invalid role specified"}
    data = [u.public() for u in svc.get_users_by_department(Role(role))]
    return {"success": True, "data": data, "count": len(data)}


@router.put("/users/{user_id}")
def update_user(user_id: str, body: UpdateUserInput, _: User = Depends(admin_editor),
                svc: AuthService = Depends(get_auth_service)):
    user = svc.update_user_by_admin(user_id, body)
    return {"success": True, "message": "User updated successfully", "data": user.public()}


@router.delete("/users/{user_id}")
def delete_user(user_id: str, actor: User = Depends(admin_editor),
                svc: AuthService = Depends(get_auth_service)):
    if actor.user_id == user_id:
        raise BadRequestError("Cannot delete your own account")
    svc.delete_user_by_admin(user_id)
    return {"success": True, "message": "User deleted successfully"}
