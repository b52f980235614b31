"""
认证相关路由（最终挂载为 /api/v1/auth/...）：
- POST /register：自助注册（固定 LEARNER / VIEWER），返回用户 + 令牌
- POST /login：邮箱 + 口令登录，返回用户 + 令牌
- GET  /me：当前用户
- GET  /roles、/privileges：登记表里的全部角色 / 权限
响应里的用户数据一律去掉口令。
"""
from fastapi import APIRouter, Depends
from pydantic import BaseModel

from rolegate.api.deps.auth import get_auth_service, get_current_user
from rolegate.core.models import User
from rolegate.core.roles import all_privileges, all_roles
from rolegate.services.auth import AuthService

router = APIRouter(tags=["auth"])


class RegisterInput(BaseModel):
    name: str
    email: str
    password: str


class LoginInput(BaseModel):
    email: str
    password: str


@router.post("/register")
def register(body: RegisterInput, svc: AuthService = Depends(get_auth_service)):
    user = svc.register(body.name, body.email, body.password)
    return {
        "success": True,
        "message": "User registered successfully",
        "data": user.public(),
        "token": svc.generate_token(user),
    }


@router.post("/login")
def login(body: LoginInput, svc: AuthService = Depends(get_auth_service)):
    user = svc.login(body.email, body.password)
    return {
        "success": True,
        "message": "Login successful",
        "data": user.public(),
        "token": svc.generate_token(user),
    }


@router.get("/me")
def me(user: User = Depends(get_current_user)):
    return {"success": True, "data": user.public()}


@router.get("/roles")
def roles():
    return {"success": True, "data": [r.value for r in all_roles()]}


@router.get("/privileges")
def privileges():
    return {"success": True, "data": [p.value for p in all_privileges()]}
