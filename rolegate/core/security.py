""""封装口令比对与 JWT（PyJWT，HS256）的签发 / 校验。

create_access_token() 把 sub/email/roles/exp 写入负载；有效期默认 7 天
（ACCESS_TOKEN_EXPIRE_MINUTES）。负载里的 roles 只是签发时的快照，
权限判断（PBAC）一律回查数据库，不信任令牌内容。

口令目前按明文存储、明文比对（沿用既有数据契约，已知缺口，未做哈希）。"""

import hmac
import os
from datetime import datetime, timedelta, timezone
from typing import Any, Dict

import jwt  # PyJWT

from rolegate.core.errors import UnauthorizedError
from rolegate.infra.logger import emit

ALGORITHM = "HS256"
DEFAULT_EXPIRE_MINUTES = 7 * 24 * 60


def get_secret_key() -> str:
    # 老环境兼容 JWT_SECRET
    return os.getenv("SECRET_KEY") or os.getenv("JWT_SECRET") or "dev-secret-change-me"


def get_access_token_expire_minutes() -> int:
    try:
        return int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", str(DEFAULT_EXPIRE_MINUTES)))
    except ValueError:
        return DEFAULT_EXPIRE_MINUTES


def verify_password(plain: str, stored: str) -> bool:
    return hmac.compare_digest(plain.encode("utf-8"), stored.encode("utf-8"))


def create_access_token(payload: Dict[str, Any]) -> str:
    expire = datetime.now(timezone.utc) + timedelta(minutes=get_access_token_expire_minutes())
    to_encode = dict(payload)
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, get_secret_key(), algorithm=ALGORITHM)


def decode_access_token(token: str) -> Dict[str, Any]:
    """校验签名与有效期；过期与无效分开报，便于排查。"""
    try:
        payload = jwt.decode(token, get_secret_key(), algorithms=[ALGORITHM])
    except jwt.ExpiredSignatureError:
        emit("auth_token_expired")
        raise UnauthorizedError("Token expired")
    except jwt.PyJWTError as e:
        emit("auth_token_invalid", error=str(e))
        raise UnauthorizedError("Invalid token")

    if not payload.get("sub"):
        emit("auth_token_missing_sub")
        raise UnauthorizedError("Invalid token")
    return payload
