# scripts/seed_admin.py
"""
种子脚本：创建初始管理员（ADMIN 角色 + EDITOR 权限），邮箱已存在则跳过。
姓名 / 邮箱 / 口令从 .env 读取或使用默认值。

可作为脚本执行，也可被测试直接导入调用（run()）。
"""
import os
import sys

os.environ.setdefault("LOG_TO_FILE", "false")
os.environ.setdefault("PYTHONUNBUFFERED", "1")

from rolegate.core.roles import Privilege, Role  # noqa: E402
from rolegate.infra.db import get_warehouse  # noqa: E402
from rolegate.infra.logger import emit, emit_error  # noqa: E402
from rolegate.services import users  # noqa: E402


def _get_env(k: str, default: str) -> str:
    v = os.getenv(k)
    return v if v is not None and v != "" else default


def run(wh=None):
    wh = wh or get_warehouse()
    name = _get_env("ADMIN_NAME", "Admin")
    email = _get_env("ADMIN_EMAIL", "admin@example.com")
    password = _get_env("ADMIN_PASSWORD", "admin123")

    existing = users.get_user_by_email(wh, email)
    if existing:
        emit("seed_admin_skip", email=email, user_id=existing.user_id)
        print(f"[seed_admin] exists: {email}", flush=True)
        return existing

    user = users.create_user(wh, name, email, password,
                             roles=[Role.ADMIN], privileges={Role.ADMIN: Privilege.EDITOR})
    emit("seed_admin_created", email=email, user_id=user.user_id)
    print(f"[seed_admin] created admin: {email}", flush=True)
    return user


if __name__ == "__main__":
    try:
        run()
        sys.exit(0)
    except Exception as e:
        emit_error("seed_admin_error", error=str(e))
        print(f"[seed_admin] ERROR: {e}", file=sys.stderr, flush=True)
        sys.exit(1)
