"""
应用入口：
- 加载 .env（先 .env.example 作默认，再用 .env 覆盖）
- lifespan 启动阶段：配置日志 → 启动闸门（校验 / 自动迁移，未通过则拒绝启动）
- 装载请求日志中间件、领域错误处理、路由
- 提供 /health
"""
from pathlib import Path

from dotenv import load_dotenv

# 1) 先加载 .env，再导入读取环境变量的模块
ROOT = Path(__file__).resolve().parents[1]
ENV = ROOT / ".env"
ENV_EXAMPLE = ROOT / ".env.example"
if ENV_EXAMPLE.exists():
    load_dotenv(ENV_EXAMPLE, override=False)
if ENV.exists():
    load_dotenv(ENV, override=True)

# 2) 正常导入
from contextlib import asynccontextmanager  # noqa: E402

from fastapi import FastAPI, Request  # noqa: E402
from fastapi.responses import JSONResponse  # noqa: E402

from rolegate.api import admin as admin_api  # noqa: E402
from rolegate.api import auth as auth_api  # noqa: E402
from rolegate.core.errors import RoleGateError  # noqa: E402
from rolegate.infra.db import get_warehouse  # noqa: E402
from rolegate.infra.logger import configure_logging, emit  # noqa: E402
from rolegate.middleware.logging import RequestLoggingMiddleware  # noqa: E402
from rolegate.migrations.startup import run_startup_gate  # noqa: E402


@asynccontextmanager
async def lifespan(app: FastAPI):
    cfg = configure_logging()
    emit("logger_config", **cfg)
    # 表不齐且未开 AUTO_MIGRATE 时这里抛 MissingTablesError，进程不就绪
    run_startup_gate(get_warehouse())
    emit("app_ready")
    yield
    emit("app_shutdown")


app = FastAPI(title="rolegate", lifespan=lifespan)
app.add_middleware(RequestLoggingMiddleware)


@app.exception_handler(RoleGateError)
async def rolegate_error_handler(request: Request, exc: RoleGateError):
    emit("request_rejected", level="WARNING", path=str(request.url.path),
         status_code=exc.status_code, reason=exc.message)
    return JSONResponse(status_code=exc.status_code, content={"success": False, "message": exc.message})


@app.get("/health")
def health():
    return {"ok": True}


app.include_router(auth_api.router, prefix="/api/v1/auth", tags=["auth"])
app.include_router(admin_api.router, prefix="/api/v1/admin", tags=["admin"])
