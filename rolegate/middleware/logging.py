"""
模块职责：请求级日志中间件。
- 为每个请求生成 request_id，并在响应头 x-request-id 带回；
- 记录 request_start / request_end（耗时、状态码、已解析出的 user_id）；
- 未处理异常输出 request_error 后继续上抛。
"""
import time
import uuid

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

from rolegate.infra.logger import emit, emit_error


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        rid = str(uuid.uuid4())
        start = time.perf_counter()
        path = str(request.url.path)
        emit("request_start", request_id=rid, method=request.method, path=path)
        try:
            response = await call_next(request)
        except Exception as e:
            emit_error(
                "request_error",
                request_id=rid, method=request.method, path=path, error=repr(e),
                duration_ms=round((time.perf_counter() - start) * 1000, 2),
            )
            raise
        emit(
            "request_end",
            request_id=rid,
            method=request.method,
            path=path,
            status_code=response.status_code,
            user_id=getattr(request.state, "user_id", None),
            duration_ms=round((time.perf_counter() - start) * 1000, 2),
        )
        response.headers["x-request-id"] = rid
        return response
