"""
API 请求日志中间件

记录每个 HTTP 请求的方法、路径、状态码与耗时；请求 ID 通过 X-Request-ID 响应头返回。
只读 API 没有请求体，这里不记录 body。
"""

import time
import uuid
from typing import Optional

import structlog
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

# 获取结构化日志器
logger = structlog.get_logger("api")


class APILoggingMiddleware(BaseHTTPMiddleware):
    def __init__(self, app: ASGIApp, sensitive_headers: Optional[list] = None):
        super().__init__(app)
        self.sensitive_headers = sensitive_headers or [
            "authorization",
            "cookie",
            "x-api-key",
        ]

    async def dispatch(self, request: Request, call_next):
        request_id = str(uuid.uuid4())
        start_time = time.time()

        logger.info(
            "api.request.start",
            request_id=request_id,
            method=request.method,
            path=request.url.path,
            query_params=dict(request.query_params),
            headers=self._filter_sensitive_headers(dict(request.headers)),
            client_ip=self._get_client_ip(request),
        )

        try:
            response = await call_next(request)
        except Exception as exc:
            logger.error(
                "api.request.error",
                request_id=request_id,
                method=request.method,
                path=request.url.path,
                duration_ms=round((time.time() - start_time) * 1000, 2),
                error_type=type(exc).__name__,
                error_message=str(exc),
                exc_info=True,
            )
            raise

        logger.info(
            "api.request.success",
            request_id=request_id,
            method=request.method,
            path=request.url.path,
            status_code=response.status_code,
            duration_ms=round((time.time() - start_time) * 1000, 2),
        )
        response.headers["X-Request-ID"] = request_id
        return response

    def _filter_sensitive_headers(self, headers: dict) -> dict:
        return {
            k: "<redacted>" if k.lower() in self.sensitive_headers else v
            for k, v in headers.items()
        }

    def _get_client_ip(self, request: Request) -> str:
        forwarded_for = request.headers.get("x-forwarded-for")
        if forwarded_for:
            return forwarded_for.split(",")[0].strip()
        client = getattr(request, "client", None)
        if client:
            return client.host
        return "unknown"
