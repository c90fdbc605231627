"""应用中间件注册。"""

import logging
from time import perf_counter
import uuid

from fastapi import FastAPI, Request

logger = logging.getLogger("oj_identity.access")

_MAX_INBOUND_REQUEST_ID = 64


def _resolve_request_id(request: Request) -> str:
    """沿用网关透传的请求 ID，缺失或异常时重新生成。"""
    inbound = (request.headers.get("x-request-id") or "").strip()
    if inbound and len(inbound) <= _MAX_INBOUND_REQUEST_ID and inbound.isprintable():
        return inbound
    return str(uuid.uuid4())


async def request_context_middleware(request: Request, call_next):
    """注入请求追踪 ID 与耗时，并记录访问日志（不含请求体与认证头）。"""
    request.state.request_id = _resolve_request_id(request)
    request.state.request_started_at = perf_counter()
    response = await call_next(request)
    elapsed_ms = round((perf_counter() - request.state.request_started_at) * 1000, 2)
    response.headers["X-Request-Id"] = request.state.request_id
    response.headers["X-Process-Time-Ms"] = str(elapsed_ms)
    logger.info(
        "request_id=%s method=%s path=%s status=%s elapsed_ms=%s",
        request.state.request_id,
        request.method,
        request.url.path,
        response.status_code,
        elapsed_ms,
    )
    return response


def register_middlewares(app: FastAPI) -> None:
    """集中注册中间件。"""
    app.middleware("http")(request_context_middleware)
