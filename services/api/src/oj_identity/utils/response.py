"""统一响应结构工具。"""

from datetime import datetime, timezone
from time import perf_counter
from typing import Any
import uuid

from fastapi import Request

DEFAULT_ERROR_MESSAGE = "internal server error"


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def _request_id(request: Request) -> str:
    # 中间件之外（例如中间件自身抛错）调用时兜底生成。
    request_id = getattr(request.state, "request_id", None)
    return request_id if isinstance(request_id, str) else str(uuid.uuid4())


def success(request: Request, data: Any, meta: dict[str, Any] | None = None) -> dict[str, Any]:
    """构造统一成功响应结构。"""
    elapsed_ms = None
    started_at = getattr(request.state, "request_started_at", None)
    if isinstance(started_at, float):
        elapsed_ms = int((perf_counter() - started_at) * 1000)
    final_meta: dict[str, Any] = {
        "path": request.url.path,
        "timestamp": _utc_now_iso(),
        "process_ms": elapsed_ms,
    }
    if meta:
        final_meta.update(meta)
    return {
        "request_id": _request_id(request),
        "data": data,
        "meta": final_meta,
    }


def error_payload(
    request: Request,
    code: str,
    message: str,
    details: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """构造统一错误响应结构。"""
    final_details: dict[str, Any] = {
        "method": request.method.upper(),
        "path": request.url.path,
        "timestamp": _utc_now_iso(),
    }
    if details:
        final_details.update(details)
    return {
        "request_id": _request_id(request),
        "error": {
            "code": code,
            "message": message,
            "details": final_details,
        },
    }
