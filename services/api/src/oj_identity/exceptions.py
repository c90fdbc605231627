"""应用异常处理注册。"""

import logging

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException

from oj_identity.errors import IdentityServiceError, IrrecoverableStorageError
from oj_identity.utils.response import DEFAULT_ERROR_MESSAGE, error_payload

logger = logging.getLogger("oj_identity.errors")

_HTTP_ERROR_CODES = {
    status.HTTP_400_BAD_REQUEST: "BAD_REQUEST",
    status.HTTP_401_UNAUTHORIZED: "UNAUTHORIZED",
    status.HTTP_403_FORBIDDEN: "FORBIDDEN",
    status.HTTP_404_NOT_FOUND: "NOT_FOUND",
    status.HTTP_405_METHOD_NOT_ALLOWED: "METHOD_NOT_ALLOWED",
    status.HTTP_409_CONFLICT: "CONFLICT",
}


async def identity_error_handler(request: Request, exc: IdentityServiceError):
    """把服务层错误映射为稳定的错误码与状态码。"""
    details = dict(exc.details)
    details["retryable"] = exc.retryable
    if exc.status_code >= 500:
        # 存储错误细节可能包含内部标识，日志保留完整信息，对外只给出错误码。
        log = logger.critical if isinstance(exc, IrrecoverableStorageError) else logger.error
        log("request failed code=%s path=%s details=%s", exc.code, request.url.path, exc.details)
        details = {"retryable": exc.retryable}
    return JSONResponse(
        status_code=exc.status_code,
        content=error_payload(request, code=exc.code, message=exc.message, details=details),
    )


async def http_exception_handler(request: Request, exc: HTTPException):
    """将框架协议异常（如 404 路由不存在）包装为标准错误结构。"""
    code = _HTTP_ERROR_CODES.get(exc.status_code, "HTTP_ERROR")
    message = exc.detail if isinstance(exc.detail, str) else code.lower()
    return JSONResponse(
        status_code=exc.status_code,
        content=error_payload(request, code=code, message=message),
        headers=getattr(exc, "headers", None),
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """统一处理请求参数校验错误。"""
    normalized_errors = [
        {
            "field": ".".join(str(item) for item in err.get("loc", []) if item != "body"),
            "message": err.get("msg"),
            "type": err.get("type"),
        }
        for err in exc.errors()
    ]
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=error_payload(
            request,
            code="INVALID_PARAMETER",
            message="request validation failed",
            details={"errors": normalized_errors},
        ),
    )


async def unexpected_exception_handler(request: Request, exc: Exception):
    """处理未捕获异常，避免内部细节泄露。"""
    logger.exception("unexpected error path=%s", request.url.path)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=error_payload(request, code="INTERNAL_ERROR", message=DEFAULT_ERROR_MESSAGE),
    )


def register_exception_handlers(app: FastAPI) -> None:
    """集中注册异常处理器。"""
    app.exception_handler(IdentityServiceError)(identity_error_handler)
    app.exception_handler(HTTPException)(http_exception_handler)
    app.exception_handler(RequestValidationError)(validation_exception_handler)
    app.exception_handler(Exception)(unexpected_exception_handler)
