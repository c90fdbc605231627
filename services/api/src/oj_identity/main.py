"""FastAPI 应用入口点。"""

from fastapi import FastAPI
import uvicorn

from oj_identity.api.router import api_router
from oj_identity.core.config import get_settings
from oj_identity.core.logging import setup_logging
from oj_identity.exceptions import register_exception_handlers
from oj_identity.middlewares import register_middlewares


def create_app() -> FastAPI:
    """创建并配置 FastAPI 应用实例。"""
    settings = get_settings()
    setup_logging()
    app = FastAPI(
        title=settings.app_name,
        version="1.0.0",
        debug=settings.app_debug,
        description=(
            "在线评测平台身份服务。\n\n"
            "所有接口统一返回：`{request_id, data, meta}`，错误返回 `{request_id, error}`。\n"
            "通过 `Authorization: Bearer <token>` 携带访问令牌。"
        ),
        openapi_tags=[
            {"name": "health", "description": "服务存活与就绪探针。"},
            {"name": "auth", "description": "登录与令牌续期。"},
            {"name": "users", "description": "用户注册、资料维护与查询。"},
        ],
    )

    register_middlewares(app)
    register_exception_handlers(app)
    app.include_router(api_router, prefix=settings.api_prefix)
    return app


app = create_app()


def run() -> None:
    """命令行启动入口（oj-identity），按配置启动 uvicorn。"""
    settings = get_settings()
    uvicorn.run(
        "oj_identity.main:app",
        host=settings.app_host,
        port=settings.app_port,
        log_level=settings.log_level.lower(),
    )
