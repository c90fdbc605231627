"""服务装配与请求级依赖。

职责:
1. 按配置装配 AuthService（存储端口、口令、令牌、权限规则）。
2. 从 Authorization 头解析当前身份，供资料更新等路由识别操作者。
"""

from datetime import timedelta
from functools import lru_cache

from fastapi import Depends, Header
from sqlalchemy import Engine

from oj_identity.core.config import Settings, get_settings
from oj_identity.core.security import TokenService, extract_bearer_token
from oj_identity.db.session import build_session_factory, get_engine
from oj_identity.models.identity import Identity
from oj_identity.services import (
    AlertSink,
    AuthService,
    CredentialStore,
    IdentityRepository,
    LoggingAlertSink,
    PrivilegePolicy,
)
from oj_identity.storage.sql import SqlAlchemyIdentityStore


def build_auth_service(
    settings: Settings,
    engine: Engine,
    *,
    alert_sink: AlertSink | None = None,
) -> AuthService:
    """根据配置与数据库引擎装配认证服务。"""
    store = SqlAlchemyIdentityStore(build_session_factory(engine))
    repository = IdentityRepository(
        store,
        default_page_size=settings.default_page_size,
        timeout_seconds=settings.storage_timeout_seconds,
        alert_sink=alert_sink or LoggingAlertSink(),
    )
    # 签名密钥在进程启动时读取一次，之后只读。
    token_service = TokenService(
        settings.auth_jwt_secret,
        ttl=timedelta(seconds=settings.token_ttl_seconds),
        issuer=settings.auth_jwt_issuer,
        algorithm=settings.auth_jwt_algorithm,
        previous_secrets=settings.previous_jwt_secrets,
    )
    return AuthService(
        repository=repository,
        credential_store=CredentialStore(settings.password_hash_iterations),
        token_service=token_service,
        policy=PrivilegePolicy(),
        settings=settings,
    )


@lru_cache
def get_auth_service() -> AuthService:
    """返回进程级认证服务单例。"""
    return build_auth_service(get_settings(), get_engine())


def get_optional_identity(
    authorization: str | None = Header(default=None, alias="Authorization"),
    service: AuthService = Depends(get_auth_service),
) -> Identity | None:
    """未携带认证头时返回空；携带了则必须有效。"""
    if not authorization:
        return None
    _, identity = service.authenticate(extract_bearer_token(authorization))
    return identity
