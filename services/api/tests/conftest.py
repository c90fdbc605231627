from collections.abc import Generator
from typing import Any

import pytest
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool

import oj_identity.models  # noqa: F401
from oj_identity.core.config import Settings, get_settings
from oj_identity.dependencies import build_auth_service
from oj_identity.models.base import Base
from oj_identity.models.enums import Privilege
from oj_identity.models.identity import Identity
from oj_identity.schemas.identity import IdentityPayload
from oj_identity.services import AuthService

TEST_SECRET = "unit-test-secret-with-at-least-32-bytes"


class RecordingAlertSink:
    """收集告警，便于断言补偿失败时是否通知运维。"""

    def __init__(self) -> None:
        self.alerts: list[tuple[str, dict[str, Any]]] = []

    def alert(self, message: str, *, context: dict[str, Any]) -> None:
        self.alerts.append((message, context))


class FakeClock:
    """可手动推进的单调时钟。"""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def settings(monkeypatch) -> Generator[Settings, None, None]:
    monkeypatch.setenv("OJ_AUTH_JWT_SECRET", TEST_SECRET)
    monkeypatch.setenv("OJ_PASSWORD_HASH_ITERATIONS", "1000")
    monkeypatch.setenv("OJ_DATABASE_URL", "sqlite://")
    monkeypatch.setenv("OJ_LOG_LEVEL", "WARNING")
    monkeypatch.delenv("OJ_AUTH_JWT_PREVIOUS_SECRETS", raising=False)
    monkeypatch.delenv("OJ_SIGNUP_REQUIRES_CONFIRMATION", raising=False)
    get_settings.cache_clear()
    yield get_settings()
    get_settings.cache_clear()


@pytest.fixture
def engine():
    test_engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=test_engine)
    yield test_engine
    Base.metadata.drop_all(bind=test_engine)
    test_engine.dispose()


@pytest.fixture
def alert_sink() -> RecordingAlertSink:
    return RecordingAlertSink()


@pytest.fixture
def service(settings, engine, alert_sink) -> AuthService:
    return build_auth_service(settings, engine, alert_sink=alert_sink)


def register(service: AuthService, username: str, password: str = "CorrectPassword", **extra: Any) -> Identity:
    """通过公开入口注册一个普通用户。"""
    payload = IdentityPayload(username=username, email=f"{username}@example.com", password=password, **extra)
    return service.create_or_update_identity(payload)


def grant(service: AuthService, identity: Identity, privilege: Privilege) -> Identity:
    """绕过权限规则直接改写权限，用于准备管理员账号。"""
    identity.privilege = int(privilege)
    return service.repository.upsert_with_credential(identity, None, is_new=False)
