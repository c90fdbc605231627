"""数据库引擎与会话工厂。"""

from functools import lru_cache

from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import Session, sessionmaker

from oj_identity.core.config import get_settings


@lru_cache
def get_engine() -> Engine:
    """全局数据库引擎，开启连接预检查以减少僵尸连接影响。"""
    settings = get_settings()
    return create_engine(settings.database_url, future=True, pool_pre_ping=True)


def build_session_factory(engine: Engine) -> sessionmaker[Session]:
    """存储端口使用的会话工厂，提交后保留已加载属性。"""
    return sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False, class_=Session)
