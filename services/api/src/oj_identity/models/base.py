"""对象映射基础模型与通用混入。"""

from datetime import datetime, timezone

from sqlalchemy import DateTime, Integer, MetaData, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    """全局对象映射声明基类。"""

    metadata = MetaData(
        naming_convention={
            "pk": "pk_%(table_name)s",
            "ix": "ix_%(table_name)s_%(column_0_name)s",
            "uq": "uk_%(table_name)s_%(column_0_name)s",
            "ck": "ck_%(table_name)s_%(constraint_name)s",
        }
    )


class IntegerPrimaryKeyMixin:
    """提供自增整数主键字段。"""

    # 主键创建后不可变，令牌 sub 声明即引用该值。
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True, comment="主键 ID。")


class CreatedAtMixin:
    """提供仅在创建时写入一次的时间字段。"""

    # 在应用侧生成，保存后无需回查即可读取。
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utc_now,
        server_default=func.now(),
        nullable=False,
        comment="创建时间。",
    )
