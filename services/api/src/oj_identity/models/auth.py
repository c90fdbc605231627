"""认证相关模型。"""

from datetime import datetime

from sqlalchemy import DateTime, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from oj_identity.models.base import Base, IntegerPrimaryKeyMixin
from oj_identity.models.enums import HashAlgorithm


class Credential(Base, IntegerPrimaryKeyMixin):
    """用户本地凭据，与 Identity 一一对应。"""

    __tablename__ = "user_credentials"
    __table_args__ = (UniqueConstraint("user_id", name="uk_user_credential_user"),)

    # 用户 ID（逻辑关联 users.id，不声明数据库外键，删除由仓储层级联）。
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    # 自描述口令哈希，内含算法、迭代次数与盐，不存明文。
    password_hash: Mapped[str] = mapped_column(String(256), nullable=False)
    hash_algorithm: Mapped[str] = mapped_column(String(32), nullable=False, default=HashAlgorithm.PBKDF2_SHA256)
    # 最近一次修改口令时间。
    password_updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    def __repr__(self) -> str:
        # 不输出哈希内容，避免进入日志。
        return f"Credential(id={self.id!r}, user_id={self.user_id!r}, hash_algorithm={self.hash_algorithm!r})"
