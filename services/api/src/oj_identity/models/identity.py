"""用户身份模型。"""

from sqlalchemy import Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from oj_identity.models.base import Base, CreatedAtMixin, IntegerPrimaryKeyMixin
from oj_identity.models.enums import Privilege

# 可变资料字段，由部分更新请求按需覆盖。
PROFILE_FIELDS = ("email", "username", "nickname", "sex", "motto", "description")


class Identity(Base, IntegerPrimaryKeyMixin, CreatedAtMixin):
    """用户资料实体，不含任何口令信息。"""

    __tablename__ = "users"

    # 通知与找回用邮箱，全局唯一。
    email: Mapped[str] = mapped_column(String(256), nullable=False, unique=True)
    # 登录用户名，全局唯一。
    username: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    nickname: Mapped[str | None] = mapped_column(String(128))
    sex: Mapped[str | None] = mapped_column(String(16))
    # 个性签名。
    motto: Mapped[str | None] = mapped_column(String(256))
    description: Mapped[str | None] = mapped_column(Text)
    # 以整数存储的权限等级，读取时统一经 Privilege 转换。
    privilege: Mapped[int] = mapped_column(Integer, nullable=False, default=int(Privilege.ENABLED))

    @property
    def privilege_level(self) -> Privilege:
        return Privilege.parse(self.privilege)

    def snapshot(self) -> dict[str, object]:
        """返回可用于补偿恢复的字段快照。"""
        data: dict[str, object] = {field: getattr(self, field) for field in PROFILE_FIELDS}
        data["privilege"] = self.privilege
        return data
