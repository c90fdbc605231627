"""身份资料请求与响应结构。"""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from oj_identity.models.enums import Privilege
from oj_identity.schemas.common import BaseSchema


class IdentityPayload(BaseModel):
    """创建或更新身份的部分更新请求体。

    字段是否“出现”以 ``model_fields_set`` 为准：未出现的字段保持原值，
    显式传入的字段（包括显式传入 null）才会被写入。不带 id 表示注册新身份。
    """

    model_config = ConfigDict(extra="forbid")

    id: int | None = Field(default=None, ge=1, description="目标身份 ID，缺省表示新建。")
    email: str | None = Field(default=None, min_length=3, max_length=256, description="邮箱。")
    username: str | None = Field(default=None, min_length=1, max_length=64, description="用户名。")
    password: str | None = Field(default=None, description="新密码，缺省表示不修改。")
    nickname: str | None = Field(default=None, max_length=128, description="昵称。")
    sex: str | None = Field(default=None, max_length=16, description="性别。")
    motto: str | None = Field(default=None, max_length=256, description="个性签名。")
    description: str | None = Field(default=None, description="个人简介。")
    privilege: Privilege | None = Field(default=None, description="目标权限等级。")

    def changes(self) -> dict[str, object]:
        """返回显式传入的字段（不含 id）。"""
        data = self.model_dump(exclude_unset=True)
        data.pop("id", None)
        return data

    @property
    def is_new(self) -> bool:
        return self.id is None


class IdentitySummary(BaseSchema):
    """列表与搜索结果中的公开字段。"""

    id: int = Field(description="用户 ID。")
    email: str = Field(description="邮箱。")
    username: str = Field(description="用户名。")
    nickname: str | None = Field(default=None, description="昵称。")
    sex: str | None = Field(default=None, description="性别。")
    privilege: int = Field(description="权限等级。")


class IdentityData(IdentitySummary):
    """单个身份详情。"""

    motto: str | None = Field(default=None, description="个性签名。")
    description: str | None = Field(default=None, description="个人简介。")
    created_at: datetime = Field(description="创建时间。")
