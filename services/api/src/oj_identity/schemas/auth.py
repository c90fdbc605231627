"""登录与续期请求结构。"""

from datetime import datetime

from pydantic import BaseModel, Field

from oj_identity.core.security import IssuedToken
from oj_identity.schemas.common import BaseSchema


class LoginRequest(BaseModel):
    """登录请求。"""

    username: str = Field(
        min_length=1,
        max_length=256,
        description="登录账号，按配置为用户名或邮箱。",
        examples=["zk"],
    )
    password: str = Field(min_length=1, max_length=1024, description="登录密码。", examples=["CorrectPassword"])


class TokenData(BaseSchema):
    """令牌签发结果。"""

    token: str = Field(description="访问令牌。")
    token_type: str = Field(default="bearer", description="令牌类型。")
    expires_at: datetime = Field(description="令牌过期时间（UTC）。")
    expires_in: int = Field(description="有效期秒数。")

    @classmethod
    def from_issued(cls, issued: IssuedToken) -> "TokenData":
        return cls(
            token=issued.value,
            expires_at=issued.claims.expires_at,
            expires_in=issued.expires_in,
        )
