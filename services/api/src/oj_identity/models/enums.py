"""领域枚举定义。"""

from enum import IntEnum


class Privilege(IntEnum):
    """用户权限等级。

    取值即排序依据：数值越大权限越高，低于 ENABLED 的等级不可登录。
    """

    PENDING = -1  # 注册待确认，尚不可登录。
    DISABLED = 0  # 已禁用，不可登录也不可续期令牌。
    ENABLED = 1  # 普通用户。
    SETTER = 2  # 出题人，可维护题目。
    ADMIN = 3  # 管理员，可调整低于自身等级的用户权限。
    ROOT = 4  # 超级管理员，可执行任意权限变更。

    @classmethod
    def parse(cls, value: object) -> "Privilege":
        """将外部输入转换为权限枚举，拒绝未定义的整数。"""
        if isinstance(value, bool) or not isinstance(value, int):
            raise ValueError(f"privilege must be an integer, got {type(value).__name__}")
        return cls(value)


class HashAlgorithm:
    """口令哈希算法标识。"""

    PBKDF2_SHA256 = "pbkdf2_sha256"
