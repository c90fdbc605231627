from typing import Any


class StoreError(Exception):
    """存储端口调用失败（连接、事务或超时）。"""

    def __init__(self, message: str, detail: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.detail = detail or {}


class StoreTimeoutError(StoreError):
    """存储调用超出调用方给定的时限。"""


class DuplicateKeyError(StoreError):
    """唯一约束冲突。"""

    def __init__(self, message: str, field: str | None = None) -> None:
        super().__init__(message, {"field": field} if field else None)
        self.field = field


__all__ = ["StoreError", "StoreTimeoutError", "DuplicateKeyError"]
