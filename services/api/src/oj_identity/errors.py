"""身份服务错误分类。

服务层（AuthService / IdentityRepository）对外只抛出本模块中的错误，
组件内部错误（口令、令牌、存储端口）在服务层被翻译为这里的分类。
每类错误携带稳定的 code 与对应的 HTTP 状态码，供接口层统一输出。
"""

from typing import Any


class IdentityServiceError(Exception):
    """服务层错误基类。"""

    status_code: int = 400
    code: str = "BAD_REQUEST"
    retryable: bool = False

    def __init__(self, message: str, *, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}


class InvalidParameterError(IdentityServiceError):
    """调用方传入的参数不合法。"""

    status_code = 400
    code = "INVALID_PARAMETER"


class PolicyViolationError(IdentityServiceError):
    """违反口令或资料字段策略。"""

    status_code = 400
    code = "POLICY_VIOLATION"


class PermissionDeniedError(PolicyViolationError):
    """当前操作者无权修改目标身份的资料或权限。"""

    status_code = 403
    code = "PERMISSION_DENIED"


class InvalidCredentialsError(IdentityServiceError):
    """登录失败，不区分账号不存在与密码错误。"""

    status_code = 401
    code = "INVALID_CREDENTIALS"


class UnauthorizedError(IdentityServiceError):
    """令牌无效、过期，或身份已不存在/已禁用。"""

    status_code = 401
    code = "UNAUTHORIZED"


class NotFoundError(IdentityServiceError):
    """查询未命中，包括空分页。"""

    status_code = 404
    code = "NOT_FOUND"


class ConflictError(IdentityServiceError):
    """唯一性冲突（邮箱或用户名已被占用）。"""

    status_code = 409
    code = "CONFLICT"


class StorageError(IdentityServiceError):
    """后端存储暂时性失败。"""

    status_code = 500
    code = "STORAGE_ERROR"
    retryable = True


class IrrecoverableStorageError(StorageError):
    """补偿回滚本身失败，需要人工对账。"""

    code = "IRRECOVERABLE_STORAGE_ERROR"
    retryable = False


__all__ = [
    "IdentityServiceError",
    "InvalidParameterError",
    "PolicyViolationError",
    "PermissionDeniedError",
    "InvalidCredentialsError",
    "UnauthorizedError",
    "NotFoundError",
    "ConflictError",
    "StorageError",
    "IrrecoverableStorageError",
]
