"""ORM 模型导出集合。"""

from oj_identity.models.auth import Credential
from oj_identity.models.enums import HashAlgorithm, Privilege
from oj_identity.models.identity import Identity

__all__ = [
    "Credential",
    "HashAlgorithm",
    "Identity",
    "Privilege",
]
