"""服务层能力导出集合。"""

from oj_identity.services.alerts import AlertSink, LoggingAlertSink
from oj_identity.services.auth import AuthService
from oj_identity.services.credentials import (
    CorruptCredentialError,
    CredentialError,
    CredentialStore,
    InvalidInputError,
)
from oj_identity.services.identity_repository import Deadline, IdentityRepository
from oj_identity.services.privileges import PrivilegePolicy

__all__ = [
    "AlertSink",
    "LoggingAlertSink",
    "AuthService",
    "CorruptCredentialError",
    "CredentialError",
    "CredentialStore",
    "InvalidInputError",
    "Deadline",
    "IdentityRepository",
    "PrivilegePolicy",
]
