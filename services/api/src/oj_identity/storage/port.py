"""存储端口定义。

仓储层只依赖该协议；每个写方法各自构成一个存储事务，
跨实体一致性由 IdentityRepository 的补偿流程保证。
每个方法接收 ``timeout``（秒，调用方剩余时限，为空表示不限制），
实现方应把它下发给驱动，超时抛出 StoreTimeoutError。
"""

from typing import Literal, Protocol

from oj_identity.models.auth import Credential
from oj_identity.models.identity import Identity

LookupField = Literal["username", "email"]
OrderField = Literal["id", "username", "created_at"]


class IdentityStore(Protocol):
    """身份与凭据的持久化协议，失败时抛出 StoreError 及其子类。"""

    def get_identity(self, identity_id: int, *, timeout: float | None = None) -> Identity | None: ...

    def find_identity_by(self, field: LookupField, value: str, *, timeout: float | None = None) -> Identity | None: ...

    def save_identity(self, identity: Identity, *, timeout: float | None = None) -> Identity:
        """插入或更新身份，返回已持久化对象；唯一冲突抛出 DuplicateKeyError。"""
        ...

    def remove_identity(self, identity_id: int, *, timeout: float | None = None) -> bool:
        """删除身份并级联删除其凭据，返回是否删除了身份记录。"""
        ...

    def get_credential(self, identity_id: int, *, timeout: float | None = None) -> Credential | None: ...

    def save_credential(self, credential: Credential, *, timeout: float | None = None) -> Credential: ...

    def page_identities(
        self,
        *,
        keyword: str | None,
        order_by: OrderField,
        descending: bool,
        offset: int,
        limit: int,
        timeout: float | None = None,
    ) -> list[Identity]: ...

    def ping(self, *, timeout: float | None = None) -> None:
        """执行一次最小往返，用于就绪探针。"""
        ...
