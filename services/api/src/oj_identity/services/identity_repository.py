"""身份仓储：身份与凭据的一致性边界。

身份与凭据分属两张表、两次独立事务写入，不依赖跨表事务。
写入顺序固定为“先身份后凭据”；凭据写入失败时对刚写入的身份执行补偿：
新建身份直接删除，更新身份恢复写入前的快照。补偿本身失败属于需要人工对账的
不可恢复状态，以 IrrecoverableStorageError 抛出并触发运维告警。
"""

from collections.abc import Callable
from functools import partial
import logging
import time
from typing import Any, TypeVar

from oj_identity.errors import (
    ConflictError,
    InvalidParameterError,
    IrrecoverableStorageError,
    NotFoundError,
    StorageError,
)
from oj_identity.models.auth import Credential
from oj_identity.models.identity import Identity
from oj_identity.schemas.identity import IdentitySummary
from oj_identity.services.alerts import AlertSink, LoggingAlertSink
from oj_identity.storage.errors import DuplicateKeyError, StoreError, StoreTimeoutError
from oj_identity.storage.port import IdentityStore

logger = logging.getLogger("oj_identity.repository")

T = TypeVar("T")

LOOKUP_KEYS = ("id", "username", "email")
ORDER_FIELDS = ("id", "username", "created_at")
ORDER_DIRECTIONS = ("ASC", "DESC")


class Deadline:
    """单次仓储调用的时限，基于单调时钟。"""

    def __init__(self, seconds: float | None, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._expires_at = None if seconds is None else clock() + seconds

    def remaining(self) -> float | None:
        if self._expires_at is None:
            return None
        return self._expires_at - self._clock()

    def check(self, operation: str) -> None:
        remaining = self.remaining()
        if remaining is not None and remaining <= 0:
            raise StoreTimeoutError(f"{operation}: deadline exceeded")


class IdentityRepository:
    """身份与凭据读写。"""

    def __init__(
        self,
        store: IdentityStore,
        *,
        default_page_size: int,
        timeout_seconds: float | None = None,
        alert_sink: AlertSink | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.store = store
        self.default_page_size = default_page_size
        self.timeout_seconds = timeout_seconds
        self.alert_sink = alert_sink or LoggingAlertSink()
        self._clock = clock

    def deadline(self, seconds: float | None = None) -> Deadline:
        return Deadline(self.timeout_seconds if seconds is None else seconds, clock=self._clock)

    def _read(self, deadline: Deadline, operation: str, fn: Callable[..., T], *args: Any, **context: Any) -> T:
        try:
            deadline.check(operation)
            result = fn(*args, timeout=deadline.remaining())
            # 读操作在时限后返回同样视为失败，不能当作“未找到”。
            deadline.check(operation)
            return result
        except StoreError as exc:
            logger.error("storage read failed operation=%s context=%s error=%s", operation, context, exc)
            raise StorageError("database operation failed", details={"operation": operation, **context}) from exc

    def upsert_with_credential(
        self,
        identity: Identity,
        credential: Credential | None,
        is_new: bool,
        *,
        deadline: Deadline | None = None,
    ) -> Identity:
        """写入身份及其凭据，对调用方呈现全有或全无。

        ``credential`` 为空仅允许用于更新且表示口令未变更，此时只写身份。
        """
        deadline = deadline or self.deadline()
        if is_new:
            if identity.id is not None:
                raise InvalidParameterError("new identity must not carry an id")
            if credential is None:
                raise InvalidParameterError("new identity requires a credential")
            before = None
        else:
            if identity.id is None:
                raise InvalidParameterError("identity id is required for update")
            current = self._read(deadline, "identity.get", self.store.get_identity, identity.id, identity_id=identity.id)
            if current is None:
                raise NotFoundError("identity does not exist", details={"identity_id": identity.id})
            before = current.snapshot()

        try:
            deadline.check("identity.save")
            saved = self.store.save_identity(identity, timeout=deadline.remaining())
        except DuplicateKeyError as exc:
            logger.info("identity write rejected identity_id=%s field=%s", identity.id, exc.field)
            raise ConflictError("username or email taken", details={"field": exc.field}) from exc
        except StoreError as exc:
            logger.error("identity write failed identity_id=%s operation=identity.save error=%s", identity.id, exc)
            raise StorageError(
                "database operation failed",
                details={"operation": "identity.save", "identity_id": identity.id},
            ) from exc

        if credential is None:
            return saved

        credential.user_id = saved.id
        try:
            # 即使身份写入后已超时，也必须走补偿流程，不能留下无凭据的身份。
            deadline.check("credential.save")
            self.store.save_credential(credential, timeout=deadline.remaining())
        except StoreError as exc:
            logger.error(
                "credential write failed identity_id=%s operation=credential.save timeout=%s error=%s",
                saved.id,
                isinstance(exc, StoreTimeoutError),
                exc,
            )
            self._compensate(saved, before, cause=exc)
        return saved

    def _compensate(self, saved: Identity, before: dict[str, object] | None, *, cause: StoreError) -> None:
        operation = "identity.remove" if before is None else "identity.restore"
        context = {"identity_id": saved.id, "compensation": operation}
        # 调用方时限可能已耗尽，补偿使用独立的完整时限。
        try:
            if before is None:
                self.store.remove_identity(saved.id, timeout=self.timeout_seconds)
            else:
                for field, value in before.items():
                    setattr(saved, field, value)
                self.store.save_identity(saved, timeout=self.timeout_seconds)
        except StoreError as exc:
            logger.critical(
                "compensation failed identity_id=%s operation=%s error=%s; manual reconciliation required",
                saved.id,
                operation,
                exc,
            )
            self.alert_sink.alert(
                "identity/credential dual write left inconsistent state",
                context={**context, "cause": str(cause), "compensation_error": str(exc)},
            )
            raise IrrecoverableStorageError(
                "database operation failed and reverting failed as well",
                details={**context, "compensated": False},
            ) from exc

        logger.warning("credential write failed, identity write reverted identity_id=%s operation=%s", saved.id, operation)
        raise StorageError(
            "database operation failed, identity write reverted",
            details={**context, "compensated": True},
        ) from cause

    def find_identity(self, key: int | str, by: str = "id", *, deadline: Deadline | None = None) -> Identity:
        """按 id / username / email 查找单个身份。"""
        if by not in LOOKUP_KEYS:
            raise InvalidParameterError(f"cannot look up identity by {by!r}")
        if key is None or key == "":
            raise InvalidParameterError("lookup key is required")

        deadline = deadline or self.deadline()
        if by == "id":
            try:
                identity_id = int(key)
            except (TypeError, ValueError) as exc:
                raise InvalidParameterError("identity id must be an integer") from exc
            identity = self._read(deadline, "identity.get", self.store.get_identity, identity_id, identity_id=identity_id)
        else:
            identity = self._read(deadline, "identity.find", self.store.find_identity_by, by, str(key), by=by)

        if identity is None:
            raise NotFoundError("identity not found", details={"by": by})
        return identity

    def find_credential(self, identity_id: int, *, deadline: Deadline | None = None) -> Credential:
        deadline = deadline or self.deadline()
        credential = self._read(
            deadline,
            "credential.get",
            self.store.get_credential,
            identity_id,
            identity_id=identity_id,
        )
        if credential is None:
            raise NotFoundError("credential not found", details={"identity_id": identity_id})
        return credential

    def delete_identity(self, identity_id: int, *, deadline: Deadline | None = None) -> None:
        """删除身份，凭据随之删除。"""
        deadline = deadline or self.deadline()
        try:
            deadline.check("identity.remove")
            removed = self.store.remove_identity(identity_id, timeout=deadline.remaining())
        except StoreError as exc:
            logger.error("identity delete failed identity_id=%s operation=identity.remove error=%s", identity_id, exc)
            raise StorageError(
                "database operation failed",
                details={"operation": "identity.remove", "identity_id": identity_id},
            ) from exc
        if not removed:
            raise NotFoundError("identity not found", details={"identity_id": identity_id})

    def list_identities(
        self,
        order_by: str = "id",
        order: str = "ASC",
        page: int = 1,
        page_size: int | None = None,
        *,
        deadline: Deadline | None = None,
    ) -> list[IdentitySummary]:
        """分页查询身份公开字段，空页视为未找到。"""
        return self._page(None, order_by, order, page, page_size, deadline)

    def search_identities(
        self,
        keyword: str,
        order_by: str = "id",
        order: str = "ASC",
        page: int = 1,
        page_size: int | None = None,
        *,
        deadline: Deadline | None = None,
    ) -> list[IdentitySummary]:
        """按用户名、邮箱、昵称做不区分大小写的子串匹配。"""
        if not keyword or not keyword.strip():
            raise InvalidParameterError("keyword is required")
        return self._page(keyword.strip(), order_by, order, page, page_size, deadline)

    def _page(
        self,
        keyword: str | None,
        order_by: str,
        order: str,
        page: int,
        page_size: int | None,
        deadline: Deadline | None = None,
    ) -> list[IdentitySummary]:
        size = self.default_page_size if page_size is None else page_size
        if page < 1 or size < 1:
            raise InvalidParameterError("page and page_size must be positive")
        if order_by not in ORDER_FIELDS:
            raise InvalidParameterError(f"cannot order by {order_by!r}")
        direction = order.upper() if isinstance(order, str) else order
        if direction not in ORDER_DIRECTIONS:
            raise InvalidParameterError(f"invalid order direction {order!r}")

        rows = self._read(
            deadline or self.deadline(),
            "identity.page",
            partial(
                self.store.page_identities,
                keyword=keyword,
                order_by=order_by,
                descending=direction == "DESC",
                offset=(page - 1) * size,
                limit=size,
            ),
            page=page,
            page_size=size,
        )
        if not rows:
            raise NotFoundError("no matching result", details={"page": page, "page_size": size})
        return [IdentitySummary.model_validate(row) for row in rows]


__all__ = ["Deadline", "IdentityRepository", "LOOKUP_KEYS", "ORDER_FIELDS"]
