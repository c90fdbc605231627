"""基于 SQLAlchemy 的存储端口实现。"""

from collections.abc import Iterator
from contextlib import contextmanager
import math

from sqlalchemy import delete, func, or_, select, text
from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from oj_identity.models.auth import Credential
from oj_identity.models.identity import Identity
from oj_identity.storage.errors import DuplicateKeyError, StoreError, StoreTimeoutError
from oj_identity.storage.port import LookupField, OrderField

_UNIQUE_FIELDS = ("email", "username", "user_id")

# PostgreSQL query_canceled，由 statement_timeout 触发。
_QUERY_CANCELED = "57014"


def _escape_like(keyword: str) -> str:
    return keyword.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _conflicting_field(exc: IntegrityError) -> str | None:
    message = str(exc.orig).lower()
    for field in _UNIQUE_FIELDS:
        if field in message:
            return field
    return None


def _is_statement_timeout(exc: OperationalError) -> bool:
    return getattr(exc.orig, "sqlstate", None) == _QUERY_CANCELED


class SqlAlchemyIdentityStore:
    """每次调用使用独立短生命周期会话，写操作各自提交。

    会话工厂需设置 ``expire_on_commit=False``，返回对象在会话关闭后仍可读取。
    PostgreSQL 下 ``timeout`` 以事务级 statement_timeout 下发，其他方言只由仓储层
    在调用前后判定时限。
    """

    def __init__(self, session_factory: sessionmaker[Session]) -> None:
        self._session_factory = session_factory

    @contextmanager
    def _session(self, operation: str, timeout: float | None = None) -> Iterator[Session]:
        db = self._session_factory()
        try:
            self._apply_timeout(db, timeout)
            yield db
        except IntegrityError as exc:
            db.rollback()
            field = _conflicting_field(exc)
            raise DuplicateKeyError(f"{operation}: unique constraint violated", field=field) from exc
        except OperationalError as exc:
            db.rollback()
            if _is_statement_timeout(exc):
                raise StoreTimeoutError(f"{operation}: statement timeout") from exc
            raise StoreError(f"{operation}: database operation failed") from exc
        except SQLAlchemyError as exc:
            db.rollback()
            raise StoreError(f"{operation}: database operation failed") from exc
        finally:
            db.close()

    @staticmethod
    def _apply_timeout(db: Session, timeout: float | None) -> None:
        if timeout is None or db.get_bind().dialect.name != "postgresql":
            return
        milliseconds = max(1, math.ceil(timeout * 1000))
        # set_config(..., true) 只在当前事务内生效，连接归还连接池后自动恢复。
        db.execute(
            text("select set_config('statement_timeout', :value, true)"),
            {"value": str(milliseconds)},
        )

    def get_identity(self, identity_id: int, *, timeout: float | None = None) -> Identity | None:
        with self._session("identity.get", timeout) as db:
            return db.get(Identity, identity_id)

    def find_identity_by(self, field: LookupField, value: str, *, timeout: float | None = None) -> Identity | None:
        column = getattr(Identity, field)
        with self._session("identity.find", timeout) as db:
            return db.execute(select(Identity).where(column == value)).scalar_one_or_none()

    def save_identity(self, identity: Identity, *, timeout: float | None = None) -> Identity:
        with self._session("identity.save", timeout) as db:
            merged = db.merge(identity)
            db.flush()
            db.refresh(merged)
            db.commit()
            return merged

    def remove_identity(self, identity_id: int, *, timeout: float | None = None) -> bool:
        with self._session("identity.remove", timeout) as db:
            # 同一事务内先删凭据再删身份，保证不会残留孤立凭据。
            db.execute(delete(Credential).where(Credential.user_id == identity_id))
            result = db.execute(delete(Identity).where(Identity.id == identity_id))
            db.commit()
            return bool(result.rowcount)

    def get_credential(self, identity_id: int, *, timeout: float | None = None) -> Credential | None:
        with self._session("credential.get", timeout) as db:
            return db.execute(select(Credential).where(Credential.user_id == identity_id)).scalar_one_or_none()

    def save_credential(self, credential: Credential, *, timeout: float | None = None) -> Credential:
        with self._session("credential.save", timeout) as db:
            merged = db.merge(credential)
            db.flush()
            db.refresh(merged)
            db.commit()
            return merged

    def page_identities(
        self,
        *,
        keyword: str | None,
        order_by: OrderField,
        descending: bool,
        offset: int,
        limit: int,
        timeout: float | None = None,
    ) -> list[Identity]:
        stmt = select(Identity)
        if keyword:
            pattern = f"%{_escape_like(keyword.lower())}%"
            stmt = stmt.where(
                or_(
                    func.lower(Identity.username).like(pattern, escape="\\"),
                    func.lower(Identity.email).like(pattern, escape="\\"),
                    func.lower(Identity.nickname).like(pattern, escape="\\"),
                )
            )

        column = getattr(Identity, order_by)
        # 追加主键作为次级排序，保证分页切片稳定。
        if descending:
            stmt = stmt.order_by(column.desc(), Identity.id.desc())
        else:
            stmt = stmt.order_by(column.asc(), Identity.id.asc())
        stmt = stmt.offset(offset).limit(limit)

        with self._session("identity.page", timeout) as db:
            return list(db.execute(stmt).scalars().all())

    def ping(self, *, timeout: float | None = None) -> None:
        with self._session("store.ping", timeout) as db:
            # 仅执行最小查询，避免探针请求给数据库带来额外压力。
            db.execute(text("select 1"))
