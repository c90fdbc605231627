import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from conftest import FakeClock, RecordingAlertSink, register
from oj_identity.db.session import build_session_factory
from oj_identity.errors import (
    ConflictError,
    InvalidParameterError,
    IrrecoverableStorageError,
    NotFoundError,
    StorageError,
)
from oj_identity.models.auth import Credential
from oj_identity.models.enums import Privilege
from oj_identity.models.identity import Identity
from oj_identity.schemas.identity import IdentityPayload
from oj_identity.services.credentials import CredentialStore
from oj_identity.services.identity_repository import IdentityRepository
from oj_identity.storage.errors import StoreError, StoreTimeoutError
from oj_identity.storage.sql import SqlAlchemyIdentityStore


class FlakyStore(SqlAlchemyIdentityStore):
    """可按需注入失败或延迟的存储实现。"""

    def __init__(self, session_factory, clock: FakeClock | None = None) -> None:
        super().__init__(session_factory)
        self.fail_credential_save = False
        self.fail_identity_remove = False
        self.fail_identity_save_after = None
        self.identity_saves = 0
        self.delay_identity_save = 0.0
        self.delay_identity_get = 0.0
        self.delay_identity_find = 0.0
        self.delay_credential_get = 0.0
        self.clock = clock
        self.timeouts: list[tuple[str, float | None]] = []

    def _elapse(self, seconds: float) -> None:
        if self.clock is not None:
            self.clock.advance(seconds)

    def save_identity(self, identity, *, timeout=None):
        self.timeouts.append(("identity.save", timeout))
        self.identity_saves += 1
        if self.fail_identity_save_after is not None and self.identity_saves > self.fail_identity_save_after:
            raise StoreError("identity.save: connection lost")
        saved = super().save_identity(identity, timeout=timeout)
        self._elapse(self.delay_identity_save)
        return saved

    def get_identity(self, identity_id, *, timeout=None):
        self.timeouts.append(("identity.get", timeout))
        identity = super().get_identity(identity_id, timeout=timeout)
        self._elapse(self.delay_identity_get)
        return identity

    def find_identity_by(self, field, value, *, timeout=None):
        self.timeouts.append(("identity.find", timeout))
        identity = super().find_identity_by(field, value, timeout=timeout)
        self._elapse(self.delay_identity_find)
        return identity

    def get_credential(self, identity_id, *, timeout=None):
        self.timeouts.append(("credential.get", timeout))
        credential = super().get_credential(identity_id, timeout=timeout)
        self._elapse(self.delay_credential_get)
        return credential

    def save_credential(self, credential, *, timeout=None):
        self.timeouts.append(("credential.save", timeout))
        if self.fail_credential_save:
            raise StoreError("credential.save: connection lost")
        return super().save_credential(credential, timeout=timeout)

    def remove_identity(self, identity_id, *, timeout=None):
        self.timeouts.append(("identity.remove", timeout))
        if self.fail_identity_remove:
            raise StoreError("identity.remove: connection lost")
        return super().remove_identity(identity_id, timeout=timeout)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store(engine, clock) -> FlakyStore:
    return FlakyStore(build_session_factory(engine), clock=clock)


@pytest.fixture
def repository(store, alert_sink, clock) -> IdentityRepository:
    return IdentityRepository(store, default_page_size=20, timeout_seconds=5, alert_sink=alert_sink, clock=clock)


@pytest.fixture
def hasher() -> CredentialStore:
    return CredentialStore(iterations=1000)


def _new_pair(hasher: CredentialStore, username: str) -> tuple[Identity, Credential]:
    identity = Identity(username=username, email=f"{username}@example.com", privilege=int(Privilege.ENABLED))
    credential = Credential()
    hasher.update_password(credential, "CorrectPassword", min_length=8, max_length=128)
    return identity, credential


def _count(engine, model) -> int:
    with Session(engine) as db:
        return db.execute(select(func.count()).select_from(model)).scalar_one()


def test_upsert_new_identity_writes_both_records(repository, hasher):
    identity, credential = _new_pair(hasher, "zk")

    saved = repository.upsert_with_credential(identity, credential, is_new=True)

    assert saved.id is not None
    assert saved.created_at is not None
    stored = repository.find_credential(saved.id)
    assert hasher.verify_password("CorrectPassword", stored.password_hash)


def test_credential_failure_reverts_new_identity(repository, store, engine, hasher, alert_sink):
    store.fail_credential_save = True
    identity, credential = _new_pair(hasher, "alice")

    with pytest.raises(StorageError) as exc_info:
        repository.upsert_with_credential(identity, credential, is_new=True)

    assert not isinstance(exc_info.value, IrrecoverableStorageError)
    assert exc_info.value.retryable
    assert exc_info.value.details["compensated"] is True
    with pytest.raises(NotFoundError):
        repository.find_identity("alice", by="username")
    assert _count(engine, Identity) == 0
    assert _count(engine, Credential) == 0
    assert alert_sink.alerts == []


def test_compensation_failure_is_irrecoverable_and_alerts(repository, store, hasher, alert_sink):
    store.fail_credential_save = True
    store.fail_identity_remove = True
    identity, credential = _new_pair(hasher, "bob")

    with pytest.raises(IrrecoverableStorageError) as exc_info:
        repository.upsert_with_credential(identity, credential, is_new=True)

    assert not exc_info.value.retryable
    assert exc_info.value.details["compensated"] is False
    assert len(alert_sink.alerts) == 1
    _, context = alert_sink.alerts[0]
    assert context["compensation"] == "identity.remove"


def test_credential_failure_restores_updated_identity(service, store, engine):
    # 使用带注入失败能力的存储替换默认实现。
    service.repository.store = store
    zk = register(service, "zk", nickname="before")

    store.fail_credential_save = True
    payload = IdentityPayload(id=zk.id, nickname="after", password="AnotherPassword")
    with pytest.raises(StorageError) as exc_info:
        service.create_or_update_identity(payload, acting=zk)

    assert exc_info.value.details["compensation"] == "identity.restore"
    assert service.repository.find_identity(zk.id).nickname == "before"
    assert service.login("zk", "CorrectPassword").claims.identity_id == zk.id


def test_update_restore_failure_is_irrecoverable(service, store, alert_sink):
    service.repository.store = store
    zk = register(service, "zk")

    store.fail_credential_save = True
    store.fail_identity_save_after = store.identity_saves + 1
    payload = IdentityPayload(id=zk.id, nickname="after", password="AnotherPassword")
    with pytest.raises(IrrecoverableStorageError):
        service.create_or_update_identity(payload, acting=zk)

    assert alert_sink.alerts[0][1]["compensation"] == "identity.restore"


def test_duplicate_username_conflicts_without_credential_write(repository, engine, hasher):
    repository.upsert_with_credential(*_new_pair(hasher, "zk"), is_new=True)

    identity = Identity(username="zk", email="other@example.com", privilege=int(Privilege.ENABLED))
    credential = Credential()
    hasher.update_password(credential, "CorrectPassword", min_length=8, max_length=128)
    with pytest.raises(ConflictError) as exc_info:
        repository.upsert_with_credential(identity, credential, is_new=True)

    assert exc_info.value.details["field"] == "username"
    assert _count(engine, Identity) == 1
    assert _count(engine, Credential) == 1


def test_upsert_argument_validation(repository, hasher):
    identity, credential = _new_pair(hasher, "zk")
    with pytest.raises(InvalidParameterError):
        repository.upsert_with_credential(identity, None, is_new=True)

    identity.id = 10
    with pytest.raises(InvalidParameterError):
        repository.upsert_with_credential(identity, credential, is_new=True)

    with pytest.raises(NotFoundError):
        repository.upsert_with_credential(identity, None, is_new=False)


def test_find_identity_by_each_key(repository, hasher):
    saved = repository.upsert_with_credential(*_new_pair(hasher, "zk"), is_new=True)

    assert repository.find_identity(saved.id).id == saved.id
    assert repository.find_identity(str(saved.id), by="id").id == saved.id
    assert repository.find_identity("zk", by="username").id == saved.id
    assert repository.find_identity("zk@example.com", by="email").id == saved.id

    with pytest.raises(NotFoundError):
        repository.find_identity("nobody", by="username")
    with pytest.raises(InvalidParameterError):
        repository.find_identity("zk", by="nickname")
    with pytest.raises(InvalidParameterError):
        repository.find_identity("abc", by="id")


def test_delete_identity_removes_credential(repository, engine, hasher):
    saved = repository.upsert_with_credential(*_new_pair(hasher, "zk"), is_new=True)

    repository.delete_identity(saved.id)

    assert _count(engine, Identity) == 0
    assert _count(engine, Credential) == 0
    with pytest.raises(NotFoundError):
        repository.delete_identity(saved.id)


def test_pagination_pages_are_disjoint(repository, hasher):
    for index in range(25):
        repository.upsert_with_credential(*_new_pair(hasher, f"user{index:02d}"), is_new=True)

    first = repository.list_identities(page=1)
    second = repository.list_identities(page=2)

    assert len(first) == 20
    assert len(second) == 5
    assert {item.id for item in first}.isdisjoint({item.id for item in second})
    assert [item.id for item in first] == sorted(item.id for item in first)
    assert first[-1].id < second[0].id

    with pytest.raises(NotFoundError):
        repository.list_identities(page=3)


def test_pagination_ordering(repository, hasher):
    for name in ("carol", "alice", "bob"):
        repository.upsert_with_credential(*_new_pair(hasher, name), is_new=True)

    by_name = repository.list_identities(order_by="username", order="ASC")
    by_id_desc = repository.list_identities(order_by="id", order="desc")

    assert [item.username for item in by_name] == ["alice", "bob", "carol"]
    assert [item.username for item in by_id_desc] == ["bob", "alice", "carol"]


@pytest.mark.parametrize(
    "kwargs",
    [
        {"page": 0},
        {"page_size": 0},
        {"order_by": "password_hash"},
        {"order": "sideways"},
    ],
)
def test_pagination_rejects_invalid_arguments(repository, kwargs):
    with pytest.raises(InvalidParameterError):
        repository.list_identities(**kwargs)


def test_search_is_case_insensitive_substring(repository, hasher):
    identity, credential = _new_pair(hasher, "ZhangKai")
    identity.nickname = "Kai"
    repository.upsert_with_credential(identity, credential, is_new=True)
    repository.upsert_with_credential(*_new_pair(hasher, "lisi"), is_new=True)

    assert [item.username for item in repository.search_identities("zhang")] == ["ZhangKai"]
    assert [item.username for item in repository.search_identities("EXAMPLE.COM")] == ["ZhangKai", "lisi"]
    summary = repository.search_identities("kai")[0]
    assert not hasattr(summary, "password_hash")

    with pytest.raises(NotFoundError):
        repository.search_identities("%")
    with pytest.raises(InvalidParameterError):
        repository.search_identities("   ")


def test_read_past_deadline_is_storage_error(repository, store, hasher):
    saved = repository.upsert_with_credential(*_new_pair(hasher, "zk"), is_new=True)

    store.delay_identity_get = 10
    with pytest.raises(StorageError) as exc_info:
        repository.find_identity(saved.id)

    assert exc_info.value.details["operation"] == "identity.get"


def test_deadline_after_identity_write_triggers_compensation(repository, store, engine, hasher):
    store.delay_identity_save = 10
    identity, credential = _new_pair(hasher, "slow")

    with pytest.raises(StorageError) as exc_info:
        repository.upsert_with_credential(identity, credential, is_new=True)

    assert exc_info.value.details["compensated"] is True
    assert _count(engine, Identity) == 0
    assert _count(engine, Credential) == 0


def test_repository_defaults_to_logging_alert_sink(store):
    repository = IdentityRepository(store, default_page_size=20)
    assert not isinstance(repository.alert_sink, RecordingAlertSink)
    assert repository.deadline().remaining() is None


def test_store_receives_remaining_budget(repository, store, clock, hasher):
    saved = repository.upsert_with_credential(*_new_pair(hasher, "zk"), is_new=True)
    store.timeouts.clear()
    store.delay_identity_find = 3

    deadline = repository.deadline()
    repository.find_identity("zk", by="username", deadline=deadline)
    repository.find_credential(saved.id, deadline=deadline)

    assert store.timeouts == [("identity.find", 5), ("credential.get", 2)]


def test_login_storage_calls_share_one_budget(service, repository, store, hasher):
    service.repository = repository
    register(service, "zk")
    store.delay_identity_find = 3
    store.delay_credential_get = 3

    with pytest.raises(StorageError) as exc_info:
        service.login("zk", "CorrectPassword")

    assert exc_info.value.details["operation"] == "credential.get"


def test_update_storage_calls_share_one_budget(service, repository, store):
    service.repository = repository
    zk = register(service, "zk", nickname="before")
    saves_before = store.identity_saves
    store.delay_identity_get = 3
    store.delay_credential_get = 3

    payload = IdentityPayload(id=zk.id, nickname="after", password="AnotherPassword")
    with pytest.raises(StorageError):
        service.create_or_update_identity(payload, acting=zk)

    assert store.identity_saves == saves_before
    store.delay_identity_get = 0
    assert repository.find_identity(zk.id).nickname == "before"


class _QueryCanceled(Exception):
    sqlstate = "57014"


def test_statement_timeout_maps_to_store_timeout(store):
    with pytest.raises(StoreTimeoutError):
        with store._session("identity.get", timeout=1.0):
            raise OperationalError("select 1", {}, _QueryCanceled("canceling statement due to statement timeout"))

    with pytest.raises(StoreError) as exc_info:
        with store._session("identity.get", timeout=1.0):
            raise OperationalError("select 1", {}, Exception("server closed the connection"))
    assert not isinstance(exc_info.value, StoreTimeoutError)
