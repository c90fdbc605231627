import pytest

from oj_identity.errors import PolicyViolationError
from oj_identity.models.auth import Credential
from oj_identity.models.enums import HashAlgorithm
from oj_identity.services.credentials import CorruptCredentialError, CredentialStore, InvalidInputError


@pytest.fixture
def store() -> CredentialStore:
    return CredentialStore(iterations=1000)


def test_password_hash_and_verify(store):
    password_hash = store.hash_password("CorrectPassword")

    assert password_hash.startswith(f"{HashAlgorithm.PBKDF2_SHA256}$1000$")
    assert "CorrectPassword" not in password_hash
    assert store.verify_password("CorrectPassword", password_hash)
    assert not store.verify_password("WrongPassword", password_hash)


def test_hash_uses_fresh_salt_each_time(store):
    first = store.hash_password("CorrectPassword")
    second = store.hash_password("CorrectPassword")

    assert first != second
    assert store.verify_password("CorrectPassword", first)
    assert store.verify_password("CorrectPassword", second)


def test_verify_reads_iterations_from_stored_hash(store):
    legacy_hash = CredentialStore(iterations=500).hash_password("CorrectPassword")
    assert store.verify_password("CorrectPassword", legacy_hash)


def test_hash_rejects_empty_password(store):
    with pytest.raises(InvalidInputError):
        store.hash_password("")


@pytest.mark.parametrize(
    "stored_hash",
    [
        "",
        "plain-text-password",
        "md5$1000$c2FsdA==$ZGlnZXN0",
        "pbkdf2_sha256$abc$c2FsdA==$ZGlnZXN0",
        "pbkdf2_sha256$1000$not-base64!$ZGlnZXN0",
        "pbkdf2_sha256$0$c2FsdA==$ZGlnZXN0",
    ],
)
def test_verify_rejects_corrupt_hash(store, stored_hash):
    with pytest.raises(CorruptCredentialError):
        store.verify_password("CorrectPassword", stored_hash)


def test_update_password_replaces_hash(store):
    credential = Credential(user_id=1, password_hash=store.hash_password("OldPassword"))

    store.update_password(credential, "NewPassword", min_length=8, max_length=128)

    assert store.verify_password("NewPassword", credential.password_hash)
    assert not store.verify_password("OldPassword", credential.password_hash)
    assert credential.hash_algorithm == HashAlgorithm.PBKDF2_SHA256
    assert credential.password_updated_at is not None


def test_update_password_enforces_length_policy(store):
    original_hash = store.hash_password("OldPassword")
    credential = Credential(user_id=1, password_hash=original_hash)

    with pytest.raises(PolicyViolationError):
        store.update_password(credential, "short", min_length=8, max_length=128)
    with pytest.raises(PolicyViolationError):
        store.update_password(credential, "x" * 129, min_length=8, max_length=128)
    with pytest.raises(InvalidInputError):
        store.update_password(credential, "", min_length=8, max_length=128)

    assert credential.password_hash == original_hash


def test_credential_repr_hides_hash(store):
    credential = Credential(user_id=7, password_hash=store.hash_password("CorrectPassword"))
    assert credential.password_hash not in repr(credential)
