"""口令哈希、校验与更新。

本模块只处理单个身份的口令，不感知令牌与接口层，也不负责落库。
哈希编码格式为 ``pbkdf2_sha256$<iterations>$<salt_b64>$<digest_b64>``，
校验时从编码本身读取算法参数，因此调整迭代次数不影响存量口令。
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import hmac
import secrets
from datetime import datetime, timezone

from oj_identity.errors import PolicyViolationError
from oj_identity.models.auth import Credential
from oj_identity.models.enums import HashAlgorithm


class CredentialError(Exception):
    """口令组件内部错误基类。"""


class InvalidInputError(CredentialError):
    """口令明文为空。"""


class CorruptCredentialError(CredentialError):
    """存储的哈希无法识别。"""


class CredentialStore:
    """基于 PBKDF2-SHA256 的口令存储。"""

    salt_bytes = 16

    def __init__(self, iterations: int) -> None:
        if iterations < 1:
            raise ValueError("iterations must be positive")
        self.iterations = iterations

    def hash_password(self, plaintext: str) -> str:
        """生成带盐哈希，每次调用使用新的随机盐。"""
        if not plaintext:
            raise InvalidInputError("password must not be empty")
        salt = secrets.token_bytes(self.salt_bytes)
        digest = self._derive(plaintext, salt, self.iterations)
        salt_b64 = base64.b64encode(salt).decode("ascii")
        digest_b64 = base64.b64encode(digest).decode("ascii")
        return f"{HashAlgorithm.PBKDF2_SHA256}${self.iterations}${salt_b64}${digest_b64}"

    def verify_password(self, plaintext: str, stored_hash: str) -> bool:
        """校验口令是否匹配，不匹配返回 False。"""
        iterations, salt, expected_digest = self._decode(stored_hash)
        actual_digest = self._derive(plaintext or "", salt, iterations)
        return hmac.compare_digest(actual_digest, expected_digest)

    def update_password(
        self,
        credential: Credential,
        new_plaintext: str,
        *,
        min_length: int,
        max_length: int,
    ) -> Credential:
        """校验长度后替换凭据上的哈希（仅修改内存对象）。"""
        if not new_plaintext:
            raise InvalidInputError("password must not be empty")
        if len(new_plaintext) < min_length:
            raise PolicyViolationError(f"password shorter than {min_length} characters")
        if len(new_plaintext) > max_length:
            raise PolicyViolationError(f"password longer than {max_length} characters")

        credential.password_hash = self.hash_password(new_plaintext)
        credential.hash_algorithm = HashAlgorithm.PBKDF2_SHA256
        credential.password_updated_at = datetime.now(timezone.utc)
        return credential

    @staticmethod
    def _derive(plaintext: str, salt: bytes, iterations: int) -> bytes:
        return hashlib.pbkdf2_hmac("sha256", plaintext.encode("utf-8"), salt, iterations)

    @staticmethod
    def _decode(stored_hash: str) -> tuple[int, bytes, bytes]:
        if not isinstance(stored_hash, str):
            raise CorruptCredentialError("stored hash is not a string")
        try:
            algorithm, iterations_text, salt_b64, digest_b64 = stored_hash.split("$")
            iterations = int(iterations_text)
            salt = base64.b64decode(salt_b64.encode("ascii"), validate=True)
            digest = base64.b64decode(digest_b64.encode("ascii"), validate=True)
        except (ValueError, UnicodeEncodeError, binascii.Error) as exc:
            raise CorruptCredentialError("unrecognized password hash encoding") from exc

        if algorithm != HashAlgorithm.PBKDF2_SHA256:
            raise CorruptCredentialError(f"unsupported hash algorithm: {algorithm}")
        if iterations < 1 or not salt or not digest:
            raise CorruptCredentialError("password hash parameters out of range")
        return iterations, salt, digest
