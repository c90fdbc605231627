"""访问令牌签发与校验工具。

令牌为 HS256 签名的 JWT，声明集合固定为 sub（身份 ID）、privilege（签发时的权限快照）、
iat、exp、iss。服务端不保存令牌，也不提供吊销：令牌到期即失效，续期是更新权限快照的唯一途径。
"""

from collections.abc import Callable, Sequence
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
import re
from typing import Any

import jwt
from jwt import DecodeError, InvalidSignatureError as JWTInvalidSignatureError, InvalidTokenError

from oj_identity.errors import UnauthorizedError
from oj_identity.models.enums import Privilege

_REQUIRED_CLAIMS = ["sub", "privilege", "iat", "exp"]


class TokenError(Exception):
    """令牌组件内部错误基类。"""


class ExpiredTokenError(TokenError):
    """令牌已过期，调用方应提示重新登录。"""


class InvalidSignatureError(TokenError):
    """签名无法用任何已知密钥验证，视为可疑请求。"""


class MalformedTokenError(TokenError):
    """令牌结构或声明不合法，视为可疑请求。"""


@dataclass(frozen=True)
class TokenClaims:
    """经过校验的令牌声明。"""

    identity_id: int
    privilege: Privilege
    issued_at: datetime
    expires_at: datetime


@dataclass(frozen=True)
class IssuedToken:
    """签发结果：对外传输的紧凑字符串与其声明。"""

    value: str
    claims: TokenClaims

    @property
    def expires_in(self) -> int:
        return int((self.claims.expires_at - self.claims.issued_at).total_seconds())


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class TokenService:
    """令牌签发、校验与续期。

    签名密钥在构造时注入，之后只读。``previous_secrets`` 中的旧密钥仅用于校验，
    用于密钥轮换期间让已签发的令牌继续有效直至自然过期。
    """

    def __init__(
        self,
        secret: str,
        *,
        ttl: timedelta,
        issuer: str,
        algorithm: str = "HS256",
        previous_secrets: Sequence[str] = (),
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        if not secret:
            raise ValueError("token signing secret must not be empty")
        if ttl <= timedelta(0):
            raise ValueError("token ttl must be positive")
        self._secret = secret
        self._verification_keys = (secret, *[item for item in previous_secrets if item])
        self.ttl = ttl
        self.issuer = issuer
        self.algorithm = algorithm
        self._clock = clock

    def _now(self) -> datetime:
        # JWT 时间声明精度为秒，截断后签发声明与解码声明可逐字段比较。
        return self._clock().astimezone(timezone.utc).replace(microsecond=0)

    def mint(self, identity_id: int, privilege: Privilege, ttl: timedelta) -> IssuedToken:
        """为指定身份签发令牌，有效期由调用方按配置传入。"""
        if ttl <= timedelta(0):
            raise ValueError("token ttl must be positive")
        issued_at = self._now()
        return self._encode(identity_id, privilege, issued_at, issued_at + ttl)

    def validate(self, token: str) -> TokenClaims:
        """校验签名与有效期并返回声明。"""
        payload = self._decode(token)
        claims = self._claims_from_payload(payload)
        if self._now() >= claims.expires_at:
            raise ExpiredTokenError("token has expired")
        return claims

    def refresh(self, claims: TokenClaims, current_privilege: Privilege) -> IssuedToken:
        """以调用方实时查询的权限重新签发令牌。

        仅接受刚通过 validate 的声明，已过期的声明不会被续期。
        """
        issued_at = self._now()
        if issued_at >= claims.expires_at:
            raise ExpiredTokenError("cannot refresh an expired token")
        expires_at = issued_at + self.ttl
        if expires_at <= claims.expires_at:
            # 同一秒内续期时保证新过期时间严格晚于旧令牌。
            expires_at = claims.expires_at + timedelta(seconds=1)
        return self._encode(claims.identity_id, current_privilege, issued_at, expires_at)

    def _encode(
        self,
        identity_id: int,
        privilege: Privilege,
        issued_at: datetime,
        expires_at: datetime,
    ) -> IssuedToken:
        privilege = Privilege.parse(privilege)
        payload: dict[str, Any] = {
            "sub": str(identity_id),
            "privilege": int(privilege),
            "iat": int(issued_at.timestamp()),
            "exp": int(expires_at.timestamp()),
            "iss": self.issuer,
        }
        value = jwt.encode(payload, self._secret, algorithm=self.algorithm)
        claims = TokenClaims(
            identity_id=identity_id,
            privilege=privilege,
            issued_at=issued_at,
            expires_at=expires_at,
        )
        return IssuedToken(value=value, claims=claims)

    def _decode(self, token: str) -> dict[str, Any]:
        if not isinstance(token, str) or not token:
            raise MalformedTokenError("token is empty")

        # 过期由本服务按注入时钟判定，此处只交给 PyJWT 校验签名、签发方与必填声明。
        options = {
            "verify_signature": True,
            "verify_exp": False,
            "verify_iat": False,
            "verify_nbf": False,
            "require": _REQUIRED_CLAIMS,
        }
        for key in self._verification_keys:
            try:
                return jwt.decode(
                    token,
                    key=key,
                    algorithms=[self.algorithm],
                    issuer=self.issuer,
                    options=options,
                )
            except JWTInvalidSignatureError:
                continue
            except (DecodeError, InvalidTokenError) as exc:
                raise MalformedTokenError(str(exc)) from exc
        raise InvalidSignatureError("token signature verification failed")

    @staticmethod
    def _claims_from_payload(payload: dict[str, Any]) -> TokenClaims:
        try:
            identity_id = int(str(payload["sub"]))
            privilege = Privilege.parse(payload["privilege"])
            iat = payload["iat"]
            exp = payload["exp"]
            if isinstance(iat, bool) or isinstance(exp, bool) or not isinstance(iat, int) or not isinstance(exp, int):
                raise ValueError("iat/exp must be integers")
        except (KeyError, TypeError, ValueError) as exc:
            raise MalformedTokenError(f"invalid token claims: {exc}") from exc

        issued_at = datetime.fromtimestamp(iat, tz=timezone.utc)
        expires_at = datetime.fromtimestamp(exp, tz=timezone.utc)
        if expires_at <= issued_at:
            raise MalformedTokenError("token expires before it was issued")
        return TokenClaims(
            identity_id=identity_id,
            privilege=privilege,
            issued_at=issued_at,
            expires_at=expires_at,
        )


def extract_bearer_token(authorization: str | None) -> str:
    """从 Authorization 头中提取 Bearer token，兼容重复头被逗号拼接的场景。"""
    if not authorization:
        raise UnauthorizedError("missing authorization header")
    tokens = [item.strip() for item in re.findall(r"Bearer\s+([^,\s]+)", authorization, flags=re.IGNORECASE)]
    tokens = [item for item in tokens if item]
    if not tokens:
        raise UnauthorizedError("authorization header is not a bearer token")
    # 多个令牌并存时取最后一个，与网关追加头部的顺序一致。
    return tokens[-1]
