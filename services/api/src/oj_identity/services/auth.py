"""认证服务：登录、令牌续期与身份资料维护的对外入口。

登录状态流转：Start -> CredentialsChecked -> TokenIssued，任一步失败进入 Rejected。
“账号不存在”“密码错误”“账号不可登录”对外统一为 InvalidCredentialsError。
"""

from __future__ import annotations

from datetime import timedelta
from functools import cached_property
import logging
import secrets

from oj_identity.core.config import Settings
from oj_identity.core.security import (
    ExpiredTokenError,
    InvalidSignatureError,
    IssuedToken,
    MalformedTokenError,
    TokenClaims,
    TokenService,
)
from oj_identity.errors import (
    InvalidCredentialsError,
    InvalidParameterError,
    NotFoundError,
    PermissionDeniedError,
    PolicyViolationError,
    UnauthorizedError,
)
from oj_identity.models.auth import Credential
from oj_identity.models.enums import Privilege
from oj_identity.models.identity import PROFILE_FIELDS, Identity
from oj_identity.schemas.identity import IdentityPayload, IdentitySummary
from oj_identity.services.credentials import CorruptCredentialError, CredentialStore, InvalidInputError
from oj_identity.services.identity_repository import Deadline, IdentityRepository
from oj_identity.services.privileges import PrivilegePolicy

logger = logging.getLogger("oj_identity.auth")

_LOGIN_FAILED = "invalid username or password"


class AuthService:
    """认证与身份维护门面。"""

    def __init__(
        self,
        repository: IdentityRepository,
        credential_store: CredentialStore,
        token_service: TokenService,
        policy: PrivilegePolicy,
        settings: Settings,
    ) -> None:
        self.repository = repository
        self.credential_store = credential_store
        self.token_service = token_service
        self.policy = policy
        self.settings = settings

    @cached_property
    def _dummy_hash(self) -> str:
        # 账号不存在时也执行一次完整校验，避免通过耗时差异探测用户名。
        return self.credential_store.hash_password(secrets.token_urlsafe(16))

    @property
    def token_ttl(self) -> timedelta:
        return timedelta(seconds=self.settings.token_ttl_seconds)

    def login(self, identifier: str, plaintext: str) -> IssuedToken:
        """校验账号口令并签发令牌。"""
        if not identifier or not plaintext:
            raise InvalidParameterError("username and password are required")

        by = self.settings.login_identifier
        # 一次登录内的所有存储调用共享同一时限。
        deadline = self.repository.deadline()
        try:
            identity = self.repository.find_identity(identifier, by=by, deadline=deadline)
        except NotFoundError:
            self.credential_store.verify_password(plaintext, self._dummy_hash)
            logger.info("login rejected by=%s reason=unknown_identity", by)
            raise InvalidCredentialsError(_LOGIN_FAILED) from None

        try:
            credential = self.repository.find_credential(identity.id, deadline=deadline)
        except NotFoundError:
            self.credential_store.verify_password(plaintext, self._dummy_hash)
            logger.error("login rejected identity_id=%s reason=missing_credential", identity.id)
            raise InvalidCredentialsError(_LOGIN_FAILED) from None

        try:
            matched = self.credential_store.verify_password(plaintext, credential.password_hash)
        except CorruptCredentialError as exc:
            logger.error("login rejected identity_id=%s reason=corrupt_credential error=%s", identity.id, exc)
            raise InvalidCredentialsError(_LOGIN_FAILED) from None
        if not matched:
            logger.info("login rejected identity_id=%s reason=wrong_password", identity.id)
            raise InvalidCredentialsError(_LOGIN_FAILED)

        privilege = self._live_privilege(identity)
        if privilege is None or not self.policy.is_login_allowed(privilege):
            logger.info("login rejected identity_id=%s reason=privilege privilege=%s", identity.id, identity.privilege)
            raise InvalidCredentialsError(_LOGIN_FAILED)

        token = self.token_service.mint(identity.id, privilege, self.token_ttl)
        logger.info("login succeeded identity_id=%s privilege=%s", identity.id, privilege.name)
        return token

    def authenticate(self, existing_token: str, *, deadline: Deadline | None = None) -> tuple[TokenClaims, Identity]:
        """校验令牌并返回声明与实时身份，身份不存在或不可登录时拒绝。"""
        deadline = deadline or self.repository.deadline()
        try:
            claims = self.token_service.validate(existing_token)
        except ExpiredTokenError as exc:
            logger.info("token rejected reason=expired")
            raise UnauthorizedError("token has expired", details={"reason": "expired"}) from exc
        except (InvalidSignatureError, MalformedTokenError) as exc:
            logger.warning("suspicious token rejected reason=%s error=%s", type(exc).__name__, exc)
            raise UnauthorizedError("invalid token", details={"reason": "invalid"}) from exc

        try:
            identity = self.repository.find_identity(claims.identity_id, by="id", deadline=deadline)
        except NotFoundError as exc:
            logger.info("token rejected identity_id=%s reason=identity_missing", claims.identity_id)
            raise UnauthorizedError("identity no longer exists", details={"reason": "identity_missing"}) from exc

        privilege = self._live_privilege(identity)
        if privilege is None or not self.policy.is_login_allowed(privilege):
            logger.info("token rejected identity_id=%s reason=identity_disabled", identity.id)
            raise UnauthorizedError("identity is disabled", details={"reason": "identity_disabled"})
        return claims, identity

    def refresh_token(self, existing_token: str) -> IssuedToken:
        """以实时权限重新签发令牌。"""
        claims, identity = self.authenticate(existing_token, deadline=self.repository.deadline())
        try:
            token = self.token_service.refresh(claims, identity.privilege_level)
        except ExpiredTokenError as exc:
            raise UnauthorizedError("token has expired", details={"reason": "expired"}) from exc
        logger.info("token refreshed identity_id=%s privilege=%s", identity.id, token.claims.privilege.name)
        return token

    def create_or_update_identity(self, payload: IdentityPayload, *, acting: Identity | None = None) -> Identity:
        """注册新身份或按部分更新语义修改已有身份。

        ``acting`` 为发起请求的已认证身份；注册时可为空。
        """
        changes = payload.changes()
        self._check_profile_policy(changes)
        acting_privilege = self._live_privilege(acting) if acting is not None else None
        deadline = self.repository.deadline()

        if payload.is_new:
            for field in ("email", "username", "password"):
                if not changes.get(field):
                    raise InvalidParameterError(f"{field} is required for a new identity")
            current_privilege = self.policy.initial_privilege(self.settings.signup_requires_confirmation)
            identity = Identity(privilege=int(current_privilege))
            credential: Credential | None = Credential()
        else:
            if acting is None:
                raise UnauthorizedError("authentication required to edit an identity")
            identity = self.repository.find_identity(payload.id, by="id", deadline=deadline)
            target_privilege = self._live_privilege(identity)
            if not self.policy.can_edit_profile(acting.id, acting_privilege, identity.id, target_privilege):
                logger.warning(
                    "profile edit denied identity_id=%s acting_id=%s acting=%s target=%s",
                    identity.id,
                    acting.id,
                    acting_privilege.name if acting_privilege is not None else None,
                    target_privilege.name if target_privilege is not None else None,
                )
                raise PermissionDeniedError("not allowed to edit this identity", details={"identity_id": identity.id})
            for field in ("email", "username"):
                if field in changes and not changes[field]:
                    raise InvalidParameterError(f"{field} must not be empty")
            current_privilege = target_privilege if target_privilege is not None else Privilege.DISABLED
            credential = None
            if "password" in changes:
                credential = self._credential_for_update(identity.id, deadline)

        if "privilege" in changes:
            requested = changes["privilege"]
            if requested is None:
                raise InvalidParameterError("privilege must not be null")
            requested = Privilege.parse(requested)
            if not self.policy.can_change_privilege(acting_privilege, current_privilege, requested):
                logger.warning(
                    "privilege change denied identity_id=%s current=%s requested=%s acting=%s",
                    identity.id,
                    current_privilege.name,
                    requested.name,
                    acting_privilege.name if acting_privilege is not None else None,
                )
                raise PermissionDeniedError(
                    "privilege change not permitted",
                    details={"current": int(current_privilege), "requested": int(requested)},
                )
            identity.privilege = int(requested)

        for field in PROFILE_FIELDS:
            if field in changes:
                setattr(identity, field, changes[field])

        if credential is not None:
            try:
                self.credential_store.update_password(
                    credential,
                    changes.get("password") or "",
                    min_length=self.settings.password_min_length,
                    max_length=self.settings.password_max_length,
                )
            except InvalidInputError as exc:
                raise InvalidParameterError("password must not be empty") from exc

        saved = self.repository.upsert_with_credential(identity, credential, is_new=payload.is_new, deadline=deadline)
        logger.info("identity %s identity_id=%s", "created" if payload.is_new else "updated", saved.id)
        return saved

    def get_identity(self, key: int | str, by: str = "id") -> Identity:
        return self.repository.find_identity(key, by=by)

    def list_identities(
        self,
        order_by: str = "id",
        order: str = "ASC",
        page: int = 1,
        page_size: int | None = None,
    ) -> list[IdentitySummary]:
        return self.repository.list_identities(order_by=order_by, order=order, page=page, page_size=page_size)

    def search_identities(
        self,
        keyword: str,
        order_by: str = "id",
        order: str = "ASC",
        page: int = 1,
        page_size: int | None = None,
    ) -> list[IdentitySummary]:
        return self.repository.search_identities(
            keyword,
            order_by=order_by,
            order=order,
            page=page,
            page_size=page_size,
        )

    def _credential_for_update(self, identity_id: int, deadline: Deadline) -> Credential:
        try:
            return self.repository.find_credential(identity_id, deadline=deadline)
        except NotFoundError:
            # 历史数据缺失凭据时补建，写入后恢复“身份必有凭据”的约束。
            logger.warning("credential missing on update identity_id=%s, creating a new one", identity_id)
            return Credential(user_id=identity_id)

    def _check_profile_policy(self, changes: dict[str, object]) -> None:
        settings = self.settings
        username = changes.get("username")
        if isinstance(username, str) and settings.username_min_length and len(username) < settings.username_min_length:
            raise PolicyViolationError("username too short", details={"field": "username"})

        nickname = changes.get("nickname")
        if isinstance(nickname, str):
            if settings.nickname_min_length and len(nickname) < settings.nickname_min_length:
                raise PolicyViolationError("nickname too short", details={"field": "nickname"})
            if settings.nickname_max_length and len(nickname) > settings.nickname_max_length:
                raise PolicyViolationError("nickname too long", details={"field": "nickname"})

    @staticmethod
    def _live_privilege(identity: Identity) -> Privilege | None:
        try:
            return identity.privilege_level
        except ValueError:
            logger.error("identity_id=%s carries an unknown privilege value %r", identity.id, identity.privilege)
            return None
