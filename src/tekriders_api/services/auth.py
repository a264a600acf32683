"""认证核心服务。

负责注册、登录、找回密码、重置密码与外部身份登录五个流程。
所有依赖（存储、哈希、令牌、邮件、互斥锁、时钟）均通过构造参数注入，服务内不读取全局配置。

重置令牌状态：
- absent: 记录上没有令牌。
- pending: 令牌匹配且未过期，可消费。
- expired: 令牌匹配但已过期。
- mismatch: 记录上有令牌但与输入不一致。
除 pending 外均返回同一条“令牌无效或已过期”提示；消费成功后两个字段同时清空，形态与 absent 一致。
"""

from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
import hmac
import logging
import re
import secrets
from urllib.parse import urlencode
from uuid import uuid4

from starlette.concurrency import run_in_threadpool

from tekriders_api.core.logging import log_event
from tekriders_api.errors import (
    AuthenticationError,
    ConflictError,
    NotFoundError,
    ValidationError,
    WriteConflictError,
)
from tekriders_api.models.enums import SELF_SERVICE_ROLES, IdentifierType, UserRole
from tekriders_api.services.identity import VerifiedIdentity
from tekriders_api.services.locks import IdentityLock
from tekriders_api.services.mailer import MailDispatcher
from tekriders_api.services.passwords import PasswordHasher
from tekriders_api.services.tokens import SessionToken, TokenIssuer
from tekriders_api.stores.base import Credential, CredentialStore, utc_now

logger = logging.getLogger("tekriders_api.services.auth")

INVALID_CREDENTIALS = "Invalid credentials."
INVALID_RESET_TOKEN = "Invalid or expired token."
RESET_ACKNOWLEDGEMENT = "If this account exists, a password reset link will be sent."

_EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
_PHONE_PATTERN = re.compile(r"^\+?\d{5,20}$")
_PHONE_FORMATTING = re.compile(r"[\s\-.()]")
_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def normalize_email(value: str) -> str:
    """标准化邮箱字段（去空格 + 小写）。"""
    return value.strip().lower()


def normalize_phone(value: str) -> str:
    """标准化手机号（去掉空格、横线、点与括号，保留开头的 +）。"""
    return _PHONE_FORMATTING.sub("", value.strip())


def normalize_identifier(identifier_type: IdentifierType, value: str) -> str:
    """按标识类型做标准化。"""
    if identifier_type == IdentifierType.EMAIL:
        return normalize_email(value)
    return normalize_phone(value)


def _present(value: str | None) -> bool:
    return bool(value and value.strip())


def parse_identifier_type(value: str | None) -> IdentifierType:
    """解析标识类型，非法取值抛出 ValidationError。"""
    try:
        return IdentifierType(value)
    except ValueError as exc:
        raise ValidationError("Identifier type must be email or phone.") from exc


@dataclass(frozen=True)
class AuthenticatedSession:
    """登录成功后的凭据与会话令牌。"""

    credential: Credential
    session: SessionToken


class AuthService:
    """认证流程编排。"""

    def __init__(
        self,
        *,
        store: CredentialStore,
        hasher: PasswordHasher,
        tokens: TokenIssuer,
        mailer: MailDispatcher,
        identity_lock: IdentityLock,
        reset_link_base: str,
        reset_token_ttl: timedelta = timedelta(hours=1),
        write_retry_attempts: int = 3,
        reveal_unknown_reset_identity: bool = False,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.store = store
        self.hasher = hasher
        self.tokens = tokens
        self.mailer = mailer
        self.identity_lock = identity_lock
        self.reset_link_base = reset_link_base
        self.reset_token_ttl = reset_token_ttl
        self.write_retry_attempts = max(1, write_retry_attempts)
        self.reveal_unknown_reset_identity = reveal_unknown_reset_identity
        self.clock = clock

    def _now_ms(self) -> int:
        return (self.clock() - _EPOCH) // timedelta(milliseconds=1)

    # ---- 注册 ----

    def register(
        self,
        *,
        email: str | None,
        phone: str | None,
        password: str | None,
        role: str | None,
    ) -> Credential:
        """注册本地账号，不签发令牌。"""
        normalized_email = normalize_email(email) if _present(email) else None
        normalized_phone = normalize_phone(phone) if _present(phone) else None
        if not normalized_email and not normalized_phone:
            raise ValidationError("Email or phone is required.")
        if normalized_email and not _EMAIL_PATTERN.match(normalized_email):
            raise ValidationError("Email is invalid.")
        if normalized_phone and not _PHONE_PATTERN.match(normalized_phone):
            raise ValidationError("Phone is invalid.")
        if not password:
            raise ValidationError("Password is required.")
        if role not in SELF_SERVICE_ROLES:
            raise ValidationError("Role must be student or instructor.")

        credential = self._create_credential(
            email=normalized_email,
            phone=normalized_phone,
            password=password,
            role=role,
        )
        log_event(
            logger,
            "credential registered",
            credential_id=credential.id,
            role=credential.role,
            backend=self.store.backend,
        )
        return credential

    def _create_credential(
        self,
        *,
        email: str | None,
        phone: str | None,
        password: str,
        role: str,
        display_name: str | None = None,
    ) -> Credential:
        """查重并插入；同一标识的查重与插入在互斥锁内完成。"""
        # 哈希放在锁外，缩短临界区。
        password_hash = self.hasher.hash(password)
        lock_keys = []
        if email:
            lock_keys.append(f"{IdentifierType.EMAIL}:{email}")
        if phone:
            lock_keys.append(f"{IdentifierType.PHONE}:{phone}")

        with self.identity_lock.hold(lock_keys):
            if email and self.store.find_by(IdentifierType.EMAIL, email):
                raise ConflictError("Email already exists.")
            if phone and self.store.find_by(IdentifierType.PHONE, phone):
                raise ConflictError("Phone already exists.")
            return self.store.insert(
                Credential(
                    id=uuid4().hex,
                    revision="",
                    email=email,
                    phone=phone,
                    password_hash=password_hash,
                    role=role,
                    display_name=display_name,
                )
            )

    # ---- 登录 ----

    def login(
        self,
        *,
        identifier: str | None,
        identifier_type: str | None,
        password: str | None,
    ) -> AuthenticatedSession:
        """校验口令并签发会话令牌。

        账号不存在与口令错误返回完全相同的错误，且都会执行一次 bcrypt 校验。
        """
        if not _present(identifier) or not identifier_type or not password:
            raise ValidationError("Identifier, identifier type and password are required.")
        id_type = parse_identifier_type(identifier_type)

        credential = self.store.find_by(id_type, normalize_identifier(id_type, identifier))
        if credential is None:
            self.hasher.burn(password)
            log_event(logger, "login rejected", identifier_type=id_type, outcome="unknown_identity")
            raise AuthenticationError(INVALID_CREDENTIALS)
        if not self.hasher.verify(password, credential.password_hash):
            log_event(logger, "login rejected", credential_id=credential.id, outcome="bad_password")
            raise AuthenticationError(INVALID_CREDENTIALS)

        log_event(logger, "login succeeded", credential_id=credential.id, role=credential.role)
        return AuthenticatedSession(credential=credential, session=self._issue_session(credential))

    def _issue_session(self, credential: Credential) -> SessionToken:
        return self.tokens.issue_session(
            credential_id=credential.id,
            email=credential.email,
            phone=credential.phone,
            role=credential.role,
            now=self.clock(),
        )

    # ---- 找回密码 ----

    async def forgot_password(self, *, identifier: str | None, identifier_type: str | None) -> None:
        """生成重置令牌并发送重置链接。

        邮件发送失败时令牌保持落库，调用方可重新发起请求覆盖旧令牌。
        """
        if not _present(identifier) or not identifier_type:
            raise ValidationError("Identifier and identifier type are required.")
        id_type = parse_identifier_type(identifier_type)
        value = normalize_identifier(id_type, identifier)

        issued = await run_in_threadpool(self._issue_reset_token, id_type, value)
        if issued is None:
            return
        credential, token = issued
        await self.mailer.send(
            credential.email,
            "Reset your Tek Riders password",
            self._reset_email_body(credential.email, token),
        )
        log_event(logger, "reset link sent", credential_id=credential.id)

    def _issue_reset_token(self, id_type: IdentifierType, value: str) -> tuple[Credential, str] | None:
        credential = self.store.find_by(id_type, value)
        if credential is None:
            log_event(logger, "reset requested", identifier_type=id_type, outcome="unknown_identity")
            if self.reveal_unknown_reset_identity:
                raise NotFoundError()
            return None
        if not credential.email:
            # 仅手机号账号没有可投递的邮箱。
            log_event(logger, "reset requested", credential_id=credential.id, outcome="no_mail_channel")
            return None

        token = self.tokens.new_reset_token()
        expiry_ms = self._now_ms() + int(self.reset_token_ttl.total_seconds() * 1000)
        updated = self._update_with_retry(credential, lambda current: current.with_reset_token(token, expiry_ms))
        return updated, token

    def reset_link(self, email: str, token: str) -> str:
        """拼接前端重置密码链接。"""
        return f"{self.reset_link_base}?{urlencode({'token': token, 'email': email})}"

    def _reset_email_body(self, email: str, token: str) -> str:
        minutes = int(self.reset_token_ttl.total_seconds() // 60)
        return (
            "We received a request to reset your Tek Riders password.\n\n"
            f"Open the link below within {minutes} minutes to choose a new password:\n"
            f"{self.reset_link(email, token)}\n\n"
            "If you did not request this, you can ignore this email."
        )

    # ---- 重置密码 ----

    def reset_password(self, *, email: str | None, token: str | None, password: str | None) -> Credential:
        """消费重置令牌并更新口令，口令与令牌字段在同一次比较并替换写入中更新。"""
        if not _present(email) or not token or not password:
            raise ValidationError("Email, token and password are required.")

        credential = self.store.find_by(IdentifierType.EMAIL, normalize_email(email))
        if credential is None:
            raise ValidationError(INVALID_RESET_TOKEN)
        self._check_reset_token(credential, token)

        password_hash = self.hasher.hash(password)

        def consume(current: Credential) -> Credential:
            # 重试时基于最新版本重新校验，防止令牌被并发消费两次。
            self._check_reset_token(current, token)
            return current.with_password(password_hash)

        updated = self._update_with_retry(credential, consume)
        log_event(logger, "password reset", credential_id=updated.id, outcome="consumed")
        return updated

    def _check_reset_token(self, credential: Credential, token: str) -> None:
        if credential.reset_token is None or credential.reset_token_expiry is None:
            raise ValidationError(INVALID_RESET_TOKEN)
        if not hmac.compare_digest(credential.reset_token.encode("utf-8"), token.encode("utf-8")):
            raise ValidationError(INVALID_RESET_TOKEN)
        if self._now_ms() > credential.reset_token_expiry:
            raise ValidationError(INVALID_RESET_TOKEN)

    # ---- 外部身份 ----

    def login_with_external_identity(self, identity: VerifiedIdentity, *, role: str | None = None) -> AuthenticatedSession:
        """外部身份登录：已存在则直接签发会话，否则按本地注册规则建号后签发。"""
        requested_role = role or UserRole.STUDENT
        if requested_role not in SELF_SERVICE_ROLES:
            raise ValidationError("Role must be student or instructor.")
        email = normalize_email(identity.email)

        credential = self.store.find_by(IdentifierType.EMAIL, email)
        if credential is None:
            try:
                # 随机口令不会下发，账号只能通过外部身份或找回密码登录。
                credential = self._create_credential(
                    email=email,
                    phone=None,
                    password=secrets.token_urlsafe(32),
                    role=requested_role,
                    display_name=identity.display_name,
                )
                log_event(
                    logger,
                    "credential registered",
                    credential_id=credential.id,
                    role=credential.role,
                    provider=identity.provider,
                )
            except ConflictError:
                # 并发的首次登录已完成建号。
                credential = self.store.find_by(IdentifierType.EMAIL, email)
                if credential is None:
                    raise

        log_event(logger, "login succeeded", credential_id=credential.id, provider=identity.provider)
        return AuthenticatedSession(credential=credential, session=self._issue_session(credential))

    # ---- 乐观并发 ----

    def _update_with_retry(
        self,
        credential: Credential,
        mutate: Callable[[Credential], Credential],
    ) -> Credential:
        """读-改-写循环：版本冲突时重新读取最新版本，最多尝试 write_retry_attempts 次。"""
        current = credential
        for attempt in range(1, self.write_retry_attempts + 1):
            try:
                return self.store.replace(mutate(current))
            except WriteConflictError:
                log_event(
                    logger,
                    "credential write conflict",
                    level=logging.WARNING,
                    credential_id=current.id,
                    attempt=attempt,
                )
                if attempt == self.write_retry_attempts:
                    raise
                fresh = self.store.get(current.id)
                if fresh is None:
                    raise
                current = fresh
        raise WriteConflictError()
