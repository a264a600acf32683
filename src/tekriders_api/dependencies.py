"""依赖装配。

职责:
1. 进程启动时按配置构建共享组件（邮件、注册锁、CouchDB 客户端）。
2. 每个请求组装凭据存储与认证服务，配置只在此处读取并以构造参数传入。
3. 解析 Bearer 会话令牌得到认证主体。
"""

from datetime import timedelta

import httpx
from fastapi import Depends, FastAPI, Header, HTTPException, Request, status
from redis import Redis
from sqlalchemy.orm import Session

from tekriders_api.core.config import Settings, get_settings
from tekriders_api.core.security import AuthenticatedPrincipal, parse_authorization_header
from tekriders_api.db.session import get_db
from tekriders_api.services.auth import AuthService
from tekriders_api.services.identity import ExternalIdentityVerifier, GoogleIdentityVerifier
from tekriders_api.services.locks import IdentityLock
from tekriders_api.services.mailer import MailDispatcher, OutboxMailDispatcher, SmtpMailDispatcher
from tekriders_api.services.passwords import PasswordHasher
from tekriders_api.services.tokens import TokenIssuer
from tekriders_api.stores.base import CredentialStore
from tekriders_api.stores.couchdb import CouchCredentialStore
from tekriders_api.stores.sql import SqlCredentialStore


def build_mailer(settings: Settings) -> MailDispatcher:
    """按配置构建邮件投递组件。"""
    if settings.mail_backend == "outbox":
        return OutboxMailDispatcher()
    return SmtpMailDispatcher(
        host=settings.smtp_host,
        port=settings.smtp_port,
        sender=settings.mail_from,
        username=settings.smtp_username,
        password=settings.smtp_password,
        start_tls=settings.smtp_start_tls,
        timeout_seconds=settings.smtp_timeout_seconds,
    )


def build_identity_lock(settings: Settings) -> IdentityLock:
    """按配置构建注册互斥锁，未配置 Redis 时使用进程内锁。"""
    redis_client = Redis.from_url(settings.redis_url) if settings.redis_url else None
    return IdentityLock(
        redis_client=redis_client,
        prefix=settings.auth_registration_lock_prefix,
        wait_seconds=settings.auth_registration_lock_timeout_seconds,
        ttl_seconds=settings.auth_registration_lock_ttl_seconds,
    )


def build_couch_store(settings: Settings) -> CouchCredentialStore:
    """构建 CouchDB 凭据存储（长连接客户端在进程内共享）。"""
    auth = None
    if settings.couchdb_user and settings.couchdb_password:
        auth = (settings.couchdb_user, settings.couchdb_password)
    client = httpx.Client(
        base_url=settings.couchdb_url,
        auth=auth,
        timeout=settings.couchdb_timeout_seconds,
    )
    return CouchCredentialStore(client, settings.couchdb_database)


def build_token_issuer(settings: Settings) -> TokenIssuer:
    """按配置构建令牌签发器。"""
    return TokenIssuer(
        secret=settings.auth_jwt_secret,
        algorithms=settings.auth_algorithms,
        issuer=settings.auth_jwt_issuer,
        session_ttl=timedelta(seconds=settings.auth_session_ttl_seconds),
        leeway_seconds=settings.auth_jwt_leeway_seconds,
        reset_token_bytes=settings.auth_reset_token_bytes,
    )


def get_token_issuer() -> TokenIssuer:
    return build_token_issuer(get_settings())


def get_password_hasher() -> PasswordHasher:
    return PasswordHasher(rounds=get_settings().auth_password_hash_rounds)


def get_mailer(request: Request) -> MailDispatcher:
    return request.app.state.mailer


def get_identity_lock(request: Request) -> IdentityLock:
    return request.app.state.identity_lock


def get_sql_store(db: Session = Depends(get_db)) -> SqlCredentialStore:
    return SqlCredentialStore(db)


def get_couch_store(request: Request) -> CouchCredentialStore:
    return request.app.state.couch_store


def get_credential_store(store: SqlCredentialStore = Depends(get_sql_store)) -> CredentialStore:
    """默认走关系库；couchdb 后端在装配阶段由 use_couch_store 替换，不再打开数据库会话。"""
    return store


def use_couch_store(app: FastAPI) -> None:
    """让全部路由改用进程级 CouchDB 存储。"""
    app.dependency_overrides[get_credential_store] = get_couch_store


def get_auth_service(
    store: CredentialStore = Depends(get_credential_store),
    hasher: PasswordHasher = Depends(get_password_hasher),
    tokens: TokenIssuer = Depends(get_token_issuer),
    mailer: MailDispatcher = Depends(get_mailer),
    identity_lock: IdentityLock = Depends(get_identity_lock),
) -> AuthService:
    """组装认证服务。"""
    settings = get_settings()
    return AuthService(
        store=store,
        hasher=hasher,
        tokens=tokens,
        mailer=mailer,
        identity_lock=identity_lock,
        reset_link_base=f"{settings.frontend_base_url.rstrip('/')}{settings.reset_password_path}",
        reset_token_ttl=timedelta(seconds=settings.auth_reset_token_ttl_seconds),
        write_retry_attempts=settings.auth_write_retry_attempts,
        reveal_unknown_reset_identity=settings.auth_reveal_unknown_reset_identity,
    )


def get_google_verifier() -> ExternalIdentityVerifier:
    """返回 Google 身份校验器，未配置客户端 ID 时该登录方式不可用。"""
    client_id = get_settings().google_client_id
    if not client_id:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Google sign-in is not enabled.")
    return GoogleIdentityVerifier(client_id)


def get_current_principal(
    authorization: str | None = Header(default=None, alias="Authorization"),
    tokens: TokenIssuer = Depends(get_token_issuer),
) -> AuthenticatedPrincipal:
    """解析当前请求的会话主体。"""
    return parse_authorization_header(authorization, tokens)
