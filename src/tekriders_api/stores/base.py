"""凭据存储抽象。

存储层只承诺四种原语：按字段查找、按 ID 读取、插入、按版本号比较并替换。
版本号不匹配时抛出 WriteConflictError，由调用方重新读取后重试。
"""

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Protocol

from tekriders_api.models.enums import IdentifierType


def utc_now() -> datetime:
    """返回当前 UTC 时间。"""
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class Credential:
    """与存储后端无关的账号凭据快照。"""

    id: str
    revision: str
    email: str | None
    phone: str | None
    password_hash: str
    role: str
    display_name: str | None = None
    reset_token: str | None = None
    # 毫秒时间戳，与 reset_token 同时存在或同时为空。
    reset_token_expiry: int | None = None
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)

    def __post_init__(self) -> None:
        if not self.email and not self.phone:
            raise ValueError("credential requires an email or a phone")
        if (self.reset_token is None) != (self.reset_token_expiry is None):
            raise ValueError("reset_token and reset_token_expiry must be set together")

    def with_reset_token(self, token: str, expiry_ms: int) -> "Credential":
        """返回写入重置令牌后的副本。"""
        return replace(self, reset_token=token, reset_token_expiry=expiry_ms)

    def with_password(self, password_hash: str) -> "Credential":
        """返回更换口令并消费重置令牌后的副本。"""
        return replace(self, password_hash=password_hash, reset_token=None, reset_token_expiry=None)

    def identifier(self, identifier_type: IdentifierType) -> str | None:
        """按类型返回身份标识。"""
        return self.email if identifier_type == IdentifierType.EMAIL else self.phone


class CredentialStore(Protocol):
    """凭据存储协议。"""

    backend: str

    def find_by(self, identifier_type: IdentifierType, value: str) -> Credential | None:
        """按邮箱或手机号精确查找。"""
        ...

    def get(self, credential_id: str) -> Credential | None:
        """按 ID 读取最新版本。"""
        ...

    def insert(self, credential: Credential) -> Credential:
        """插入新凭据，返回带存储分配版本号的快照。"""
        ...

    def replace(self, credential: Credential) -> Credential:
        """以 credential.revision 为前置条件整体替换，成功后返回新版本快照。"""
        ...

    def ping(self) -> None:
        """探测存储是否可用，不可用时抛出异常。"""
        ...
