"""会话令牌与重置令牌签发。"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
import secrets
from typing import Any

import jwt
from jwt import InvalidTokenError


@dataclass(frozen=True)
class SessionToken:
    """签发后的会话令牌。"""

    token: str
    expires_at: datetime
    claims: dict[str, Any]


class TokenIssuer:
    """签发与校验无状态会话令牌，并生成一次性重置令牌。"""

    def __init__(
        self,
        *,
        secret: str,
        algorithms: list[str],
        issuer: str,
        session_ttl: timedelta = timedelta(days=7),
        leeway_seconds: int = 30,
        reset_token_bytes: int = 32,
    ) -> None:
        if not algorithms:
            raise ValueError("at least one signing algorithm is required")
        if reset_token_bytes < 32:
            raise ValueError("reset tokens need at least 256 bits of entropy")
        self.secret = secret
        self.algorithms = algorithms
        self.issuer = issuer
        self.session_ttl = session_ttl
        self.leeway_seconds = leeway_seconds
        self.reset_token_bytes = reset_token_bytes

    def issue_session(
        self,
        *,
        credential_id: str,
        email: str | None,
        phone: str | None,
        role: str,
        now: datetime | None = None,
    ) -> SessionToken:
        """签发包含身份与角色声明的会话令牌。"""
        issued_at = now or datetime.now(timezone.utc)
        expires_at = issued_at + self.session_ttl
        claims: dict[str, Any] = {
            "sub": credential_id,
            "id": credential_id,
            "email": email,
            "phone": phone,
            "role": role,
            "iss": self.issuer,
            "iat": int(issued_at.timestamp()),
            "exp": int(expires_at.timestamp()),
        }
        token = jwt.encode(claims, self.secret, algorithm=self.algorithms[0])
        return SessionToken(token=token, expires_at=expires_at, claims=claims)

    def decode_session(self, token: str) -> dict[str, Any]:
        """校验签名、签发方与过期时间，失败时抛出 InvalidTokenError。"""
        claims = jwt.decode(
            token,
            key=self.secret,
            algorithms=self.algorithms,
            issuer=self.issuer,
            leeway=self.leeway_seconds,
            options={"require": ["exp", "iat", "sub"]},
        )
        if not claims.get("role"):
            raise InvalidTokenError("missing role claim")
        return claims

    def new_reset_token(self) -> str:
        """生成密码学安全的随机重置令牌。"""
        return secrets.token_hex(self.reset_token_bytes)
