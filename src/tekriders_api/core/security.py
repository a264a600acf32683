"""认证头解析与会话令牌校验工具。"""

from dataclasses import dataclass
from datetime import datetime, timezone
import re
from typing import Any

from fastapi import HTTPException, status
from jwt import InvalidTokenError

from tekriders_api.services.tokens import TokenIssuer

UNAUTHORIZED = HTTPException(
    status_code=status.HTTP_401_UNAUTHORIZED,
    detail="unauthorized",
)
TOKEN_PLACEHOLDER_UNAUTHORIZED = HTTPException(
    status_code=status.HTTP_401_UNAUTHORIZED,
    detail={
        "code": "AUTH_TOKEN_PLACEHOLDER_NOT_RESOLVED",
        "message": "Authorization header still contains a variable placeholder instead of a real token.",
    },
)


@dataclass
class AuthenticatedPrincipal:
    """会话令牌解析出的认证主体。"""

    # 凭据 ID（sub / id 声明）。
    id: str
    # 可选邮箱。
    email: str | None
    # 可选手机号。
    phone: str | None
    # 账号角色。
    role: str
    # 令牌过期时间（UTC）。
    expires_at: datetime
    # 原始声明集，便于下游扩展。
    claims: dict[str, Any]


def _is_placeholder_token(token: str) -> bool:
    return ("{{" in token and "}}" in token) or ("${" in token and "}" in token)


def _extract_bearer_token(authorization: str | None) -> str:
    """从 Authorization 头中提取 Bearer token，兼容重复头被逗号拼接的场景。"""
    if not authorization:
        raise UNAUTHORIZED
    tokens = re.findall(r"Bearer\s+([^,\s]+)", authorization, flags=re.IGNORECASE)
    if not tokens:
        raise UNAUTHORIZED
    placeholder_seen = False
    for candidate in reversed(tokens):
        token = candidate.strip()
        if not token:
            continue
        if _is_placeholder_token(token):
            placeholder_seen = True
            continue
        return token
    if placeholder_seen:
        raise TOKEN_PLACEHOLDER_UNAUTHORIZED
    raise UNAUTHORIZED


def parse_authorization_header(authorization: str | None, tokens: TokenIssuer) -> AuthenticatedPrincipal:
    """解析认证头并返回认证主体，会话令牌无状态，不查询存储。"""
    token = _extract_bearer_token(authorization)
    try:
        claims = tokens.decode_session(token)
    except InvalidTokenError as exc:
        raise UNAUTHORIZED from exc

    subject = str(claims.get("id") or claims.get("sub") or "").strip()
    if not subject:
        raise UNAUTHORIZED

    email = claims.get("email")
    phone = claims.get("phone")
    return AuthenticatedPrincipal(
        id=subject,
        email=email if isinstance(email, str) else None,
        phone=phone if isinstance(phone, str) else None,
        role=str(claims["role"]),
        expires_at=datetime.fromtimestamp(int(claims["exp"]), tz=timezone.utc),
        claims=claims,
    )
