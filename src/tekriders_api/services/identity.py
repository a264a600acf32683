"""外部身份提供方校验。

外部身份只向认证核心提供“已验证邮箱 + 展示名”，账号创建与会话签发复用本地逻辑。
"""

from dataclasses import dataclass
import logging
from typing import Protocol

from google.auth.exceptions import GoogleAuthError
from google.auth.transport import requests as google_requests
from google.oauth2 import id_token

from tekriders_api.errors import AuthenticationError

logger = logging.getLogger("tekriders_api.services.identity")

GOOGLE_ISSUERS = frozenset({"accounts.google.com", "https://accounts.google.com"})


@dataclass(frozen=True)
class VerifiedIdentity:
    """外部提供方确认过的身份。"""

    provider: str
    subject: str
    email: str
    display_name: str | None


class ExternalIdentityVerifier(Protocol):
    """外部身份校验协议。"""

    provider: str

    def verify(self, provider_token: str) -> VerifiedIdentity:
        """校验提供方令牌，失败时抛出 AuthenticationError。"""
        ...


class GoogleIdentityVerifier:
    """校验前端 Google 登录按钮返回的 ID Token。"""

    provider = "google"

    def __init__(self, client_id: str, request: google_requests.Request | None = None) -> None:
        self.client_id = client_id
        self.request = request or google_requests.Request()

    def verify(self, provider_token: str) -> VerifiedIdentity:
        try:
            claims = id_token.verify_oauth2_token(provider_token, self.request, self.client_id)
        except (ValueError, GoogleAuthError) as exc:
            logger.warning("google id token rejected error=%s", type(exc).__name__)
            raise AuthenticationError("Identity provider rejected the token.") from exc

        if claims.get("iss") not in GOOGLE_ISSUERS:
            raise AuthenticationError("Identity provider rejected the token.")
        email = claims.get("email")
        if not email or not claims.get("email_verified"):
            raise AuthenticationError("Identity provider did not return a verified email.")

        return VerifiedIdentity(
            provider=self.provider,
            subject=str(claims.get("sub") or ""),
            email=email,
            display_name=claims.get("name"),
        )
