"""服务层能力导出集合。"""

from tekriders_api.services.auth import (
    INVALID_CREDENTIALS,
    INVALID_RESET_TOKEN,
    RESET_ACKNOWLEDGEMENT,
    AuthenticatedSession,
    AuthService,
    normalize_email,
    normalize_identifier,
    normalize_phone,
)
from tekriders_api.services.identity import ExternalIdentityVerifier, GoogleIdentityVerifier, VerifiedIdentity
from tekriders_api.services.locks import IdentityLock
from tekriders_api.services.mailer import MailDispatcher, OutboxMailDispatcher, SentMail, SmtpMailDispatcher
from tekriders_api.services.passwords import PasswordHasher
from tekriders_api.services.tokens import SessionToken, TokenIssuer

__all__ = [
    "INVALID_CREDENTIALS",
    "INVALID_RESET_TOKEN",
    "RESET_ACKNOWLEDGEMENT",
    "AuthService",
    "AuthenticatedSession",
    "normalize_email",
    "normalize_identifier",
    "normalize_phone",
    "ExternalIdentityVerifier",
    "GoogleIdentityVerifier",
    "VerifiedIdentity",
    "IdentityLock",
    "MailDispatcher",
    "OutboxMailDispatcher",
    "SentMail",
    "SmtpMailDispatcher",
    "PasswordHasher",
    "SessionToken",
    "TokenIssuer",
]
