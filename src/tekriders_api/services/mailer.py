"""邮件投递。

认证服务只依赖 send(to, subject, body) 契约：成功返回，失败抛出 DeliveryError。
"""

from dataclasses import dataclass
from email.message import EmailMessage
import logging
from typing import Protocol

import aiosmtplib

from tekriders_api.errors import DeliveryError

logger = logging.getLogger("tekriders_api.services.mailer")


class MailDispatcher(Protocol):
    """邮件投递协议。"""

    async def send(self, to: str, subject: str, body: str) -> None:
        """投递纯文本邮件，失败时抛出 DeliveryError。"""
        ...


class SmtpMailDispatcher:
    """通过 SMTP 异步投递邮件。"""

    def __init__(
        self,
        *,
        host: str,
        port: int,
        sender: str,
        username: str | None = None,
        password: str | None = None,
        start_tls: bool = True,
        timeout_seconds: float = 10.0,
    ) -> None:
        self.host = host
        self.port = port
        self.sender = sender
        self.username = username
        self.password = password
        self.start_tls = start_tls
        self.timeout_seconds = timeout_seconds

    async def send(self, to: str, subject: str, body: str) -> None:
        message = EmailMessage()
        message["From"] = self.sender
        message["To"] = to
        message["Subject"] = subject
        message.set_content(body)

        try:
            await aiosmtplib.send(
                message,
                hostname=self.host,
                port=self.port,
                username=self.username,
                password=self.password,
                start_tls=self.start_tls,
                timeout=self.timeout_seconds,
            )
        except (aiosmtplib.SMTPException, OSError) as exc:
            logger.error("smtp delivery failed host=%s error=%s", self.host, type(exc).__name__)
            raise DeliveryError() from exc
        logger.info("smtp delivery accepted host=%s", self.host)


@dataclass(frozen=True)
class SentMail:
    """已投递到本地发件箱的邮件。"""

    to: str
    subject: str
    body: str


class OutboxMailDispatcher:
    """进程内发件箱，供本地开发与测试读取已发送邮件。"""

    def __init__(self) -> None:
        self.outbox: list[SentMail] = []

    async def send(self, to: str, subject: str, body: str) -> None:
        self.outbox.append(SentMail(to=to, subject=subject, body=body))
        logger.info("mail stored in local outbox size=%s", len(self.outbox))
