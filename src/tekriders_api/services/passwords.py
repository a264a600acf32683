"""口令哈希服务。"""

from functools import lru_cache
import logging
import secrets

import bcrypt

logger = logging.getLogger("tekriders_api.services.passwords")

# bcrypt 只使用前 72 字节，超出部分截断后参与哈希与校验。
_BCRYPT_MAX_BYTES = 72


def _encode(password: str) -> bytes:
    return password.encode("utf-8")[:_BCRYPT_MAX_BYTES]


@lru_cache
def _dummy_hash(rounds: int) -> bytes:
    """同成本因子的占位哈希，用于账号不存在时消耗等量校验时间。"""
    return bcrypt.hashpw(secrets.token_hex(16).encode("ascii"), bcrypt.gensalt(rounds=rounds))


class PasswordHasher:
    """bcrypt 自适应哈希，成本因子由配置注入。"""

    def __init__(self, rounds: int = 10) -> None:
        if rounds < 10:
            raise ValueError("bcrypt rounds must be at least 10")
        self.rounds = rounds

    def hash(self, password: str) -> str:
        """生成带随机盐的口令哈希。"""
        salt = bcrypt.gensalt(rounds=self.rounds)
        return bcrypt.hashpw(_encode(password), salt).decode("ascii")

    def verify(self, password: str, password_hash: str) -> bool:
        """校验口令是否匹配，哈希格式非法时视为不匹配。"""
        try:
            return bcrypt.checkpw(_encode(password), password_hash.encode("ascii"))
        except (ValueError, UnicodeEncodeError):
            logger.warning("stored password hash is malformed")
            return False

    def cost_of(self, password_hash: str) -> int | None:
        """读取哈希中的成本因子，格式非法时返回 None。"""
        parts = password_hash.split("$")
        if len(parts) < 4:
            return None
        try:
            return int(parts[2])
        except ValueError:
            return None

    def burn(self, password: str) -> None:
        """对占位哈希做一次校验，使“账号不存在”与“口令错误”耗时一致。"""
        bcrypt.checkpw(_encode(password), _dummy_hash(self.rounds))
