"""注册互斥锁。

同一身份标识的注册请求需要串行执行，避免“先查重后插入”被并发穿透。
配置 Redis 时使用分布式锁，否则回退到进程内锁（仅保证单进程内互斥）。
"""

from collections.abc import Iterable, Iterator
from contextlib import ExitStack, contextmanager
import logging
from threading import Lock

from redis import Redis
from redis.exceptions import LockError, RedisError
from redis.lock import Lock as RedisLock

from tekriders_api.errors import ConflictError

logger = logging.getLogger("tekriders_api.services.locks")

_LOCAL_GUARD = Lock()
# key -> (锁对象, 当前持有/等待者数量)
_LOCAL_LOCKS: dict[str, tuple[Lock, int]] = {}


def _checkout_local(key: str) -> Lock:
    with _LOCAL_GUARD:
        lock, users = _LOCAL_LOCKS.get(key, (None, 0))
        if lock is None:
            lock = Lock()
        _LOCAL_LOCKS[key] = (lock, users + 1)
        return lock


def _checkin_local(key: str) -> None:
    with _LOCAL_GUARD:
        lock, users = _LOCAL_LOCKS[key]
        if users <= 1:
            _LOCAL_LOCKS.pop(key, None)
        else:
            _LOCAL_LOCKS[key] = (lock, users - 1)


class IdentityLock:
    """按标准化身份标识加锁。"""

    def __init__(
        self,
        *,
        redis_client: Redis | None = None,
        prefix: str = "auth:register:",
        wait_seconds: float = 5.0,
        ttl_seconds: float = 30.0,
    ) -> None:
        self.redis_client = redis_client
        self.prefix = prefix
        self.wait_seconds = wait_seconds
        self.ttl_seconds = ttl_seconds

    @contextmanager
    def _hold_local(self, key: str) -> Iterator[None]:
        lock = _checkout_local(key)
        try:
            if not lock.acquire(timeout=self.wait_seconds):
                raise ConflictError("Registration already in progress.")
            try:
                yield
            finally:
                lock.release()
        finally:
            _checkin_local(key)

    def _acquire_redis(self, key: str) -> RedisLock:
        lock = self.redis_client.lock(key, timeout=self.ttl_seconds, blocking_timeout=self.wait_seconds)
        if not lock.acquire():
            raise ConflictError("Registration already in progress.")
        return lock

    @contextmanager
    def _hold_one(self, key: str) -> Iterator[None]:
        redis_lock = None
        if self.redis_client is not None:
            try:
                redis_lock = self._acquire_redis(key)
            except RedisError:
                logger.warning("redis unavailable, falling back to local registration lock")

        if redis_lock is None:
            with self._hold_local(key):
                yield
            return

        try:
            yield
        finally:
            try:
                redis_lock.release()
            except (LockError, RedisError) as exc:
                # 锁过期或 Redis 断连都不能覆盖已提交的写入结果，唯一性仍由查重与唯一索引兜底。
                logger.warning("registration lock release failed key=%s error=%s", key, type(exc).__name__)

    @contextmanager
    def hold(self, identifiers: Iterable[str]) -> Iterator[None]:
        """按固定顺序获取全部标识的锁，避免交叉加锁导致死锁。"""
        keys = sorted({f"{self.prefix}{identifier}" for identifier in identifiers if identifier})
        with ExitStack() as stack:
            for key in keys:
                stack.enter_context(self._hold_one(key))
            yield
