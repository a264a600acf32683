"""日志初始化与字段白名单事件日志。

认证链路只允许记录白名单字段，口令、哈希、令牌与请求体一律不落日志。
"""

import logging
from typing import Any

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"

ALLOWED_EVENT_FIELDS = frozenset(
    {
        "credential_id",
        "identifier_type",
        "role",
        "attempt",
        "outcome",
        "backend",
        "status_code",
        "method",
        "path",
        "elapsed_ms",
        "request_id",
        "provider",
    }
)


def setup_logging(level: str = "INFO") -> None:
    """初始化日志输出格式与级别。"""
    logging.basicConfig(level=level.upper(), format=LOG_FORMAT)


def safe_fields(fields: dict[str, Any]) -> dict[str, Any]:
    """过滤掉非白名单字段。"""
    return {key: value for key, value in fields.items() if key in ALLOWED_EVENT_FIELDS}


def log_event(logger: logging.Logger, event: str, *, level: int = logging.INFO, **fields: Any) -> None:
    """以 key=value 形式输出一条认证事件。"""
    allowed = safe_fields(fields)
    rendered = " ".join(f"{key}={allowed[key]}" for key in sorted(allowed))
    if rendered:
        logger.log(level, "%s %s", event, rendered)
    else:
        logger.log(level, "%s", event)
