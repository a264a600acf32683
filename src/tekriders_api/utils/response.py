"""统一错误响应结构工具。"""

from typing import Any

DEFAULT_ERROR_MESSAGE = "Internal server error."


def error_payload(code: str, message: str, details: dict[str, Any] | None = None) -> dict[str, Any]:
    """构造统一错误响应结构。

    不写入时间戳或请求 ID，同类失败返回逐字节一致的响应体。
    """
    payload: dict[str, Any] = {"code": code, "message": message}
    if details:
        payload["details"] = details
    return payload
