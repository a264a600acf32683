"""全局通用结构。

错误响应不包含时间戳与请求 ID（请求 ID 通过 X-Request-Id 响应头返回），
保证同类失败的响应体逐字节一致。
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class BaseSchema(BaseModel):
    """基础结构，开启对象映射能力。"""

    model_config = ConfigDict(from_attributes=True)


class ErrorResponse(BaseSchema):
    """统一错误响应。"""

    code: str = Field(description="机器可识别错误码。", examples=["AUTHENTICATION_FAILED"])
    message: str = Field(description="人类可读错误信息。", examples=["Invalid credentials."])
    details: dict[str, Any] | None = Field(default=None, description="可选字段级错误细节。")


class MessageResponse(BaseSchema):
    """仅包含提示信息的响应。"""

    message: str = Field(description="提示信息。")
