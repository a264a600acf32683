"""认证领域异常。

每个异常携带机器可识别错误码与 HTTP 状态码，由 exceptions 模块统一转换为响应。
"""

from fastapi import status


class AuthServiceError(Exception):
    """认证服务异常基类。"""

    code = "AUTH_ERROR"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message = "Request failed."

    def __init__(self, message: str | None = None, *, details: dict | None = None) -> None:
        self.message = message or self.default_message
        self.details = details
        super().__init__(self.message)


class ValidationError(AuthServiceError):
    """请求参数缺失、非法或不一致，客户端可修正。"""

    code = "VALIDATION_ERROR"
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Invalid request."


class ConflictError(AuthServiceError):
    """身份标识已被占用。"""

    code = "CONFLICT"
    status_code = status.HTTP_409_CONFLICT
    default_message = "Identity already exists."


class AuthenticationError(AuthServiceError):
    """身份标识或口令不匹配，文案统一以避免账号枚举。"""

    code = "AUTHENTICATION_FAILED"
    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "Invalid credentials."


class NotFoundError(AuthServiceError):
    """找回密码的目标账号不存在（仅在显式开启时对外暴露）。"""

    code = "NOT_FOUND"
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "No user found with that identifier."


class DeliveryError(AuthServiceError):
    """邮件投递失败，重置令牌已落库，可重新发起找回密码。"""

    code = "DELIVERY_FAILED"
    status_code = status.HTTP_502_BAD_GATEWAY
    default_message = "Failed to deliver the password reset email."


class WriteConflictError(AuthServiceError):
    """乐观并发写入的版本号不匹配。"""

    code = "WRITE_CONFLICT"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message = "The record was modified concurrently, please retry."
