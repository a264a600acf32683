"""认证接口请求与响应结构。

请求字段均允许缺省，缺失与空值由认证服务统一返回 VALIDATION_ERROR。
"""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from tekriders_api.schemas.common import BaseSchema


class _CamelRequest(BaseModel):
    """同时接受 camelCase 与 snake_case 字段名。"""

    model_config = ConfigDict(populate_by_name=True)


class RegisterRequest(_CamelRequest):
    """本地账号注册请求。"""

    email: str | None = Field(default=None, max_length=256, description="登录邮箱。", examples=["a@x.com"])
    phone: str | None = Field(default=None, max_length=32, description="登录手机号。", examples=["+251 911 234 567"])
    password: str | None = Field(default=None, max_length=128, description="登录密码。", examples=["secret1"])
    role: str | None = Field(default=None, description="账号角色（student/instructor）。", examples=["student"])


class LoginRequest(_CamelRequest):
    """本地账号登录请求。"""

    identifier: str | None = Field(default=None, max_length=256, description="邮箱或手机号。", examples=["a@x.com"])
    identifier_type: str | None = Field(
        default=None, alias="identifierType", description="标识类型（email/phone）。", examples=["email"]
    )
    password: str | None = Field(default=None, max_length=128, description="登录密码。", examples=["secret1"])


class ForgotPasswordRequest(_CamelRequest):
    """找回密码请求。"""

    identifier: str | None = Field(default=None, max_length=256, description="邮箱或手机号。", examples=["a@x.com"])
    identifier_type: str | None = Field(
        default=None, alias="identifierType", description="标识类型（email/phone）。", examples=["email"]
    )


class ResetPasswordRequest(_CamelRequest):
    """重置密码请求。"""

    email: str | None = Field(default=None, max_length=256, description="账号邮箱。")
    token: str | None = Field(default=None, max_length=256, description="邮件中的重置令牌。")
    password: str | None = Field(default=None, max_length=128, description="新密码。")


class ExternalLoginRequest(_CamelRequest):
    """外部身份登录请求。"""

    id_token: str = Field(alias="idToken", min_length=1, description="提供方签发的 ID Token。")
    role: str | None = Field(default=None, description="首次登录建号时使用的角色，默认 student。")


class UserView(BaseSchema):
    """对外展示的账号信息，不含口令哈希。"""

    id: str = Field(description="凭据 ID。")
    email: str | None = Field(description="邮箱。")
    phone: str | None = Field(description="手机号。")
    role: str = Field(description="账号角色。")


class RegisterResponse(BaseSchema):
    """注册结果结构。"""

    message: str = Field(description="提示信息。")
    user: UserView = Field(description="新建账号。")


class LoginResponse(BaseSchema):
    """登录结果结构。"""

    token: str = Field(description="Bearer 会话令牌。")
    token_type: str = Field(default="bearer", description="令牌类型。")
    expires_at: datetime = Field(description="令牌过期时间（UTC）。")
    user: UserView = Field(description="当前账号。")


class MeResponse(UserView):
    """当前会话主体。"""

    expires_at: datetime = Field(description="会话过期时间（UTC）。")
