"""认证接口。"""

from fastapi import APIRouter, Depends, status

from tekriders_api.core.security import AuthenticatedPrincipal
from tekriders_api.dependencies import get_auth_service, get_current_principal, get_google_verifier
from tekriders_api.schemas.auth import (
    ExternalLoginRequest,
    ForgotPasswordRequest,
    LoginRequest,
    LoginResponse,
    MeResponse,
    RegisterRequest,
    RegisterResponse,
    ResetPasswordRequest,
    UserView,
)
from tekriders_api.schemas.common import ErrorResponse, MessageResponse
from tekriders_api.services.auth import RESET_ACKNOWLEDGEMENT, AuthenticatedSession, AuthService
from tekriders_api.services.identity import ExternalIdentityVerifier

router = APIRouter(prefix="/auth", tags=["auth"])


def _login_response(result: AuthenticatedSession) -> LoginResponse:
    return LoginResponse(
        token=result.session.token,
        expires_at=result.session.expires_at,
        user=UserView.model_validate(result.credential),
    )


@router.post(
    "/register",
    summary="注册本地账号",
    description="使用邮箱或手机号创建账号凭据，注册不签发令牌，需要再调用登录接口。",
    status_code=status.HTTP_201_CREATED,
    response_model=RegisterResponse,
    responses={400: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
def register(payload: RegisterRequest, service: AuthService = Depends(get_auth_service)):
    """注册本地账号。"""
    credential = service.register(
        email=payload.email,
        phone=payload.phone,
        password=payload.password,
        role=payload.role,
    )
    return RegisterResponse(message="User registered successfully.", user=UserView.model_validate(credential))


@router.post(
    "/login",
    summary="账号登录",
    description="按邮箱或手机号校验口令，成功后签发 7 天有效的会话令牌。",
    response_model=LoginResponse,
    responses={400: {"model": ErrorResponse}, 401: {"model": ErrorResponse}},
)
def login(payload: LoginRequest, service: AuthService = Depends(get_auth_service)):
    """账号不存在与口令错误返回相同响应。"""
    result = service.login(
        identifier=payload.identifier,
        identifier_type=payload.identifier_type,
        password=payload.password,
    )
    return _login_response(result)


@router.post(
    "/forgot-password",
    summary="找回密码",
    description="生成一小时有效的重置令牌并发送重置链接邮件。",
    response_model=MessageResponse,
    responses={
        400: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        502: {"model": ErrorResponse},
    },
)
async def forgot_password(payload: ForgotPasswordRequest, service: AuthService = Depends(get_auth_service)):
    """默认对存在与不存在的账号返回同一提示。"""
    await service.forgot_password(identifier=payload.identifier, identifier_type=payload.identifier_type)
    return MessageResponse(message=RESET_ACKNOWLEDGEMENT)


@router.post(
    "/reset-password",
    summary="重置密码",
    description="消费重置令牌并设置新口令，令牌只能使用一次。",
    response_model=MessageResponse,
    responses={400: {"model": ErrorResponse}},
)
def reset_password(payload: ResetPasswordRequest, service: AuthService = Depends(get_auth_service)):
    service.reset_password(email=payload.email, token=payload.token, password=payload.password)
    return MessageResponse(message="Password has been reset successfully.")


@router.post(
    "/external/google",
    summary="Google 登录",
    description="校验 Google ID Token，首次登录自动建号，随后签发会话令牌。",
    response_model=LoginResponse,
    responses={
        400: {"model": ErrorResponse},
        401: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
    },
)
def login_with_google(
    payload: ExternalLoginRequest,
    verifier: ExternalIdentityVerifier = Depends(get_google_verifier),
    service: AuthService = Depends(get_auth_service),
):
    """外部身份登录。"""
    identity = verifier.verify(payload.id_token)
    return _login_response(service.login_with_external_identity(identity, role=payload.role))


@router.get(
    "/me",
    summary="当前会话",
    description="解析 Bearer 会话令牌并返回其中的账号信息，不查询存储。",
    response_model=MeResponse,
    responses={401: {"model": ErrorResponse}},
)
def me(principal: AuthenticatedPrincipal = Depends(get_current_principal)):
    return MeResponse(
        id=principal.id,
        email=principal.email,
        phone=principal.phone,
        role=principal.role,
        expires_at=principal.expires_at,
    )
