"""健康检查接口。"""

from fastapi import APIRouter, Depends, status

from tekriders_api.dependencies import get_credential_store
from tekriders_api.schemas.common import ErrorResponse, MessageResponse
from tekriders_api.stores.base import CredentialStore

router = APIRouter(prefix="/health", tags=["health"])


@router.get(
    "/live",
    summary="存活探针",
    description="用于容器编排系统检测服务进程是否存活。",
    status_code=status.HTTP_200_OK,
    response_model=MessageResponse,
    responses={500: {"model": ErrorResponse}},
)
def live():
    """仅表示进程存活，不校验外部依赖。"""
    return MessageResponse(message="ok")


@router.get(
    "/ready",
    summary="就绪探针",
    description="通过凭据存储连通性检测服务是否具备对外提供能力。",
    status_code=status.HTTP_200_OK,
    response_model=MessageResponse,
    responses={500: {"model": ErrorResponse}},
)
def ready(store: CredentialStore = Depends(get_credential_store)):
    """执行一次轻量探活验证存储可用。"""
    store.ping()
    return MessageResponse(message="ready")
