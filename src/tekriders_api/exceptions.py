"""应用异常处理注册。"""

import logging

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException

from tekriders_api.core.logging import log_event
from tekriders_api.errors import AuthServiceError
from tekriders_api.utils.response import DEFAULT_ERROR_MESSAGE, error_payload

logger = logging.getLogger("tekriders_api.exceptions")


def _default_http_error_code(status_code: int) -> str:
    if status_code == status.HTTP_400_BAD_REQUEST:
        return "VALIDATION_ERROR"
    if status_code == status.HTTP_401_UNAUTHORIZED:
        return "UNAUTHORIZED"
    if status_code == status.HTTP_403_FORBIDDEN:
        return "FORBIDDEN"
    if status_code == status.HTTP_404_NOT_FOUND:
        return "NOT_FOUND"
    if status_code == status.HTTP_405_METHOD_NOT_ALLOWED:
        return "METHOD_NOT_ALLOWED"
    if status_code == status.HTTP_409_CONFLICT:
        return "CONFLICT"
    return "HTTP_ERROR"


def _default_http_message(status_code: int) -> str:
    if status_code == status.HTTP_400_BAD_REQUEST:
        return "Invalid request."
    if status_code == status.HTTP_401_UNAUTHORIZED:
        return "Not signed in or session expired."
    if status_code == status.HTTP_403_FORBIDDEN:
        return "Access denied."
    if status_code == status.HTTP_404_NOT_FOUND:
        return "Resource not found."
    if status_code == status.HTTP_409_CONFLICT:
        return "Request conflicts with the current state."
    return "Request failed."


def _parse_http_detail(detail: object, status_code: int) -> tuple[str, str]:
    code = _default_http_error_code(status_code)
    message = _default_http_message(status_code)
    if isinstance(detail, dict):
        return str(detail.get("code") or code), str(detail.get("message") or message)
    if isinstance(detail, str) and detail.strip().lower() not in {"unauthorized", "not found"}:
        return code, detail
    return code, message


async def auth_error_handler(request: Request, exc: AuthServiceError):
    """将认证领域异常转换为稳定的错误码与文案。"""
    if exc.status_code >= status.HTTP_500_INTERNAL_SERVER_ERROR:
        log_event(
            logger,
            "request failed",
            level=logging.ERROR,
            method=request.method,
            path=request.url.path,
            status_code=exc.status_code,
            outcome=exc.code,
        )
    return JSONResponse(
        status_code=exc.status_code,
        content=error_payload(exc.code, exc.message, exc.details),
    )


async def http_exception_handler(request: Request, exc: HTTPException):
    """将协议异常统一包装为标准错误结构。"""
    code, message = _parse_http_detail(exc.detail, exc.status_code)
    return JSONResponse(
        status_code=exc.status_code,
        content=error_payload(code, message),
        headers=getattr(exc, "headers", None),
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """统一处理请求体结构错误，只回传字段路径与原因，不回显输入值。"""
    normalized_errors = [
        {
            "field": ".".join(str(item) for item in err.get("loc", []) if item != "body"),
            "message": err.get("msg"),
            "type": err.get("type"),
        }
        for err in exc.errors()
    ]
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=error_payload("VALIDATION_ERROR", "Invalid request.", {"errors": normalized_errors}),
    )


async def unexpected_exception_handler(request: Request, exc: Exception):
    """处理未捕获异常，避免内部细节泄露。"""
    logger.exception("unhandled error method=%s path=%s", request.method, request.url.path)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=error_payload("INTERNAL_ERROR", DEFAULT_ERROR_MESSAGE),
    )


def register_exception_handlers(app: FastAPI) -> None:
    """集中注册异常处理器。"""
    app.exception_handler(AuthServiceError)(auth_error_handler)
    app.exception_handler(HTTPException)(http_exception_handler)
    app.exception_handler(RequestValidationError)(validation_exception_handler)
    app.exception_handler(Exception)(unexpected_exception_handler)
