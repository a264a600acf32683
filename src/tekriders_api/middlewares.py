"""应用中间件注册。"""

import logging
from time import perf_counter
import uuid

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from tekriders_api.core.logging import log_event

logger = logging.getLogger("tekriders_api.access")


async def request_id_middleware(request: Request, call_next):
    """注入请求追踪 ID，通过响应头返回，并输出一条不含请求体的访问日志。"""
    request.state.request_id = str(uuid.uuid4())
    request.state.request_started_at = perf_counter()
    response = await call_next(request)
    elapsed_ms = round((perf_counter() - request.state.request_started_at) * 1000, 2)
    response.headers["X-Request-Id"] = request.state.request_id
    response.headers["X-Process-Time-Ms"] = str(elapsed_ms)
    log_event(
        logger,
        "request",
        request_id=request.state.request_id,
        method=request.method,
        path=request.url.path,
        status_code=response.status_code,
        elapsed_ms=elapsed_ms,
    )
    return response


def register_middlewares(app: FastAPI, *, cors_origins: list[str]) -> None:
    """集中注册中间件。"""
    app.middleware("http")(request_id_middleware)
    if cors_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=cors_origins,
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
            expose_headers=["X-Request-Id"],
        )
