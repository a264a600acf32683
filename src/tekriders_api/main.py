"""FastAPI 应用入口点。"""

from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI

from tekriders_api import __version__
from tekriders_api.api.router import api_router
from tekriders_api.core.config import get_settings
from tekriders_api.core.logging import log_event, setup_logging
from tekriders_api.db.base import init_schema
from tekriders_api.db.session import engine
from tekriders_api.dependencies import build_couch_store, build_identity_lock, build_mailer, use_couch_store
from tekriders_api.exceptions import register_exception_handlers
from tekriders_api.middlewares import register_middlewares

logger = logging.getLogger("tekriders_api.main")

settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """启动时准备存储，退出时释放长连接。"""
    if settings.credential_store_backend == "couchdb":
        app.state.couch_store.ensure_ready()
    elif settings.database_auto_create:
        init_schema(engine)
    log_event(logger, "service started", backend=settings.credential_store_backend)
    try:
        yield
    finally:
        if app.state.couch_store is not None:
            app.state.couch_store.close()


def create_app() -> FastAPI:
    """创建并配置 FastAPI 应用实例。"""
    setup_logging(settings.log_level)
    app = FastAPI(
        title=settings.app_name,
        version=__version__,
        debug=settings.app_debug,
        lifespan=lifespan,
        description=(
            "Tek Riders 认证服务接口。\n\n"
            "注册、登录、找回密码与重置密码；登录成功返回 Bearer 会话令牌。\n"
            "错误统一返回：`{code, message}`，请求追踪 ID 见 `X-Request-Id` 响应头。"
        ),
        openapi_tags=[
            {"name": "health", "description": "服务存活与就绪探针。"},
            {"name": "auth", "description": "账号注册、登录与密码重置。"},
        ],
    )

    app.state.mailer = build_mailer(settings)
    app.state.identity_lock = build_identity_lock(settings)
    app.state.couch_store = None
    if settings.credential_store_backend == "couchdb":
        app.state.couch_store = build_couch_store(settings)
        use_couch_store(app)

    register_middlewares(app, cors_origins=settings.cors_origins)
    register_exception_handlers(app)
    app.include_router(api_router, prefix=settings.api_prefix)
    return app


app = create_app()
