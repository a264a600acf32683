"""关系库凭据存储的引擎与会话。

仅在 credential_store_backend=sql 时被请求链路使用；couchdb 后端不会打开会话。
"""

from collections.abc import Generator

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from tekriders_api.core.config import get_settings

settings = get_settings()

# 凭据库引擎，连接预检查避免数据库重启后首个登录请求失败。
engine = create_engine(settings.database_url, future=True, pool_pre_ping=True)

# 凭据写入由 SqlCredentialStore 逐次提交，会话本身不自动刷新。
SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False, class_=Session)


def get_db() -> Generator[Session, None, None]:
    """为一次认证请求提供凭据库会话，请求结束即归还连接。"""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
