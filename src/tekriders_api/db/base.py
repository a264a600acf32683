"""数据库基础模型导出。

仅提供 Base 定义；建表由 init_schema 在启动时按需执行，生产环境建议交给迁移脚本。
"""

from sqlalchemy.engine import Engine

import tekriders_api.models  # noqa: F401
from tekriders_api.models.base import Base


def init_schema(bind: Engine) -> None:
    """创建缺失的数据表与索引。"""
    Base.metadata.create_all(bind=bind)


__all__ = ["Base", "init_schema"]
