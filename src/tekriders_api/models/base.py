"""凭据表的声明基类与时间戳字段。"""

from datetime import datetime

from sqlalchemy import DateTime, MetaData, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """凭据表声明基类。

    约束与索引名带上列名，SqlCredentialStore 据此区分邮箱与手机号的唯一冲突。
    """

    metadata = MetaData(
        naming_convention={
            "pk": "pk_%(table_name)s",
            "ix": "ix_%(table_name)s_%(column_0_name)s",
            "uq": "uk_%(table_name)s_%(column_0_name)s",
            "ck": "ck_%(table_name)s_%(constraint_name)s",
        }
    )


class TimestampMixin:
    # 注册时写入，之后任何重置或改密都不修改。
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False, comment="注册时间。"
    )
    # 每次比较并交换写入成功时由存储层显式刷新。
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
        comment="凭据最后写入时间。",
    )
