"""认证相关模型。"""

from sqlalchemy import BigInteger, String
from sqlalchemy.orm import Mapped, mapped_column

from tekriders_api.models.base import Base, TimestampMixin
from tekriders_api.models.enums import UserRole


class UserCredential(Base, TimestampMixin):
    """账号凭据行，一个邮箱或手机号对应一行。"""

    __tablename__ = "user_credentials"

    # 不透明主键，创建后不可变。
    id: Mapped[str] = mapped_column(String(64), primary_key=True, comment="主键 ID。")
    # 乐观并发版本号，每次写入都会更换。
    revision: Mapped[str] = mapped_column(String(64), nullable=False)
    # 标准化后的邮箱，唯一索引兜底并发注册。
    email: Mapped[str | None] = mapped_column(String(256), unique=True, index=True)
    # 标准化后的手机号。
    phone: Mapped[str | None] = mapped_column(String(32), unique=True, index=True)
    # bcrypt 口令哈希，不存明文。
    password_hash: Mapped[str] = mapped_column(String(128), nullable=False)
    # 账号角色（student/instructor/admin）。
    role: Mapped[str] = mapped_column(String(32), nullable=False, default=UserRole.STUDENT)
    # 展示名，外部身份登录时写入。
    display_name: Mapped[str | None] = mapped_column(String(128))
    # 待使用的重置令牌，与过期时间同时存在或同时为空。
    reset_token: Mapped[str | None] = mapped_column(String(128))
    # 重置令牌过期时间（毫秒时间戳）。
    reset_token_expiry: Mapped[int | None] = mapped_column(BigInteger)
