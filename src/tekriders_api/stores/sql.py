"""基于 SQLAlchemy 的凭据存储。"""

from dataclasses import replace
from uuid import uuid4

from sqlalchemy import select, text, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from tekriders_api.errors import ConflictError, WriteConflictError
from tekriders_api.models.auth import UserCredential
from tekriders_api.models.enums import IdentifierType
from tekriders_api.stores.base import Credential, utc_now


def _to_credential(row: UserCredential) -> Credential:
    return Credential(
        id=row.id,
        revision=row.revision,
        email=row.email,
        phone=row.phone,
        password_hash=row.password_hash,
        role=row.role,
        display_name=row.display_name,
        reset_token=row.reset_token,
        reset_token_expiry=row.reset_token_expiry,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _conflict_from_integrity_error(exc: IntegrityError) -> ConflictError:
    """将唯一约束冲突映射为身份占用错误。"""
    if "phone" in str(exc.orig).lower():
        return ConflictError("Phone already exists.")
    return ConflictError("Email already exists.")


class SqlCredentialStore:
    """关系库凭据存储，每次写入独立提交。"""

    backend = "sql"

    def __init__(self, db: Session) -> None:
        self.db = db

    def find_by(self, identifier_type: IdentifierType, value: str) -> Credential | None:
        """按邮箱或手机号查找凭据。"""
        column = UserCredential.email if identifier_type == IdentifierType.EMAIL else UserCredential.phone
        row = (
            self.db.execute(select(UserCredential).where(column == value).execution_options(populate_existing=True))
            .scalars()
            .first()
        )
        return _to_credential(row) if row else None

    def get(self, credential_id: str) -> Credential | None:
        """读取最新版本，跳过会话内缓存。"""
        row = self.db.execute(
            select(UserCredential)
            .where(UserCredential.id == credential_id)
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        return _to_credential(row) if row else None

    def insert(self, credential: Credential) -> Credential:
        """插入新凭据，唯一索引冲突转换为 ConflictError。"""
        now = utc_now()
        revision = uuid4().hex
        self.db.add(
            UserCredential(
                id=credential.id,
                revision=revision,
                email=credential.email,
                phone=credential.phone,
                password_hash=credential.password_hash,
                role=credential.role,
                display_name=credential.display_name,
                reset_token=credential.reset_token,
                reset_token_expiry=credential.reset_token_expiry,
                created_at=now,
                updated_at=now,
            )
        )
        try:
            self.db.commit()
        except IntegrityError as exc:
            self.db.rollback()
            raise _conflict_from_integrity_error(exc) from exc
        return replace(credential, revision=revision, created_at=now, updated_at=now)

    def replace(self, credential: Credential) -> Credential:
        """以版本号为条件更新整行，命中 0 行即视为并发冲突。"""
        now = utc_now()
        revision = uuid4().hex
        try:
            result = self.db.execute(
                update(UserCredential)
                .where(UserCredential.id == credential.id)
                .where(UserCredential.revision == credential.revision)
                .values(
                    revision=revision,
                    email=credential.email,
                    phone=credential.phone,
                    password_hash=credential.password_hash,
                    role=credential.role,
                    display_name=credential.display_name,
                    reset_token=credential.reset_token,
                    reset_token_expiry=credential.reset_token_expiry,
                    updated_at=now,
                )
                .execution_options(synchronize_session=False)
            )
        except IntegrityError as exc:
            self.db.rollback()
            raise _conflict_from_integrity_error(exc) from exc

        if result.rowcount != 1:
            self.db.rollback()
            raise WriteConflictError()
        self.db.commit()
        return replace(credential, revision=revision, updated_at=now)

    def ping(self) -> None:
        """执行最小查询验证数据库可用。"""
        self.db.execute(text("select 1"))
