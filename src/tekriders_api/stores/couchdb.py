"""基于 CouchDB 文档接口的凭据存储。

文档字段沿用既有 users 库的命名（password、resetToken、resetTokenExpiry、createdAt），
以便与前端课程服务共用同一个数据库。
"""

from dataclasses import replace
from datetime import datetime
import logging
from typing import Any

import httpx
from fastapi import status

from tekriders_api.errors import ConflictError, WriteConflictError
from tekriders_api.models.enums import IdentifierType
from tekriders_api.stores.base import Credential, utc_now

logger = logging.getLogger("tekriders_api.stores.couchdb")

# 与历史 setup 脚本保持一致的索引名称；设计文档与索引同名，便于 use_index 精确命中。
_INDEX_BY_FIELD = {
    IdentifierType.EMAIL: "email-index",
    IdentifierType.PHONE: "phone-index",
}


def _parse_datetime(value: Any) -> datetime:
    if isinstance(value, str) and value:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    return utc_now()


def _iso(value: datetime) -> str:
    return value.isoformat().replace("+00:00", "Z")


def _to_credential(doc: dict[str, Any]) -> Credential:
    return Credential(
        id=doc["_id"],
        revision=doc["_rev"],
        email=doc.get("email") or None,
        phone=doc.get("phone") or None,
        password_hash=doc["password"],
        role=doc.get("role") or "student",
        display_name=doc.get("displayName"),
        reset_token=doc.get("resetToken"),
        reset_token_expiry=doc.get("resetTokenExpiry"),
        created_at=_parse_datetime(doc.get("createdAt")),
        updated_at=_parse_datetime(doc.get("updatedAt") or doc.get("createdAt")),
    )


def _to_document(credential: Credential) -> dict[str, Any]:
    doc: dict[str, Any] = {
        "type": "user",
        "email": credential.email,
        "phone": credential.phone,
        "password": credential.password_hash,
        "role": credential.role,
        "createdAt": _iso(credential.created_at),
        "updatedAt": _iso(credential.updated_at),
    }
    if credential.display_name:
        doc["displayName"] = credential.display_name
    # 重置字段成对写入；缺省即表示无待使用令牌。
    if credential.reset_token is not None:
        doc["resetToken"] = credential.reset_token
        doc["resetTokenExpiry"] = credential.reset_token_expiry
    return doc


class CouchCredentialStore:
    """CouchDB 凭据存储，依赖文档 _rev 实现比较并替换。"""

    backend = "couchdb"

    def __init__(self, client: httpx.Client, database: str) -> None:
        self.client = client
        self.database = database

    def _path(self, suffix: str = "") -> str:
        return f"/{self.database}{suffix}"

    def ensure_ready(self) -> None:
        """确保数据库与邮箱、手机号索引存在。"""
        response = self.client.get(self._path())
        if response.status_code == status.HTTP_404_NOT_FOUND:
            logger.info("creating couchdb database name=%s", self.database)
            created = self.client.put(self._path())
            # 412 表示并发启动的其他实例已建库。
            if created.status_code != status.HTTP_412_PRECONDITION_FAILED:
                created.raise_for_status()
        else:
            response.raise_for_status()

        for identifier_type, index_name in _INDEX_BY_FIELD.items():
            self.client.post(
                self._path("/_index"),
                json={
                    "index": {"fields": [identifier_type.value]},
                    "ddoc": index_name,
                    "name": index_name,
                    "type": "json",
                },
            ).raise_for_status()

    def find_by(self, identifier_type: IdentifierType, value: str) -> Credential | None:
        """通过 Mango 查询按字段精确匹配。"""
        index_name = _INDEX_BY_FIELD[identifier_type]
        response = self.client.post(
            self._path("/_find"),
            json={
                "selector": {identifier_type.value: value},
                "use_index": [index_name, index_name],
                "limit": 1,
            },
        )
        response.raise_for_status()
        docs = response.json().get("docs") or []
        return _to_credential(docs[0]) if docs else None

    def get(self, credential_id: str) -> Credential | None:
        """按文档 ID 读取最新版本。"""
        response = self.client.get(self._path(f"/{credential_id}"))
        if response.status_code == status.HTTP_404_NOT_FOUND:
            return None
        response.raise_for_status()
        return _to_credential(response.json())

    def insert(self, credential: Credential) -> Credential:
        """以指定 ID 创建文档，ID 已存在时返回冲突。"""
        now = utc_now()
        stamped = replace(credential, created_at=now, updated_at=now)
        response = self.client.put(self._path(f"/{credential.id}"), json=_to_document(stamped))
        if response.status_code == status.HTTP_409_CONFLICT:
            raise ConflictError("Identity already exists.")
        response.raise_for_status()
        return replace(stamped, revision=response.json()["rev"])

    def replace(self, credential: Credential) -> Credential:
        """携带 _rev 写回文档，版本过期时 CouchDB 返回 409。

        同一文档还保存资料、选课等其他服务字段，因此只覆盖凭据相关字段。
        """
        current = self.client.get(self._path(f"/{credential.id}"))
        if current.status_code == status.HTTP_404_NOT_FOUND:
            raise WriteConflictError()
        current.raise_for_status()
        doc = current.json()
        if doc.get("_rev") != credential.revision:
            raise WriteConflictError()

        created_at = doc.get("createdAt")
        updated = replace(credential, updated_at=utc_now())
        doc.pop("resetToken", None)
        doc.pop("resetTokenExpiry", None)
        doc.update(_to_document(updated))
        if created_at:
            doc["createdAt"] = created_at
        response = self.client.put(self._path(f"/{credential.id}"), json=doc)
        if response.status_code == status.HTTP_409_CONFLICT:
            raise WriteConflictError()
        response.raise_for_status()
        return replace(updated, revision=response.json()["rev"])

    def ping(self) -> None:
        """读取数据库元信息验证可用。"""
        self.client.get(self._path()).raise_for_status()

    def close(self) -> None:
        """释放底层 HTTP 连接池。"""
        self.client.close()
