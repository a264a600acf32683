"""ORM 模型导出集合。"""

from tekriders_api.models.auth import UserCredential
from tekriders_api.models.base import Base
from tekriders_api.models.enums import IdentifierType, UserRole

__all__ = ["Base", "IdentifierType", "UserCredential", "UserRole"]
