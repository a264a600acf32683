"""凭据存储实现导出。"""

from tekriders_api.stores.base import Credential, CredentialStore
from tekriders_api.stores.couchdb import CouchCredentialStore
from tekriders_api.stores.sql import SqlCredentialStore

__all__ = ["Credential", "CredentialStore", "CouchCredentialStore", "SqlCredentialStore"]
