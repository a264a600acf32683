from collections.abc import Generator
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

import tekriders_api.models  # noqa: F401
from tekriders_api.models.base import Base
from tekriders_api.services.auth import AuthService
from tekriders_api.services.locks import IdentityLock
from tekriders_api.services.mailer import OutboxMailDispatcher
from tekriders_api.services.passwords import PasswordHasher
from tekriders_api.services.tokens import TokenIssuer
from tekriders_api.stores.sql import SqlCredentialStore

TEST_JWT_SECRET = "unit-test-secret-key-at-least-32-bytes"
RESET_LINK_BASE = "http://localhost:5173/reset-password"


class FrozenClock:
    """可手动推进的测试时钟。"""

    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


@pytest.fixture
def sqlite_engine() -> Generator[Engine, None, None]:
    engine = create_engine(
        "sqlite+pysqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(sqlite_engine: Engine) -> sessionmaker:
    return sessionmaker(bind=sqlite_engine, autoflush=False, autocommit=False, class_=Session)


@pytest.fixture
def db_session(session_factory: sessionmaker) -> Generator[Session, None, None]:
    db = session_factory()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture
def sql_store(db_session: Session) -> SqlCredentialStore:
    return SqlCredentialStore(db_session)


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock(datetime.now(timezone.utc).replace(microsecond=0))


@pytest.fixture
def token_issuer() -> TokenIssuer:
    return TokenIssuer(secret=TEST_JWT_SECRET, algorithms=["HS256"], issuer="tekriders")


@pytest.fixture
def outbox() -> OutboxMailDispatcher:
    return OutboxMailDispatcher()


@pytest.fixture
def auth_service(sql_store, token_issuer, outbox, clock) -> AuthService:
    return AuthService(
        store=sql_store,
        hasher=PasswordHasher(rounds=10),
        tokens=token_issuer,
        mailer=outbox,
        identity_lock=IdentityLock(wait_seconds=0.05),
        reset_link_base=RESET_LINK_BASE,
        clock=clock,
    )
