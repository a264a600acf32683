from collections.abc import Generator
import re

import jwt
import pytest
from fastapi.testclient import TestClient

from tekriders_api.core.config import get_settings
from tekriders_api.db.session import get_db
from tekriders_api.dependencies import get_google_verifier, get_mailer
from tekriders_api.errors import AuthenticationError, DeliveryError
from tekriders_api.main import app
from tekriders_api.models.enums import IdentifierType
from tekriders_api.services.identity import VerifiedIdentity
from tekriders_api.services.mailer import OutboxMailDispatcher
from tekriders_api.stores.sql import SqlCredentialStore

from conftest import TEST_JWT_SECRET


class FakeGoogleVerifier:
    provider = "google"

    def verify(self, provider_token: str) -> VerifiedIdentity:
        if provider_token != "good-google-token":
            raise AuthenticationError("Identity provider rejected the token.")
        return VerifiedIdentity(provider="google", subject="g-42", email="G@X.com", display_name="Gee")


class FailingMailer:
    async def send(self, to: str, subject: str, body: str) -> None:
        raise DeliveryError()


@pytest.fixture
def api_outbox() -> OutboxMailDispatcher:
    return OutboxMailDispatcher()


@pytest.fixture
def api_client(monkeypatch: pytest.MonkeyPatch, session_factory, api_outbox) -> Generator[TestClient, None, None]:
    monkeypatch.setenv("TR_AUTH_JWT_SECRET", TEST_JWT_SECRET)
    monkeypatch.setenv("TR_AUTH_JWT_ALGORITHMS", "HS256")
    monkeypatch.setenv("TR_CREDENTIAL_STORE_BACKEND", "sql")
    monkeypatch.delenv("TR_GOOGLE_CLIENT_ID", raising=False)
    monkeypatch.delenv("TR_AUTH_REVEAL_UNKNOWN_RESET_IDENTITY", raising=False)
    get_settings.cache_clear()
    app.dependency_overrides.clear()

    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_mailer] = lambda: api_outbox
    with TestClient(app) as client:
        yield client
    app.dependency_overrides.clear()
    get_settings.cache_clear()


@pytest.fixture
def store(db_session) -> SqlCredentialStore:
    return SqlCredentialStore(db_session)


def _register(client: TestClient, **overrides):
    payload = {"email": "a@x.com", "password": "secret1", "role": "student"}
    payload.update(overrides)
    return client.post("/api/auth/register", json=payload)


def _login(client: TestClient, password: str, identifier: str = "a@x.com", identifier_type: str = "email"):
    return client.post(
        "/api/auth/login",
        json={"identifier": identifier, "identifierType": identifier_type, "password": password},
    )


def _reset_token_from(outbox: OutboxMailDispatcher) -> str:
    match = re.search(r"token=([0-9a-f]+)", outbox.outbox[-1].body)
    assert match
    return match.group(1)


def test_auth_reference_scenario(api_client: TestClient, api_outbox, store):
    """注册 → 登录 → 找回 → 错误令牌 → 过期令牌 → 正确重置 → 新旧口令登录。"""
    register_resp = _register(api_client)
    assert register_resp.status_code == 201
    assert register_resp.json()["message"] == "User registered successfully."
    assert register_resp.json()["user"]["email"] == "a@x.com"
    assert "password" not in register_resp.text

    login_resp = _login(api_client, "secret1")
    assert login_resp.status_code == 200
    body = login_resp.json()
    claims = jwt.decode(body["token"], TEST_JWT_SECRET, algorithms=["HS256"], issuer="tekriders")
    assert claims["role"] == "student"
    assert body["user"] == {"id": claims["id"], "email": "a@x.com", "phone": None, "role": "student"}

    wrong_resp = _login(api_client, "wrong")
    assert wrong_resp.status_code == 401
    assert wrong_resp.json()["message"] == "Invalid credentials."

    forgot_resp = api_client.post(
        "/api/auth/forgot-password", json={"identifier": "a@x.com", "identifierType": "email"}
    )
    assert forgot_resp.status_code == 200
    stored = store.find_by(IdentifierType.EMAIL, "a@x.com")
    assert stored.reset_token is not None
    assert stored.reset_token_expiry is not None
    token = _reset_token_from(api_outbox)
    assert token == stored.reset_token

    bad_token_resp = api_client.post(
        "/api/auth/reset-password", json={"email": "a@x.com", "token": "0" * 64, "password": "secret2"}
    )
    assert bad_token_resp.status_code == 400

    # 模拟时钟偏移：把到期时间拨到过去。
    store.replace(stored.with_reset_token(token, stored.reset_token_expiry - 3600 * 1000 - 1))
    expired_resp = api_client.post(
        "/api/auth/reset-password", json={"email": "a@x.com", "token": token, "password": "secret2"}
    )
    assert expired_resp.status_code == 400
    assert expired_resp.content == bad_token_resp.content

    api_client.post("/api/auth/forgot-password", json={"identifier": "a@x.com", "identifierType": "email"})
    fresh_token = _reset_token_from(api_outbox)
    reset_resp = api_client.post(
        "/api/auth/reset-password", json={"email": "a@x.com", "token": fresh_token, "password": "secret2"}
    )
    assert reset_resp.status_code == 200
    assert reset_resp.json() == {"message": "Password has been reset successfully."}

    assert _login(api_client, "secret1").status_code == 401
    assert _login(api_client, "secret2").status_code == 200


def test_login_failures_are_byte_identical(api_client: TestClient):
    _register(api_client)

    unknown = _login(api_client, "secret1", identifier="nobody@x.com")
    wrong = _login(api_client, "wrong")

    assert unknown.status_code == wrong.status_code == 401
    assert unknown.content == wrong.content
    assert unknown.json() == {"code": "AUTHENTICATION_FAILED", "message": "Invalid credentials."}
    assert unknown.headers["X-Request-Id"] != wrong.headers["X-Request-Id"]


def test_register_conflict_and_validation(api_client: TestClient):
    assert _register(api_client).status_code == 201

    duplicate = _register(api_client, email=" A@X.COM ")
    assert duplicate.status_code == 409
    assert duplicate.json() == {"code": "CONFLICT", "message": "Email already exists."}

    admin = _register(api_client, email="b@x.com", role="admin")
    assert admin.status_code == 400
    assert admin.json()["code"] == "VALIDATION_ERROR"

    missing = api_client.post("/api/auth/register", json={"password": "secret1", "role": "student"})
    assert missing.status_code == 400
    assert missing.json()["message"] == "Email or phone is required."


def test_malformed_body_maps_to_validation_error(api_client: TestClient):
    resp = api_client.post("/api/auth/register", json={"email": 123, "password": "secret1", "role": "student"})

    assert resp.status_code == 400
    payload = resp.json()
    assert payload["code"] == "VALIDATION_ERROR"
    assert payload["details"]["errors"][0]["field"] == "email"
    assert "123" not in resp.text


def test_register_and_login_with_phone(api_client: TestClient):
    resp = api_client.post(
        "/api/auth/register", json={"phone": "+251 911-234-567", "password": "secret1", "role": "instructor"}
    )
    assert resp.status_code == 201
    assert resp.json()["user"]["phone"] == "+251911234567"

    login_resp = _login(api_client, "secret1", identifier="+251911234567", identifier_type="phone")
    assert login_resp.status_code == 200
    assert login_resp.json()["user"]["role"] == "instructor"


def test_forgot_password_unknown_identity_matches_known(api_client: TestClient, api_outbox):
    _register(api_client)

    known = api_client.post("/api/auth/forgot-password", json={"identifier": "a@x.com", "identifierType": "email"})
    unknown = api_client.post(
        "/api/auth/forgot-password", json={"identifier": "ghost@x.com", "identifierType": "email"}
    )

    assert known.status_code == unknown.status_code == 200
    assert known.content == unknown.content
    assert len(api_outbox.outbox) == 1


def test_forgot_password_can_reveal_unknown_identity(api_client: TestClient, monkeypatch):
    monkeypatch.setenv("TR_AUTH_REVEAL_UNKNOWN_RESET_IDENTITY", "true")
    get_settings.cache_clear()

    resp = api_client.post("/api/auth/forgot-password", json={"identifier": "ghost@x.com", "identifierType": "email"})

    assert resp.status_code == 404
    assert resp.json()["code"] == "NOT_FOUND"


def test_forgot_password_delivery_failure(api_client: TestClient, store):
    _register(api_client)
    app.dependency_overrides[get_mailer] = lambda: FailingMailer()

    resp = api_client.post("/api/auth/forgot-password", json={"identifier": "a@x.com", "identifierType": "email"})

    assert resp.status_code == 502
    assert resp.json()["code"] == "DELIVERY_FAILED"
    assert store.find_by(IdentifierType.EMAIL, "a@x.com").reset_token is not None


def test_reset_token_cannot_be_replayed(api_client: TestClient, api_outbox):
    _register(api_client)
    api_client.post("/api/auth/forgot-password", json={"identifier": "a@x.com", "identifierType": "email"})
    token = _reset_token_from(api_outbox)
    payload = {"email": "a@x.com", "token": token, "password": "secret2"}

    assert api_client.post("/api/auth/reset-password", json=payload).status_code == 200
    replay = api_client.post("/api/auth/reset-password", json=payload)
    absent = api_client.post("/api/auth/reset-password", json={**payload, "token": "f" * 64})

    assert replay.status_code == 400
    assert replay.content == absent.content


def test_me_returns_session_claims(api_client: TestClient):
    _register(api_client)
    token = _login(api_client, "secret1").json()["token"]

    resp = api_client.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"})

    assert resp.status_code == 200
    assert resp.json()["email"] == "a@x.com"
    assert resp.json()["role"] == "student"


def test_me_rejects_missing_and_tampered_tokens(api_client: TestClient):
    _register(api_client)
    claims = jwt.decode(
        _login(api_client, "secret1").json()["token"], TEST_JWT_SECRET, algorithms=["HS256"], issuer="tekriders"
    )
    forged = jwt.encode(claims, "another-secret-key-at-least-32-bytes", algorithm="HS256")

    missing = api_client.get("/api/auth/me")
    tampered = api_client.get("/api/auth/me", headers={"Authorization": f"Bearer {forged}"})
    placeholder = api_client.get("/api/auth/me", headers={"Authorization": "Bearer {{token}}"})

    assert missing.status_code == tampered.status_code == placeholder.status_code == 401
    assert missing.json() == {"code": "UNAUTHORIZED", "message": "Not signed in or session expired."}
    assert tampered.json() == missing.json()
    assert placeholder.json()["code"] == "AUTH_TOKEN_PLACEHOLDER_NOT_RESOLVED"


def test_google_login_disabled_without_client_id(api_client: TestClient):
    resp = api_client.post("/api/auth/external/google", json={"idToken": "anything"})

    assert resp.status_code == 404
    assert resp.json()["code"] == "NOT_FOUND"


def test_google_login_creates_account_once(api_client: TestClient, store):
    app.dependency_overrides[get_google_verifier] = lambda: FakeGoogleVerifier()

    first = api_client.post("/api/auth/external/google", json={"idToken": "good-google-token", "role": "instructor"})
    second = api_client.post("/api/auth/external/google", json={"idToken": "good-google-token"})
    rejected = api_client.post("/api/auth/external/google", json={"idToken": "forged"})

    assert first.status_code == second.status_code == 200
    assert first.json()["user"]["id"] == second.json()["user"]["id"]
    assert first.json()["user"]["role"] == "instructor"
    assert store.find_by(IdentifierType.EMAIL, "g@x.com").display_name == "Gee"
    assert rejected.status_code == 401


def test_google_login_requires_token(api_client: TestClient):
    app.dependency_overrides[get_google_verifier] = lambda: FakeGoogleVerifier()

    resp = api_client.post("/api/auth/external/google", json={"idToken": ""})

    assert resp.status_code == 400
    assert resp.json()["code"] == "VALIDATION_ERROR"


def test_health_endpoints(api_client: TestClient):
    live = api_client.get("/api/health/live")
    ready = api_client.get("/api/health/ready")

    assert live.status_code == 200
    assert ready.status_code == 200
    assert ready.json() == {"message": "ready"}
    assert "X-Request-Id" in ready.headers
