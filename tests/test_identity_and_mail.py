import asyncio
import logging

import aiosmtplib
import pytest
from google.auth.exceptions import GoogleAuthError

from tekriders_api.core.logging import log_event, safe_fields
from tekriders_api.errors import AuthenticationError, DeliveryError
from tekriders_api.services import identity as identity_module
from tekriders_api.services.identity import GoogleIdentityVerifier
from tekriders_api.services.mailer import OutboxMailDispatcher, SmtpMailDispatcher


def _verifier() -> GoogleIdentityVerifier:
    return GoogleIdentityVerifier("client-123.apps.googleusercontent.com", request=object())


def test_google_verifier_returns_verified_identity(monkeypatch):
    seen = {}

    def fake_verify(token, request, audience):
        seen.update(token=token, audience=audience)
        return {
            "iss": "https://accounts.google.com",
            "sub": "1234567890",
            "email": "g@x.com",
            "email_verified": True,
            "name": "Gee",
        }

    monkeypatch.setattr(identity_module.id_token, "verify_oauth2_token", fake_verify)

    identity = _verifier().verify("google-id-token")

    assert seen == {"token": "google-id-token", "audience": "client-123.apps.googleusercontent.com"}
    assert identity.provider == "google"
    assert identity.subject == "1234567890"
    assert identity.email == "g@x.com"
    assert identity.display_name == "Gee"


@pytest.mark.parametrize("error", [ValueError("Token expired"), GoogleAuthError("bad certs")])
def test_google_verifier_maps_rejections(monkeypatch, error):
    def fake_verify(token, request, audience):
        raise error

    monkeypatch.setattr(identity_module.id_token, "verify_oauth2_token", fake_verify)

    with pytest.raises(AuthenticationError) as exc_info:
        _verifier().verify("google-id-token")
    assert exc_info.value.message == "Identity provider rejected the token."


@pytest.mark.parametrize(
    "claims",
    [
        {"iss": "accounts.google.com", "sub": "1", "email": "g@x.com", "email_verified": False},
        {"iss": "accounts.google.com", "sub": "1", "email_verified": True},
        {"iss": "https://evil.example.com", "sub": "1", "email": "g@x.com", "email_verified": True},
    ],
)
def test_google_verifier_requires_trusted_verified_email(monkeypatch, claims):
    monkeypatch.setattr(identity_module.id_token, "verify_oauth2_token", lambda token, request, audience: claims)

    with pytest.raises(AuthenticationError):
        _verifier().verify("google-id-token")


def test_smtp_dispatcher_sends_plain_text_message(monkeypatch):
    sent = {}

    async def fake_send(message, **kwargs):
        sent["message"] = message
        sent["kwargs"] = kwargs

    monkeypatch.setattr(aiosmtplib, "send", fake_send)
    dispatcher = SmtpMailDispatcher(host="smtp.test", port=2525, sender="no-reply@tekriders.test", start_tls=False)

    asyncio.run(dispatcher.send("a@x.com", "Reset your Tek Riders password", "link"))

    assert sent["message"]["To"] == "a@x.com"
    assert sent["message"]["From"] == "no-reply@tekriders.test"
    assert sent["message"].get_content().strip() == "link"
    assert sent["kwargs"]["hostname"] == "smtp.test"
    assert sent["kwargs"]["port"] == 2525


@pytest.mark.parametrize("error", [aiosmtplib.SMTPException("rejected"), ConnectionRefusedError()])
def test_smtp_dispatcher_failure_is_delivery_error(monkeypatch, error):
    async def fake_send(message, **kwargs):
        raise error

    monkeypatch.setattr(aiosmtplib, "send", fake_send)
    dispatcher = SmtpMailDispatcher(host="smtp.test", port=2525, sender="no-reply@tekriders.test")

    with pytest.raises(DeliveryError):
        asyncio.run(dispatcher.send("a@x.com", "subject", "body"))


def test_outbox_dispatcher_keeps_messages():
    outbox = OutboxMailDispatcher()

    asyncio.run(outbox.send("a@x.com", "subject", "body"))

    assert [(mail.to, mail.subject, mail.body) for mail in outbox.outbox] == [("a@x.com", "subject", "body")]


def test_log_event_drops_sensitive_fields(caplog):
    logger = logging.getLogger("tekriders_api.tests")

    with caplog.at_level(logging.INFO, logger="tekriders_api.tests"):
        log_event(
            logger,
            "login rejected",
            credential_id="cred-1",
            outcome="bad_password",
            password="secret1",
            password_hash="$2b$10$hash",
            token="abc",
        )

    assert caplog.messages == ["login rejected credential_id=cred-1 outcome=bad_password"]
    assert safe_fields({"email": "a@x.com", "role": "student"}) == {"role": "student"}
