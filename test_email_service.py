"""
Transactional email relay
"""
import requests

from supportdesk import config, email_service


class FakeResponse:
    def __init__(self, status_code, payload=None):
        self.status_code = status_code
        self._payload = payload or {}
        self.text = str(self._payload)

    def json(self):
        return self._payload


def test_send_email_without_api_key(monkeypatch):
    monkeypatch.setattr(config, "BREVO_API_KEY", "")

    def fail(*args, **kwargs):
        raise AssertionError("mail relay must not be called")

    monkeypatch.setattr(requests, "post", fail)
    assert email_service.send_email("a@example.com", "Hi", "<p>Hi</p>") is False


def test_send_email(monkeypatch):
    monkeypatch.setattr(config, "BREVO_API_KEY", "brevo-key")
    calls = []

    def fake_post(url, json=None, headers=None, timeout=None):
        calls.append({"url": url, "json": json, "headers": headers})
        return FakeResponse(201, {"messageId": "<abc@relay>"})

    monkeypatch.setattr(requests, "post", fake_post)
    assert email_service.send_otp_email("a@example.com", "123456", "password-reset") is True

    (call,) = calls
    assert call["url"] == config.BREVO_API_URL
    assert call["headers"]["api-key"] == "brevo-key"
    assert call["json"]["to"] == [{"email": "a@example.com"}]
    assert call["json"]["subject"] == "Password Reset - OTP Verification"
    assert "123456" in call["json"]["htmlContent"]


def test_send_email_rejected(monkeypatch):
    monkeypatch.setattr(config, "BREVO_API_KEY", "brevo-key")
    monkeypatch.setattr(requests, "post", lambda *args, **kwargs: FakeResponse(400, {"message": "bad sender"}))
    assert email_service.send_credentials_email("a@example.com", "Agent", "pw", "theft_unit") is False


def test_send_email_network_error(monkeypatch):
    monkeypatch.setattr(config, "BREVO_API_KEY", "brevo-key")

    def boom(*args, **kwargs):
        raise requests.ConnectionError("relay unreachable")

    monkeypatch.setattr(requests, "post", boom)
    assert email_service.send_email("a@example.com", "Hi", "<p>Hi</p>") is False
