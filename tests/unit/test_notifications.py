from __future__ import annotations

import json
import smtplib

import httpx
import pytest

from assemblyvote.core.config import Settings, get_settings
from assemblyvote.services.notifications import (
    CompositeNotificationGateway,
    DispatchResult,
    LabsMobileSMSSender,
    SMTPEmailSender,
    dispatch_all,
    normalize_msisdn,
)


@pytest.fixture()
def configured_settings() -> Settings:
    return get_settings().model_copy(
        update={
            "sms_username": "labs-user",
            "sms_token": "labs-token",
            "smtp_username": "notifier@example.com",
            "smtp_password": "app-password",
        }
    )


class FakeSMTP:
    def __init__(self, *, fail: bool = False) -> None:
        self.fail = fail
        self.logins: list[tuple[str, str]] = []
        self.messages: list[tuple[str, list[str], str]] = []

    def __enter__(self) -> "FakeSMTP":
        return self

    def __exit__(self, *exc_info: object) -> None:
        return None

    def login(self, user: str, password: str) -> None:
        if self.fail:
            raise smtplib.SMTPAuthenticationError(535, b"bad credentials")
        self.logins.append((user, password))

    def sendmail(self, sender: str, recipients: list[str], message: str) -> None:
        self.messages.append((sender, recipients, message))


def test_normalize_msisdn() -> None:
    assert normalize_msisdn("300 111-2233") == "573001112233"
    assert normalize_msisdn("+57 (300) 111 2233") == "573001112233"
    assert normalize_msisdn("3001112233", "1") == "13001112233"
    assert normalize_msisdn("12345") == "12345"


def test_sms_sender_posts_to_provider(configured_settings: Settings) -> None:
    captured: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        captured.append(request)
        return httpx.Response(200, json={"code": "0", "message": "Message has been successfully sent"})

    sender = LabsMobileSMSSender(
        settings=configured_settings,
        client=httpx.Client(transport=httpx.MockTransport(handler)),
    )

    result = sender.send_sms("300 111 2233", "Su codigo de firma es 123456")

    assert result == DispatchResult(channel="sms", success=True)
    body = json.loads(captured[0].content)
    assert body["recipient"] == [{"msisdn": "573001112233"}]
    assert body["tpoa"] == "Aviso"
    assert captured[0].headers["authorization"].startswith("Basic ")


def test_sms_sender_reports_provider_rejection(configured_settings: Settings) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"code": 35, "message": "Insufficient credits"})

    sender = LabsMobileSMSSender(
        settings=configured_settings,
        client=httpx.Client(transport=httpx.MockTransport(handler)),
    )

    result = sender.send_sms("3001112233", "hola")

    assert not result.success
    assert result.error == "Insufficient credits"


def test_sms_sender_reports_http_errors(configured_settings: Settings) -> None:
    sender = LabsMobileSMSSender(
        settings=configured_settings,
        client=httpx.Client(transport=httpx.MockTransport(lambda request: httpx.Response(503))),
    )

    result = sender.send_sms("3001112233", "hola")

    assert not result.success
    assert "503" in result.error


def test_unconfigured_senders_are_mocked() -> None:
    settings = get_settings().model_copy(
        update={"sms_username": None, "sms_token": None, "smtp_username": None, "smtp_password": None}
    )

    def explode() -> FakeSMTP:
        raise AssertionError("smtp must not be contacted")

    email = SMTPEmailSender(settings=settings, smtp_factory=explode).send_email("a@example.com", "s", "<p>x</p>")
    sms = LabsMobileSMSSender(
        settings=settings,
        client=httpx.Client(transport=httpx.MockTransport(lambda request: httpx.Response(500))),
    ).send_sms("3001112233", "x")

    assert email.success and email.mocked
    assert sms.success and sms.mocked


def test_smtp_sender_sends_html(configured_settings: Settings) -> None:
    smtp = FakeSMTP()
    sender = SMTPEmailSender(settings=configured_settings, smtp_factory=lambda: smtp)

    result = sender.send_email("alice@example.com", "Codigo de verificacion", "<p>123456</p>")

    assert result.success and not result.mocked
    assert smtp.logins == [("notifier@example.com", "app-password")]
    sender_address, recipients, message = smtp.messages[0]
    assert recipients == ["alice@example.com"]
    assert "Subject: Codigo de verificacion" in message
    assert "text/html" in message


def test_smtp_sender_reports_failures(configured_settings: Settings) -> None:
    sender = SMTPEmailSender(settings=configured_settings, smtp_factory=lambda: FakeSMTP(fail=True))

    result = sender.send_email("alice@example.com", "s", "<p>x</p>")

    assert not result.success
    assert "bad credentials" in result.error


def test_dispatch_all_keeps_going_when_a_channel_raises() -> None:
    class FlakyGateway:
        def send_email(self, to: str, subject: str, html: str) -> DispatchResult:
            raise ConnectionError("relay unreachable")

        def send_sms(self, to: str, body: str) -> DispatchResult:
            return DispatchResult(channel="sms", success=True)

    report = dispatch_all(
        FlakyGateway(), email="a@example.com", subject="s", html="h", phone="3001112233", sms_body="b"
    )

    assert report.any_success
    assert report.delivered == ["sms"]
    assert report.errors == ["email: relay unreachable"]


def test_dispatch_all_skips_missing_channels(gateway) -> None:
    report = dispatch_all(gateway, email=None, subject="s", html="h", phone=None, sms_body="b")

    assert report.attempts == []
    assert not report.any_success


def test_composite_gateway_routes_by_channel(configured_settings: Settings) -> None:
    smtp = FakeSMTP()
    gateway = CompositeNotificationGateway(
        settings=configured_settings,
        email_sender=SMTPEmailSender(settings=configured_settings, smtp_factory=lambda: smtp),
        sms_sender=LabsMobileSMSSender(
            settings=configured_settings,
            client=httpx.Client(transport=httpx.MockTransport(lambda request: httpx.Response(200, json={"code": "0"}))),
        ),
    )

    assert gateway.send_email("bob@example.com", "s", "h").success
    assert gateway.send_sms("3004445566", "b").success
    assert smtp.messages[0][1] == ["bob@example.com"]
