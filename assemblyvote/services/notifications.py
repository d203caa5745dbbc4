"""Outbound email and SMS delivery for OTP codes and proxy documents."""
from __future__ import annotations

import logging
import re
import smtplib
import ssl
from collections.abc import Callable
from dataclasses import dataclass, field
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import formataddr
from typing import Any, Protocol

import httpx

from assemblyvote.core.config import Settings, get_settings
from assemblyvote.obs import OTP_DISPATCH_COUNTER

logger = logging.getLogger(__name__)

_MSISDN_NOISE = re.compile(r"[\s+\-()]")


@dataclass(slots=True, frozen=True)
class DispatchResult:
    """Outcome of a single delivery attempt."""

    channel: str
    success: bool
    error: str | None = None
    mocked: bool = False


class NotificationGateway(Protocol):
    def send_email(self, to: str, subject: str, html: str) -> DispatchResult:
        ...

    def send_sms(self, to: str, body: str) -> DispatchResult:
        ...


def normalize_msisdn(phone: str, default_country_code: str = "57") -> str:
    """Strip formatting and prefix bare ten-digit national numbers."""
    digits = _MSISDN_NOISE.sub("", phone)
    if len(digits) == 10:
        return f"{default_country_code}{digits}"
    return digits


class SMTPEmailSender:
    """Sends HTML mail through an SMTP-over-SSL relay."""

    def __init__(
        self,
        *,
        settings: Settings | None = None,
        smtp_factory: Callable[[], Any] | None = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._smtp_factory = smtp_factory or self._default_factory

    def _default_factory(self) -> smtplib.SMTP_SSL:
        return smtplib.SMTP_SSL(
            self._settings.smtp_host,
            self._settings.smtp_port,
            context=ssl.create_default_context(),
            timeout=self._settings.smtp_timeout_seconds,
        )

    @property
    def configured(self) -> bool:
        return bool(self._settings.smtp_username and self._settings.smtp_password)

    def send_email(self, to: str, subject: str, html: str) -> DispatchResult:
        if not self.configured:
            logger.warning("smtp credentials missing; email not sent", extra={"subject": subject})
            return DispatchResult(channel="email", success=True, mocked=True)

        sender = self._settings.smtp_username or ""
        message = MIMEMultipart("alternative")
        message["Subject"] = subject
        message["From"] = formataddr((self._settings.smtp_sender_name, sender))
        message["To"] = to
        message.attach(MIMEText(html, "html", "utf-8"))

        try:
            with self._smtp_factory() as server:
                server.login(sender, self._settings.smtp_password or "")
                server.sendmail(sender, [to], message.as_string())
        except (smtplib.SMTPException, OSError) as exc:
            logger.error("email delivery failed", extra={"error": str(exc)})
            return DispatchResult(channel="email", success=False, error=str(exc))
        return DispatchResult(channel="email", success=True)


class LabsMobileSMSSender:
    """Sends SMS through the LabsMobile JSON API."""

    def __init__(self, *, settings: Settings | None = None, client: httpx.Client | None = None) -> None:
        self._settings = settings or get_settings()
        self._client = client or httpx.Client(timeout=self._settings.sms_timeout_seconds)

    @property
    def configured(self) -> bool:
        return bool(self._settings.sms_username and self._settings.sms_token)

    def close(self) -> None:
        self._client.close()

    def send_sms(self, to: str, body: str) -> DispatchResult:
        msisdn = normalize_msisdn(to, self._settings.sms_default_country_code)
        if not self.configured:
            logger.warning("sms credentials missing; message not sent", extra={"msisdn_tail": msisdn[-4:]})
            return DispatchResult(channel="sms", success=True, mocked=True)

        payload = {
            "message": body,
            "tpoa": self._settings.sms_sender_id,
            "recipient": [{"msisdn": msisdn}],
        }
        try:
            response = self._client.post(
                self._settings.sms_api_url,
                json=payload,
                auth=(self._settings.sms_username or "", self._settings.sms_token or ""),
            )
            response.raise_for_status()
            data = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            logger.error("sms delivery failed", extra={"error": str(exc)})
            return DispatchResult(channel="sms", success=False, error=str(exc))

        if str(data.get("code")) != "0":
            error = str(data.get("message") or f"provider code {data.get('code')}")
            logger.error("sms provider rejected message", extra={"error": error})
            return DispatchResult(channel="sms", success=False, error=error)
        return DispatchResult(channel="sms", success=True)


class CompositeNotificationGateway:
    """Gateway routing email and SMS to their dedicated senders."""

    def __init__(
        self,
        *,
        settings: Settings | None = None,
        email_sender: SMTPEmailSender | None = None,
        sms_sender: LabsMobileSMSSender | None = None,
    ) -> None:
        settings = settings or get_settings()
        self._email = email_sender or SMTPEmailSender(settings=settings)
        self._sms = sms_sender or LabsMobileSMSSender(settings=settings)

    def send_email(self, to: str, subject: str, html: str) -> DispatchResult:
        return self._email.send_email(to, subject, html)

    def send_sms(self, to: str, body: str) -> DispatchResult:
        return self._sms.send_sms(to, body)


@dataclass(slots=True)
class DispatchReport:
    attempts: list[DispatchResult] = field(default_factory=list)

    @property
    def any_success(self) -> bool:
        return any(attempt.success for attempt in self.attempts)

    @property
    def delivered(self) -> list[str]:
        return [attempt.channel for attempt in self.attempts if attempt.success]

    @property
    def errors(self) -> list[str]:
        return [f"{attempt.channel}: {attempt.error}" for attempt in self.attempts if not attempt.success]


def dispatch_all(
    gateway: NotificationGateway,
    *,
    email: str | None,
    subject: str,
    html: str,
    phone: str | None,
    sms_body: str,
) -> DispatchReport:
    """Try every available channel; one failing channel never stops the other."""

    report = DispatchReport()
    if email:
        report.attempts.append(_guarded("email", lambda: gateway.send_email(email, subject, html)))
    if phone:
        report.attempts.append(_guarded("sms", lambda: gateway.send_sms(phone, sms_body)))
    for attempt in report.attempts:
        outcome = "mocked" if attempt.mocked else ("sent" if attempt.success else "failed")
        OTP_DISPATCH_COUNTER.labels(channel=attempt.channel, outcome=outcome).inc()
    return report


def _guarded(channel: str, send: Callable[[], DispatchResult]) -> DispatchResult:
    try:
        return send()
    except Exception as exc:  # gateways report failures as results; this covers faulty adapters
        logger.exception("notification gateway raised", extra={"channel": channel})
        return DispatchResult(channel=channel, success=False, error=str(exc))


__all__ = [
    "CompositeNotificationGateway",
    "DispatchReport",
    "DispatchResult",
    "LabsMobileSMSSender",
    "NotificationGateway",
    "SMTPEmailSender",
    "dispatch_all",
    "normalize_msisdn",
]
