"""
Notification dispatch module.

Outbound channels (LINE Notify / Twilio SMS / FCM push / SendGrid email) share
one ``Notifier.send(message, **context)`` contract. A channel that cannot
deliver raises ``DeliveryError``. ``StubNotifier`` stands in whenever no
credentials are configured, so callers never need to know which channels are
live.

The log and threat-level stores do not import anything from here.
"""
import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Any, Optional

import aiosmtplib
import httpx

from bordersafety.core.config import Settings
from bordersafety.core.database import utcnow
from bordersafety.core.exceptions import DeliveryError

logger = logging.getLogger(__name__)

# Max attempts per channel in send_multi_channel
MAX_RETRIES = 3

LINE_NOTIFY_URL = "https://notify-api.line.me/api/notify"
TWILIO_MESSAGES_URL = "https://api.twilio.com/2010-04-01/Accounts/{sid}/Messages.json"
FCM_SEND_URL = "https://fcm.googleapis.com/fcm/send"

SMS_MAX_LENGTH = 160


@dataclass
class DeliveryResult:
    channel: str
    success: bool
    stub: bool = False
    response_code: Optional[int] = None
    error: Optional[str] = None
    attempts: int = 1

    def to_dict(self) -> dict:
        return {
            "channel": self.channel,
            "success": self.success,
            "stub": self.stub,
            "response_code": self.response_code,
            "error": self.error,
            "attempts": self.attempts,
        }


class Notifier(ABC):
    """Outbound notification channel."""

    channel: str = "notifier"

    @abstractmethod
    async def send(self, message: str, **context: Any) -> DeliveryResult:
        """
        Deliver ``message``.

        Raises:
            DeliveryError: the channel rejected the message or was unreachable.
        """


class HttpNotifier(Notifier):
    """Base for channels reached over HTTPS with httpx."""

    def __init__(self, timeout: float = 10.0, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.timeout = timeout
        self.transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout, transport=self.transport)

    async def _post(self, url: str, **kwargs: Any) -> DeliveryResult:
        try:
            async with self._client() as client:
                resp = await client.post(url, **kwargs)
        except httpx.HTTPError as exc:
            raise DeliveryError(f"{self.channel} request failed", detail=str(exc), channel=self.channel) from exc
        if not 200 <= resp.status_code < 300:
            # Client errors other than throttling are permanent
            permanent = 400 <= resp.status_code < 500 and resp.status_code != 429
            raise DeliveryError(
                f"{self.channel} responded with HTTP {resp.status_code}",
                detail=resp.text[:500],
                channel=self.channel,
                retryable=not permanent,
            )
        return DeliveryResult(channel=self.channel, success=True, response_code=resp.status_code)


# ---------------------------------------------------------------------------
# Stub
# ---------------------------------------------------------------------------

class StubNotifier(Notifier):
    """Logs instead of sending; keeps what it was asked to send."""

    channel = "stub"

    def __init__(self, channel: str = "stub"):
        self.channel = channel
        self.sent: list[tuple[str, dict]] = []

    async def send(self, message: str, **context: Any) -> DeliveryResult:
        self.sent.append((message, context))
        logger.info("[%s] Would send: %s", self.channel.upper(), message[:50])
        return DeliveryResult(channel=self.channel, success=True, stub=True)


# ---------------------------------------------------------------------------
# LINE Notify
# ---------------------------------------------------------------------------

class LineNotifyNotifier(HttpNotifier):
    channel = "line"

    def __init__(self, token: str, **kwargs: Any):
        super().__init__(**kwargs)
        self.token = token

    async def send(self, message: str, **context: Any) -> DeliveryResult:
        return await self._post(
            LINE_NOTIFY_URL,
            data={"message": message},
            headers={"Authorization": f"Bearer {self.token}"},
        )


# ---------------------------------------------------------------------------
# Twilio SMS
# ---------------------------------------------------------------------------

class SmsNotifier(HttpNotifier):
    channel = "sms"

    def __init__(
        self,
        account_sid: str,
        auth_token: str,
        from_number: str,
        to: Optional[str] = None,
        **kwargs: Any,
    ):
        super().__init__(**kwargs)
        self.account_sid = account_sid
        self.auth_token = auth_token
        self.from_number = from_number
        self.to = to  # Default destination, overridden by ``to=`` in the send context

    async def send(self, message: str, **context: Any) -> DeliveryResult:
        to = context.get("to") or self.to
        if not to:
            raise DeliveryError("SMS requires a destination phone number", channel=self.channel, retryable=False)
        return await self._post(
            TWILIO_MESSAGES_URL.format(sid=self.account_sid),
            data={"Body": message[:SMS_MAX_LENGTH], "From": self.from_number, "To": to},
            auth=(self.account_sid, self.auth_token),
        )


# ---------------------------------------------------------------------------
# Firebase Cloud Messaging
# ---------------------------------------------------------------------------

class PushNotifier(HttpNotifier):
    channel = "push"

    def __init__(self, server_key: str, target: Optional[str] = None, **kwargs: Any):
        super().__init__(**kwargs)
        self.server_key = server_key
        self.target = target  # Device token or "/topics/<name>"

    async def send(self, message: str, **context: Any) -> DeliveryResult:
        target = context.get("device_token") or self.target
        if not target:
            raise DeliveryError("Push requires a device token or topic", channel=self.channel, retryable=False)
        payload = {
            "to": target,
            "notification": {"title": context.get("title", "Border Safety"), "body": message},
            "data": context.get("data", {}),
        }
        return await self._post(
            FCM_SEND_URL,
            json=payload,
            headers={"Authorization": f"key={self.server_key}"},
        )


# ---------------------------------------------------------------------------
# Email (SMTP, SendGrid relay by default)
# ---------------------------------------------------------------------------

class EmailNotifier(Notifier):
    channel = "email"

    def __init__(
        self,
        smtp_host: str,
        smtp_port: int,
        username: str,
        password: str,
        from_email: str,
        use_ssl: bool = True,
        timeout: float = 10.0,
        to: Optional[str] = None,
    ):
        self.smtp_host = smtp_host
        self.smtp_port = smtp_port
        self.username = username
        self.password = password
        self.from_email = from_email
        self.use_ssl = use_ssl
        self.timeout = timeout
        self.to = to

    def build_message(self, to: str, subject: str, body: str) -> MIMEMultipart:
        msg = MIMEMultipart("alternative")
        msg["From"] = self.from_email
        msg["To"] = to
        msg["Subject"] = subject
        msg.attach(MIMEText(body, "plain", "utf-8"))
        return msg

    async def send(self, message: str, **context: Any) -> DeliveryResult:
        to = context.get("to") or self.to
        if not to:
            raise DeliveryError("Email requires a recipient", channel=self.channel, retryable=False)
        msg = self.build_message(to, context.get("subject", "Border Safety Alert"), message)
        kwargs = {
            "hostname": self.smtp_host,
            "port": self.smtp_port,
            "username": self.username,
            "password": self.password,
            "timeout": self.timeout,
        }
        if self.use_ssl:
            kwargs["use_tls"] = True
        else:
            kwargs["start_tls"] = True
        try:
            await aiosmtplib.send(msg, **kwargs)
        except (aiosmtplib.SMTPException, OSError) as exc:
            raise DeliveryError("Email delivery failed", detail=str(exc), channel=self.channel) from exc
        return DeliveryResult(channel=self.channel, success=True)


# ---------------------------------------------------------------------------
# Factory and fan-out
# ---------------------------------------------------------------------------

def _push_target(topic: str) -> str:
    return topic if topic.startswith("/topics/") else f"/topics/{topic}"


def build_notifiers(settings: Settings) -> list[Notifier]:
    """
    Channels with credentials and a recipient configured; a single stub when
    there are none.

    A channel whose credentials are set but whose alert recipient is not
    (``ALERT_SMS_TO``, ``ALERT_PUSH_TOPIC``, ``ALERT_EMAIL_TO``) is skipped,
    since it could never deliver.
    """
    timeout = settings.notification_timeout
    notifiers: list[Notifier] = []
    if settings.line_notify_token:
        notifiers.append(LineNotifyNotifier(settings.line_notify_token, timeout=timeout))

    if settings.twilio_account_sid and settings.twilio_auth_token and settings.twilio_phone_number:
        if settings.alert_sms_to:
            notifiers.append(SmsNotifier(
                settings.twilio_account_sid,
                settings.twilio_auth_token,
                settings.twilio_phone_number,
                to=settings.alert_sms_to,
                timeout=timeout,
            ))
        else:
            logger.warning("Twilio configured but ALERT_SMS_TO is empty, SMS channel disabled")

    if settings.fcm_server_key:
        if settings.alert_push_topic:
            notifiers.append(PushNotifier(
                settings.fcm_server_key,
                target=_push_target(settings.alert_push_topic),
                timeout=timeout,
            ))
        else:
            logger.warning("FCM configured but ALERT_PUSH_TOPIC is empty, push channel disabled")

    if settings.sendgrid_api_key:
        if settings.alert_email_to:
            notifiers.append(EmailNotifier(
                smtp_host=settings.smtp_host,
                smtp_port=settings.smtp_port,
                username="apikey",
                password=settings.sendgrid_api_key,
                from_email=settings.sendgrid_from_email,
                timeout=timeout,
                to=settings.alert_email_to,
            ))
        else:
            logger.warning("SendGrid configured but ALERT_EMAIL_TO is empty, email channel disabled")

    if not notifiers:
        logger.info("No notification channel configured, using stub notifier")
        notifiers.append(StubNotifier())
    return notifiers


async def _send_with_retry(notifier: Notifier, message: str, retries: int, context: dict) -> DeliveryResult:
    error: Optional[str] = None
    attempt = 0
    for attempt in range(1, retries + 1):
        try:
            result = await notifier.send(message, **context)
            result.attempts = attempt
            return result
        except DeliveryError as exc:
            error = exc.message if not exc.detail else f"{exc.message}: {exc.detail}"
            logger.warning("Notification via %s failed (attempt %d/%d): %s", notifier.channel, attempt, retries, error)
            if not exc.retryable:
                break
    return DeliveryResult(channel=notifier.channel, success=False, error=error, attempts=attempt)


@dataclass
class MultiChannelReport:
    results: dict[str, DeliveryResult] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=utcnow)

    @property
    def any_success(self) -> bool:
        return any(r.success for r in self.results.values())

    def to_dict(self) -> dict:
        return {
            "sent": self.any_success,
            "results": {name: r.to_dict() for name, r in self.results.items()},
            "timestamp": self.timestamp.isoformat(),
        }


async def send_multi_channel(
    notifiers: list[Notifier],
    message: str,
    retries: int = MAX_RETRIES,
    **context: Any,
) -> MultiChannelReport:
    """
    Send ``message`` on every channel concurrently.

    Each channel is retried up to ``retries`` times; a failure on one channel
    is reported in its result and never raised, so one dead channel does not
    stop the others.
    """
    outcomes = await asyncio.gather(
        *(_send_with_retry(n, message, max(retries, 1), context) for n in notifiers),
        return_exceptions=True,
    )
    report = MultiChannelReport()
    for notifier, outcome in zip(notifiers, outcomes):
        if isinstance(outcome, BaseException):
            logger.error("Unexpected error from %s notifier", notifier.channel, exc_info=outcome)
            outcome = DeliveryResult(channel=notifier.channel, success=False, error=str(outcome))
        report.results[notifier.channel] = outcome
    return report
