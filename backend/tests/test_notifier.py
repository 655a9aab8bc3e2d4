"""Notification channel tests (external services mocked)."""
import json
from typing import Any
from unittest.mock import AsyncMock, patch
from urllib.parse import parse_qs

import aiosmtplib
import httpx
import pytest

from bordersafety.core.config import Settings
from bordersafety.core.exceptions import DeliveryError
from bordersafety.services.notifier import (
    MAX_RETRIES,
    SMS_MAX_LENGTH,
    DeliveryResult,
    EmailNotifier,
    LineNotifyNotifier,
    Notifier,
    PushNotifier,
    SmsNotifier,
    StubNotifier,
    build_notifiers,
    send_multi_channel,
)


def _transport(status_code: int = 200, captured: list | None = None) -> httpx.MockTransport:
    def handler(request: httpx.Request) -> httpx.Response:
        if captured is not None:
            captured.append(request)
        return httpx.Response(status_code, json={"status": status_code})
    return httpx.MockTransport(handler)


class FlakyNotifier(Notifier):
    """Fails ``failures`` times before succeeding."""
    channel = "flaky"

    def __init__(self, failures: int):
        self.failures = failures
        self.calls = 0

    async def send(self, message: str, **context: Any) -> DeliveryResult:
        self.calls += 1
        if self.calls <= self.failures:
            raise DeliveryError("temporarily down", channel=self.channel)
        return DeliveryResult(channel=self.channel, success=True)


class BrokenNotifier(Notifier):
    channel = "broken"

    async def send(self, message: str, **context: Any) -> DeliveryResult:
        raise RuntimeError("bug in channel")


class TestHttpChannels:
    async def test_line_notify(self):
        captured = []
        notifier = LineNotifyNotifier("line-token", transport=_transport(captured=captured))
        result = await notifier.send("Threat level RED")
        assert result.success is True
        assert result.response_code == 200
        request = captured[0]
        assert request.headers["Authorization"] == "Bearer line-token"
        assert parse_qs(request.content.decode())["message"] == ["Threat level RED"]

    async def test_line_notify_http_error(self):
        notifier = LineNotifyNotifier("bad-token", transport=_transport(status_code=401))
        with pytest.raises(DeliveryError) as exc_info:
            await notifier.send("hello")
        assert exc_info.value.channel == "line"
        assert "401" in exc_info.value.message

    async def test_sms_truncates_body(self):
        captured = []
        notifier = SmsNotifier("AC123", "secret", "+15550000000", transport=_transport(201, captured))
        result = await notifier.send("x" * 300, to="+972500000000")
        assert result.response_code == 201
        form = parse_qs(captured[0].content.decode())
        assert len(form["Body"][0]) == SMS_MAX_LENGTH
        assert form["To"] == ["+972500000000"]
        assert "/Accounts/AC123/" in str(captured[0].url)

    async def test_sms_requires_destination(self):
        notifier = SmsNotifier("AC123", "secret", "+15550000000", transport=_transport())
        with pytest.raises(DeliveryError):
            await notifier.send("hello")

    async def test_push_payload(self):
        captured = []
        notifier = PushNotifier("fcm-key", transport=_transport(captured=captured))
        await notifier.send("Go to shelter", device_token="device-1", title="Alert", data={"level": "RED"})
        payload = json.loads(captured[0].content)
        assert payload["to"] == "device-1"
        assert payload["notification"] == {"title": "Alert", "body": "Go to shelter"}
        assert payload["data"] == {"level": "RED"}
        assert captured[0].headers["Authorization"] == "key=fcm-key"

    async def test_connection_failure(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("unreachable", request=request)

        notifier = PushNotifier("fcm-key", transport=httpx.MockTransport(handler))
        with pytest.raises(DeliveryError) as exc_info:
            await notifier.send("hello", device_token="d")
        assert exc_info.value.channel == "push"


class TestEmailNotifier:
    def _notifier(self) -> EmailNotifier:
        return EmailNotifier(
            smtp_host="smtp.test",
            smtp_port=465,
            username="apikey",
            password="sg-key",
            from_email="noreply@test",
        )

    async def test_send(self):
        with patch("bordersafety.services.notifier.aiosmtplib.send", new_callable=AsyncMock) as mock_send:
            result = await self._notifier().send("Body text", to="ops@test", subject="Subject")
        assert result.success is True
        msg = mock_send.call_args.args[0]
        assert msg["To"] == "ops@test"
        assert msg["Subject"] == "Subject"
        assert mock_send.call_args.kwargs["use_tls"] is True

    async def test_smtp_failure(self):
        with patch(
            "bordersafety.services.notifier.aiosmtplib.send",
            new_callable=AsyncMock,
            side_effect=aiosmtplib.SMTPException("auth failed"),
        ):
            with pytest.raises(DeliveryError):
                await self._notifier().send("Body", to="ops@test")

    async def test_requires_recipient(self):
        with pytest.raises(DeliveryError):
            await self._notifier().send("Body")


class TestSendMultiChannel:
    async def test_retries_until_success(self):
        flaky = FlakyNotifier(failures=2)
        report = await send_multi_channel([flaky], "hello")
        assert report.results["flaky"].success is True
        assert report.results["flaky"].attempts == 3

    async def test_one_dead_channel_does_not_stop_others(self):
        stub = StubNotifier()
        dead = FlakyNotifier(failures=100)
        report = await send_multi_channel([dead, stub, BrokenNotifier()], "hello", title="t")

        assert report.any_success is True
        assert report.results["stub"].success is True
        assert stub.sent == [("hello", {"title": "t"})]
        assert report.results["flaky"].success is False
        assert report.results["flaky"].attempts == MAX_RETRIES
        assert dead.calls == MAX_RETRIES
        assert report.results["broken"].success is False
        assert "bug in channel" in report.results["broken"].error

    async def test_configured_recipients_deliver(self):
        captured = []
        transport = _transport(captured=captured)
        sms = SmsNotifier("AC123", "secret", "+15550000000", to="+66810000000", transport=transport)
        push = PushNotifier("fcm-key", target="/topics/border-alerts", transport=transport)
        report = await send_multi_channel([sms, push], "Border threat level is now RED", title="Threat level update")

        assert report.results["sms"].success is True
        assert report.results["push"].success is True
        by_host = {request.url.host: request for request in captured}
        assert parse_qs(by_host["api.twilio.com"].content.decode())["To"] == ["+66810000000"]
        assert json.loads(by_host["fcm.googleapis.com"].content)["to"] == "/topics/border-alerts"

    async def test_missing_recipient_is_not_retried(self):
        captured = []
        sms = SmsNotifier("AC123", "secret", "+15550000000", transport=_transport(captured=captured))
        report = await send_multi_channel([sms], "hello")
        assert report.results["sms"].success is False
        assert report.results["sms"].attempts == 1
        assert captured == []

    async def test_client_error_is_not_retried(self):
        captured = []
        line = LineNotifyNotifier("bad-token", transport=_transport(status_code=401, captured=captured))
        report = await send_multi_channel([line], "hello")
        assert report.results["line"].attempts == 1
        assert len(captured) == 1

    async def test_server_error_is_retried(self):
        captured = []
        line = LineNotifyNotifier("token", transport=_transport(status_code=503, captured=captured))
        report = await send_multi_channel([line], "hello")
        assert report.results["line"].success is False
        assert len(captured) == MAX_RETRIES

    async def test_report_dict(self):
        report = await send_multi_channel([StubNotifier("sms")], "hello")
        data = report.to_dict()
        assert data["sent"] is True
        assert data["results"]["sms"]["stub"] is True


class TestBuildNotifiers:
    def test_stub_without_credentials(self, test_settings: Settings):
        notifiers = build_notifiers(test_settings)
        assert len(notifiers) == 1
        assert isinstance(notifiers[0], StubNotifier)

    def test_configured_channels(self, test_settings: Settings):
        configured = test_settings.model_copy(update={
            "line_notify_token": "t",
            "twilio_account_sid": "AC1",
            "twilio_auth_token": "x",
            "twilio_phone_number": "+1555",
            "alert_sms_to": "+66810000000",
            "fcm_server_key": "fcm",
            "alert_push_topic": "border-alerts",
            "sendgrid_api_key": "sg",
            "alert_email_to": "ops@test",
        })
        notifiers = build_notifiers(configured)
        assert [n.channel for n in notifiers] == ["line", "sms", "push", "email"]
        sms, push, email = notifiers[1:]
        assert sms.to == "+66810000000"
        assert push.target == "/topics/border-alerts"
        assert email.to == "ops@test"

    def test_channels_without_recipient_are_skipped(self, test_settings: Settings):
        configured = test_settings.model_copy(update={
            "twilio_account_sid": "AC1",
            "twilio_auth_token": "x",
            "twilio_phone_number": "+1555",
            "fcm_server_key": "fcm",
            "sendgrid_api_key": "sg",
        })
        notifiers = build_notifiers(configured)
        assert len(notifiers) == 1
        assert isinstance(notifiers[0], StubNotifier)
