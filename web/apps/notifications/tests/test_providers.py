import httpx
import pytest
from django.core import mail

from apps.notifications import providers
from apps.notifications.domain import (
    Channel,
    DeliveryError,
    MessagePriority,
    NotificationContext,
    OrderMessage,
)
from apps.notifications.models import DeliveryLog, NotificationPreference


@pytest.mark.django_db
def test_email_goes_through_django_mail_and_is_logged():
    service = providers.get_notification_service()
    ctx = NotificationContext(order_id="ord-7", customer_id="cust-7", customer_email="buyer@example.com")
    result = service.send(OrderMessage("Order confirmed", "Thanks for your order."), ctx)

    assert len(mail.outbox) == 1
    sent = mail.outbox[0]
    assert sent.to == ["buyer@example.com"]
    assert sent.subject == "Order confirmed"
    assert sent.alternatives[0][1] == "text/html"
    assert "Message-ID" in sent.extra_headers

    logs = DeliveryLog.objects.filter(order_id="ord-7")
    assert {log.channel for log in logs} == {d.channel.value for d in result.deliveries}
    email_log = logs.get(channel="EMAIL")
    assert email_log.status == "SENT"
    assert email_log.metadata["subject"] == "Order confirmed"


@pytest.mark.django_db
def test_stored_preferences_drive_channels():
    NotificationPreference.objects.create(
        customer_id="cust-8",
        email="pref@example.com",
        phone="+15550100",
        webhook_url="https://hooks.example.com/x",
        device_tokens=["tok"],
    )
    result = providers.get_notification_service().send(
        OrderMessage("Delayed", "Weather", priority=MessagePriority.URGENT),
        NotificationContext(order_id="ord-8", customer_id="cust-8"),
    )
    assert result.success
    assert [d.channel for d in result.deliveries] == [Channel.EMAIL, Channel.SMS, Channel.PUSH, Channel.WEBHOOK]
    assert mail.outbox[0].to == ["pref@example.com"]


def test_stub_mode_selects_stub_providers(settings):
    settings.NOTIFY_USE_STUBS = True
    assert isinstance(providers.get_providers()[Channel.SMS], providers.StubProvider)
    settings.NOTIFY_USE_STUBS = False
    assert isinstance(providers.get_providers()[Channel.SMS], providers.TwilioSmsProvider)


def test_twilio_provider_posts_form(monkeypatch, settings):
    settings.TWILIO_ACCOUNT_SID = "AC123"
    settings.TWILIO_AUTH_TOKEN = "tok"
    settings.TWILIO_FROM_NUMBER = "+15550000"
    seen = {}

    def fake_post(url, **kwargs):
        seen["url"], seen["kwargs"] = url, kwargs
        return httpx.Response(201, json={"sid": "SM1"}, request=httpx.Request("POST", url))

    monkeypatch.setattr(providers.httpx, "post", fake_post)
    sms = providers.TwilioSmsProvider()
    assert sms.configured
    assert sms.send({"to": "+15551111", "body": "hi"}) == ("SENT", "SM1")
    assert seen["url"].endswith("/Accounts/AC123/Messages.json")
    assert seen["kwargs"]["data"]["From"] == "+15550000"


@pytest.mark.parametrize("status_code, transient", [(429, True), (503, True), (400, False)])
def test_http_errors_map_to_delivery_errors(monkeypatch, status_code, transient):
    monkeypatch.setattr(
        providers.httpx,
        "post",
        lambda url, **kw: httpx.Response(status_code, request=httpx.Request("POST", url)),
    )
    with pytest.raises(DeliveryError) as e:
        providers._post("https://example.com", "PUSH")
    assert e.value.code == f"PUSH_{status_code}"
    assert e.value.transient is transient


def test_unreachable_endpoint_is_transient(monkeypatch):
    def boom(url, **kw):
        raise httpx.ConnectError("down")

    monkeypatch.setattr(providers.httpx, "post", boom)
    with pytest.raises(DeliveryError) as e:
        providers._post("https://example.com", "WEBHOOK")
    assert e.value.code == "WEBHOOK_UNREACHABLE"
    assert e.value.transient


def test_webhook_provider_sends_signed_bytes(monkeypatch, settings):
    settings.NOTIFY_WEBHOOK_SECRET = "s"
    seen = {}

    def fake_post(url, **kwargs):
        seen.update(kwargs)
        return httpx.Response(200, request=httpx.Request("POST", url))

    monkeypatch.setattr(providers.httpx, "post", fake_post)
    out = providers.HttpWebhookProvider().send(
        {"url": "https://h.example", "body": {"b": 1, "a": 2}, "headers": {"X-RHY-Signature": "sha256=x"}}
    )
    assert out == ("DELIVERED", "")
    assert seen["content"] == b'{"a":2,"b":1}'
