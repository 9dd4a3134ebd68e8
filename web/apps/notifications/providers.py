"""Channel providers and the ``NotificationService`` factory.

Email goes through Django's mail framework, so the configured
``EMAIL_BACKEND`` decides the transport (SMTP in production, locmem in
tests). SMS, push and webhooks are plain HTTPS calls made with httpx; with
``NOTIFY_USE_STUBS`` they are replaced by in-process stubs.
"""

import logging
import uuid
from email.utils import make_msgid

import httpx
from django.conf import settings
from django.core.mail import EmailMultiAlternatives

from .domain import (
    Channel,
    Delivery,
    DeliveryError,
    NotificationContext,
    NotificationService,
    OrderMessage,
    Preferences,
    RateLimiter,
    RATE_LIMITS_PER_MINUTE,
    canonical_json,
)
from .models import DeliveryLog, NotificationPreference

logger = logging.getLogger("notifications")

TWILIO_URL = "https://api.twilio.com/2010-04-01/Accounts/{sid}/Messages.json"
FCM_URL = "https://fcm.googleapis.com/fcm/send"


def _raise_for(resp: httpx.Response, code: str) -> None:
    if resp.status_code == 429 or resp.status_code >= 500:
        raise DeliveryError(f"{code}_{resp.status_code}", transient=True)
    if resp.status_code >= 400:
        raise DeliveryError(f"{code}_{resp.status_code}")


def _post(url: str, code: str, **kwargs) -> httpx.Response:
    try:
        resp = httpx.post(url, timeout=settings.HTTP_TIMEOUT_SECS, **kwargs)
    except httpx.TransportError as e:
        raise DeliveryError(f"{code}_UNREACHABLE", transient=True) from e
    _raise_for(resp, code)
    return resp


class DjangoEmailProvider:
    name = "django-mail"

    @property
    def configured(self) -> bool:
        return bool(settings.EMAIL_HOST) or not settings.EMAIL_BACKEND.endswith("smtp.EmailBackend")

    def send(self, payload: dict) -> tuple:
        message_id = make_msgid()
        msg = EmailMultiAlternatives(
            subject=payload["subject"],
            body=payload["text"],
            from_email=settings.DEFAULT_FROM_EMAIL,
            to=payload["to"],
            headers={"Message-ID": message_id},
        )
        msg.attach_alternative(payload["html"], "text/html")
        try:
            msg.send(fail_silently=False)
        except OSError as e:
            raise DeliveryError("EMAIL_TRANSPORT_ERROR", transient=True) from e
        return ("SENT", message_id)


class TwilioSmsProvider:
    name = "twilio"

    @property
    def configured(self) -> bool:
        return bool(settings.TWILIO_ACCOUNT_SID and settings.TWILIO_AUTH_TOKEN and settings.TWILIO_FROM_NUMBER)

    def send(self, payload: dict) -> tuple:
        resp = _post(
            TWILIO_URL.format(sid=settings.TWILIO_ACCOUNT_SID),
            "SMS",
            auth=(settings.TWILIO_ACCOUNT_SID, settings.TWILIO_AUTH_TOKEN),
            data={"To": payload["to"], "From": settings.TWILIO_FROM_NUMBER, "Body": payload["body"]},
        )
        return ("SENT", resp.json().get("sid", ""))


class FcmPushProvider:
    name = "fcm"

    @property
    def configured(self) -> bool:
        return bool(settings.FCM_SERVER_KEY)

    def send(self, payload: dict) -> tuple:
        resp = _post(
            FCM_URL,
            "PUSH",
            headers={"Authorization": f"key={settings.FCM_SERVER_KEY}"},
            json={
                "registration_ids": payload["tokens"],
                "notification": {"title": payload["title"], "body": payload["body"], "sound": "default", "badge": 1},
                "data": payload["data"],
            },
        )
        return ("SENT", str(resp.json().get("multicast_id", "")))


class HttpWebhookProvider:
    name = "http"

    @property
    def configured(self) -> bool:
        return bool(settings.NOTIFY_WEBHOOK_SECRET)

    def send(self, payload: dict) -> tuple:
        # Send the exact bytes that were signed
        _post(payload["url"], "WEBHOOK", content=canonical_json(payload["body"]), headers=payload["headers"])
        return ("DELIVERED", "")


class StubProvider:
    """Accepts every payload and keeps it in ``sent``."""

    configured = True

    def __init__(self, name: str):
        self.name = name
        self.sent = []

    def send(self, payload: dict) -> tuple:
        self.sent.append(payload)
        return ("SENT", f"{self.name}_{uuid.uuid4().hex[:12]}")


def load_preferences(customer_id: str) -> Preferences:
    pref = NotificationPreference.objects.filter(customer_id=customer_id).first()
    if pref is None:
        return Preferences(customer_id=customer_id)
    return Preferences(
        customer_id=customer_id,
        email=pref.email,
        phone=pref.phone,
        webhook_url=pref.webhook_url,
        device_tokens=list(pref.device_tokens or []),
        email_order_updates=pref.email_order_updates,
        sms_urgent_alerts=pref.sms_urgent_alerts,
        push_real_time=pref.push_real_time,
    )


def record_delivery(delivery: Delivery, message: OrderMessage, context: NotificationContext) -> None:
    DeliveryLog.objects.create(
        delivery_id=delivery.id,
        message_id=message.id,
        order_id=context.order_id,
        customer_id=context.customer_id,
        channel=delivery.channel.value,
        provider=delivery.provider,
        provider_message_id=delivery.provider_message_id,
        status=delivery.status.value,
        error=delivery.error,
        retry_count=delivery.retry_count,
        metadata={"subject": message.subject, "priority": message.priority.value},
    )


# Shared so the per-minute limits hold across requests of one process
_rate_limiter = RateLimiter(RATE_LIMITS_PER_MINUTE)


def get_providers() -> dict:
    if getattr(settings, "NOTIFY_USE_STUBS", False):
        return {
            Channel.EMAIL: DjangoEmailProvider(),
            Channel.SMS: StubProvider("sms-stub"),
            Channel.PUSH: StubProvider("push-stub"),
            Channel.WEBHOOK: StubProvider("webhook-stub"),
        }
    return {
        Channel.EMAIL: DjangoEmailProvider(),
        Channel.SMS: TwilioSmsProvider(),
        Channel.PUSH: FcmPushProvider(),
        Channel.WEBHOOK: HttpWebhookProvider(),
    }


def get_notification_service() -> NotificationService:
    return NotificationService(
        providers=get_providers(),
        preferences=load_preferences,
        record=record_delivery,
        rate_limiter=_rate_limiter,
        webhook_secret=settings.NOTIFY_WEBHOOK_SECRET,
        max_retries=settings.NOTIFY_RETRY_MAX,
        initial_delay=settings.NOTIFY_RETRY_INITIAL_DELAY,
        max_delay=settings.NOTIFY_RETRY_MAX_DELAY,
    )
