"""Multi-channel notification delivery.

``NotificationService.send`` picks channels from the message priority and
the customer's preferences, renders per-channel content, and hands each
delivery to its provider with rate limiting and retries. Providers and
persistence are injected; see ``apps.notifications.providers`` for the
real wiring.
"""

import hashlib
import hmac
import json
import logging
import re
import threading
import time
import uuid
from collections import defaultdict, deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Dict, List, Optional, Protocol

from django.utils.html import escape

logger = logging.getLogger("notifications")


class Channel(str, Enum):
    EMAIL = "EMAIL"
    SMS = "SMS"
    PUSH = "PUSH"
    WEBHOOK = "WEBHOOK"


class MessagePriority(str, Enum):
    LOW = "LOW"
    NORMAL = "NORMAL"
    HIGH = "HIGH"
    URGENT = "URGENT"
    CRITICAL = "CRITICAL"


class MessageType(str, Enum):
    NOTIFICATION = "NOTIFICATION"
    UPDATE = "UPDATE"
    ALERT = "ALERT"


class DeliveryStatus(str, Enum):
    SENT = "SENT"
    DELIVERED = "DELIVERED"
    FAILED = "FAILED"


URGENT_PRIORITIES = frozenset({MessagePriority.URGENT, MessagePriority.CRITICAL})

RATE_LIMITS_PER_MINUTE = {
    Channel.EMAIL: 60,
    Channel.SMS: 10,
    Channel.PUSH: 100,
    Channel.WEBHOOK: 30,
}

SMS_MAX_LENGTH = 160
SNIPPET_MAX_LENGTH = 100


class DeliveryError(Exception):
    """Raised by providers. ``transient`` errors are retried."""

    def __init__(self, code: str, transient: bool = False):
        super().__init__(code)
        self.code = code
        self.transient = transient


@dataclass
class Preferences:
    customer_id: str
    email: str = ""
    phone: str = ""
    webhook_url: str = ""
    device_tokens: List[str] = field(default_factory=list)
    email_order_updates: bool = True
    sms_urgent_alerts: bool = True
    push_real_time: bool = True


@dataclass
class OrderMessage:
    subject: str
    content: str
    priority: MessagePriority = MessagePriority.NORMAL
    message_type: MessageType = MessageType.NOTIFICATION
    id: str = field(default_factory=lambda: f"msg_{uuid.uuid4().hex[:16]}")
    sent_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass
class NotificationContext:
    order_id: str
    customer_id: str
    warehouse_id: str = ""
    # Used when the customer has no stored email
    customer_email: str = ""


@dataclass
class Delivery:
    channel: Channel
    provider: str
    status: DeliveryStatus
    provider_message_id: str = ""
    error: str = ""
    retry_count: int = 0
    metadata: dict = field(default_factory=dict)
    id: str = field(default_factory=lambda: f"delivery_{uuid.uuid4().hex[:16]}")
    sent_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass
class NotificationResult:
    success: bool
    deliveries: List[Delivery]
    errors: List[str]
    total_sent: int
    total_delivered: int


class Provider(Protocol):
    """A delivery channel backend.

    ``send`` receives the rendered payload for its channel and returns
    ``(status, provider_message_id)``; it raises ``DeliveryError`` on failure.
    """

    name: str
    configured: bool

    def send(self, payload: dict) -> tuple:
        raise NotImplementedError()


# ---- content helpers ----
_TAG_RE = re.compile(r"<[^>]*>")
_PHONE_RE = re.compile(r"[^\d+]")


def truncate_text(text: str, max_length: int) -> str:
    if len(text) <= max_length:
        return text
    return text[: max_length - 3] + "..."


def strip_html(html: str) -> str:
    return _TAG_RE.sub("", html)


def format_phone(phone: str) -> str:
    return _PHONE_RE.sub("", phone)


def sms_content(message: OrderMessage, context: NotificationContext) -> str:
    text = f"RHY Order {context.order_id}: {message.subject}. {truncate_text(message.content, SNIPPET_MAX_LENGTH)}"
    return truncate_text(text, SMS_MAX_LENGTH)


def email_html(content: str, context: NotificationContext) -> str:
    return (
        '<html><body style="font-family: Arial, sans-serif;">'
        '<div style="max-width: 600px; margin: 0 auto;">'
        '<h2 style="color: #006FEE;">RHY Supplier Portal</h2>'
        f"<p>{escape(content)}</p>"
        '<p style="color: #666; font-size: 12px;">'
        f"Order: {escape(context.order_id)} | Warehouse: {escape(context.warehouse_id or '-')}"
        "</p></div></body></html>"
    )


def canonical_json(payload: dict) -> bytes:
    return json.dumps(payload, sort_keys=True, separators=(",", ":"), default=str).encode("utf-8")


def webhook_signature(payload: dict, secret: str) -> str:
    """``sha256=<hex HMAC-SHA256 of the canonical JSON payload>``."""
    digest = hmac.new(secret.encode("utf-8"), canonical_json(payload), hashlib.sha256).hexdigest()
    return f"sha256={digest}"


# ---- rate limiting ----
class RateLimiter:
    """Sliding one-minute window per channel."""

    WINDOW_SECS = 60.0

    def __init__(self, limits: Dict[Channel, int], clock: Callable[[], float] = time.monotonic):
        self.limits = limits
        self.clock = clock
        self._sent = defaultdict(deque)
        self._lock = threading.Lock()

    def allow(self, channel: Channel) -> bool:
        now = self.clock()
        with self._lock:
            window = self._sent[channel]
            while window and now - window[0] >= self.WINDOW_SECS:
                window.popleft()
            if len(window) >= self.limits.get(channel, 0):
                return False
            window.append(now)
            return True

    def reset(self) -> None:
        with self._lock:
            self._sent.clear()


# ---- service ----
class NotificationService:
    """Send an ``OrderMessage`` to a customer over every applicable channel."""

    def __init__(
        self,
        providers: Dict[Channel, Provider],
        preferences: Callable[[str], Preferences],
        record: Callable[[Delivery, OrderMessage, NotificationContext], None],
        rate_limiter: Optional[RateLimiter] = None,
        webhook_secret: str = "",
        max_retries: int = 3,
        initial_delay: float = 1.0,
        max_delay: float = 30.0,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.providers = providers
        self.preferences = preferences
        self.record = record
        self.rate_limiter = rate_limiter or RateLimiter(RATE_LIMITS_PER_MINUTE)
        self.webhook_secret = webhook_secret
        self.max_retries = max_retries
        self.initial_delay = initial_delay
        self.max_delay = max_delay
        self.sleep = sleep

    def send(self, message: OrderMessage, context: NotificationContext) -> NotificationResult:
        started = time.perf_counter()
        prefs = self.preferences(context.customer_id)
        channels = self.determine_channels(message, prefs)

        deliveries: List[Delivery] = []
        for channel in channels:
            payload = self.render(channel, message, context, prefs)
            if payload is None:
                continue
            delivery = self._deliver(channel, payload)
            self.record(delivery, message, context)
            deliveries.append(delivery)

        errors = [f"{d.channel.value}: {d.error}" for d in deliveries if d.status == DeliveryStatus.FAILED]
        result = NotificationResult(
            success=not errors,
            deliveries=deliveries,
            errors=errors,
            total_sent=sum(1 for d in deliveries if d.status == DeliveryStatus.SENT),
            total_delivered=sum(1 for d in deliveries if d.status == DeliveryStatus.DELIVERED),
        )
        logger.info(
            "notification sent",
            extra={
                "message_id": message.id,
                "order_id": context.order_id,
                "channels": [d.channel.value for d in deliveries],
                "total_sent": result.total_sent,
                "success": result.success,
                "duration_ms": int((time.perf_counter() - started) * 1000),
            },
        )
        return result

    @staticmethod
    def determine_channels(message: OrderMessage, prefs: Preferences) -> List[Channel]:
        urgent = message.priority in URGENT_PRIORITIES
        channels = []
        if prefs.email_order_updates or urgent:
            channels.append(Channel.EMAIL)
        if urgent and prefs.sms_urgent_alerts:
            channels.append(Channel.SMS)
        if prefs.push_real_time and message.message_type == MessageType.NOTIFICATION:
            channels.append(Channel.PUSH)
        channels.append(Channel.WEBHOOK)
        return channels

    def render(
        self, channel: Channel, message: OrderMessage, context: NotificationContext, prefs: Preferences
    ) -> Optional[dict]:
        """Channel payload, or None when the channel is skipped for this customer."""
        if channel == Channel.EMAIL:
            html = email_html(message.content, context)
            return {
                "to": [prefs.email or context.customer_email],
                "subject": message.subject,
                "html": html,
                "text": strip_html(message.content),
            }
        if channel == Channel.SMS:
            if not prefs.phone:
                return None
            return {"to": format_phone(prefs.phone), "body": sms_content(message, context)}
        if channel == Channel.PUSH:
            return {
                "tokens": list(prefs.device_tokens),
                "title": message.subject,
                "body": truncate_text(message.content, SNIPPET_MAX_LENGTH),
                "data": {
                    "orderId": context.order_id,
                    "messageId": message.id,
                    "messageType": message.message_type.value,
                },
            }
        if not prefs.webhook_url:
            return None
        body = {
            "event": "order.communication",
            "orderId": context.order_id,
            "message": {
                "id": message.id,
                "type": message.message_type.value,
                "priority": message.priority.value,
                "subject": message.subject,
                "content": message.content,
                "sentAt": message.sent_at.isoformat(),
            },
            "context": {
                "orderId": context.order_id,
                "customerId": context.customer_id,
                "warehouseId": context.warehouse_id,
            },
        }
        return {
            "url": prefs.webhook_url,
            "body": body,
            "headers": {
                "Content-Type": "application/json",
                "User-Agent": "RHY-Supplier-Portal/1.0",
                "X-RHY-Signature": webhook_signature(body, self.webhook_secret),
            },
        }

    def _deliver(self, channel: Channel, payload: dict) -> Delivery:
        provider = self.providers.get(channel)
        name = getattr(provider, "name", "none")
        if provider is None or not provider.configured:
            return Delivery(channel, name, DeliveryStatus.FAILED, error="NOT_CONFIGURED")
        if channel == Channel.EMAIL and not all(payload["to"]):
            return Delivery(channel, name, DeliveryStatus.FAILED, error="NO_RECIPIENT")
        if channel == Channel.PUSH and not payload["tokens"]:
            return Delivery(channel, name, DeliveryStatus.FAILED, error="NO_DEVICE_TOKENS")
        if not self.rate_limiter.allow(channel):
            logger.warning("notification rate limited", extra={"channel": channel.value})
            return Delivery(channel, name, DeliveryStatus.FAILED, error="RATE_LIMITED")

        retries = 0
        while True:
            try:
                status, provider_id = provider.send(payload)
                return Delivery(
                    channel, name, DeliveryStatus(status), provider_message_id=provider_id or "", retry_count=retries
                )
            except DeliveryError as e:
                if not e.transient or retries >= self.max_retries:
                    logger.warning(
                        "notification delivery failed",
                        extra={"channel": channel.value, "error": e.code, "retries": retries},
                    )
                    return Delivery(channel, name, DeliveryStatus.FAILED, error=e.code, retry_count=retries)
                retries += 1
                self.sleep(self.retry_delay(retries))

    def retry_delay(self, retry: int) -> float:
        """Delay before retry number ``retry`` (1-based)."""
        return min(self.initial_delay * (2 ** (retry - 1)), self.max_delay)
