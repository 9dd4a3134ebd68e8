import pytest


@pytest.fixture(autouse=True)
def isolated_settings(settings):
    """In-process adapters, test secrets and fresh module state for every test."""
    from django.core.cache import cache

    from apps.notifications import providers as notification_providers
    from apps.orders import http_adapters
    from apps.payments import client as payments_client

    settings.USE_HTTP_ADAPTERS = False
    settings.USE_STRIPE = False
    settings.NOTIFY_USE_STUBS = True
    settings.EMAIL_BACKEND = "django.core.mail.backends.locmem.EmailBackend"
    settings.JWT_SECRET = "test-access-secret-0123456789abcdef"
    settings.JWT_REFRESH_SECRET = "test-refresh-secret-0123456789abcdef"
    settings.NOTIFY_WEBHOOK_SECRET = "test-webhook-secret"
    settings.NOTIFY_RETRY_INITIAL_DELAY = 0
    settings.BCRYPT_ROUNDS = 4
    settings.HTTP_RETRY_BACKOFF_BASE = 0

    notification_providers._rate_limiter.reset()
    for breaker in (http_adapters._inventory_cb, payments_client._stripe_cb):
        breaker.on_success()
    yield
    cache.clear()
