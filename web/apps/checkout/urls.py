from django.urls import path

from .views import CheckoutView, StripeWebhookView

app_name = "checkout"

urlpatterns = [
    path("checkout/", CheckoutView.as_view(), name="checkout"),
    path("webhooks/stripe/", StripeWebhookView.as_view(), name="stripe-webhook"),
]
