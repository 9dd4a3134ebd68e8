from django.urls import path

from .views import (
    OrderEventsView,
    OrderLifecycleView,
    OrderRefundView,
    OrdersCollectionView,
    RetrieveOrderView,
)

app_name = "orders"

urlpatterns = [
    path("", OrdersCollectionView.as_view(), name="orders-collection"),  # GET list / POST create
    path("<uuid:oid>/", RetrieveOrderView.as_view(), name="orders-detail"),
    path("<uuid:oid>/lifecycle/", OrderLifecycleView.as_view(), name="orders-lifecycle"),
    path("<uuid:oid>/events/", OrderEventsView.as_view(), name="orders-events"),
    path("<uuid:oid>/refund/", OrderRefundView.as_view(), name="orders-refund"),
]
