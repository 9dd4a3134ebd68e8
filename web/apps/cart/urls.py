from django.urls import path

from .views import CartCollectionView, CartDetailView, CartItemDetailView, CartItemsView

app_name = "cart"

urlpatterns = [
    path("", CartCollectionView.as_view(), name="cart-collection"),
    path("<uuid:cart_id>/", CartDetailView.as_view(), name="cart-detail"),
    path("<uuid:cart_id>/items/", CartItemsView.as_view(), name="cart-items"),
    path("<uuid:cart_id>/items/<str:sku>/", CartItemDetailView.as_view(), name="cart-item-detail"),
]
