"""Cart API.

Carts are anonymous resources addressed by UUID; the storefront keeps the id
client-side. Totals are always recomputed from the stored lines.
"""

from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import APIView

from apps.orders import providers
from gateway.exceptions import error_for_code, parse_body

from .schemas import AddItemDTO, CreateCartDTO, UpdateItemDTO
from .services import CartService

CART_STATUSES = {
    "CART_NOT_FOUND": status.HTTP_404_NOT_FOUND,
    "ITEM_NOT_FOUND": status.HTTP_404_NOT_FOUND,
    "UNKNOWN_SKU": status.HTTP_404_NOT_FOUND,
    "CART_CLOSED": status.HTTP_409_CONFLICT,
    "INVALID_QUANTITY": status.HTTP_400_BAD_REQUEST,
    "INSUFFICIENT_STOCK": status.HTTP_422_UNPROCESSABLE_ENTITY,
}


def _service() -> CartService:
    return CartService(providers.get_inventory())


class CartCollectionView(APIView):
    def post(self, request):
        dto = parse_body(CreateCartDTO, request.data or {})
        service = _service()
        cart = service.create(owner_id=dto.owner_id)
        return Response(service.summary(cart), status=status.HTTP_201_CREATED)


class CartDetailView(APIView):
    def get(self, request, cart_id):
        service = _service()
        try:
            cart = service.get(cart_id)
            return Response(service.summary(cart))
        except ValueError as e:
            raise error_for_code(str(e), CART_STATUSES)

    def delete(self, request, cart_id):
        service = _service()
        try:
            cart = service.get(cart_id)
        except ValueError as e:
            raise error_for_code(str(e), CART_STATUSES)
        service.clear(cart)
        return Response(service.summary(cart))


class CartItemsView(APIView):
    def post(self, request, cart_id):
        dto = parse_body(AddItemDTO, request.data)
        service = _service()
        try:
            cart = service.get(cart_id)
            service.add_item(cart, dto.sku, dto.quantity)
            return Response(service.summary(cart), status=status.HTTP_201_CREATED)
        except ValueError as e:
            raise error_for_code(str(e), CART_STATUSES)


class CartItemDetailView(APIView):
    def patch(self, request, cart_id, sku):
        dto = parse_body(UpdateItemDTO, request.data)
        service = _service()
        try:
            cart = service.get(cart_id)
            service.update_item(cart, sku, dto.quantity)
            return Response(service.summary(cart))
        except ValueError as e:
            raise error_for_code(str(e), CART_STATUSES)

    def delete(self, request, cart_id, sku):
        service = _service()
        try:
            cart = service.get(cart_id)
            service.remove_item(cart, sku)
            return Response(service.summary(cart))
        except ValueError as e:
            raise error_for_code(str(e), CART_STATUSES)
