"""DRF views for cart operations."""

from common.throttling import SettingsScopedRateThrottle
from drf_spectacular.utils import OpenApiExample, extend_schema, inline_serializer
from rest_framework import serializers as rf_serializers
from rest_framework import status
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from .models import CartItem
from .selectors import get_current_cart
from .serializers import AddItemSerializer, CartReadSerializer, UpdateItemQuantitySerializer
from .services import CartError, remove_item

CartMutationError = inline_serializer(name="CartMutationError", fields={"detail": rf_serializers.CharField()})


class CartDetailView(APIView):
    """Return the authenticated user's current cart."""

    permission_classes = [IsAuthenticated]
    throttle_scope = "cart"
    throttle_classes = [SettingsScopedRateThrottle]

    @extend_schema(
        tags=["Cart Endpoints"],
        summary="Get current cart",
        description="Returns the authenticated user's active or pending cart including items and total.",
        examples=[
            OpenApiExample(
                "Cart",
                value={
                    "id": 1,
                    "status": "active",
                    "items": [
                        {
                            "id": 10,
                            "product_id": 100,
                            "product_name": "Handwoven Dhaka Shawl",
                            "quantity": 2,
                            "unit_price": "25.00",
                            "line_total": "50.00",
                        }
                    ],
                    "total_price": "50.00",
                },
            )
        ],
    )
    def get(self, request):
        cart = get_current_cart(user=request.user)
        data = CartReadSerializer.from_cart(cart=cart).data
        return Response(data, status=status.HTTP_200_OK)


class CartAddItemView(APIView):
    """Add a product to the cart."""

    permission_classes = [IsAuthenticated]
    throttle_scope = "cart_write"
    throttle_classes = [SettingsScopedRateThrottle]

    @extend_schema(
        tags=["Cart Endpoints"],
        summary="Add item to cart",
        description="Adds a product to the user's cart and takes it out of stock.",
        request=AddItemSerializer,
        responses={
            201: inline_serializer(name="CartItemCreatedResponse", fields={"id": rf_serializers.IntegerField()}),
            400: CartMutationError,
        },
    )
    def post(self, request):
        serializer = AddItemSerializer(data=request.data, context={"request": request})
        serializer.is_valid(raise_exception=True)
        try:
            item = serializer.save()
        except CartError as exc:
            return Response({"detail": str(exc)}, status=status.HTTP_400_BAD_REQUEST)
        return Response({"id": item.id}, status=status.HTTP_201_CREATED)


class CartItemView(APIView):
    """Update or remove the cart line for a product."""

    permission_classes = [IsAuthenticated]
    throttle_scope = "cart_write"
    throttle_classes = [SettingsScopedRateThrottle]

    def _get_item(self, request, product_id: int):
        return (
            CartItem.objects.filter(
                product_id=product_id,
                cart__user_id=request.user.id,
                cart__status__in=("active", "pending"),
            )
            .select_related("cart")
            .first()
        )

    @extend_schema(
        tags=["Cart Endpoints"],
        summary="Update cart item quantity",
        request=UpdateItemQuantitySerializer,
        responses={
            200: inline_serializer(name="CartItemUpdatedResponse", fields={"id": rf_serializers.IntegerField()}),
            400: CartMutationError,
        },
    )
    def patch(self, request, product_id: int):
        item = self._get_item(request, product_id)
        if item is None:
            return Response({"detail": "Not found."}, status=status.HTTP_404_NOT_FOUND)
        serializer = UpdateItemQuantitySerializer(instance=item, data=request.data, context={"request": request})
        serializer.is_valid(raise_exception=True)
        try:
            serializer.save()
        except CartError as exc:
            return Response({"detail": str(exc)}, status=status.HTTP_400_BAD_REQUEST)
        return Response({"id": item.id}, status=status.HTTP_200_OK)

    @extend_schema(tags=["Cart Endpoints"], summary="Remove cart item", responses={204: None, 400: CartMutationError})
    def delete(self, request, product_id: int):
        if self._get_item(request, product_id) is None:
            return Response({"detail": "Not found."}, status=status.HTTP_404_NOT_FOUND)
        try:
            remove_item(user=request.user, product_id=product_id)
        except CartError as exc:
            return Response({"detail": str(exc)}, status=status.HTTP_400_BAD_REQUEST)
        return Response(status=status.HTTP_204_NO_CONTENT)
