"""Orders API endpoints.

Orders are created only by payment verification; these endpoints are
read-only.
"""

from common.throttling import SettingsScopedRateThrottle
from django.http import Http404
from django_filters import rest_framework as filters
from drf_spectacular.utils import OpenApiExample, OpenApiParameter, extend_schema
from rest_framework import generics
from rest_framework.pagination import PageNumberPagination
from rest_framework.permissions import IsAuthenticated

from .models import Order
from .selectors import list_orders_for_user
from .serializers import OrderSerializer


class OrderFilterSet(filters.FilterSet):
    start = filters.IsoDateTimeFilter(field_name="created_at", lookup_expr="gte")
    end = filters.IsoDateTimeFilter(field_name="created_at", lookup_expr="lte")

    class Meta:
        model = Order
        fields = ["status", "number", "start", "end"]


class DefaultPagination(PageNumberPagination):
    page_size = 20
    page_size_query_param = "page_size"


class OrderListView(generics.ListAPIView):
    """List the authenticated user's orders, newest first."""

    permission_classes = [IsAuthenticated]
    serializer_class = OrderSerializer
    pagination_class = DefaultPagination
    filter_backends = [filters.DjangoFilterBackend]
    filterset_class = OrderFilterSet
    throttle_scope = "orders"
    throttle_classes = [SettingsScopedRateThrottle]

    def get_queryset(self):
        return list_orders_for_user(user=self.request.user)

    @extend_schema(
        tags=["Orders"],
        summary="List orders",
        description="List current user's orders with optional filters and pagination.",
        parameters=[
            OpenApiParameter(name="status", description="Order status filter", required=False, type=str),
            OpenApiParameter(name="number", description="Order number exact match", required=False, type=str),
            OpenApiParameter(name="start", description="Created at >= start (ISO)", required=False, type=str),
            OpenApiParameter(name="end", description="Created at <= end (ISO)", required=False, type=str),
            OpenApiParameter(name="page", description="Page number", required=False, type=int),
            OpenApiParameter(name="page_size", description="Items per page", required=False, type=int),
        ],
    )
    def get(self, request, *args, **kwargs):
        return super().get(request, *args, **kwargs)


class OrderDetailView(generics.RetrieveAPIView):
    """Retrieve a single order for the authenticated user."""

    permission_classes = [IsAuthenticated]
    serializer_class = OrderSerializer
    throttle_scope = "orders"
    throttle_classes = [SettingsScopedRateThrottle]

    def get_queryset(self):
        return list_orders_for_user(user=self.request.user)

    def get_object(self):
        try:
            return self.get_queryset().get(id=int(self.kwargs["order_id"]))
        except (Order.DoesNotExist, ValueError):
            raise Http404("Not found.")

    @extend_schema(
        tags=["Orders"],
        summary="Get order detail",
        examples=[
            OpenApiExample(
                "Order",
                value={
                    "id": 12,
                    "number": "ORD-000012",
                    "status": "purchased",
                    "cart": 31,
                    "email": "user@example.com",
                    "total_price": "50.00",
                    "created_at": "2025-01-01T12:00:00Z",
                    "items": [
                        {
                            "id": 40,
                            "product": 7,
                            "product_name": "Handwoven Dhaka Shawl",
                            "quantity": 2,
                            "unit_price": "25.00",
                            "line_total": "50.00",
                        }
                    ],
                },
                response_only=True,
            )
        ],
    )
    def get(self, request, *args, **kwargs):
        return super().get(request, *args, **kwargs)
