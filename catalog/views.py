"""Read-only viewsets for catalog resources."""

from common.throttling import SettingsScopedRateThrottle
from django_filters import rest_framework as filters
from drf_spectacular.types import OpenApiTypes
from drf_spectacular.utils import OpenApiParameter, extend_schema, extend_schema_view
from rest_framework import filters as drf_filters
from rest_framework import viewsets
from rest_framework.permissions import AllowAny

from .models import Product
from .serializers import ProductDetailSerializer, ProductListSerializer


class ProductFilterSet(filters.FilterSet):
    category = filters.CharFilter(field_name="category", lookup_expr="iexact")
    available = filters.BooleanFilter(field_name="is_available")

    class Meta:
        model = Product
        fields = ["category", "available"]


@extend_schema_view(
    list=extend_schema(
        summary="List products",
        description="Returns products. Supports filtering by `category` and `available`, and search via `search`.",
        tags=["Catalog Endpoints"],
        parameters=[
            OpenApiParameter("category", OpenApiTypes.STR, location="query", description="Filter by category"),
            OpenApiParameter("available", OpenApiTypes.BOOL, location="query", description="Only in-stock items"),
            OpenApiParameter("search", OpenApiTypes.STR, location="query", description="Search by name"),
        ],
    ),
    retrieve=extend_schema(
        summary="Get product by slug",
        description="Returns a single product including stock level",
        tags=["Catalog Endpoints"],
    ),
)
class ProductViewSet(viewsets.ReadOnlyModelViewSet):
    queryset = Product.objects.all().order_by("name")
    permission_classes = [AllowAny]
    lookup_field = "slug"
    lookup_value_regex = "[^/]+"
    filterset_class = ProductFilterSet
    throttle_scope = "catalog"
    throttle_classes = [SettingsScopedRateThrottle]
    filter_backends = [filters.DjangoFilterBackend, drf_filters.OrderingFilter, drf_filters.SearchFilter]
    ordering_fields = ["name", "price", "created_at"]
    search_fields = ["name", "description", "category"]

    def get_serializer_class(self):
        return ProductDetailSerializer if self.action == "retrieve" else ProductListSerializer
