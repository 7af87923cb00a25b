"""Serializers for the catalog app (read-only)."""

from rest_framework import serializers

from .models import Product


class ProductListSerializer(serializers.ModelSerializer):
    class Meta:
        model = Product
        fields = ["id", "name", "slug", "category", "image", "price", "is_available"]


class ProductDetailSerializer(serializers.ModelSerializer):
    class Meta:
        model = Product
        fields = [
            "id",
            "name",
            "slug",
            "description",
            "category",
            "image",
            "price",
            "quantity",
            "is_available",
            "created_at",
            "updated_at",
        ]
