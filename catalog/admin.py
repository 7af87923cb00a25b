"""Admin registration for catalog models."""

from django.contrib import admin

from .models import Product


@admin.register(Product)
class ProductAdmin(admin.ModelAdmin):
    list_display = ("name", "slug", "category", "price", "quantity", "is_available")
    search_fields = ("name", "slug", "category")
    list_filter = ("is_available", "category")
    prepopulated_fields = {"slug": ("name",)}
