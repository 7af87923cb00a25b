from django.contrib import admin

from .models import Order, OrderItem


class OrderItemInline(admin.TabularInline):
    model = OrderItem
    extra = 0
    can_delete = False
    fields = ("product", "product_name", "quantity", "unit_price")
    readonly_fields = fields


@admin.register(Order)
class OrderAdmin(admin.ModelAdmin):
    list_display = ("id", "number", "status", "user", "cart", "total_price", "created_at")
    list_filter = ("status", "created_at")
    search_fields = ("number", "email")
    date_hierarchy = "created_at"
    readonly_fields = ("user", "cart", "number", "email", "total_price", "status", "created_at", "updated_at")
    inlines = [OrderItemInline]

    def has_delete_permission(self, request, obj=None):
        return False
