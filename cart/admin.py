"""Admin registration for cart models.

Carts show their items inline; support staff can cancel stale active carts,
which returns their stock.
"""

from django.contrib import admin, messages

from .models import Cart, CartItem
from .services import CartError, cancel_cart


class CartItemInline(admin.TabularInline):
    model = CartItem
    extra = 0
    fields = ("product", "quantity", "unit_price", "created_at", "updated_at")
    readonly_fields = ("created_at", "updated_at")
    raw_id_fields = ("product",)


@admin.register(Cart)
class CartAdmin(admin.ModelAdmin):
    list_display = ("id", "user", "status", "total_price", "updated_at", "created_at")
    list_filter = ("status",)
    search_fields = ("user__username", "user__email")
    readonly_fields = ("total_price", "created_at", "updated_at")
    inlines = [CartItemInline]
    actions = ["cancel_selected"]

    @admin.action(description="Cancel selected active carts")
    def cancel_selected(self, request, queryset):
        cancelled = 0
        for cart in queryset:
            try:
                cancel_cart(cart=cart)
                cancelled += 1
            except CartError as exc:
                self.message_user(request, f"Cart #{cart.id}: {exc}", level=messages.WARNING)
        self.message_user(request, f"Cancelled {cancelled} cart(s).", level=messages.SUCCESS)
