"""Admin registration for payments.

Payments are read-only here; only verification moves their status.
"""

from django.contrib import admin

from .models import Payment


@admin.register(Payment)
class PaymentAdmin(admin.ModelAdmin):
    list_display = ("id", "pidx", "status", "user", "cart", "amount", "transaction_id", "paid_at", "created_at")
    list_filter = ("status", "created_at")
    search_fields = ("pidx", "transaction_id", "purchase_order_id", "user__email")
    date_hierarchy = "created_at"
    readonly_fields = [f.name for f in Payment._meta.fields]

    def has_add_permission(self, request):
        return False

    def has_delete_permission(self, request, obj=None):
        return False
