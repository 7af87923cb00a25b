from decimal import Decimal

from common.choices import OrderStatus
from django.conf import settings
from django.db import models


class TimeStampedModel(models.Model):
    """Abstract base model adding created/updated timestamps."""

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        abstract = True


class Order(TimeStampedModel):
    """Immutable snapshot of a purchased cart.

    Exactly one order exists per purchased cart; the `unique_order_per_cart`
    constraint turns a concurrent second insert into an IntegrityError.
    """

    STATUS_PURCHASED = OrderStatus.PURCHASED
    STATUS_CHOICES = OrderStatus.choices

    user = models.ForeignKey(settings.AUTH_USER_MODEL, related_name="orders", on_delete=models.CASCADE)
    cart = models.ForeignKey("cart.Cart", related_name="orders", on_delete=models.PROTECT)
    number = models.CharField(max_length=32, unique=True, null=True, blank=True, db_index=True)
    email = models.EmailField(null=True, blank=True)
    total_price = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0.00"))
    status = models.CharField(max_length=16, choices=STATUS_CHOICES, default=STATUS_PURCHASED, db_index=True)

    class Meta:
        ordering = ["-id"]
        constraints = [
            models.UniqueConstraint(fields=["cart"], name="unique_order_per_cart"),
        ]
        indexes = [
            models.Index(fields=["user", "status", "created_at"], name="orders_orde_user_id_3c2d8a_idx"),
        ]

    def __str__(self) -> str:  # pragma: no cover
        return f"Order#{self.id} user={self.user_id} cart={self.cart_id}"


class OrderItem(TimeStampedModel):
    """Line item within an order.

    Snapshots the product name and unit price at purchase time.
    """

    order = models.ForeignKey(Order, related_name="items", on_delete=models.CASCADE)
    product = models.ForeignKey("catalog.Product", related_name="order_items", on_delete=models.PROTECT)
    product_name = models.CharField(max_length=200, blank=True)
    quantity = models.PositiveIntegerField(default=1)
    unit_price = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0.00"))

    class Meta:
        ordering = ["id"]
        indexes = [
            models.Index(fields=["order", "product"], name="orders_orde_order_i_9e51b7_idx"),
        ]
        constraints = [
            models.CheckConstraint(name="orderitem_price_non_negative", condition=models.Q(unit_price__gte=0)),
        ]

    def __str__(self) -> str:  # pragma: no cover
        return f"OrderItem#{self.id} order={self.order_id} product={self.product_id} qty={self.quantity}"

    @property
    def line_total(self) -> Decimal:
        return (self.unit_price or Decimal("0.00")) * Decimal(int(self.quantity))
