"""Cart app models.

A cart is owned by one user and moves through
active -> pending (checkout started) -> purchased, with failed payments
returning it to active and stale carts being cancelled.
"""

from decimal import Decimal

from common.choices import CartStatus
from django.conf import settings
from django.db import models


class TimeStampedModel(models.Model):
    """Abstract base model adding created/updated timestamps."""

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        abstract = True


class Cart(TimeStampedModel):
    """Shopping cart bound to a user.

    At most one cart per user may be "current" (active or pending); this is
    enforced by a conditional unique constraint.
    """

    STATUS_ACTIVE = CartStatus.ACTIVE
    STATUS_PENDING = CartStatus.PENDING
    STATUS_PURCHASED = CartStatus.PURCHASED
    STATUS_CANCELLED = CartStatus.CANCELLED
    STATUS_CHOICES = CartStatus.choices
    CURRENT_STATUSES = (CartStatus.ACTIVE, CartStatus.PENDING)

    user = models.ForeignKey(settings.AUTH_USER_MODEL, related_name="carts", on_delete=models.CASCADE)
    status = models.CharField(max_length=16, choices=STATUS_CHOICES, default=STATUS_ACTIVE, db_index=True)
    total_price = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0.00"))

    class Meta:
        ordering = ["-updated_at"]
        constraints = [
            models.UniqueConstraint(
                fields=["user"],
                condition=models.Q(status__in=["active", "pending"]),
                name="one_current_cart_per_user",
            ),
        ]
        indexes = [
            models.Index(fields=["user", "status"], name="cart_cart_user_id_7b1f0e_idx"),
        ]

    def __str__(self) -> str:  # pragma: no cover
        return f"Cart#{self.id} ({self.user_id}) {self.status}"

    @property
    def is_current(self) -> bool:
        return self.status in self.CURRENT_STATUSES


class CartItem(TimeStampedModel):
    """Line item in a shopping cart; one per product."""

    cart = models.ForeignKey(Cart, related_name="items", on_delete=models.CASCADE)
    product = models.ForeignKey("catalog.Product", related_name="cart_items", on_delete=models.CASCADE)
    quantity = models.PositiveIntegerField(default=1)
    unit_price = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0.00"))

    class Meta:
        ordering = ["id"]
        constraints = [
            models.UniqueConstraint(fields=["cart", "product"], name="unique_product_per_cart"),
            models.CheckConstraint(
                name="quantity_positive",
                condition=models.Q(quantity__gte=1),
            ),
        ]

    def __str__(self) -> str:  # pragma: no cover
        return f"CartItem#{self.id} cart={self.cart_id} product={self.product_id} qty={self.quantity}"

    @property
    def line_total(self) -> Decimal:
        return (self.unit_price or Decimal("0.00")) * Decimal(int(self.quantity))
