"""Payment records bound to carts.

A payment is created `pending` when checkout starts and is only ever moved
on by verification: to `completed` (with transaction id and paid time) or
to `failed`.
"""

from decimal import Decimal

from common.choices import PaymentStatus
from django.conf import settings
from django.db import models


class TimeStampedModel(models.Model):
    """Abstract base model adding created/updated timestamps."""

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        abstract = True


class Payment(TimeStampedModel):
    """Gateway payment intent for one cart checkout."""

    STATUS_PENDING = PaymentStatus.PENDING
    STATUS_COMPLETED = PaymentStatus.COMPLETED
    STATUS_FAILED = PaymentStatus.FAILED
    STATUS_REFUNDED = PaymentStatus.REFUNDED
    STATUS_CHOICES = PaymentStatus.choices

    user = models.ForeignKey(settings.AUTH_USER_MODEL, related_name="payments", on_delete=models.CASCADE)
    cart = models.ForeignKey("cart.Cart", related_name="payments", on_delete=models.PROTECT)
    amount = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0.00"))
    pidx = models.CharField(max_length=64, unique=True)
    payment_url = models.URLField(max_length=500, blank=True)
    purchase_order_id = models.CharField(max_length=64)
    transaction_id = models.CharField(max_length=64, null=True, blank=True)
    status = models.CharField(max_length=16, choices=STATUS_CHOICES, default=STATUS_PENDING, db_index=True)
    paid_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ["-id"]
        constraints = [
            models.UniqueConstraint(
                fields=["cart"],
                condition=models.Q(status="pending"),
                name="one_pending_payment_per_cart",
            ),
            models.CheckConstraint(name="payment_amount_positive", condition=models.Q(amount__gt=0)),
        ]
        indexes = [
            models.Index(fields=["user", "status"], name="payments_pa_user_id_5d0c41_idx"),
            models.Index(fields=["status", "created_at"], name="payments_pa_status_a8f2e3_idx"),
        ]

    def __str__(self) -> str:  # pragma: no cover
        return f"Payment#{self.id} pidx={self.pidx} status={self.status}"

    @property
    def is_settled(self) -> bool:
        return self.status == self.STATUS_COMPLETED
