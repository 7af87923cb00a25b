"""Catalog app models.

Products carry their own stock counter; carts decrement it on add and
restore it on removal or cancellation.
"""

from decimal import Decimal

from django.db import models


class TimeStampedModel(models.Model):
    """Abstract base model adding created/updated timestamps."""

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        abstract = True


class Product(TimeStampedModel):
    """Sellable product with price and on-hand stock."""

    name = models.CharField(max_length=200, unique=True)
    slug = models.SlugField(max_length=220, unique=True)
    description = models.TextField()
    category = models.CharField(max_length=120, db_index=True)
    image = models.URLField(blank=True)
    price = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0.00"))
    quantity = models.PositiveIntegerField(default=0)
    is_available = models.BooleanField(default=True, db_index=True)

    class Meta:
        ordering = ["name"]
        constraints = [
            models.CheckConstraint(name="product_price_non_negative", condition=models.Q(price__gte=0)),
        ]
        indexes = [
            models.Index(fields=["category", "is_available"], name="catalog_pro_categor_4e9a1c_idx"),
        ]

    def __str__(self) -> str:  # pragma: no cover
        return self.name

    def in_stock(self, quantity: int) -> bool:
        return self.is_available and self.quantity >= quantity
