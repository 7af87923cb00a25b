"""Shared enumerations and choices used across apps."""

from django.db import models


class CartStatus(models.TextChoices):
    """Statuses for shopping carts.

    `active` and `pending` carts are "current"; a user has at most one.
    """

    ACTIVE = "active", "Active"
    PENDING = "pending", "Pending"
    PURCHASED = "purchased", "Purchased"
    CANCELLED = "cancelled", "Cancelled"


class OrderStatus(models.TextChoices):
    """Lifecycle statuses for orders."""

    PURCHASED = "purchased", "Purchased"


class PaymentStatus(models.TextChoices):
    """Lifecycle statuses for gateway payments."""

    PENDING = "pending", "Pending"
    COMPLETED = "completed", "Completed"
    FAILED = "failed", "Failed"
    REFUNDED = "refunded", "Refunded"
