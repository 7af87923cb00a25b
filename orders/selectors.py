"""Read-only order queries."""

from typing import Optional

from .models import Order


def get_order_for_cart(*, cart_id: int) -> Optional[Order]:
    """Return the order materialised from a cart, if any."""

    return Order.objects.filter(cart_id=cart_id).prefetch_related("items").first()


def list_orders_for_user(*, user):
    return Order.objects.filter(user_id=user.id).order_by("-id").prefetch_related("items")
