"""Selectors for cart queries."""

from decimal import Decimal

from django.db import IntegrityError, transaction
from django.db.models import F, Sum

from .models import Cart


def find_current_cart(*, user, for_update: bool = False):
    """Return the user's active or pending cart, or None."""

    qs = Cart.objects.filter(user=user, status__in=Cart.CURRENT_STATUSES)
    if for_update:
        qs = qs.select_for_update()
    return qs.first()


def get_current_cart(*, user, for_update: bool = False) -> Cart:
    """Return the user's current cart, creating an active one if missing."""

    cart = find_current_cart(user=user, for_update=for_update)
    if cart is not None:
        return cart
    try:
        with transaction.atomic():
            return Cart.objects.create(user=user, status=Cart.STATUS_ACTIVE)
    except IntegrityError:
        # Lost the race against a concurrent create; the winner is current.
        return find_current_cart(user=user, for_update=for_update)


def cart_totals(*, cart: Cart):
    """Compute cart totals from the line item snapshots."""

    agg = cart.items.aggregate(
        subtotal=Sum(F("unit_price") * F("quantity")),
    )
    subtotal = agg.get("subtotal") or Decimal("0.00")
    return {
        "subtotal": subtotal,
        "total": subtotal,
    }
