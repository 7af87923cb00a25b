"""Cart services: line item mutations with stock bookkeeping."""

import logging
from decimal import Decimal

from catalog.models import Product
from django.db import transaction
from django.shortcuts import get_object_or_404

from .models import Cart, CartItem
from .selectors import cart_totals, get_current_cart


class CartError(Exception):
    """Raised for cart mutation failures."""


logger = logging.getLogger("elixa.cart")

CENT = Decimal("0.01")


def _validate_quantity(quantity) -> int:
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 1:
        raise CartError("Quantity must be a positive integer")
    return quantity


def _mutable_cart(user) -> Cart:
    cart = get_current_cart(user=user, for_update=True)
    if cart.status != Cart.STATUS_ACTIVE:
        raise CartError("Cart is locked while a payment is in progress")
    return cart


def recalculate_total(cart: Cart) -> Cart:
    """Recompute and cache the cart total from its line items."""

    cart.total_price = cart_totals(cart=cart)["total"].quantize(CENT)
    cart.save(update_fields=["total_price", "updated_at"])
    return cart


def _take_stock(product: Product, quantity: int) -> None:
    product.quantity -= quantity
    product.is_available = product.quantity > 0
    product.save(update_fields=["quantity", "is_available", "updated_at"])


def _return_stock(product: Product, quantity: int) -> None:
    product.quantity += quantity
    product.is_available = True
    product.save(update_fields=["quantity", "is_available", "updated_at"])


@transaction.atomic
def add_item(*, user, product_id: int, quantity: int = 1) -> CartItem:
    """Add a product to the user's cart, merging with an existing line.

    Stock is taken from the product immediately.
    """

    quantity = _validate_quantity(quantity)
    cart = _mutable_cart(user)
    product = get_object_or_404(Product.objects.select_for_update(), id=product_id)
    if not product.in_stock(quantity):
        raise CartError("Product is not available or insufficient stock")

    item, created = CartItem.objects.select_for_update().get_or_create(
        cart=cart,
        product=product,
        defaults={"quantity": quantity, "unit_price": product.price},
    )
    if not created:
        item.quantity += quantity
        item.unit_price = product.price
        item.save(update_fields=["quantity", "unit_price", "updated_at"])
    _take_stock(product, quantity)
    recalculate_total(cart)
    logger.info(
        "cart.item_added",
        extra={
            "event": "cart.item_added",
            "cart_id": cart.id,
            "user_id": getattr(user, "id", None),
            "product_id": product.id,
            "quantity": quantity,
        },
    )
    return item


@transaction.atomic
def update_item_quantity(*, user, product_id: int, quantity: int) -> CartItem:
    """Set a line item's quantity, moving the difference in or out of stock."""

    quantity = _validate_quantity(quantity)
    cart = _mutable_cart(user)
    product = get_object_or_404(Product.objects.select_for_update(), id=product_id)
    try:
        item = CartItem.objects.select_for_update().get(cart=cart, product=product)
    except CartItem.DoesNotExist:
        raise CartError("Product not in cart")

    difference = quantity - item.quantity
    if difference > 0 and product.quantity < difference:
        raise CartError("Insufficient stock for requested quantity")
    if difference > 0:
        _take_stock(product, difference)
    elif difference < 0:
        _return_stock(product, -difference)

    item.quantity = quantity
    item.unit_price = product.price
    item.save(update_fields=["quantity", "unit_price", "updated_at"])
    recalculate_total(cart)
    logger.info(
        "cart.item_updated",
        extra={
            "event": "cart.item_updated",
            "cart_id": cart.id,
            "user_id": getattr(user, "id", None),
            "product_id": product.id,
            "quantity": quantity,
        },
    )
    return item


@transaction.atomic
def remove_item(*, user, product_id: int) -> Cart:
    """Remove a product from the cart and return its stock."""

    cart = _mutable_cart(user)
    try:
        item = CartItem.objects.select_for_update().select_related("product").get(cart=cart, product_id=product_id)
    except CartItem.DoesNotExist:
        raise CartError("Product not in cart")
    product = Product.objects.select_for_update().get(id=item.product_id)
    _return_stock(product, item.quantity)
    item.delete()
    recalculate_total(cart)
    logger.info(
        "cart.item_removed",
        extra={
            "event": "cart.item_removed",
            "cart_id": cart.id,
            "user_id": getattr(user, "id", None),
            "product_id": product_id,
        },
    )
    return cart


@transaction.atomic
def cancel_cart(*, cart: Cart) -> Cart:
    """Cancel an active cart, returning all of its stock.

    Pending carts have a payment in flight and are left alone.
    """

    cart = Cart.objects.select_for_update().get(id=cart.id)
    if cart.status != Cart.STATUS_ACTIVE:
        raise CartError("Only active carts can be cancelled")
    for item in CartItem.objects.filter(cart=cart):
        product = Product.objects.select_for_update().get(id=item.product_id)
        _return_stock(product, item.quantity)
    cart.status = Cart.STATUS_CANCELLED
    cart.save(update_fields=["status", "updated_at"])
    logger.info(
        "cart.cancelled",
        extra={"event": "cart.cancelled", "cart_id": cart.id, "user_id": cart.user_id},
    )
    return cart
