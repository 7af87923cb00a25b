import logging
from decimal import Decimal

from cart.models import Cart, CartItem
from django.db import transaction

from .emails import send_order_confirmation_email
from .models import Order, OrderItem

logger = logging.getLogger("elixa.orders")


def create_order_from_cart(cart: Cart) -> Order:
    """Create an Order and OrderItems from the given cart snapshot.

    Runs in its own savepoint. Raises IntegrityError when the cart already
    has an order; callers racing on the same cart rely on that.
    """

    with transaction.atomic():
        order = Order.objects.create(
            user_id=cart.user_id,
            cart=cart,
            email=getattr(cart.user, "email", None),
            total_price=cart.total_price,
        )
        for item in CartItem.objects.select_related("product").filter(cart=cart):
            OrderItem.objects.create(
                order=order,
                product=item.product,
                product_name=item.product.name,
                quantity=item.quantity,
                unit_price=item.unit_price or item.product.price or Decimal("0.00"),
            )
        # Generate user-friendly order number (unique)
        order.number = f"ORD-{int(order.id):06d}"
        order.save(update_fields=["number"])

    logger.info(
        "order.created",
        extra={
            "event": "order.created",
            "order_id": order.id,
            "cart_id": cart.id,
            "user_id": cart.user_id,
            "total_price": str(order.total_price),
        },
    )
    transaction.on_commit(lambda: _notify_customer(order))
    return order


def _notify_customer(order: Order) -> None:
    try:
        send_order_confirmation_email(order)
    except Exception:
        # Email delivery never affects a committed order
        logger.warning("order.email_failed", extra={"event": "order.email_failed", "order_id": order.id}, exc_info=True)
