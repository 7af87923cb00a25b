"""Email utilities for the orders app.

Uses Django's email backend, with links composed from FRONTEND_URL.
"""

from django.conf import settings
from django.core.mail import send_mail


def send_order_confirmation_email(order) -> None:
    """Send a purchase confirmation to the order's email address.

    Includes a link to the order on the frontend when `FRONTEND_URL` is set.
    No-ops if no email is present.
    """
    to_email = order.email or getattr(order.user, "email", None)
    if not to_email:
        return

    reference = order.number or order.id
    frontend = getattr(settings, "FRONTEND_URL", "")
    lines = [
        "Thank you for your purchase!",
        "",
        f"Order: {reference}",
        f"Total: {order.total_price}",
    ]
    if frontend:
        lines += ["", f"You can view your order here: {frontend.rstrip('/')}/orders/{order.id}"]

    send_mail(
        f"Your order {reference} is confirmed",
        "\n".join(lines) + "\n",
        getattr(settings, "DEFAULT_FROM_EMAIL", None),
        [to_email],
        fail_silently=False,
    )
