from datetime import timedelta

from cart.models import Cart
from cart.services import CartError, cancel_cart
from django.conf import settings
from django.core.management.base import BaseCommand
from django.utils import timezone


class Command(BaseCommand):
    help = "Cancel stale active carts by TTL, returning their stock"

    def handle(self, *args, **options):
        ttl_minutes = getattr(settings, "CART_ABANDON_TTL_MINUTES", 120)
        cutoff = timezone.now() - timedelta(minutes=int(ttl_minutes))
        qs = Cart.objects.filter(status=Cart.STATUS_ACTIVE, updated_at__lt=cutoff)
        count = 0
        for cart in qs.iterator():
            try:
                cancel_cart(cart=cart)
            except CartError:
                # Status changed since the query (e.g. checkout started).
                continue
            count += 1
        self.stdout.write(self.style.SUCCESS(f"Cancelled {count} stale carts."))
