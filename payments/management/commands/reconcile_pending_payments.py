import logging
from collections import Counter
from datetime import timedelta

from django.conf import settings
from django.core.management.base import BaseCommand
from django.utils import timezone
from payments.exceptions import PaymentError
from payments.gateway import get_gateway_client
from payments.models import Payment
from payments.services import build_verifier

logger = logging.getLogger("elixa.payments")


class Command(BaseCommand):
    help = "Re-verify pending payments whose customers never came back from the gateway"

    def add_arguments(self, parser):
        parser.add_argument(
            "--older-than",
            type=int,
            default=None,
            help="Minutes since creation (default: PAYMENT_RECONCILE_AFTER_MINUTES)",
        )
        parser.add_argument("--limit", type=int, default=100)

    def handle(self, *args, **options):
        minutes = options["older_than"]
        if minutes is None:
            minutes = getattr(settings, "PAYMENT_RECONCILE_AFTER_MINUTES", 15)
        cutoff = timezone.now() - timedelta(minutes=int(minutes))
        qs = (
            Payment.objects.filter(status=Payment.STATUS_PENDING, created_at__lt=cutoff)
            .select_related("user")
            .order_by("created_at")[: options["limit"]]
        )

        verifier = build_verifier(gateway=get_gateway_client())
        counts = Counter()
        for payment in qs:
            try:
                result = verifier.verify(user=payment.user, pidx=payment.pidx)
            except PaymentError as exc:
                counts["error"] += 1
                logger.warning(
                    "payment.reconcile_error",
                    extra={"event": "payment.reconcile_error", "payment_id": payment.id, "code": exc.code},
                )
                continue
            counts[result.outcome.value] += 1

        summary = ", ".join(f"{k}={v}" for k, v in sorted(counts.items())) or "nothing to do"
        self.stdout.write(self.style.SUCCESS(f"Reconciled {sum(counts.values())} pending payments: {summary}."))
