from datetime import timedelta
from io import StringIO
from unittest.mock import patch

import pytest
from cart.models import Cart
from django.core.management import call_command
from django.utils import timezone
from orders.models import Order
from payments.exceptions import GatewayError
from payments.models import Payment
from payments.tests.factories import FakeGateway, PaymentFactory

GATEWAY_FACTORY = "payments.management.commands.reconcile_pending_payments.get_gateway_client"


def _age(payment, minutes):
    Payment.objects.filter(id=payment.id).update(created_at=timezone.now() - timedelta(minutes=minutes))


@pytest.mark.django_db
def test_reconciles_only_stale_pending_payments():
    stale = PaymentFactory()
    fresh = PaymentFactory()
    settled = PaymentFactory(status=Payment.STATUS_COMPLETED)
    _age(stale, 60)
    _age(settled, 60)
    gateway = FakeGateway(lookups=["Completed"])
    out = StringIO()

    with patch(GATEWAY_FACTORY, return_value=gateway):
        call_command("reconcile_pending_payments", "--older-than", "15", stdout=out)

    assert gateway.lookup_calls == [stale.pidx]
    stale.refresh_from_db()
    fresh.refresh_from_db()
    assert stale.status == Payment.STATUS_COMPLETED
    assert fresh.status == Payment.STATUS_PENDING
    assert Order.objects.filter(cart_id=stale.cart_id).count() == 1
    assert Cart.objects.get(id=stale.cart_id).status == Cart.STATUS_PURCHASED
    assert "completed=1" in out.getvalue()


@pytest.mark.django_db
def test_gateway_errors_are_counted_not_fatal():
    broken = PaymentFactory()
    cancelled = PaymentFactory()
    _age(broken, 60)
    _age(cancelled, 90)

    class Mixed(FakeGateway):
        def lookup(self, pidx):
            if pidx == broken.pidx:
                self.lookup_calls.append(pidx)
                raise GatewayError()
            return super().lookup(pidx)

    out = StringIO()
    gateway = Mixed(lookups=["Expired"])
    with patch(GATEWAY_FACTORY, return_value=gateway):
        call_command("reconcile_pending_payments", stdout=out)

    assert "error=1" in out.getvalue()
    assert "failed=1" in out.getvalue()
    broken.refresh_from_db()
    cancelled.refresh_from_db()
    assert broken.status == Payment.STATUS_PENDING
    assert cancelled.status == Payment.STATUS_FAILED
    assert Cart.objects.get(id=cancelled.cart_id).status == Cart.STATUS_ACTIVE


@pytest.mark.django_db
def test_nothing_to_do():
    out = StringIO()
    with patch(GATEWAY_FACTORY, return_value=FakeGateway()):
        call_command("reconcile_pending_payments", stdout=out)
    assert "nothing to do" in out.getvalue()
