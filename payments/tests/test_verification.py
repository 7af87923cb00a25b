from decimal import Decimal
from unittest.mock import patch

import pytest
from cart.models import Cart
from cart.tests.factories import cart_with_items
from django.core import mail
from django.db import IntegrityError, OperationalError
from orders.models import Order
from orders.selectors import get_order_for_cart
from payments.exceptions import (
    GatewayError,
    OrderCreationError,
    PaymentAuthorizationError,
    PaymentNotFound,
    PaymentValidationError,
    RetriesExhausted,
)
from payments.models import Payment
from payments.registry import VerificationRegistry
from payments.retry import RetryPolicy
from payments.services import PaymentVerifier, VerificationOutcome
from payments.tests.factories import FakeGateway, PaymentFactory
from tenacity import wait_none
from users.tests.factories import UserFactory


def _verifier(gateway, registry=None, max_attempts=3):
    return PaymentVerifier(
        gateway=gateway,
        registry=registry or VerificationRegistry(),
        retry_policy=RetryPolicy(max_attempts=max_attempts, wait=wait_none()),
    )


def _pending_payment(pidx="ABC123", total=Decimal("50.00")):
    cart = cart_with_items(status=Cart.STATUS_PENDING, lines=((Decimal("25.00"), 2),))
    assert cart.total_price == total
    return PaymentFactory(cart=cart, amount=total, pidx=pidx)


@pytest.mark.django_db
def test_completed_lookup_settles_payment_cart_and_creates_order():
    payment = _pending_payment()
    gateway = FakeGateway(lookups=["Completed"], transaction_id="TXN1")

    result = _verifier(gateway).verify(user=payment.user, pidx="ABC123")

    assert result.outcome is VerificationOutcome.COMPLETED
    assert result.succeeded
    payment.refresh_from_db()
    assert payment.status == Payment.STATUS_COMPLETED
    assert payment.transaction_id == "TXN1"
    assert payment.paid_at is not None
    cart = Cart.objects.get(id=payment.cart_id)
    assert cart.status == Cart.STATUS_PURCHASED

    orders = list(Order.objects.filter(cart=cart))
    assert len(orders) == 1
    assert orders[0].total_price == Decimal("50.00")
    assert orders[0].number == f"ORD-{orders[0].id:06d}"
    assert orders[0].items.count() == 1
    assert result.order.id == orders[0].id


@pytest.mark.django_db
def test_second_verify_returns_same_order_without_lookup():
    payment = _pending_payment()
    gateway = FakeGateway(lookups=["Completed"], transaction_id="TXN1")
    verifier = _verifier(gateway)

    first = verifier.verify(user=payment.user, pidx="ABC123")
    second = verifier.verify(user=payment.user, pidx="ABC123")

    assert first.order.id == second.order.id
    assert second.outcome is VerificationOutcome.COMPLETED
    assert gateway.lookup_calls == ["ABC123"]


@pytest.mark.django_db
def test_repeated_sequential_verification_creates_exactly_one_order():
    payment = _pending_payment()
    verifier = _verifier(FakeGateway(lookups=["Completed"]))

    order_ids = {verifier.verify(user=payment.user, pidx=payment.pidx).order.id for _ in range(5)}

    assert len(order_ids) == 1
    assert Order.objects.filter(cart_id=payment.cart_id).count() == 1


@pytest.mark.django_db
def test_pending_lookup_changes_nothing():
    payment = _pending_payment()
    before = Payment.objects.get(id=payment.id)
    cart_before = Cart.objects.get(id=payment.cart_id)

    result = _verifier(FakeGateway(lookups=["Pending"])).verify(user=payment.user, pidx=payment.pidx)

    assert result.outcome is VerificationOutcome.PENDING
    assert not result.succeeded
    after = Payment.objects.get(id=payment.id)
    cart_after = Cart.objects.get(id=payment.cart_id)
    assert after.status == Payment.STATUS_PENDING
    assert after.transaction_id is None
    assert after.updated_at == before.updated_at
    assert cart_after.status == Cart.STATUS_PENDING
    assert cart_after.updated_at == cart_before.updated_at
    assert not Order.objects.filter(cart_id=payment.cart_id).exists()


@pytest.mark.parametrize("provider_status", ["User canceled", "Expired", "Initiated", "Refunded", ""])
@pytest.mark.django_db
def test_non_success_lookup_fails_payment_and_reactivates_cart(provider_status):
    payment = _pending_payment()

    result = _verifier(FakeGateway(lookups=[provider_status])).verify(user=payment.user, pidx=payment.pidx)

    assert result.outcome is VerificationOutcome.FAILED
    payment.refresh_from_db()
    assert payment.status == Payment.STATUS_FAILED
    assert Cart.objects.get(id=payment.cart_id).status == Cart.STATUS_ACTIVE
    assert not Order.objects.filter(cart_id=payment.cart_id).exists()


@pytest.mark.django_db
def test_failed_payment_is_terminal_and_skips_gateway():
    payment = PaymentFactory(status=Payment.STATUS_FAILED)
    gateway = FakeGateway(lookups=["Completed"])

    result = _verifier(gateway).verify(user=payment.user, pidx=payment.pidx)

    assert result.outcome is VerificationOutcome.FAILED
    assert gateway.lookup_calls == []
    payment.refresh_from_db()
    assert payment.status == Payment.STATUS_FAILED


@pytest.mark.django_db
def test_other_user_is_rejected_without_side_effects():
    payment = _pending_payment()
    stranger = UserFactory()
    gateway = FakeGateway(lookups=["Completed"])

    with pytest.raises(PaymentAuthorizationError):
        _verifier(gateway).verify(user=stranger, pidx=payment.pidx)

    assert gateway.lookup_calls == []
    payment.refresh_from_db()
    assert payment.status == Payment.STATUS_PENDING
    assert Cart.objects.get(id=payment.cart_id).status == Cart.STATUS_PENDING
    assert not Order.objects.exists()


@pytest.mark.django_db
def test_unknown_reference_is_not_found():
    with pytest.raises(PaymentNotFound):
        _verifier(FakeGateway()).verify(user=UserFactory(), pidx="missing")


@pytest.mark.parametrize("pidx", [None, "", "   ", 123, ["ABC123"]])
@pytest.mark.django_db
def test_blank_reference_is_rejected(pidx):
    with pytest.raises(PaymentValidationError):
        _verifier(FakeGateway()).verify(user=UserFactory(), pidx=pidx)


@pytest.mark.django_db
def test_held_reference_reports_in_progress_without_touching_storage():
    payment = _pending_payment()
    registry = VerificationRegistry()
    key = PaymentVerifier.claim_key(payment.user, payment.pidx)
    assert registry.try_acquire(key)
    gateway = FakeGateway(lookups=["Completed"])

    result = _verifier(gateway, registry=registry).verify(user=payment.user, pidx=payment.pidx)

    assert result.outcome is VerificationOutcome.IN_PROGRESS
    assert result.payment is None
    assert gateway.lookup_calls == []
    assert registry.is_held(key)
    payment.refresh_from_db()
    assert payment.status == Payment.STATUS_PENDING


@pytest.mark.django_db
def test_stranger_polling_a_reference_does_not_block_its_owner():
    payment = _pending_payment()
    stranger = UserFactory()
    registry = VerificationRegistry()
    assert registry.try_acquire(PaymentVerifier.claim_key(stranger, payment.pidx))

    result = _verifier(FakeGateway(lookups=["Completed"]), registry=registry).verify(
        user=payment.user, pidx=payment.pidx
    )

    assert result.outcome is VerificationOutcome.COMPLETED


@pytest.mark.django_db
def test_stranger_is_refused_while_the_owner_verifies():
    payment = _pending_payment()
    registry = VerificationRegistry()
    assert registry.try_acquire(PaymentVerifier.claim_key(payment.user, payment.pidx))

    with pytest.raises(PaymentAuthorizationError):
        _verifier(FakeGateway(), registry=registry).verify(user=UserFactory(), pidx=payment.pidx)

    assert len(registry) == 1


@pytest.mark.django_db
def test_registry_is_released_after_errors():
    payment = _pending_payment()
    registry = VerificationRegistry()

    with pytest.raises(GatewayError):
        _verifier(FakeGateway(lookups=[GatewayError()]), registry=registry).verify(
            user=payment.user, pidx=payment.pidx
        )

    assert not registry.is_held(PaymentVerifier.claim_key(payment.user, payment.pidx))
    assert len(registry) == 0
    payment.refresh_from_db()
    assert payment.status == Payment.STATUS_PENDING


@pytest.mark.django_db
def test_gateway_errors_are_not_retried():
    payment = _pending_payment()
    gateway = FakeGateway(lookups=[GatewayError()])

    with pytest.raises(GatewayError):
        _verifier(gateway).verify(user=payment.user, pidx=payment.pidx)

    assert len(gateway.lookup_calls) == 1


@pytest.mark.django_db
def test_transient_conflict_is_retried_then_settles():
    payment = _pending_payment()
    gateway = FakeGateway(lookups=[OperationalError("database is locked"), "Completed"])

    result = _verifier(gateway).verify(user=payment.user, pidx=payment.pidx)

    assert result.outcome is VerificationOutcome.COMPLETED
    assert len(gateway.lookup_calls) == 2
    assert Order.objects.filter(cart_id=payment.cart_id).count() == 1


@pytest.mark.django_db
def test_persistent_conflict_exhausts_retries_without_mutation():
    payment = _pending_payment()
    gateway = FakeGateway(lookups=[OperationalError("could not serialize access due to concurrent update")])

    with pytest.raises(RetriesExhausted):
        _verifier(gateway, max_attempts=3).verify(user=payment.user, pidx=payment.pidx)

    assert len(gateway.lookup_calls) == 3
    payment.refresh_from_db()
    assert payment.status == Payment.STATUS_PENDING
    assert not Order.objects.exists()


@pytest.mark.django_db
def test_duplicate_order_race_resolves_to_existing_order():
    # Another verifier already settled the payment and committed the order,
    # but this one's existence checks miss it and the insert collides.
    payment = _pending_payment()
    first = _verifier(FakeGateway(lookups=["Completed"])).verify(user=payment.user, pidx=payment.pidx)
    misses = {"left": 2}

    def flaky_lookup(*, cart_id):
        if misses["left"]:
            misses["left"] -= 1
            return None
        return get_order_for_cart(cart_id=cart_id)

    gateway = FakeGateway(lookups=["Completed"])
    with patch("payments.services.get_order_for_cart", side_effect=flaky_lookup):
        result = _verifier(gateway).verify(user=payment.user, pidx=payment.pidx)

    assert result.outcome is VerificationOutcome.COMPLETED
    assert result.order.id == first.order.id
    assert result.payment.status == Payment.STATUS_COMPLETED
    assert Order.objects.filter(cart_id=payment.cart_id).count() == 1
    assert gateway.lookup_calls == []


@pytest.mark.django_db
def test_completed_payment_without_order_is_repaired_without_lookup():
    payment = _pending_payment()
    Payment.objects.filter(id=payment.id).update(status=Payment.STATUS_COMPLETED, transaction_id="TXN9")
    Cart.objects.filter(id=payment.cart_id).update(status=Cart.STATUS_PURCHASED)
    gateway = FakeGateway(lookups=["Pending"])

    result = _verifier(gateway).verify(user=payment.user, pidx=payment.pidx)

    assert result.outcome is VerificationOutcome.COMPLETED
    assert result.order is not None
    assert gateway.lookup_calls == []
    assert Order.objects.filter(cart_id=payment.cart_id).count() == 1


@pytest.mark.django_db
def test_confirmation_email_is_sent_after_commit(django_capture_on_commit_callbacks):
    payment = _pending_payment()

    with django_capture_on_commit_callbacks(execute=True):
        result = _verifier(FakeGateway(lookups=["Completed"])).verify(user=payment.user, pidx=payment.pidx)

    assert len(mail.outbox) == 1
    assert result.order.number in mail.outbox[0].subject
    assert mail.outbox[0].to == [payment.user.email]


@pytest.mark.django_db
def test_email_failure_does_not_affect_order(django_capture_on_commit_callbacks):
    payment = _pending_payment()

    with patch("orders.services.send_order_confirmation_email", side_effect=RuntimeError("smtp down")):
        with django_capture_on_commit_callbacks(execute=True):
            result = _verifier(FakeGateway(lookups=["Completed"])).verify(user=payment.user, pidx=payment.pidx)

    assert result.outcome is VerificationOutcome.COMPLETED
    assert Order.objects.filter(id=result.order.id).exists()


@pytest.mark.django_db
def test_order_write_failure_is_reported_and_rolled_back():
    payment = _pending_payment()
    gateway = FakeGateway(lookups=["Completed"])

    with patch("payments.services.create_order_from_cart", side_effect=IntegrityError("CHECK constraint failed")):
        with pytest.raises(OrderCreationError):
            _verifier(gateway).verify(user=payment.user, pidx=payment.pidx)

    payment.refresh_from_db()
    assert payment.status == Payment.STATUS_PENDING
    assert Cart.objects.get(id=payment.cart_id).status == Cart.STATUS_PENDING
    assert not Order.objects.exists()
    assert len(gateway.lookup_calls) == 1
