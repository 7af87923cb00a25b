"""Payment services: checkout initiation and gateway verification.

`initiate_payment` binds a gateway intent to the caller's active cart.
`PaymentVerifier` reconciles the gateway's view of a payment with local
Payment/Cart/Order state and materialises the Order exactly once, however
many times and however concurrently verification is requested.
"""

import logging
import uuid
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Optional

from cart.models import Cart
from django.apps import apps
from django.conf import settings
from django.db import IntegrityError, transaction
from django.utils import timezone
from orders.models import Order
from orders.selectors import get_order_for_cart
from orders.services import create_order_from_cart

from .exceptions import OrderCreationError, PaymentAuthorizationError, PaymentNotFound, PaymentValidationError
from .gateway import CustomerInfo, GatewayStatus, to_minor_units
from .models import Payment
from .registry import VerificationRegistry
from .retry import RetryPolicy

logger = logging.getLogger("elixa.payments")

CENT = Decimal("0.01")
# Payment.amount is DecimalField(max_digits=12, decimal_places=2).
MAX_AMOUNT = Decimal("9999999999.99")


def parse_amount(value) -> Decimal:
    """Parse a positive major-unit amount with at most two decimal places."""

    if value is None or isinstance(value, bool) or value == "":
        raise PaymentValidationError("Cart ID and amount are required.")
    if not isinstance(value, (str, int, float, Decimal)):
        raise PaymentValidationError("Amount must be a positive number.")
    try:
        amount = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        raise PaymentValidationError("Amount must be a positive number.")
    if not amount.is_finite() or amount <= 0:
        raise PaymentValidationError("Amount must be a positive number.")
    if amount > MAX_AMOUNT:
        raise PaymentValidationError("Amount is too large.")
    try:
        quantized = amount.quantize(CENT)
    except InvalidOperation:
        raise PaymentValidationError("Amount must be a positive number.")
    if amount != quantized:
        raise PaymentValidationError("Amount cannot have more than two decimal places.")
    return quantized


def _parse_cart_id(value) -> int:
    if value is None or value == "" or isinstance(value, bool):
        raise PaymentValidationError("Cart ID and amount are required.")
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        digits = value.strip()
        if digits.isascii() and digits.isdigit():
            return int(digits)
    raise PaymentValidationError("Invalid cart id.")


def _customer_info(user) -> CustomerInfo:
    return CustomerInfo(
        name=getattr(user, "display_name", "") or "Customer",
        email=getattr(user, "email", "") or "",
        phone=getattr(user, "phone", "") or "",
    )


def initiate_payment(*, user, cart_id, amount, gateway) -> tuple[Payment, bool]:
    """Start checkout for a cart; returns `(payment, created)`.

    A cart that already has a pending payment gets that payment back
    unchanged, so repeated checkout clicks never create a second charge.
    Otherwise the gateway intent is created first and the Payment insert plus
    cart transition to `pending` are committed together.
    """

    cart_id = _parse_cart_id(cart_id)
    amount = parse_amount(amount)

    cart = Cart.objects.filter(id=cart_id).first()
    if cart is None:
        raise PaymentNotFound("Cart not found.")
    if cart.user_id != user.id:
        raise PaymentAuthorizationError("Unauthorized access to cart.")

    existing = Payment.objects.filter(cart_id=cart.id, status=Payment.STATUS_PENDING).first()
    if existing is not None:
        logger.info(
            "payment.initiate_reused",
            extra={"event": "payment.initiate_reused", "payment_id": existing.id, "cart_id": cart.id},
        )
        return existing, False

    if cart.status != Cart.STATUS_ACTIVE:
        raise PaymentValidationError("Invalid or inactive cart.")
    if not cart.items.exists():
        raise PaymentValidationError("Cart is empty.")
    if amount != cart.total_price:
        raise PaymentValidationError("Amount does not match the cart total.")

    purchase_order_id = f"ORDER_{cart.id}_{uuid.uuid4().hex[:12]}"
    intent = gateway.initiate(
        amount_minor=to_minor_units(amount),
        purchase_order_id=purchase_order_id,
        purchase_order_name=f"Order_{cart.id}",
        customer=_customer_info(user),
    )

    try:
        with transaction.atomic():
            locked = Cart.objects.select_for_update().get(id=cart.id)
            if locked.status != Cart.STATUS_ACTIVE:
                raise PaymentValidationError("Invalid or inactive cart.")
            payment = Payment.objects.create(
                user=user,
                cart=locked,
                amount=amount,
                pidx=intent.pidx,
                payment_url=intent.payment_url,
                purchase_order_id=purchase_order_id,
                status=Payment.STATUS_PENDING,
            )
            locked.status = Cart.STATUS_PENDING
            locked.save(update_fields=["status", "updated_at"])
    except (IntegrityError, PaymentValidationError):
        # A concurrent initiation for this cart committed first.
        winner = Payment.objects.filter(cart_id=cart.id, status=Payment.STATUS_PENDING).first()
        if winner is None:
            raise
        return winner, False

    logger.info(
        "payment.initiated",
        extra={
            "event": "payment.initiated",
            "payment_id": payment.id,
            "pidx": payment.pidx,
            "cart_id": cart.id,
            "user_id": user.id,
            "amount": str(amount),
        },
    )
    return payment, True


class VerificationOutcome(Enum):
    COMPLETED = "completed"
    PENDING = "pending"
    FAILED = "failed"
    IN_PROGRESS = "in_progress"


@dataclass(frozen=True)
class VerificationResult:
    outcome: VerificationOutcome
    payment: Optional[Payment] = None
    order: Optional[Order] = None

    @property
    def succeeded(self) -> bool:
        return self.outcome is VerificationOutcome.COMPLETED


class _Attempt(Enum):
    SETTLED = "settled"
    STILL_PENDING = "still_pending"
    FAILED = "failed"
    DUPLICATE_ORDER = "duplicate_order"


@dataclass
class _AttemptResult:
    kind: _Attempt
    payment: Payment
    order: Optional[Order] = None
    error: Optional[Exception] = None


class PaymentVerifier:
    """Single-flight, retrying reconciliation of gateway status.

    Transition table for a pending payment:

    - gateway Completed: payment completed, cart purchased, order created
    - gateway Pending: nothing changes
    - anything else: payment failed, cart back to active

    A completed payment short-circuits to its existing order without asking
    the gateway again.
    """

    def __init__(self, *, gateway, registry: VerificationRegistry, retry_policy: Optional[RetryPolicy] = None):
        self.gateway = gateway
        self.registry = registry
        self.retry_policy = retry_policy or RetryPolicy()

    @staticmethod
    def claim_key(user, pidx: str) -> str:
        """Single-flight key; scoped to the caller so strangers cannot hold an owner's reference."""
        return f"{user.id}:{pidx}"

    def verify(self, *, user, pidx) -> VerificationResult:
        pidx = pidx.strip() if isinstance(pidx, str) else ""
        if not pidx:
            raise PaymentValidationError("pidx is required.")

        with self.registry.claim(self.claim_key(user, pidx)) as acquired:
            if not acquired:
                logger.info(
                    "payment.verify_in_progress",
                    extra={"event": "payment.verify_in_progress", "pidx": pidx, "user_id": user.id},
                )
                return VerificationResult(VerificationOutcome.IN_PROGRESS)
            return self._verify(user, pidx)

    def _verify(self, user, pidx: str) -> VerificationResult:
        payment, order = self.retry_policy.run(lambda: self._load(user, pidx))

        if payment.status == Payment.STATUS_COMPLETED:
            if order is not None:
                return VerificationResult(VerificationOutcome.COMPLETED, payment, order)
            logger.error(
                "payment.order_missing",
                extra={"event": "payment.order_missing", "payment_id": payment.id, "cart_id": payment.cart_id},
            )
        elif payment.status != Payment.STATUS_PENDING:
            return VerificationResult(VerificationOutcome.FAILED, payment)

        attempt = self.retry_policy.run(lambda: self._reconcile(payment.id))

        if attempt.kind is _Attempt.DUPLICATE_ORDER:
            # Another verifier committed the order first; report its result.
            payment, order = self.retry_policy.run(lambda: self._load(user, pidx))
            if order is None:
                raise OrderCreationError() from attempt.error
            logger.info(
                "order.duplicate_resolved",
                extra={"event": "order.duplicate_resolved", "payment_id": payment.id, "order_id": order.id},
            )
            return VerificationResult(VerificationOutcome.COMPLETED, payment, order)

        if attempt.kind is _Attempt.SETTLED:
            return VerificationResult(VerificationOutcome.COMPLETED, attempt.payment, attempt.order)
        if attempt.kind is _Attempt.STILL_PENDING:
            return VerificationResult(VerificationOutcome.PENDING, attempt.payment)
        return VerificationResult(VerificationOutcome.FAILED, attempt.payment)

    def _load(self, user, pidx: str) -> tuple[Payment, Optional[Order]]:
        payment = Payment.objects.filter(pidx=pidx).first()
        if payment is None:
            raise PaymentNotFound()
        if payment.user_id != user.id:
            raise PaymentAuthorizationError()
        order = None
        if payment.status == Payment.STATUS_COMPLETED:
            order = get_order_for_cart(cart_id=payment.cart_id)
        return payment, order

    def _reconcile(self, payment_id: int) -> _AttemptResult:
        """One transactional attempt; runs inside `RetryPolicy.run`."""

        payment = Payment.objects.select_for_update().get(id=payment_id)
        cart = Cart.objects.select_for_update(of=("self",)).select_related("user").get(id=payment.cart_id)

        if payment.status == Payment.STATUS_COMPLETED:
            return self._materialize(payment, cart)
        if payment.status != Payment.STATUS_PENDING:
            return _AttemptResult(_Attempt.FAILED, payment)

        result = self.gateway.lookup(payment.pidx)

        if result.status is GatewayStatus.COMPLETED:
            payment.status = Payment.STATUS_COMPLETED
            payment.transaction_id = result.transaction_id
            payment.paid_at = timezone.now()
            payment.save(update_fields=["status", "transaction_id", "paid_at", "updated_at"])
            cart.status = Cart.STATUS_PURCHASED
            cart.save(update_fields=["status", "updated_at"])
            attempt = self._materialize(payment, cart)
            if attempt.kind is _Attempt.SETTLED:
                logger.info(
                    "payment.verified",
                    extra={
                        "event": "payment.verified",
                        "payment_id": payment.id,
                        "pidx": payment.pidx,
                        "transaction_id": payment.transaction_id,
                        "order_id": attempt.order.id,
                    },
                )
            return attempt

        if result.status is GatewayStatus.PENDING:
            logger.info(
                "payment.still_pending",
                extra={"event": "payment.still_pending", "payment_id": payment.id, "pidx": payment.pidx},
            )
            return _AttemptResult(_Attempt.STILL_PENDING, payment)

        payment.status = Payment.STATUS_FAILED
        payment.save(update_fields=["status", "updated_at"])
        if cart.status == Cart.STATUS_PENDING:
            cart.status = Cart.STATUS_ACTIVE
            cart.save(update_fields=["status", "updated_at"])
        logger.info(
            "payment.failed",
            extra={
                "event": "payment.failed",
                "payment_id": payment.id,
                "pidx": payment.pidx,
                "provider_status": result.provider_status,
                "cart_id": cart.id,
            },
        )
        return _AttemptResult(_Attempt.FAILED, payment)

    def _materialize(self, payment: Payment, cart: Cart) -> _AttemptResult:
        order = get_order_for_cart(cart_id=cart.id)
        if order is not None:
            return _AttemptResult(_Attempt.SETTLED, payment, order)
        try:
            order = create_order_from_cart(cart)
        except IntegrityError as exc:
            if not Order.objects.filter(cart_id=cart.id).exists():
                # Not the one-order-per-cart race; the attempt and its writes roll back.
                logger.error(
                    "order.create_failed",
                    extra={"event": "order.create_failed", "payment_id": payment.id, "cart_id": cart.id},
                    exc_info=True,
                )
                raise OrderCreationError() from exc
            # Undo this attempt's writes; the winner's state stands.
            transaction.set_rollback(True)
            return _AttemptResult(_Attempt.DUPLICATE_ORDER, payment, error=exc)
        return _AttemptResult(_Attempt.SETTLED, payment, order)


def build_verifier(*, gateway) -> PaymentVerifier:
    """Verifier sharing this process's single-flight registry."""

    registry = apps.get_app_config("payments").verification_registry
    policy = RetryPolicy(max_attempts=int(getattr(settings, "PAYMENT_VERIFY_MAX_ATTEMPTS", 3)))
    return PaymentVerifier(gateway=gateway, registry=registry, retry_policy=policy)
