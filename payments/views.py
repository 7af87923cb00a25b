"""Payment API endpoints.

Every outcome is a structured JSON body with a `success` flag; service
failures never escape as unhandled exceptions.
"""

from common.throttling import SettingsScopedRateThrottle
from drf_spectacular.utils import OpenApiExample, extend_schema, inline_serializer
from orders.serializers import OrderSerializer
from rest_framework import serializers as rf_serializers
from rest_framework import status
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from .exceptions import PaymentError, PaymentValidationError
from .gateway import get_gateway_client
from .serializers import (
    InitiatePaymentSerializer,
    PaymentSerializer,
    VerificationResponseSerializer,
    VerifyPaymentSerializer,
)
from .services import VerificationOutcome, VerificationResult, build_verifier, initiate_payment

PaymentFailure = inline_serializer(
    name="PaymentFailure",
    fields={
        "success": rf_serializers.BooleanField(),
        "code": rf_serializers.CharField(),
        "detail": rf_serializers.CharField(),
        "retryable": rf_serializers.BooleanField(),
    },
)

IN_PROGRESS_RETRY_AFTER_SECONDS = 2


def payment_error_response(exc: PaymentError) -> Response:
    body = {"success": False, "code": exc.code, "detail": exc.detail, "retryable": exc.retryable}
    return Response(body, status=exc.status_code)


def request_payload(request) -> dict:
    data = request.data
    if not isinstance(data, dict):
        raise PaymentValidationError("Request body must be a JSON object.")
    return data


def verification_response(result: VerificationResult, *, request=None) -> Response:
    context = {"request": request}
    outcome = result.outcome
    if outcome is VerificationOutcome.IN_PROGRESS:
        body = {"success": False, "status": outcome.value, "detail": "Verification already in progress."}
        return Response(
            body,
            status=status.HTTP_202_ACCEPTED,
            headers={"Retry-After": str(IN_PROGRESS_RETRY_AFTER_SECONDS)},
        )

    body = {"status": outcome.value, "payment": PaymentSerializer(result.payment, context=context).data}
    if outcome is VerificationOutcome.COMPLETED:
        body.update(
            success=True,
            detail="Payment verified successfully.",
            order=OrderSerializer(result.order, context=context).data,
        )
        return Response(body, status=status.HTTP_200_OK)
    if outcome is VerificationOutcome.PENDING:
        body.update(success=False, detail="Payment is still pending.")
        return Response(body, status=status.HTTP_202_ACCEPTED)
    body.update(success=False, detail="Payment failed.")
    return Response(body, status=status.HTTP_402_PAYMENT_REQUIRED)


class PaymentInitiateView(APIView):
    """Start gateway checkout for the caller's active cart."""

    permission_classes = [IsAuthenticated]
    throttle_scope = "payments"
    throttle_classes = [SettingsScopedRateThrottle]

    @extend_schema(
        tags=["Payments"],
        summary="Initiate payment",
        description=(
            "Creates a Khalti payment intent for the cart and moves the cart to `pending`.\n\n"
            "If the cart already has a pending payment, that payment is returned unchanged (200)."
        ),
        request=InitiatePaymentSerializer,
        responses={
            201: inline_serializer(
                name="PaymentInitiated",
                fields={
                    "success": rf_serializers.BooleanField(),
                    "detail": rf_serializers.CharField(),
                    "payment": PaymentSerializer(),
                },
            ),
            400: PaymentFailure,
            403: PaymentFailure,
            404: PaymentFailure,
            502: PaymentFailure,
        },
        examples=[
            OpenApiExample("Initiate", value={"cart_id": 31, "amount": "50.00"}, request_only=True),
        ],
    )
    def post(self, request):
        try:
            data = request_payload(request)
            payment, created = initiate_payment(
                user=request.user,
                cart_id=data.get("cart_id"),
                amount=data.get("amount"),
                gateway=get_gateway_client(),
            )
        except PaymentError as exc:
            return payment_error_response(exc)

        body = {
            "success": True,
            "detail": "Payment initiated successfully." if created else "Payment already initiated for this cart.",
            "payment": PaymentSerializer(payment, context={"request": request}).data,
        }
        return Response(body, status=status.HTTP_201_CREATED if created else status.HTTP_200_OK)


class PaymentVerifyView(APIView):
    """Reconcile a gateway payment with local state; safe to call repeatedly."""

    permission_classes = [IsAuthenticated]
    throttle_scope = "payments"
    throttle_classes = [SettingsScopedRateThrottle]

    @extend_schema(
        tags=["Payments"],
        summary="Verify payment",
        description=(
            "Looks the payment up with the provider and settles it.\n\n"
            "- 200: completed, with the order\n"
            "- 202: still pending, or another verification is in progress (poll again)\n"
            "- 402: payment failed; the cart is active again"
        ),
        request=VerifyPaymentSerializer,
        responses={
            200: VerificationResponseSerializer,
            202: VerificationResponseSerializer,
            402: VerificationResponseSerializer,
            400: PaymentFailure,
            403: PaymentFailure,
            404: PaymentFailure,
            500: PaymentFailure,
            502: PaymentFailure,
            503: PaymentFailure,
        },
    )
    def post(self, request):
        try:
            data = request_payload(request)
            verifier = build_verifier(gateway=get_gateway_client())
            result = verifier.verify(user=request.user, pidx=data.get("pidx"))
        except PaymentError as exc:
            return payment_error_response(exc)
        return verification_response(result, request=request)
