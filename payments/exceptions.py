"""Failure taxonomy for payment initiation and verification.

Views translate these into structured JSON failures; each carries the HTTP
status it maps to and whether the caller may simply retry later.
"""


class PaymentError(Exception):
    """Base class for payment failures surfaced to callers."""

    code = "payment_error"
    status_code = 400
    retryable = False
    default_detail = "Payment request failed."

    def __init__(self, detail: str | None = None):
        self.detail = detail or self.default_detail
        super().__init__(self.detail)


class PaymentValidationError(PaymentError):
    code = "invalid"
    status_code = 400
    default_detail = "Invalid payment request."


class PaymentAuthorizationError(PaymentError):
    code = "forbidden"
    status_code = 403
    default_detail = "Unauthorized access to payment."


class PaymentNotFound(PaymentError):
    code = "not_found"
    status_code = 404
    default_detail = "Payment not found."


class GatewayError(PaymentError):
    """The payment provider could not be reached or answered unexpectedly."""

    code = "gateway_error"
    status_code = 502
    retryable = True
    default_detail = "Payment provider unavailable. Please retry."


class RetriesExhausted(PaymentError):
    """Transient store conflicts persisted past the retry budget."""

    code = "retry_exhausted"
    status_code = 503
    retryable = True
    default_detail = "Payment verification is busy. Please retry."


class OrderCreationError(PaymentError):
    """The order for a settled payment could not be written."""

    code = "order_failed"
    status_code = 500
    default_detail = "Order could not be created for this payment."
