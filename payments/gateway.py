"""Khalti ePayment client.

Only two provider calls are needed: `initiate` creates a payment intent and
returns the `pidx` plus hosted payment URL, and `lookup` reports the state of
an intent. Lookup results are reduced to a tri-state `GatewayStatus`.

Amounts cross this boundary in minor units (paisa); the rest of the code base
works in major-unit decimals.
"""

import logging
from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Any, Optional
from urllib.parse import urljoin

import requests
from django.conf import settings
from tenacity import Retrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from .exceptions import GatewayError

logger = logging.getLogger("elixa.payments")

MINOR_UNITS_PER_MAJOR = 100


def to_minor_units(amount: Decimal) -> int:
    """Convert a major-unit amount (e.g. 50.00 NPR) to paisa."""
    value = Decimal(amount) * MINOR_UNITS_PER_MAJOR
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def from_minor_units(value: int) -> Decimal:
    return (Decimal(int(value)) / MINOR_UNITS_PER_MAJOR).quantize(Decimal("0.01"))


class GatewayStatus(Enum):
    COMPLETED = "Completed"
    PENDING = "Pending"
    OTHER = "Other"

    @classmethod
    def from_provider(cls, value: Any) -> "GatewayStatus":
        # Initiated, Expired, Refunded, "User canceled" and anything new all
        # count as a non-success terminal answer.
        if value == cls.COMPLETED.value:
            return cls.COMPLETED
        if value == cls.PENDING.value:
            return cls.PENDING
        return cls.OTHER


@dataclass(frozen=True)
class CustomerInfo:
    name: str
    email: str
    phone: str


@dataclass(frozen=True)
class PaymentIntent:
    pidx: str
    payment_url: str


@dataclass(frozen=True)
class LookupResult:
    status: GatewayStatus
    provider_status: str
    transaction_id: Optional[str] = None
    total_amount: Optional[int] = None
    raw: dict = field(default_factory=dict, compare=False, repr=False)


class KhaltiClient:
    """Thin HTTP client over Khalti's ePayment v2 API.

    `initiate` retries connection failures and timeouts with exponential
    backoff since it runs outside any database transaction. `lookup` is a
    single call: it runs inside the verification transaction, and retrying
    there is the verifier's job.
    """

    INITIATE_PATH = "epayment/initiate/"
    LOOKUP_PATH = "epayment/lookup/"

    def __init__(
        self,
        *,
        secret_key: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        session: Optional[requests.Session] = None,
        retry_wait=None,
        max_attempts: int = 3,
    ):
        self.secret_key = secret_key if secret_key is not None else settings.KHALTI_SECRET_KEY
        self.base_url = (base_url or settings.KHALTI_BASE_URL).rstrip("/") + "/"
        self.timeout = timeout if timeout is not None else settings.PAYMENT_GATEWAY_TIMEOUT
        self.session = session or requests.Session()
        self._retrying = Retrying(
            reraise=True,
            stop=stop_after_attempt(max_attempts),
            wait=retry_wait if retry_wait is not None else wait_exponential(multiplier=0.3, min=0.3, max=3),
            retry=retry_if_exception_type((requests.ConnectionError, requests.Timeout)),
        )

    def _post(self, path: str, payload: dict) -> dict:
        url = urljoin(self.base_url, path)
        logger.info("KhaltiClient POST %s", url)
        resp = self.session.post(
            url,
            json=payload,
            headers={"Authorization": f"Key {self.secret_key}"},
            timeout=self.timeout,
        )
        resp.raise_for_status()
        data = resp.json()
        if not isinstance(data, dict):
            raise GatewayError("Unexpected response from payment provider.")
        return data

    def initiate(
        self,
        *,
        amount_minor: int,
        purchase_order_id: str,
        purchase_order_name: str,
        customer: CustomerInfo,
        return_url: Optional[str] = None,
        website_url: Optional[str] = None,
    ) -> PaymentIntent:
        frontend = getattr(settings, "FRONTEND_URL", "").rstrip("/")
        payload = {
            "return_url": return_url or f"{frontend}/payment/verify",
            "website_url": website_url or f"{frontend}/",
            "amount": int(amount_minor),
            "purchase_order_id": purchase_order_id,
            "purchase_order_name": purchase_order_name,
            "customer_info": {"name": customer.name, "email": customer.email, "phone": customer.phone},
        }
        try:
            data = self._retrying(self._post, self.INITIATE_PATH, payload)
        except (requests.RequestException, ValueError) as exc:
            logger.warning(
                "payment.gateway_error",
                extra={"event": "payment.gateway_error", "call": "initiate", "order_ref": purchase_order_id},
                exc_info=True,
            )
            raise GatewayError("Payment initiation failed.") from exc

        pidx = data.get("pidx")
        payment_url = data.get("payment_url")
        if not pidx or not payment_url:
            raise GatewayError("Payment provider returned an incomplete intent.")
        return PaymentIntent(pidx=str(pidx), payment_url=str(payment_url))

    def lookup(self, pidx: str) -> LookupResult:
        try:
            data = self._post(self.LOOKUP_PATH, {"pidx": pidx})
        except (requests.RequestException, ValueError) as exc:
            logger.warning(
                "payment.gateway_error",
                extra={"event": "payment.gateway_error", "call": "lookup", "pidx": pidx},
                exc_info=True,
            )
            raise GatewayError() from exc

        provider_status = str(data.get("status", ""))
        total = data.get("total_amount")
        return LookupResult(
            status=GatewayStatus.from_provider(provider_status),
            provider_status=provider_status,
            transaction_id=data.get("transaction_id") or None,
            total_amount=int(total) if isinstance(total, (int, float)) else None,
            raw=data,
        )


def get_gateway_client() -> KhaltiClient:
    """Build the configured gateway client for a request."""
    return KhaltiClient()
