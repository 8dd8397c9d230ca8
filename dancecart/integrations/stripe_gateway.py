from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

import stripe
import structlog

from dancecart.core.config import settings
from dancecart.core.errors import PaymentError
from dancecart.schemas.checkout import Address, CardDetails

log = structlog.get_logger(__name__)


class GatewayStatus(str, Enum):
    SUCCEEDED = "succeeded"
    REQUIRES_ACTION = "requires_action"
    PROCESSING = "processing"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass
class IntentStatus:
    status: GatewayStatus
    payment_intent_id: Optional[str] = None
    error_message: Optional[str] = None
    error_code: Optional[str] = None


# substring of the Stripe error code -> message shown to the customer
_READABLE_ERRORS = [
    ("declined", "Your card was declined. Please try another card."),
    ("number", "The card number is invalid. Please check and try again."),
    ("expiry", "The expiry date is invalid. Please check and try again."),
    ("cvc", "The security code is invalid. Please check and try again."),
    ("expired", "Your card has expired. Please use another card."),
    ("funds", "Your card has insufficient funds."),
    ("processing", "An error occurred while processing your card. Please try again."),
    ("authentication", "We could not authenticate your card. Please try again or use another card."),
]


def readable_error_message(code: Optional[str], message: Optional[str] = None) -> str:
    code = (code or "").lower()
    for needle, readable in _READABLE_ERRORS:
        if needle in code:
            return readable
    return message or "Payment failed. Please try again."


def payment_intent_id_from_secret(client_secret: str) -> str:
    # client secrets look like "pi_123_secret_abc"
    intent_id, sep, _ = client_secret.partition("_secret_")
    if not sep or not intent_id.startswith("pi_"):
        raise PaymentError("Invalid client secret", code="INVALID_CLIENT_SECRET")
    return intent_id


def map_intent_status(intent: Any) -> IntentStatus:
    status = getattr(intent, "status", None)
    intent_id = getattr(intent, "id", None)

    if status == "succeeded":
        return IntentStatus(GatewayStatus.SUCCEEDED, payment_intent_id=intent_id)
    if status == "requires_action":
        return IntentStatus(GatewayStatus.REQUIRES_ACTION, payment_intent_id=intent_id)
    if status == "processing":
        return IntentStatus(GatewayStatus.PROCESSING, payment_intent_id=intent_id)
    if status == "canceled":
        return IntentStatus(
            GatewayStatus.CANCELLED,
            payment_intent_id=intent_id,
            error_message="Payment was cancelled",
        )
    if status == "requires_payment_method":
        last_error = getattr(intent, "last_payment_error", None)
        code = getattr(last_error, "code", None) if last_error else None
        message = getattr(last_error, "message", None) if last_error else None
        return IntentStatus(
            GatewayStatus.FAILED,
            payment_intent_id=intent_id,
            error_message=readable_error_message(code, message or "Payment method required"),
            error_code=(code or "PAYMENT_METHOD_REQUIRED").upper(),
        )
    return IntentStatus(
        GatewayStatus.FAILED,
        payment_intent_id=intent_id,
        error_message=f"Payment failed with status: {status}",
        error_code="PAYMENT_FAILED",
    )


def billing_details(*, email: str, name: str, address: Address) -> dict[str, Any]:
    return {
        "email": email,
        "name": name,
        "address": {
            "line1": address.line1,
            "line2": address.line2,
            "city": address.city,
            "state": address.county,
            "country": address.country_code,
            "postal_code": address.post_code,
        },
    }


class StripeGateway:
    def __init__(self, api_key: Optional[str] = None, *, client: Optional[stripe.StripeClient] = None):
        self._api_key = api_key if api_key is not None else settings.STRIPE_SECRET_KEY
        self._client = client

    @property
    def client(self) -> stripe.StripeClient:
        if self._client is None:
            if not self._api_key:
                raise PaymentError("Payment system is not configured", code="STRIPE_INIT_ERROR")
            self._client = stripe.StripeClient(self._api_key)
        return self._client

    async def create_payment_method(
        self,
        card: CardDetails,
        *,
        email: str,
        name: str,
        billing_address: Address,
    ) -> str:
        """Tokenize card details and return the Stripe payment method id."""
        params = {
            "type": "card",
            "card": {
                "number": card.number,
                "exp_month": card.exp_month,
                "exp_year": card.exp_year,
                "cvc": card.cvc,
            },
            "billing_details": billing_details(email=email, name=name, address=billing_address),
        }
        try:
            pm = await self.client.payment_methods.create_async(params=params)
        except stripe.StripeError as e:
            code = (e.code or "card_error").upper()
            log.info("stripe_payment_method_rejected", code=code)
            raise PaymentError(
                readable_error_message(e.code, e.user_message),
                code=code,
                details=str(e),
            ) from e
        return pm.id

    async def retrieve_payment_intent(self, client_secret: str) -> IntentStatus:
        intent_id = payment_intent_id_from_secret(client_secret)
        try:
            intent = await self.client.payment_intents.retrieve_async(intent_id)
        except stripe.StripeError as e:
            raise PaymentError(
                readable_error_message(e.code, e.user_message),
                code=(e.code or "STRIPE_ERROR").upper(),
                details=str(e),
            ) from e
        return map_intent_status(intent)
