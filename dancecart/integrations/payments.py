"""Payment gateway used by the checkout state machine.

Combines the backend's order/payment-method mutations with Stripe into the
three calls checkout needs: create a payment method, process a payment,
and handle the 3-D Secure next action.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional, Protocol

import structlog

from dancecart.core.errors import PaymentError
from dancecart.integrations.backend import CheckoutBackend
from dancecart.integrations.stripe_gateway import GatewayStatus, StripeGateway
from dancecart.schemas.basket import Basket
from dancecart.schemas.checkout import Address, CardDetails, Order, PaymentMethod

log = structlog.get_logger(__name__)


@dataclass
class GatewayResult:
    status: GatewayStatus
    order: Optional[Order] = None
    client_secret: Optional[str] = None
    payment_intent_id: Optional[str] = None
    error_message: Optional[str] = None
    error_code: Optional[str] = None


class PaymentGateway(Protocol):
    async def list_payment_methods(self) -> List[PaymentMethod]: ...

    async def create_payment_method(
        self,
        card: CardDetails,
        *,
        email: str,
        name: str,
        billing_address: Address,
        set_as_default: bool = False,
    ) -> PaymentMethod: ...

    async def register_payment_method(
        self,
        stripe_payment_method_id: str,
        *,
        billing_address: Address,
        set_as_default: bool = False,
    ) -> PaymentMethod: ...

    async def delete_payment_method(self, payment_method_id: str) -> bool: ...

    async def set_default_payment_method(self, payment_method_id: str) -> bool: ...

    async def process_payment(
        self,
        basket: Basket,
        *,
        payment_method_id: str,
        payment_method_type: str = "card",
        billing_address: Optional[Address] = None,
    ) -> GatewayResult: ...

    async def handle_next_action(
        self,
        client_secret: str,
        *,
        user_cancelled: bool = False,
    ) -> GatewayResult: ...

    async def publishable_key(self) -> str: ...

    async def get_order(self, order_id: str) -> Optional[Order]: ...

    async def order_history(self, *, limit: int = 20, offset: int = 0) -> List[Order]: ...


class BackendPaymentGateway:
    def __init__(self, backend: CheckoutBackend, stripe_gateway: StripeGateway):
        self.backend = backend
        self.stripe = stripe_gateway

    async def list_payment_methods(self) -> List[PaymentMethod]:
        return await self.backend.get_payment_methods()

    async def create_payment_method(
        self,
        card: CardDetails,
        *,
        email: str,
        name: str,
        billing_address: Address,
        set_as_default: bool = False,
    ) -> PaymentMethod:
        stripe_pm_id = await self.stripe.create_payment_method(
            card, email=email, name=name, billing_address=billing_address
        )
        return await self.register_payment_method(
            stripe_pm_id, billing_address=billing_address, set_as_default=set_as_default
        )

    async def register_payment_method(
        self,
        stripe_payment_method_id: str,
        *,
        billing_address: Address,
        set_as_default: bool = False,
    ) -> PaymentMethod:
        return await self.backend.create_payment_method(
            stripe_payment_method_id=stripe_payment_method_id,
            billing_address=billing_address,
            set_as_default=set_as_default,
        )

    async def delete_payment_method(self, payment_method_id: str) -> bool:
        return await self.backend.delete_payment_method(payment_method_id)

    async def set_default_payment_method(self, payment_method_id: str) -> bool:
        return await self.backend.set_default_payment_method(payment_method_id)

    async def process_payment(
        self,
        basket: Basket,
        *,
        payment_method_id: str,
        payment_method_type: str = "card",
        billing_address: Optional[Address] = None,
    ) -> GatewayResult:
        result = await self.backend.place_order(
            basket=basket,
            payment_method_id=payment_method_id,
            payment_method_type=payment_method_type,
            billing_address=billing_address,
        )

        if not result.success:
            return GatewayResult(
                GatewayStatus.FAILED,
                error_message=result.error or "Payment failed",
                error_code=result.error_code,
            )

        if result.requires_action:
            return GatewayResult(
                GatewayStatus.REQUIRES_ACTION,
                order=result.order,
                client_secret=result.client_secret,
            )

        return GatewayResult(GatewayStatus.SUCCEEDED, order=result.order)

    async def handle_next_action(
        self,
        client_secret: str,
        *,
        user_cancelled: bool = False,
    ) -> GatewayResult:
        if user_cancelled:
            return GatewayResult(GatewayStatus.CANCELLED, error_message="Authentication cancelled")

        intent = await self.stripe.retrieve_payment_intent(client_secret)

        if intent.status in (GatewayStatus.SUCCEEDED, GatewayStatus.PROCESSING):
            confirmed = await self.backend.update_payment_intent(intent.payment_intent_id)
            if not confirmed:
                raise PaymentError("Authentication failed", code="AUTH_FAILED")
            return GatewayResult(intent.status, payment_intent_id=intent.payment_intent_id)

        if intent.status == GatewayStatus.REQUIRES_ACTION:
            log.info("stripe_3ds_incomplete", payment_intent_id=intent.payment_intent_id)
            return GatewayResult(
                GatewayStatus.FAILED,
                payment_intent_id=intent.payment_intent_id,
                error_message="Authentication was not completed",
                error_code="AUTHENTICATION_REQUIRED",
            )

        return GatewayResult(
            intent.status,
            payment_intent_id=intent.payment_intent_id,
            error_message=intent.error_message,
            error_code=intent.error_code,
        )

    async def publishable_key(self) -> str:
        return await self.backend.get_stripe_publishable_key()

    async def get_order(self, order_id: str) -> Optional[Order]:
        return await self.backend.get_order(order_id)

    async def order_history(self, *, limit: int = 20, offset: int = 0) -> List[Order]:
        return await self.backend.get_order_history(limit=limit, offset=offset)
