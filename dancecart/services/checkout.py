"""Checkout state machine.

    Initial -> Loading -> Loaded(session) -> Processing -> Success(order) | Error

Only Loaded carries a session; its current_step runs 1..4. Gateway and
network failures become CheckoutError states; nothing raised by a
collaborator leaves this module. A customer cancelling 3-D Secure is not a
failure: the machine goes back to Loaded at the same step.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional, Union

import structlog

from dancecart.core import errors
from dancecart.core.errors import PaymentError
from dancecart.integrations.payments import GatewayResult, PaymentGateway
from dancecart.integrations.stripe_gateway import GatewayStatus
from dancecart.schemas.basket import Basket
from dancecart.schemas.checkout import (
    AUTHENTICATION_STEP,
    FIRST_STEP,
    LAST_STEP,
    Address,
    CardDetails,
    CheckoutSession,
    Order,
    PaymentMethod,
)

log = structlog.get_logger(__name__)


# -------------------------
# States
# -------------------------

@dataclass(frozen=True)
class CheckoutInitial:
    name = "initial"


@dataclass(frozen=True)
class CheckoutLoading:
    name = "loading"


@dataclass(frozen=True)
class CheckoutLoaded:
    session: CheckoutSession
    name = "loaded"


@dataclass(frozen=True)
class CheckoutProcessing:
    message: str
    name = "processing"


@dataclass(frozen=True)
class CheckoutSuccess:
    order: Order
    name = "success"


@dataclass(frozen=True)
class CheckoutError:
    message: str
    error_code: Optional[str] = None
    name = "error"


CheckoutState = Union[
    CheckoutInitial,
    CheckoutLoading,
    CheckoutLoaded,
    CheckoutProcessing,
    CheckoutSuccess,
    CheckoutError,
]


def _default_method(methods: List[PaymentMethod]) -> Optional[PaymentMethod]:
    if not methods:
        return None
    return next((pm for pm in methods if pm.is_default), methods[0])


def _has_method(methods: List[PaymentMethod], payment_method_id: str) -> bool:
    return any(pm.id == payment_method_id for pm in methods)


def _clamp_step(step: int) -> int:
    return max(FIRST_STEP, min(LAST_STEP, step))


class CheckoutStateMachine:
    def __init__(self, gateway: PaymentGateway):
        self.gateway = gateway
        self.state: CheckoutState = CheckoutInitial()
        # order created by placeOrder while 3DS is outstanding
        self._pending_order: Optional[Order] = None

    # -------------------------
    # Accessors
    # -------------------------

    @property
    def session(self) -> Optional[CheckoutSession]:
        return self.state.session if isinstance(self.state, CheckoutLoaded) else None

    @property
    def is_loading(self) -> bool:
        return isinstance(self.state, (CheckoutLoading, CheckoutProcessing))

    @property
    def error_message(self) -> Optional[str]:
        return self.state.message if isinstance(self.state, CheckoutError) else None

    @property
    def success_order(self) -> Optional[Order]:
        return self.state.order if isinstance(self.state, CheckoutSuccess) else None

    @property
    def current_step(self) -> int:
        session = self.session
        return session.current_step if session is not None else FIRST_STEP

    def _set_session(self, session: CheckoutSession) -> None:
        self.state = CheckoutLoaded(session)

    def _fail(self, message: str, error_code: Optional[str] = None) -> bool:
        self.state = CheckoutError(message, error_code=error_code)
        return False

    # -------------------------
    # Transitions
    # -------------------------

    async def initialize_checkout(self, basket: Basket) -> None:
        if basket.is_empty:
            self._fail("Basket is empty", errors.BASKET_EMPTY)
            return

        self.state = CheckoutLoading()
        self._pending_order = None

        try:
            methods = await self.gateway.list_payment_methods()
        except Exception as e:
            log.warning("checkout_init_failed", error=str(e))
            self._fail(f"Failed to initialize checkout: {e}", getattr(e, "error_code", None))
            return

        self._set_session(
            CheckoutSession(
                basket=basket,
                available_payment_methods=methods,
                selected_payment_method=_default_method(methods),
                current_step=FIRST_STEP,
            )
        )
        log.info("checkout_initialized", payment_methods=len(methods), charge_total=basket.charge_total)

    def next_step(self) -> None:
        session = self.session
        if session is None:
            return
        self._set_session(session.model_copy(update={"current_step": _clamp_step(session.current_step + 1)}))

    def previous_step(self) -> None:
        session = self.session
        if session is None:
            return
        self._set_session(session.model_copy(update={"current_step": _clamp_step(session.current_step - 1)}))

    def select_payment_method(self, payment_method: PaymentMethod) -> None:
        session = self.session
        if session is None:
            return
        self._set_session(session.model_copy(update={"selected_payment_method": payment_method}))
        log.debug("checkout_payment_method_selected", payment_method_id=payment_method.id)

    def select_payment_method_by_id(self, payment_method_id: str) -> bool:
        session = self.session
        if session is None:
            return False
        method = next((pm for pm in session.available_payment_methods if pm.id == payment_method_id), None)
        if method is None:
            return False
        self.select_payment_method(method)
        return True

    def update_billing_address(self, address: Address) -> None:
        session = self.session
        if session is None:
            return
        self._set_session(session.model_copy(update={"billing_address": address}))

    async def create_payment_method_from_card(
        self,
        card: CardDetails,
        *,
        email: str,
        name: str,
        billing_address: Address,
        set_as_default: bool = False,
    ) -> bool:
        session = self.session
        if session is None:
            return self._fail("Invalid checkout state", errors.INVALID_STATE)

        self.state = CheckoutProcessing("Adding payment method...")
        try:
            method = await self.gateway.create_payment_method(
                card,
                email=email,
                name=name,
                billing_address=billing_address,
                set_as_default=set_as_default,
            )
        except PaymentError as e:
            log.info("checkout_card_rejected", code=e.code)
            return self._fail(e.message, e.code)
        except Exception as e:
            log.warning("checkout_card_failed", error=str(e))
            return self._fail(f"Failed to add payment method: {e}", getattr(e, "error_code", None))

        self._append_method(session, method, billing_address, set_as_default)
        return True

    async def add_payment_method(
        self,
        stripe_payment_method_id: str,
        *,
        billing_address: Address,
        set_as_default: bool = False,
    ) -> bool:
        session = self.session
        if session is None:
            return self._fail("Invalid checkout state", errors.INVALID_STATE)

        self.state = CheckoutProcessing("Adding payment method...")
        try:
            method = await self.gateway.register_payment_method(
                stripe_payment_method_id,
                billing_address=billing_address,
                set_as_default=set_as_default,
            )
        except Exception as e:
            log.warning("checkout_add_payment_method_failed", error=str(e))
            return self._fail(f"Failed to add payment method: {e}", getattr(e, "error_code", None))

        self._append_method(session, method, billing_address, set_as_default)
        return True

    def _append_method(
        self,
        session: CheckoutSession,
        method: PaymentMethod,
        billing_address: Address,
        set_as_default: bool,
    ) -> None:
        selected = method if set_as_default or session.selected_payment_method is None else session.selected_payment_method
        self._set_session(
            session.model_copy(
                update={
                    "available_payment_methods": [*session.available_payment_methods, method],
                    "selected_payment_method": selected,
                    "billing_address": billing_address,
                }
            )
        )
        log.info("checkout_payment_method_added", payment_method_id=method.id)

    async def refresh_payment_methods(self) -> None:
        session = self.session
        if session is None:
            return
        try:
            methods = await self.gateway.list_payment_methods()
        except Exception as e:
            # keep the current session on a failed refresh
            log.warning("checkout_refresh_payment_methods_failed", error=str(e))
            return
        self._set_session(
            session.model_copy(
                update={
                    "available_payment_methods": methods,
                    "selected_payment_method": _default_method(methods),
                }
            )
        )

    async def remove_payment_method(self, payment_method_id: str) -> bool:
        """Delete a saved card; the selection falls back to the default when it was the one removed."""
        session = self.session
        if session is None:
            return self._fail("Invalid checkout state", errors.INVALID_STATE)
        if not _has_method(session.available_payment_methods, payment_method_id):
            return False

        try:
            removed = await self.gateway.delete_payment_method(payment_method_id)
        except Exception as e:
            log.warning("checkout_remove_payment_method_failed", error=str(e))
            return self._fail(f"Failed to remove payment method: {e}", getattr(e, "error_code", None))
        if not removed:
            return self._fail("Failed to remove payment method", errors.PAYMENT_METHOD_NOT_UPDATED)

        methods = [pm for pm in session.available_payment_methods if pm.id != payment_method_id]
        selected = session.selected_payment_method
        if selected is None or selected.id == payment_method_id:
            selected = _default_method(methods)
        self._set_session(
            session.model_copy(update={"available_payment_methods": methods, "selected_payment_method": selected})
        )
        log.info("checkout_payment_method_removed", payment_method_id=payment_method_id)
        return True

    async def set_default_payment_method(self, payment_method_id: str) -> bool:
        session = self.session
        if session is None:
            return self._fail("Invalid checkout state", errors.INVALID_STATE)
        if not _has_method(session.available_payment_methods, payment_method_id):
            return False

        try:
            updated = await self.gateway.set_default_payment_method(payment_method_id)
        except Exception as e:
            log.warning("checkout_default_payment_method_failed", error=str(e))
            return self._fail(f"Failed to update payment method: {e}", getattr(e, "error_code", None))
        if not updated:
            return self._fail("Failed to update payment method", errors.PAYMENT_METHOD_NOT_UPDATED)

        methods = [
            pm.model_copy(update={"is_default": pm.id == payment_method_id})
            for pm in session.available_payment_methods
        ]
        self._set_session(
            session.model_copy(
                update={"available_payment_methods": methods, "selected_payment_method": _default_method(methods)}
            )
        )
        log.info("checkout_default_payment_method_set", payment_method_id=payment_method_id)
        return True

    async def process_payment(
        self,
        payment_method_id: str,
        payment_method_type: str = "card",
        *,
        basket: Optional[Basket] = None,
    ) -> bool:
        """Place the order for the session basket, or for `basket` when the caller holds a newer snapshot."""
        session = self.session
        if session is None:
            return self._fail("Invalid checkout state", errors.INVALID_STATE)

        if basket is not None:
            session = session.model_copy(update={"basket": basket})
            self._set_session(session)

        # checked again here: another flow may have emptied the basket
        basket = session.basket
        if basket is None or basket.is_empty:
            return self._fail("Basket is empty", errors.BASKET_EMPTY)

        self.state = CheckoutProcessing("Processing payment...")
        try:
            result = await self.gateway.process_payment(
                basket,
                payment_method_id=payment_method_id,
                payment_method_type=payment_method_type,
                billing_address=session.billing_address,
            )
        except PaymentError as e:
            log.info("checkout_payment_rejected", code=e.code)
            return self._fail(e.message, e.code)
        except Exception as e:
            log.warning("checkout_payment_failed", error=str(e))
            return self._fail(f"Payment processing failed: {e}", getattr(e, "error_code", None))

        if result.status == GatewayStatus.REQUIRES_ACTION:
            if not result.client_secret:
                return self._fail("Payment requires authentication but no client secret was returned", errors.MISSING_CLIENT_SECRET)
            self._pending_order = result.order
            self._set_session(
                session.model_copy(
                    update={
                        "client_secret": result.client_secret,
                        "is_processing": True,
                        "current_step": AUTHENTICATION_STEP,
                    }
                )
            )
            log.info("checkout_requires_3ds")
            return True

        if result.status in (GatewayStatus.SUCCEEDED, GatewayStatus.PROCESSING):
            if result.order is None:
                return self._fail("No order created", "NO_ORDER")
            self.state = CheckoutSuccess(result.order)
            log.info("checkout_order_placed", order_id=result.order.id)
            return True

        log.info("checkout_payment_declined", error_code=result.error_code)
        return self._fail(result.error_message or "Payment failed", result.error_code)

    async def handle_3ds_authentication(self, client_secret: str, *, user_cancelled: bool = False) -> bool:
        session = self.session
        if session is None or not session.client_secret or session.client_secret != client_secret:
            return self._fail("Invalid authentication state", errors.INVALID_STATE)

        self.state = CheckoutProcessing("Completing authentication...")
        try:
            result = await self.gateway.handle_next_action(client_secret, user_cancelled=user_cancelled)
        except PaymentError as e:
            if e.is_user_cancellation:
                return self._cancel_authentication(session)
            log.info("checkout_3ds_failed", code=e.code)
            return self._fail(e.message, e.code)
        except Exception as e:
            log.warning("checkout_3ds_error", error=str(e))
            return self._fail(f"Authentication failed: {e}", getattr(e, "error_code", None))

        if result.status == GatewayStatus.CANCELLED:
            return self._cancel_authentication(session)

        if result.status in (GatewayStatus.SUCCEEDED, GatewayStatus.PROCESSING):
            order = self._completed_order(result)
            if order is None:
                return self._fail("No order created", "NO_ORDER")
            self._pending_order = None
            self.state = CheckoutSuccess(order)
            log.info("checkout_3ds_succeeded", order_id=order.id)
            return True

        log.info("checkout_3ds_failed", error_code=result.error_code)
        return self._fail(result.error_message or "Authentication failed", result.error_code)

    def _cancel_authentication(self, session: CheckoutSession) -> bool:
        self._pending_order = None
        self._set_session(session.model_copy(update={"client_secret": None, "is_processing": False}))
        log.info("checkout_3ds_cancelled", step=session.current_step)
        return False

    def _completed_order(self, result: GatewayResult) -> Optional[Order]:
        order = result.order or self._pending_order
        if order is None:
            return None
        status = "success" if result.status == GatewayStatus.SUCCEEDED else "payment_pending"
        update = {"status": status}
        if result.payment_intent_id:
            update["payment_intent_id"] = result.payment_intent_id
        return order.model_copy(update=update)

    def reset(self) -> None:
        self.state = CheckoutInitial()
        self._pending_order = None
        log.debug("checkout_reset")

    # -------------------------
    # Lookups (no state change)
    # -------------------------

    async def publishable_key(self) -> Optional[str]:
        try:
            return await self.gateway.publishable_key()
        except Exception as e:
            log.warning("stripe_key_unavailable", error=str(e))
            return None

    async def get_order(self, order_id: str) -> Optional[Order]:
        try:
            return await self.gateway.get_order(order_id)
        except Exception as e:
            log.warning("order_lookup_failed", order_id=order_id, error=str(e))
            return None

    async def order_history(self, *, limit: int = 20, offset: int = 0) -> List[Order]:
        try:
            return await self.gateway.order_history(limit=limit, offset=offset)
        except Exception as e:
            log.warning("order_history_failed", error=str(e))
            return []
