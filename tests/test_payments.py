"""BackendPaymentGateway: backend order flow plus Stripe next actions."""
from __future__ import annotations

import asyncio
from typing import Optional

import pytest

from dancecart.core.errors import PaymentError
from dancecart.integrations.payments import BackendPaymentGateway
from dancecart.integrations.stripe_gateway import GatewayStatus, IntentStatus
from dancecart.schemas.checkout import PaymentMethod, PaymentResult
from tests.fakes import make_address, make_basket, make_card, make_item, make_order


class StubCheckoutBackend:
    def __init__(self, place_result: Optional[PaymentResult] = None, confirm: bool = True):
        self.place_result = place_result or PaymentResult(success=True, order=make_order())
        self.confirm = confirm
        self.confirmed: list = []
        self.created: list = []
        self.deleted: list = []
        self.defaults: list = []

    async def get_payment_methods(self):
        return [PaymentMethod(id="pm_1")]

    async def get_stripe_publishable_key(self):
        return "pk_test"

    async def create_payment_method(self, *, stripe_payment_method_id, billing_address, set_as_default=False):
        self.created.append(stripe_payment_method_id)
        return PaymentMethod(id=stripe_payment_method_id, is_default=set_as_default)

    async def delete_payment_method(self, payment_method_id):
        self.deleted.append(payment_method_id)
        return True

    async def set_default_payment_method(self, payment_method_id):
        self.defaults.append(payment_method_id)
        return True

    async def place_order(self, *, basket, payment_method_id, payment_method_type, billing_address=None):
        return self.place_result

    async def update_payment_intent(self, payment_intent_id):
        self.confirmed.append(payment_intent_id)
        return self.confirm

    async def get_order(self, order_id):
        return make_order(order_id)

    async def get_order_history(self, *, limit=20, offset=0):
        return [make_order()]


class StubStripe:
    def __init__(self, intent: Optional[IntentStatus] = None):
        self.intent = intent or IntentStatus(GatewayStatus.SUCCEEDED, payment_intent_id="pi_1")

    async def create_payment_method(self, card, *, email, name, billing_address):
        return "pm_stripe"

    async def retrieve_payment_intent(self, client_secret):
        return self.intent


def run(coro):
    return asyncio.run(coro)


def pay(gateway: BackendPaymentGateway):
    return run(gateway.process_payment(make_basket(make_item()), payment_method_id="pm_1"))


class TestProcessPayment:
    def test_success(self) -> None:
        result = pay(BackendPaymentGateway(StubCheckoutBackend(), StubStripe()))
        assert result.status == GatewayStatus.SUCCEEDED
        assert result.order.id == "order-1"

    def test_order_errors_fail(self) -> None:
        backend = StubCheckoutBackend(
            PaymentResult(success=False, error="Your card was declined.", error_code="CARD_DECLINED")
        )
        result = pay(BackendPaymentGateway(backend, StubStripe()))
        assert result.status == GatewayStatus.FAILED
        assert result.error_code == "CARD_DECLINED"

    def test_requires_action(self) -> None:
        backend = StubCheckoutBackend(
            PaymentResult(
                success=True, order=make_order(), next_action="requires_action", client_secret="pi_1_secret_x"
            )
        )
        result = pay(BackendPaymentGateway(backend, StubStripe()))
        assert result.status == GatewayStatus.REQUIRES_ACTION
        assert result.client_secret == "pi_1_secret_x"


class TestNextAction:
    def test_user_cancelled_skips_stripe(self) -> None:
        backend = StubCheckoutBackend()
        result = run(BackendPaymentGateway(backend, StubStripe()).handle_next_action("pi_1_secret_x", user_cancelled=True))
        assert result.status == GatewayStatus.CANCELLED
        assert backend.confirmed == []

    def test_succeeded_confirms_with_backend(self) -> None:
        backend = StubCheckoutBackend()
        result = run(BackendPaymentGateway(backend, StubStripe()).handle_next_action("pi_1_secret_x"))
        assert result.status == GatewayStatus.SUCCEEDED
        assert result.payment_intent_id == "pi_1"
        assert backend.confirmed == ["pi_1"]

    def test_backend_refuses_confirmation(self) -> None:
        gateway = BackendPaymentGateway(StubCheckoutBackend(confirm=False), StubStripe())
        with pytest.raises(PaymentError) as exc:
            run(gateway.handle_next_action("pi_1_secret_x"))
        assert exc.value.code == "AUTH_FAILED"

    def test_incomplete_challenge_fails(self) -> None:
        stripe_gateway = StubStripe(IntentStatus(GatewayStatus.REQUIRES_ACTION, payment_intent_id="pi_1"))
        result = run(BackendPaymentGateway(StubCheckoutBackend(), stripe_gateway).handle_next_action("pi_1_secret_x"))
        assert result.status == GatewayStatus.FAILED
        assert result.error_code == "AUTHENTICATION_REQUIRED"

    def test_failure_passes_through(self) -> None:
        stripe_gateway = StubStripe(
            IntentStatus(GatewayStatus.FAILED, payment_intent_id="pi_1", error_message="Declined", error_code="CARD_DECLINED")
        )
        backend = StubCheckoutBackend()
        result = run(BackendPaymentGateway(backend, stripe_gateway).handle_next_action("pi_1_secret_x"))
        assert result.status == GatewayStatus.FAILED
        assert result.error_code == "CARD_DECLINED"
        assert backend.confirmed == []


class TestPaymentMethods:
    def test_card_is_tokenized_then_registered(self) -> None:
        backend = StubCheckoutBackend()
        gateway = BackendPaymentGateway(backend, StubStripe())
        method = run(
            gateway.create_payment_method(
                make_card(), email="a@b.com", name="A", billing_address=make_address(), set_as_default=True
            )
        )
        assert method.id == "pm_stripe"
        assert method.is_default
        assert backend.created == ["pm_stripe"]

    def test_lookups_delegate(self) -> None:
        gateway = BackendPaymentGateway(StubCheckoutBackend(), StubStripe())
        assert run(gateway.publishable_key()) == "pk_test"
        assert run(gateway.get_order("o-9")).id == "o-9"
        assert len(run(gateway.order_history())) == 1
        assert run(gateway.list_payment_methods())[0].id == "pm_1"

    def test_saved_method_updates_go_to_backend(self) -> None:
        backend = StubCheckoutBackend()
        gateway = BackendPaymentGateway(backend, StubStripe())
        assert run(gateway.set_default_payment_method("pm_1"))
        assert run(gateway.delete_payment_method("pm_1"))
        assert backend.defaults == ["pm_1"]
        assert backend.deleted == ["pm_1"]
