"""Wire parsing and variables for the GraphQL backend classes."""
from __future__ import annotations

import asyncio
from typing import Any, Dict, List, Optional

import pytest

from dancecart.core.errors import BackendError
from dancecart.integrations.backend import (
    GraphQLBasketBackend,
    GraphQLCheckoutBackend,
    parse_basket,
)
from dancecart.schemas.course import OnlineCourse, StudioCourse
from tests.fakes import make_address, make_basket, make_item


class StubClient:
    """Records execute() calls and replies from a canned response."""

    def __init__(self, response: Dict[str, Any]):
        self.response = response
        self.calls: List[Dict[str, Any]] = []

    async def execute(self, document: str, variables: Optional[dict] = None, *, operation_name: Optional[str] = None):
        self.calls.append({"operation": operation_name, "variables": variables or {}})
        return self.response


def run(coro):
    return asyncio.run(coro)


WIRE_BASKET = {
    "id": "b-1",
    "items": [
        {
            "id": "i-1",
            "itemType": "course",
            "course": {"__typename": "OnlineCourse", "id": 7, "name": "Zoom Jazz", "price": 3000, "tasterPrice": None},
            "price": 3000,
            "discountValue": None,
            "promoCodeDiscountValue": None,
            "totalPrice": 3000,
        },
        {
            "id": "i-2",
            "course": {"id": "8", "name": "Studio Tap", "price": 4000},
            "price": 4000,
            "totalPrice": 4000,
        },
    ],
    "creditItems": None,
    "feeItems": None,
    "promoCode": None,
    "promoCodeDiscountValue": None,
    "total": 7000,
}


class TestParseBasket:
    def test_course_kinds(self) -> None:
        basket = parse_basket(WIRE_BASKET)
        online, studio = (i.course for i in basket.items)
        assert isinstance(online, OnlineCourse)
        assert online.id == "7"
        assert online.taster_price == 0
        assert isinstance(studio, StudioCourse)
        assert basket.items[1].item_type_display == "Studio Course"

    def test_nulls_become_defaults(self) -> None:
        basket = parse_basket(WIRE_BASKET)
        assert basket.credit_items == []
        assert basket.fee_items == []
        assert basket.promo_code_discount_value == 0
        assert basket.items[0].discount_value == 0


class TestBasketBackend:
    def test_add_item_variables(self) -> None:
        client = StubClient({"addItem": {"basket": WIRE_BASKET, "errors": None}})
        result = run(GraphQLBasketBackend(client).add_item("7", "course", pay_deposit=True))
        assert result.ok
        assert client.calls[0]["variables"]["itemId"] == 7.0
        assert client.calls[0]["variables"]["payDeposit"] is True

    def test_add_item_errors(self) -> None:
        client = StubClient(
            {"addItem": {"basket": WIRE_BASKET, "errors": [{"path": "COURSE_FULL", "message": "Course is full"}]}}
        )
        result = run(GraphQLBasketBackend(client).add_item("7", "course"))
        assert not result.ok
        assert result.error_code == "COURSE_FULL"
        assert result.basket.id == "b-1"

    def test_invalid_item_id(self) -> None:
        with pytest.raises(BackendError) as exc:
            run(GraphQLBasketBackend(StubClient({})).add_item("abc", "course"))
        assert exc.value.error_code == "INVALID_ITEM"

    def test_get_basket_none(self) -> None:
        assert run(GraphQLBasketBackend(StubClient({"getBasket": None})).get_basket()) is None

    def test_apply_promo_code(self) -> None:
        wire = dict(WIRE_BASKET, promoCode="SAVE10", promoCodeDiscountValue=300)
        client = StubClient({"applyPromoCode": wire})
        basket = run(GraphQLBasketBackend(client).apply_promo_code("SAVE10"))
        assert basket.promo_code_discount_value == 300
        assert client.calls[0]["variables"] == {"code": "SAVE10"}

    def test_apply_promo_code_empty_response(self) -> None:
        with pytest.raises(BackendError):
            run(GraphQLBasketBackend(StubClient({"applyPromoCode": None})).apply_promo_code("SAVE10"))

    def test_destroy_basket(self) -> None:
        assert run(GraphQLBasketBackend(StubClient({"destroyBasket": True})).destroy_basket()) is True


class TestCheckoutBackend:
    def test_place_order_sends_charge_total(self) -> None:
        client = StubClient(
            {
                "placeOrder": {
                    "order": {"id": "o-1", "chargeTotal": 4650, "status": "pending"},
                    "nextAction": {"type": "requires_action", "clientSecret": "pi_1_secret_x"},
                    "errors": None,
                }
            }
        )
        basket = make_basket(make_item(), charge_total=4650)
        result = run(
            GraphQLCheckoutBackend(client).place_order(
                basket=basket,
                payment_method_id="pm_1",
                payment_method_type="card",
                billing_address=make_address(),
            )
        )
        order_input = client.calls[0]["variables"]["data"]
        assert order_input["amount"] == 4650
        assert order_input["paymentMethod"] == "pm_1"
        assert order_input["billingAddress"]["postCode"] == "LS1 1AA"
        assert result.success
        assert result.requires_action
        assert result.client_secret == "pi_1_secret_x"

    def test_place_order_errors(self) -> None:
        client = StubClient({"placeOrder": {"errors": [{"field": "CARD_DECLINED", "message": "Declined"}]}})
        result = run(
            GraphQLCheckoutBackend(client).place_order(
                basket=make_basket(make_item()), payment_method_id="pm_1", payment_method_type="card"
            )
        )
        assert not result.success
        assert result.error_code == "CARD_DECLINED"

    def test_place_order_without_order(self) -> None:
        client = StubClient({"placeOrder": {"errors": []}})
        result = run(
            GraphQLCheckoutBackend(client).place_order(
                basket=make_basket(make_item()), payment_method_id="pm_1", payment_method_type="card"
            )
        )
        assert result.error_code == "NO_ORDER"

    def test_payment_methods(self) -> None:
        client = StubClient({"getPaymentMethods": {"paymentMethods": [{"id": "pm_1", "last4": "4242", "isDefault": True}]}})
        methods = run(GraphQLCheckoutBackend(client).get_payment_methods())
        assert methods[0].is_default

    def test_default_and_delete_payment_method(self) -> None:
        backend = GraphQLCheckoutBackend(StubClient({"setDefaultPaymentMethod": True, "deletePaymentMethod": True}))
        assert run(backend.set_default_payment_method("pm_1"))
        assert run(backend.delete_payment_method("pm_1"))

    def test_missing_stripe_key(self) -> None:
        with pytest.raises(BackendError):
            run(GraphQLCheckoutBackend(StubClient({"getStripe": None})).get_stripe_publishable_key())

    def test_update_payment_intent(self) -> None:
        client = StubClient({"updatePaymentIntent": True})
        assert run(GraphQLCheckoutBackend(client).update_payment_intent("pi_1"))
        assert client.calls[0]["variables"] == {"id": "pi_1"}
