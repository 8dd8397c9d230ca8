"""Shared pytest fixtures."""
from __future__ import annotations

import pytest

from dancecart.schemas.basket import CreditItem, FeeItem
from dancecart.schemas.checkout import PaymentMethod
from dancecart.services.basket import BasketService
from dancecart.services.checkout import CheckoutStateMachine
from tests.fakes import (
    FakeBackendConfig,
    FakeBasketBackend,
    FakeGatewayConfig,
    FakePaymentGateway,
    make_course,
)


@pytest.fixture
def backend_config() -> FakeBackendConfig:
    """A catalog with a plain course, a deposit course, a taster course and a full course."""
    return FakeBackendConfig(
        courses={
            "101": make_course("101", price=5000, name="Beginners Ballet"),
            "102": make_course("102", price=4500, deposit_price=2500, is_accepting_deposits=True),
            "103": make_course("103", price=6000, taster_price=1200, has_taster_classes=True),
        },
        promo_codes={"SAVE250": 250, "HALFOFF": 2500},
        full_course_ids={"999"},
        credit_items=[CreditItem(id="cr1", description="Refund credit", value=100)],
        fee_items=[
            FeeItem(id="booking", description="Booking fee", value=150),
            FeeItem(id="insurance", description="Class insurance", value=300, optional=True),
        ],
    )


@pytest.fixture
def basket_backend(backend_config: FakeBackendConfig) -> FakeBasketBackend:
    return FakeBasketBackend(backend_config)


@pytest.fixture
def basket_service(basket_backend: FakeBasketBackend) -> BasketService:
    return BasketService(basket_backend, session_id="sess-1")


@pytest.fixture
def gateway_config() -> FakeGatewayConfig:
    return FakeGatewayConfig(
        payment_methods=[
            PaymentMethod(id="pm_1", last4="4242", brand="visa"),
            PaymentMethod(id="pm_2", last4="1881", brand="mastercard", is_default=True),
        ]
    )


@pytest.fixture
def gateway(gateway_config: FakeGatewayConfig) -> FakePaymentGateway:
    return FakePaymentGateway(gateway_config)


@pytest.fixture
def checkout(gateway: FakePaymentGateway) -> CheckoutStateMachine:
    return CheckoutStateMachine(gateway)
