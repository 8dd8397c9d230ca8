"""HTTP surface over injected in-memory sessions."""
from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from dancecart.core.config import settings
from dancecart.integrations.payments import GatewayResult
from dancecart.integrations.stripe_gateway import GatewayStatus
from dancecart.integrations.token_store import TokenStore
from dancecart.main import create_app
from dancecart.services.basket import BasketService
from dancecart.services.checkout import CheckoutStateMachine
from dancecart.services.sessions import SessionContext
from tests.fakes import FakeBackendConfig, FakeBasketBackend, FakeGatewayConfig, FakePaymentGateway, make_order

HEADERS = {settings.SESSION_HEADER: "sess-1"}


@pytest.fixture
def api(backend_config: FakeBackendConfig, gateway_config: FakeGatewayConfig):
    def factory(session_id: str) -> SessionContext:
        return SessionContext(
            session_id=session_id,
            tokens=TokenStore(),
            basket=BasketService(FakeBasketBackend(backend_config), session_id=session_id),
            checkout=CheckoutStateMachine(FakePaymentGateway(gateway_config)),
        )

    app = create_app(session_factory=factory)
    with TestClient(app) as client:
        yield client


class TestHealthAndSession:
    def test_health(self, api: TestClient) -> None:
        assert api.get("/health").json() == {"ok": True}

    def test_missing_session_header(self, api: TestClient) -> None:
        r = api.get("/basket")
        assert r.status_code == 400

    def test_token_round_trip(self, api: TestClient) -> None:
        assert api.post("/session/token", json={"token": "tok"}, headers=HEADERS).json() == {"authenticated": True}
        assert api.delete("/session/token", headers=HEADERS).json() == {"authenticated": False}

    def test_logout_destroys_basket(self, api: TestClient) -> None:
        api.post("/basket/items", json={"itemId": "101"}, headers=HEADERS)
        api.delete("/session/token", headers=HEADERS)
        assert api.get("/basket/count", headers=HEADERS).json() == {"count": 0}

    def test_sessions_are_isolated(self, api: TestClient) -> None:
        api.post("/basket/items", json={"itemId": "101"}, headers=HEADERS)
        other = {settings.SESSION_HEADER: "sess-2"}
        assert api.get("/basket/count", headers=other).json() == {"count": 0}
        assert api.get("/basket/count", headers=HEADERS).json() == {"count": 1}


class TestBasketRoutes:
    def test_add_and_price(self, api: TestClient) -> None:
        r = api.post("/basket/items", json={"itemId": "102", "payDeposit": True}, headers=HEADERS)
        assert r.status_code == 200
        body = r.json()
        assert body["success"] is True
        assert body["basket"]["items"][0]["price"] == 2500
        assert body["basket"]["payLater"] == 2000

    def test_full_course(self, api: TestClient) -> None:
        body = api.post("/basket/items", json={"itemId": "999"}, headers=HEADERS).json()
        assert body["success"] is False
        assert body["errorCode"] == "COURSE_FULL"

    def test_bad_item_type(self, api: TestClient) -> None:
        r = api.post("/basket/items", json={"itemId": "101", "itemType": "banana"}, headers=HEADERS)
        assert r.status_code == 422

    def test_promo_and_credit(self, api: TestClient) -> None:
        api.post("/basket/items", json={"itemId": "101"}, headers=HEADERS)
        promo = api.post("/basket/promo", json={"code": "save250"}, headers=HEADERS).json()
        assert promo["basket"]["promoCode"] == "SAVE250"

        credit = api.post("/basket/credit", json={"useCredit": True}, headers=HEADERS).json()
        basket = credit["basket"]
        assert basket["total"] == 4900
        assert basket["creditTotal"] == 100
        assert basket["chargeTotal"] == 4800

        removed = api.delete("/basket/promo", headers=HEADERS).json()
        assert removed["basket"]["promoCode"] is None

    def test_invalid_promo(self, api: TestClient) -> None:
        body = api.post("/basket/promo", json={"code": "NOPE1"}, headers=HEADERS).json()
        assert body["success"] is False
        assert body["errorCode"] == "INVALID_PROMO"

    def test_optional_fee(self, api: TestClient) -> None:
        api.post("/basket/items", json={"itemId": "101"}, headers=HEADERS)
        body = api.post("/basket/fees/insurance", json={"include": True}, headers=HEADERS).json()
        assert body["basket"]["feeTotal"] == 450

    def test_remove_and_destroy(self, api: TestClient) -> None:
        api.post("/basket/items", json={"itemId": "101"}, headers=HEADERS)
        body = api.delete("/basket/items/course/101", headers=HEADERS).json()
        assert body["success"] is True
        assert body["basket"]["items"] == []

        assert api.delete("/basket", headers=HEADERS).json() == {"destroyed": True}


class TestCheckoutRoutes:
    def test_start_on_empty_basket(self, api: TestClient) -> None:
        body = api.post("/checkout/start", headers=HEADERS).json()
        assert body["state"] == "error"
        assert body["errorCode"] == "BASKET_EMPTY"

    def test_happy_path(self, api: TestClient) -> None:
        api.post("/basket/items", json={"itemId": "101"}, headers=HEADERS)

        started = api.post("/checkout/start", headers=HEADERS).json()
        assert started["state"] == "loaded"
        assert started["stepTitle"] == "Review Order"
        assert started["session"]["selectedPaymentMethod"]["id"] == "pm_2"

        assert api.post("/checkout/next", headers=HEADERS).json()["session"]["currentStep"] == 2
        assert api.post("/checkout/payment-method", json={"paymentMethodId": "pm_1"}, headers=HEADERS).json()["ok"]

        paid = api.post("/checkout/pay", json={"paymentMethodId": "pm_1"}, headers=HEADERS).json()
        assert paid["ok"] is True
        assert paid["checkout"]["state"] == "success"
        assert paid["checkout"]["order"]["id"] == "order-1"

    def test_saved_payment_methods(self, api: TestClient) -> None:
        api.post("/basket/items", json={"itemId": "101"}, headers=HEADERS)
        api.post("/checkout/start", headers=HEADERS)

        made_default = api.post("/checkout/payment-methods/pm_1/default", headers=HEADERS).json()
        assert made_default["ok"] is True
        assert made_default["checkout"]["session"]["selectedPaymentMethod"]["id"] == "pm_1"

        removed = api.delete("/checkout/payment-methods/pm_2", headers=HEADERS).json()
        assert [pm["id"] for pm in removed["checkout"]["session"]["availablePaymentMethods"]] == ["pm_1"]

        assert api.delete("/checkout/payment-methods/pm_2", headers=HEADERS).status_code == 404

    def test_payment_method_routes_need_checkout(self, api: TestClient) -> None:
        assert api.delete("/checkout/payment-methods/pm_1", headers=HEADERS).status_code == 409

    def test_pay_after_basket_emptied(self, api: TestClient) -> None:
        api.post("/basket/items", json={"itemId": "101"}, headers=HEADERS)
        api.post("/checkout/start", headers=HEADERS)
        api.delete("/basket/items/course/101", headers=HEADERS)

        paid = api.post("/checkout/pay", json={"paymentMethodId": "pm_2"}, headers=HEADERS).json()
        assert paid["ok"] is False
        assert paid["checkout"]["state"] == "error"
        assert paid["checkout"]["errorCode"] == "BASKET_EMPTY"
        assert api.app.state.sessions.get("sess-1").checkout.gateway.processed == []

    def test_unknown_payment_method(self, api: TestClient) -> None:
        api.post("/basket/items", json={"itemId": "101"}, headers=HEADERS)
        api.post("/checkout/start", headers=HEADERS)
        r = api.post("/checkout/payment-method", json={"paymentMethodId": "pm_x"}, headers=HEADERS)
        assert r.status_code == 404

    def test_three_ds_cancel(self, api: TestClient, gateway_config: FakeGatewayConfig) -> None:
        gateway_config.payment_result = GatewayResult(
            GatewayStatus.REQUIRES_ACTION, order=make_order(), client_secret="pi_1_secret_x"
        )
        api.post("/basket/items", json={"itemId": "101"}, headers=HEADERS)
        api.post("/checkout/start", headers=HEADERS)

        paid = api.post("/checkout/pay", json={"paymentMethodId": "pm_2"}, headers=HEADERS).json()
        assert paid["checkout"]["session"]["clientSecret"] == "pi_1_secret_x"

        cancelled = api.post(
            "/checkout/3ds", json={"clientSecret": "pi_1_secret_x", "cancelled": True}, headers=HEADERS
        ).json()
        assert cancelled["ok"] is False
        assert cancelled["checkout"]["state"] == "loaded"
        assert cancelled["checkout"]["session"]["clientSecret"] is None
        assert cancelled["checkout"]["message"] is None

    def test_reset(self, api: TestClient) -> None:
        assert api.post("/checkout/reset", headers=HEADERS).json()["state"] == "initial"

    def test_orders(self, api: TestClient, gateway_config: FakeGatewayConfig) -> None:
        gateway_config.orders = {"order-1": make_order()}
        assert [o["id"] for o in api.get("/checkout/orders", headers=HEADERS).json()] == ["order-1"]
        assert api.get("/checkout/orders/order-1", headers=HEADERS).json()["chargeTotal"] == 4650
        assert api.get("/checkout/orders/missing", headers=HEADERS).status_code == 404

    def test_stripe_key(self, api: TestClient) -> None:
        assert api.get("/checkout/stripe-key", headers=HEADERS).json() == {"publishableKey": "pk_test_123"}
