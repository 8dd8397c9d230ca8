"""GraphQL collaborators for the basket and checkout services.

The backend validates availability, promo codes and credit balances and
returns authoritative discount values. These classes only move data
between the wire format and `dancecart.schemas`.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, List, Optional, Protocol

import structlog

from dancecart.core.config import settings
from dancecart.core.errors import BackendError
from dancecart.integrations.graphql_client import GraphQLClient
from dancecart.schemas.basket import Basket
from dancecart.schemas.checkout import Address, Order, PaymentMethod, PaymentResult

log = structlog.get_logger(__name__)


# -------------------------
# Fragments
# -------------------------

COURSE_FIELDS = """
  __typename
  id
  name
  price
  currentPrice
  originalPrice
  depositPrice
  tasterPrice
  hasTasterClasses
  isAcceptingDeposits
  fullyBooked
  availableSpaces
"""

BASKET_FIELDS = f"""
  id
  items {{
    id
    itemType
    course {{ {COURSE_FIELDS} }}
    price
    fullPrice
    depositPrice
    tasterPrice
    payDeposit
    payLater
    discountValue
    promoCodeDiscountValue
    totalPrice
    isTaster
    sessionId
    assignToUserId
  }}
  creditItems {{ id description value code validUntil }}
  feeItems {{ id description value optional }}
  discountValue
  discountTotal
  promoCode
  promoCodeDiscountValue
  useCredit
  creditTotal
  subTotal
  tax
  total
  chargeTotal
  payLater
  createdAt
  updatedAt
  expiresAt
"""

ADDRESS_FIELDS = """
  id
  name
  line1
  line2
  city
  county
  postCode
  country
  countryCode
"""

PAYMENT_METHOD_FIELDS = f"""
  id
  type
  last4
  brand
  expiryMonth
  expiryYear
  isDefault
  billingAddress {{ {ADDRESS_FIELDS} }}
  createdAt
"""

ORDER_FIELDS = f"""
  id
  userId
  items {{
    id
    itemId
    itemType
    itemName
    price
    totalPrice
    discountValue
    promoCodeDiscountValue
    assignToUserId
    assignToUserName
    chargeFromDate
    extraInfo
    createdAt
  }}
  subTotal
  discountTotal
  promoCodeDiscountValue
  creditTotal
  tax
  total
  chargeTotal
  payLater
  status
  paymentMethodId
  paymentMethodType
  paymentIntentId
  paymentTransactionStatus
  billingAddress {{ {ADDRESS_FIELDS} }}
  notes
  createdAt
  updatedAt
"""

MUTATION_RESULT = f"""
  basket {{ {BASKET_FIELDS} }}
  errors {{ path message }}
"""

INIT_BASKET = f"mutation InitBasket {{ initBasket {{ {MUTATION_RESULT} }} }}"

GET_BASKET = f"query GetBasket {{ getBasket {{ {MUTATION_RESULT} }} }}"

ADD_ITEM = f"""
mutation AddItem(
  $itemId: Float!
  $itemType: String!
  $payDeposit: Boolean
  $assignToUserId: String
  $chargeFromDate: Float
) {{
  addItem(
    itemId: $itemId
    itemType: $itemType
    payDeposit: $payDeposit
    assignToUserId: $assignToUserId
    chargeFromDate: $chargeFromDate
  ) {{ {MUTATION_RESULT} }}
}}
"""

REMOVE_ITEM = f"""
mutation RemoveItem($itemId: Float!, $itemType: String!) {{
  removeItem(itemId: $itemId, itemType: $itemType) {{ {MUTATION_RESULT} }}
}}
"""

DESTROY_BASKET = "mutation DestroyBasket { destroyBasket }"

USE_CREDIT = f"""
mutation UseCreditForBasket($useCredit: Boolean!) {{
  useCreditForBasket(useCredit: $useCredit) {{ {MUTATION_RESULT} }}
}}
"""

APPLY_PROMO_CODE = f"""
mutation ApplyPromoCode($code: String!) {{
  applyPromoCode(code: $code) {{ {BASKET_FIELDS} }}
}}
"""

REMOVE_PROMO_CODE = f"mutation RemovePromoCode {{ removePromoCode {{ {BASKET_FIELDS} }} }}"

GET_PAYMENT_METHODS = f"""
query GetPaymentMethods {{
  getPaymentMethods {{ paymentMethods {{ {PAYMENT_METHOD_FIELDS} }} }}
}}
"""

GET_STRIPE_KEY = "query GetStripePK { getStripe }"

CREATE_PAYMENT_METHOD = f"""
mutation CreatePaymentMethod(
  $stripePaymentMethodId: String!
  $billingAddress: AddressInput!
  $setAsDefault: Boolean
) {{
  createPaymentMethod(
    stripePaymentMethodId: $stripePaymentMethodId
    billingAddress: $billingAddress
    setAsDefault: $setAsDefault
  ) {{ {PAYMENT_METHOD_FIELDS} }}
}}
"""

DELETE_PAYMENT_METHOD = """
mutation DeletePaymentMethod($paymentMethodId: String!) {
  deletePaymentMethod(paymentMethodId: $paymentMethodId)
}
"""

SET_DEFAULT_PAYMENT_METHOD = """
mutation SetDefaultPaymentMethod($paymentMethodId: String!) {
  setDefaultPaymentMethod(paymentMethodId: $paymentMethodId)
}
"""

PLACE_ORDER = f"""
mutation PlaceOrder($data: PlaceOrderInput!) {{
  placeOrder(data: $data) {{
    order {{ {ORDER_FIELDS} }}
    nextAction {{ clientSecret type }}
    paymentTransactionStatus
    errors {{ field message }}
  }}
}}
"""

UPDATE_PAYMENT_INTENT = "mutation UpdatePaymentIntent($id: String!) { updatePaymentIntent(id: $id) }"

GET_ORDER = f"""
query GetOrder($orderId: String!) {{
  getOrder(orderId: $orderId) {{ {ORDER_FIELDS} }}
}}
"""

GET_ORDER_HISTORY = f"""
query GetOrderHistory($limit: Int, $offset: Int) {{
  getOrderHistory(limit: $limit, offset: $offset) {{ {ORDER_FIELDS} }}
}}
"""


# -------------------------
# Parsing helpers
# -------------------------

def _course_payload(course: dict[str, Any]) -> dict[str, Any]:
    data = dict(course)
    typename = data.pop("__typename", None)
    data.setdefault("type", typename or "StudioCourse")
    return data


def parse_basket(data: dict[str, Any]) -> Basket:
    payload = dict(data)
    items = []
    for raw in payload.get("items") or []:
        item = dict(raw)
        if item.get("course"):
            item["course"] = _course_payload(item["course"])
        items.append(item)
    payload["items"] = items
    for key in ("creditItems", "feeItems"):
        if payload.get(key) is None:
            payload.pop(key, None)
    return Basket.model_validate(payload)


def _item_id_variable(item_id: str) -> float:
    # the backend schema types item ids as Float
    try:
        return float(item_id)
    except (TypeError, ValueError) as e:
        raise BackendError(f"Invalid item id: {item_id!r}", error_code="INVALID_ITEM") from e


def _address_input(address: Address) -> dict[str, Any]:
    return address.model_dump(by_alias=True, exclude={"id"})


@dataclass
class BasketMutation:
    """Basket returned by a mutation plus the first reported error, if any."""

    basket: Optional[Basket]
    error_message: Optional[str] = None
    error_code: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error_message is None and self.error_code is None


def _parse_mutation(response: Optional[dict[str, Any]]) -> BasketMutation:
    if response is None:
        raise BackendError("Invalid response from server")

    basket_data = response.get("basket")
    basket = parse_basket(basket_data) if basket_data else None

    errors = response.get("errors") or []
    if errors:
        first = errors[0]
        return BasketMutation(
            basket=basket,
            error_message=first.get("message"),
            error_code=first.get("path"),
        )
    if basket is None:
        raise BackendError("Invalid response from server")
    return BasketMutation(basket=basket)


# -------------------------
# Protocols
# -------------------------

class BasketBackend(Protocol):
    async def init_basket(self) -> Basket: ...

    async def get_basket(self) -> Optional[Basket]: ...

    async def add_item(
        self,
        item_id: str,
        item_type: str,
        *,
        pay_deposit: Optional[bool] = None,
        assign_to_user_id: Optional[str] = None,
        charge_from_date: Optional[datetime] = None,
    ) -> BasketMutation: ...

    async def remove_item(self, item_id: str, item_type: str) -> BasketMutation: ...

    async def destroy_basket(self) -> bool: ...

    async def use_credit_for_basket(self, use_credit: bool) -> BasketMutation: ...

    async def apply_promo_code(self, code: str) -> Basket: ...

    async def remove_promo_code(self) -> Basket: ...


class CheckoutBackend(Protocol):
    async def get_payment_methods(self) -> List[PaymentMethod]: ...

    async def get_stripe_publishable_key(self) -> str: ...

    async def create_payment_method(
        self,
        *,
        stripe_payment_method_id: str,
        billing_address: Address,
        set_as_default: bool = False,
    ) -> PaymentMethod: ...

    async def delete_payment_method(self, payment_method_id: str) -> bool: ...

    async def set_default_payment_method(self, payment_method_id: str) -> bool: ...

    async def place_order(
        self,
        *,
        basket: Basket,
        payment_method_id: Optional[str],
        payment_method_type: str,
        billing_address: Optional[Address] = None,
        line_item_info: Optional[dict[str, Any]] = None,
    ) -> PaymentResult: ...

    async def update_payment_intent(self, payment_intent_id: str) -> bool: ...

    async def get_order(self, order_id: str) -> Optional[Order]: ...

    async def get_order_history(self, *, limit: int = 20, offset: int = 0) -> List[Order]: ...


# -------------------------
# GraphQL implementations
# -------------------------

class GraphQLBasketBackend:
    def __init__(self, client: GraphQLClient):
        self.client = client

    async def init_basket(self) -> Basket:
        data = await self.client.execute(INIT_BASKET, operation_name="InitBasket")
        result = _parse_mutation(data.get("initBasket"))
        if result.basket is None:
            raise BackendError(result.error_message or "Failed to initialize basket", error_code=result.error_code)
        return result.basket

    async def get_basket(self) -> Optional[Basket]:
        data = await self.client.execute(GET_BASKET, operation_name="GetBasket")
        response = data.get("getBasket")
        if not response or not response.get("basket"):
            return None
        return parse_basket(response["basket"])

    async def add_item(
        self,
        item_id: str,
        item_type: str,
        *,
        pay_deposit: Optional[bool] = None,
        assign_to_user_id: Optional[str] = None,
        charge_from_date: Optional[datetime] = None,
    ) -> BasketMutation:
        variables = {
            "itemId": _item_id_variable(item_id),
            "itemType": item_type,
            "payDeposit": pay_deposit,
            "assignToUserId": assign_to_user_id,
            "chargeFromDate": charge_from_date.timestamp() * 1000 if charge_from_date else None,
        }
        data = await self.client.execute(ADD_ITEM, variables, operation_name="AddItem")
        return _parse_mutation(data.get("addItem"))

    async def remove_item(self, item_id: str, item_type: str) -> BasketMutation:
        variables = {"itemId": _item_id_variable(item_id), "itemType": item_type}
        data = await self.client.execute(REMOVE_ITEM, variables, operation_name="RemoveItem")
        return _parse_mutation(data.get("removeItem"))

    async def destroy_basket(self) -> bool:
        data = await self.client.execute(DESTROY_BASKET, operation_name="DestroyBasket")
        return bool(data.get("destroyBasket"))

    async def use_credit_for_basket(self, use_credit: bool) -> BasketMutation:
        data = await self.client.execute(
            USE_CREDIT, {"useCredit": use_credit}, operation_name="UseCreditForBasket"
        )
        return _parse_mutation(data.get("useCreditForBasket"))

    async def apply_promo_code(self, code: str) -> Basket:
        data = await self.client.execute(APPLY_PROMO_CODE, {"code": code}, operation_name="ApplyPromoCode")
        basket = data.get("applyPromoCode")
        if not basket:
            raise BackendError("Invalid response from server")
        return parse_basket(basket)

    async def remove_promo_code(self) -> Basket:
        data = await self.client.execute(REMOVE_PROMO_CODE, operation_name="RemovePromoCode")
        basket = data.get("removePromoCode")
        if not basket:
            raise BackendError("Invalid response from server")
        return parse_basket(basket)


class GraphQLCheckoutBackend:
    def __init__(self, client: GraphQLClient):
        self.client = client

    async def get_payment_methods(self) -> List[PaymentMethod]:
        data = await self.client.execute(GET_PAYMENT_METHODS, operation_name="GetPaymentMethods")
        response = data.get("getPaymentMethods")
        if not response:
            log.warning("payment_methods_empty_response")
            return []
        return [PaymentMethod.model_validate(pm) for pm in response.get("paymentMethods") or []]

    async def get_stripe_publishable_key(self) -> str:
        data = await self.client.execute(GET_STRIPE_KEY, operation_name="GetStripePK")
        key = data.get("getStripe")
        if not key:
            raise BackendError("No Stripe publishable key returned")
        return key

    async def create_payment_method(
        self,
        *,
        stripe_payment_method_id: str,
        billing_address: Address,
        set_as_default: bool = False,
    ) -> PaymentMethod:
        variables = {
            "stripePaymentMethodId": stripe_payment_method_id,
            "billingAddress": _address_input(billing_address),
            "setAsDefault": set_as_default,
        }
        data = await self.client.execute(CREATE_PAYMENT_METHOD, variables, operation_name="CreatePaymentMethod")
        pm = data.get("createPaymentMethod")
        if not pm:
            raise BackendError("No payment method data returned")
        return PaymentMethod.model_validate(pm)

    async def delete_payment_method(self, payment_method_id: str) -> bool:
        data = await self.client.execute(
            DELETE_PAYMENT_METHOD, {"paymentMethodId": payment_method_id}, operation_name="DeletePaymentMethod"
        )
        return data.get("deletePaymentMethod") is True

    async def set_default_payment_method(self, payment_method_id: str) -> bool:
        data = await self.client.execute(
            SET_DEFAULT_PAYMENT_METHOD,
            {"paymentMethodId": payment_method_id},
            operation_name="SetDefaultPaymentMethod",
        )
        return data.get("setDefaultPaymentMethod") is True

    async def place_order(
        self,
        *,
        basket: Basket,
        payment_method_id: Optional[str],
        payment_method_type: str,
        billing_address: Optional[Address] = None,
        line_item_info: Optional[dict[str, Any]] = None,
    ) -> PaymentResult:
        order_input: dict[str, Any] = {
            "amount": basket.charge_total,
            "currency": settings.CURRENCY,
            "paymentMethod": payment_method_id,
            "paymentMethodType": payment_method_type,
            "lineItemInfo": line_item_info or {},
        }
        if billing_address is not None:
            order_input["billingAddress"] = _address_input(billing_address)

        data = await self.client.execute(PLACE_ORDER, {"data": order_input}, operation_name="PlaceOrder")
        response = data.get("placeOrder")
        if not response:
            return PaymentResult(success=False, error="No order data returned", error_code="NO_DATA")

        errors = response.get("errors") or []
        if errors:
            first = errors[0]
            return PaymentResult(
                success=False,
                error=first.get("message") or "Unknown error",
                error_code=first.get("field") or "ORDER_ERROR",
            )

        order_data = response.get("order")
        if not order_data:
            return PaymentResult(success=False, error="No order created", error_code="NO_ORDER")

        next_action = response.get("nextAction") or {}
        return PaymentResult(
            success=True,
            order=Order.model_validate(order_data),
            client_secret=next_action.get("clientSecret"),
            next_action=next_action.get("type") or "none",
            payment_transaction_status=response.get("paymentTransactionStatus"),
        )

    async def update_payment_intent(self, payment_intent_id: str) -> bool:
        data = await self.client.execute(
            UPDATE_PAYMENT_INTENT, {"id": payment_intent_id}, operation_name="UpdatePaymentIntent"
        )
        return data.get("updatePaymentIntent") is True

    async def get_order(self, order_id: str) -> Optional[Order]:
        data = await self.client.execute(GET_ORDER, {"orderId": order_id}, operation_name="GetOrder")
        order = data.get("getOrder")
        return Order.model_validate(order) if order else None

    async def get_order_history(self, *, limit: int = 20, offset: int = 0) -> List[Order]:
        data = await self.client.execute(
            GET_ORDER_HISTORY, {"limit": limit, "offset": offset}, operation_name="GetOrderHistory"
        )
        return [Order.model_validate(o) for o in data.get("getOrderHistory") or []]
