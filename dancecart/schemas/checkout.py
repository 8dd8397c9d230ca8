from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import Field

from dancecart.core.money import format_pence
from dancecart.schemas.basket import Basket
from dancecart.schemas.common import CamelModel


class Address(CamelModel):
    id: Optional[str] = None
    name: Optional[str] = None
    line1: str
    line2: Optional[str] = None
    city: str
    county: Optional[str] = None
    post_code: str
    country: Optional[str] = None
    country_code: str = "GB"

    @property
    def display_name(self) -> str:
        parts: List[str] = []
        if self.name:
            parts.append(self.name)
        parts.append(self.line1)
        if self.line2:
            parts.append(self.line2)
        parts.append(self.city)
        parts.append(self.post_code)
        return ", ".join(parts)

    @property
    def short_display(self) -> str:
        return f"{self.line1}, {self.city} {self.post_code}"


class PaymentMethod(CamelModel):
    id: str
    type: str = "card"
    last4: Optional[str] = None
    brand: Optional[str] = None
    expiry_month: Optional[str] = None
    expiry_year: Optional[str] = None
    is_default: Optional[bool] = None
    billing_address: Optional[Address] = None
    created_at: Optional[datetime] = None


class CardDetails(CamelModel):
    number: str = Field(min_length=1)
    exp_month: int = Field(ge=1, le=12)
    exp_year: int
    cvc: str = Field(min_length=3, max_length=4)


class OrderItem(CamelModel):
    id: str
    item_id: str
    item_type: str
    item_name: str
    price: int
    total_price: int
    discount_value: Optional[int] = None
    promo_code_discount_value: Optional[int] = None
    assign_to_user_id: Optional[str] = None
    assign_to_user_name: Optional[str] = None
    charge_from_date: Optional[datetime] = None
    extra_info: Optional[Dict[str, Any]] = None
    created_at: Optional[datetime] = None


ORDER_STATUS_DISPLAY = {
    "success": "Completed",
    "pending": "Processing",
    "payment_pending": "Payment Pending",
    "failed": "Failed",
}


class Order(CamelModel):
    id: str
    user_id: Optional[str] = None
    items: List[OrderItem] = Field(default_factory=list)
    sub_total: int = 0
    discount_total: int = 0
    promo_code_discount_value: int = 0
    credit_total: int = 0
    tax: int = 0
    total: int = 0
    charge_total: int = 0
    pay_later: int = 0
    status: str = "pending"
    payment_method_id: Optional[str] = None
    payment_method_type: str = "card"
    payment_intent_id: Optional[str] = None
    payment_transaction_status: Optional[str] = None
    billing_address: Optional[Address] = None
    notes: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def is_completed(self) -> bool:
        return self.status == "success"

    @property
    def requires_additional_payment(self) -> bool:
        return self.pay_later > 0

    @property
    def status_display(self) -> str:
        return ORDER_STATUS_DISPLAY.get(self.status, self.status)

    @property
    def formatted_charge_total(self) -> str:
        return format_pence(self.charge_total)


class PaymentResult(CamelModel):
    success: bool
    order: Optional[Order] = None
    error: Optional[str] = None
    error_code: Optional[str] = None
    client_secret: Optional[str] = None
    next_action: str = "none"
    payment_transaction_status: Optional[str] = None

    @property
    def requires_action(self) -> bool:
        return self.next_action == "requires_action"


class CheckoutFormData(CamelModel):
    billing_address: Optional[Address] = None
    payment_method_id: Optional[str] = None
    payment_method_type: str = "card"
    save_payment_method: bool = False
    terms_accepted: bool = False
    line_item_info: Optional[Dict[str, Any]] = None


STEP_TITLES = {
    1: "Review Order",
    2: "Payment Details",
    3: "Processing",
    4: "Complete",
}

FIRST_STEP = 1
LAST_STEP = 4
AUTHENTICATION_STEP = 3


class CheckoutSession(CamelModel):
    id: Optional[str] = None
    basket: Optional[Basket] = None
    available_payment_methods: List[PaymentMethod] = Field(default_factory=list)
    selected_payment_method: Optional[PaymentMethod] = None
    billing_address: Optional[Address] = None
    form_data: Optional[CheckoutFormData] = None
    current_step: int = Field(default=FIRST_STEP, ge=FIRST_STEP, le=LAST_STEP)
    is_processing: bool = False
    error: Optional[str] = None
    client_secret: Optional[str] = None

    @property
    def can_proceed_to_payment(self) -> bool:
        return (
            self.basket is not None
            and not self.basket.is_empty
            and self.current_step >= 2
            and (self.selected_payment_method is not None or self.billing_address is not None)
        )

    @property
    def requires_payment(self) -> bool:
        return self.basket is not None and self.basket.charge_total > 0

    @property
    def step_title(self) -> str:
        return STEP_TITLES.get(self.current_step, "Checkout")

    @property
    def progress_percent(self) -> float:
        return 100.0 if self.current_step >= LAST_STEP else self.current_step * 25.0


# -------------------------
# Request / response payloads
# -------------------------

class SelectPaymentMethodIn(CamelModel):
    payment_method_id: str


class CreateCardIn(CamelModel):
    card: CardDetails
    email: str
    name: str
    billing_address: Address
    set_as_default: bool = False


class ProcessPaymentIn(CamelModel):
    payment_method_id: str
    payment_method_type: str = "card"


class ThreeDSIn(CamelModel):
    client_secret: str
    cancelled: bool = False


class CheckoutStateOut(CamelModel):
    state: str
    session: Optional[CheckoutSession] = None
    order: Optional[Order] = None
    message: Optional[str] = None
    error_code: Optional[str] = None
    step_title: Optional[str] = None


class CheckoutActionOut(CamelModel):
    ok: bool
    checkout: CheckoutStateOut


class TokenIn(CamelModel):
    token: str = Field(min_length=1)
