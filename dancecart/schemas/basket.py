from __future__ import annotations

from datetime import datetime
from typing import List, Literal, Optional

from pydantic import Field, field_validator

from dancecart.core.money import format_pence
from dancecart.schemas.common import CamelModel
from dancecart.schemas.course import Course

ItemType = Literal["course", "taster", "session", "exam", "event"]


class BasketItem(CamelModel):
    id: str
    item_type: str = "course"
    course: Optional[Course] = None

    # price charged now; derived by services.pricing.price_item
    price: int = 0
    full_price: Optional[int] = None
    deposit_price: Optional[int] = None
    taster_price: Optional[int] = None
    pay_deposit: bool = False
    pay_later: int = 0

    discount_value: int = 0
    promo_code_discount_value: int = 0
    total_price: int = 0

    is_taster: bool = False
    session_id: Optional[str] = None
    assign_to_user_id: Optional[str] = None
    charge_from_date: Optional[datetime] = None
    added_at: Optional[datetime] = None

    @field_validator("discount_value", "promo_code_discount_value", "pay_later", mode="before")
    @classmethod
    def _none_is_zero(cls, v):
        return 0 if v is None else v

    @property
    def has_discount(self) -> bool:
        return self.discount_value > 0 or self.promo_code_discount_value > 0

    @property
    def total_discount(self) -> int:
        return self.discount_value + self.promo_code_discount_value

    @property
    def display_name(self) -> str:
        name = self.course.name if self.course is not None else self.id
        if len(name) <= 30:
            return name
        return f"{name[:27]}..."

    @property
    def item_type_display(self) -> str:
        if self.is_taster:
            return "Taster Class"
        if self.course is not None:
            return self.course.kind_display
        return "Course"

    def matches(self, item_id: str, item_type: str) -> bool:
        course_id = self.course.id if self.course is not None else None
        if item_id not in (self.id, course_id, self.session_id):
            return False
        if item_type == "taster":
            return self.is_taster
        return not self.is_taster


class CreditItem(CamelModel):
    id: str
    description: str
    value: int
    code: Optional[str] = None
    valid_until: Optional[datetime] = None


class FeeItem(CamelModel):
    id: str
    description: str
    value: int
    optional: bool = False


class Basket(CamelModel):
    id: str
    items: List[BasketItem] = Field(default_factory=list)
    credit_items: List[CreditItem] = Field(default_factory=list)
    fee_items: List[FeeItem] = Field(default_factory=list)

    discount_value: int = 0
    discount_total: int = 0
    promo_code: Optional[str] = None
    promo_code_discount_value: int = 0
    use_credit: bool = False
    credit_total: int = 0
    included_optional_fees: List[str] = Field(default_factory=list)
    fee_total: int = 0
    sub_total: int = 0
    tax: int = 0
    total: int = 0
    charge_total: int = 0
    pay_later: int = 0

    session_id: Optional[str] = None  # guest baskets
    user_id: Optional[str] = None  # authenticated baskets
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None

    @field_validator(
        "discount_value",
        "discount_total",
        "promo_code_discount_value",
        "credit_total",
        "fee_total",
        "sub_total",
        "tax",
        "total",
        "charge_total",
        "pay_later",
        mode="before",
    )
    @classmethod
    def _none_is_zero(cls, v):
        return 0 if v is None else v

    @property
    def is_empty(self) -> bool:
        return not self.items

    @property
    def item_count(self) -> int:
        return len(self.items)

    @property
    def has_discounts(self) -> bool:
        return self.discount_total > 0 or self.promo_code_discount_value > 0

    @property
    def has_credits(self) -> bool:
        return self.credit_total > 0

    @property
    def has_pay_later(self) -> bool:
        return self.pay_later > 0

    @property
    def taster_items(self) -> List[BasketItem]:
        return [i for i in self.items if i.is_taster]

    @property
    def course_items(self) -> List[BasketItem]:
        return [i for i in self.items if not i.is_taster]

    @property
    def available_credit(self) -> int:
        return sum(max(0, c.value) for c in self.credit_items)

    @property
    def total_savings(self) -> int:
        return self.discount_total + self.promo_code_discount_value + self.credit_total

    def contains_item(self, item_id: str, item_type: str) -> bool:
        return any(i.matches(item_id, item_type) for i in self.items)

    def find_item(self, item_id: str, item_type: str) -> Optional[BasketItem]:
        for i in self.items:
            if i.matches(item_id, item_type):
                return i
        return None

    # Formatted totals for display
    @property
    def formatted_sub_total(self) -> str:
        return format_pence(self.sub_total)

    @property
    def formatted_total(self) -> str:
        return format_pence(self.total)

    @property
    def formatted_charge_total(self) -> str:
        return format_pence(self.charge_total)

    @property
    def formatted_pay_later(self) -> str:
        return format_pence(self.pay_later)

    @property
    def formatted_savings(self) -> str:
        return format_pence(self.total_savings)


class BasketOperationResult(CamelModel):
    success: bool
    basket: Basket
    message: Optional[str] = None
    error_code: Optional[str] = None


# -------------------------
# Request payloads
# -------------------------

class AddItemIn(CamelModel):
    item_id: str = Field(min_length=1)
    item_type: ItemType = "course"
    pay_deposit: Optional[bool] = None
    assign_to_user_id: Optional[str] = None
    charge_from_date: Optional[datetime] = None


class PromoCodeIn(CamelModel):
    code: str


class UseCreditIn(CamelModel):
    use_credit: bool


class OptionalFeeIn(CamelModel):
    include: bool


class BasketCountOut(CamelModel):
    count: int
