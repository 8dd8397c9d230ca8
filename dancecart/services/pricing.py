"""Basket aggregation.

Pure functions over a basket snapshot. Nothing here talks to the backend;
the backend supplies catalog prices and discount values and these
functions derive every total from them.

Discount precedence is fixed:

    item discountValue / promoCodeDiscountValue   (baked into item.totalPrice)
    -> basket discountTotal and promoCodeDiscountValue   (-> total)
    -> creditTotal against the post-promo total          (-> chargeTotal)
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Optional

from dancecart.core.money import floor_zero, non_negative
from dancecart.schemas.basket import Basket, BasketItem, FeeItem


@dataclass(frozen=True)
class BasketTotals:
    sub_total: int
    fee_total: int
    discount_total: int
    promo_code_discount_value: int
    total: int
    credit_total: int
    charge_total: int
    pay_later: int


def _full_price(item: BasketItem, deposit: Optional[int]) -> Optional[int]:
    if item.full_price is not None:
        return item.full_price
    if item.price > 0:
        # already split by the backend: price is the deposit, remainder in payLater
        if item.pay_deposit and item.pay_later > 0 and item.price == deposit:
            return item.price + item.pay_later
        return item.price
    if item.course is not None:
        return item.course.effective_price
    return None


def _deposit_price(item: BasketItem) -> Optional[int]:
    if item.deposit_price is not None:
        return item.deposit_price
    if item.course is not None and item.course.accepts_deposit:
        return item.course.deposit_price
    return None


def _taster_price(item: BasketItem) -> Optional[int]:
    if item.taster_price is not None:
        return item.taster_price
    if item.course is not None and item.course.offers_taster_classes:
        return item.course.taster_price
    return None


def price_item(item: BasketItem) -> BasketItem:
    """Resolve the amount charged now for one item and its derived totalPrice.

    Taster bookings use the taster price and never carry a deposit. A deposit
    item is charged its deposit now and the remainder goes to payLater; the
    two amounts are never both counted in price.
    """
    pay_later = 0
    full = item.full_price

    if item.is_taster or item.item_type == "taster":
        taster = _taster_price(item)
        price = taster if taster is not None else item.price
        is_taster = True
    else:
        is_taster = False
        deposit = _deposit_price(item)
        full = _full_price(item, deposit)

        if full is None:
            # no catalog inputs: the backend's price and remainder stand
            price = item.price
            pay_later = non_negative(item.pay_later) if item.pay_deposit else 0
        elif item.pay_deposit and deposit is not None and 0 <= deposit < full:
            price = deposit
            pay_later = full - deposit
        else:
            price = full

    price = non_negative(price)
    discount = non_negative(item.discount_value)
    promo = non_negative(item.promo_code_discount_value)

    return item.model_copy(
        update={
            "price": price,
            "full_price": full,
            "pay_later": pay_later,
            "is_taster": is_taster,
            "discount_value": discount,
            "promo_code_discount_value": promo,
            "total_price": floor_zero(price - discount - promo),
        }
    )


def fee_total(fees: Iterable[FeeItem], included_optional: Iterable[str] = ()) -> int:
    included = set(included_optional)
    total = 0
    for fee in fees:
        if fee.optional and fee.id not in included:
            continue
        total += non_negative(fee.value)
    return total


def compute_totals(
    items: Iterable[BasketItem],
    *,
    fees: Iterable[FeeItem] = (),
    included_optional_fees: Iterable[str] = (),
    discount_total: int = 0,
    promo_code_discount_value: int = 0,
    available_credit: int = 0,
    use_credit: bool = False,
) -> BasketTotals:
    """Totals for already-priced items. See module docstring for ordering."""
    items = list(items)

    sub_total = sum(i.total_price for i in items)
    fees_sum = fee_total(fees, included_optional_fees)
    discount_total = non_negative(discount_total)
    promo = non_negative(promo_code_discount_value)

    total = floor_zero(sub_total + fees_sum - discount_total - promo)

    # partial credit is fine; never more than what is left to pay
    credit_total = min(non_negative(available_credit), total) if use_credit else 0
    charge_total = floor_zero(total - credit_total)

    return BasketTotals(
        sub_total=sub_total,
        fee_total=fees_sum,
        discount_total=discount_total,
        promo_code_discount_value=promo,
        total=total,
        credit_total=credit_total,
        charge_total=charge_total,
        pay_later=sum(i.pay_later for i in items),
    )


def recompute(basket: Basket) -> Basket:
    """Return a copy of `basket` with items re-priced and every total re-derived."""
    items = [price_item(i) for i in basket.items]

    fee_ids = {f.id for f in basket.fee_items if f.optional}
    included = [fid for fid in basket.included_optional_fees if fid in fee_ids]

    totals = compute_totals(
        items,
        fees=basket.fee_items,
        included_optional_fees=included,
        discount_total=basket.discount_total,
        promo_code_discount_value=basket.promo_code_discount_value,
        available_credit=basket.available_credit,
        use_credit=basket.use_credit,
    )

    return basket.model_copy(
        update={
            "items": items,
            "included_optional_fees": included,
            "sub_total": totals.sub_total,
            "fee_total": totals.fee_total,
            "discount_total": totals.discount_total,
            "promo_code_discount_value": totals.promo_code_discount_value,
            "total": totals.total,
            "credit_total": totals.credit_total,
            "charge_total": totals.charge_total,
            # basket-level remainder from the backend stands when no item carries one
            "pay_later": totals.pay_later or (non_negative(basket.pay_later) if items else 0),
        }
    )


def totals_of(basket: Basket) -> BasketTotals:
    return BasketTotals(
        sub_total=basket.sub_total,
        fee_total=basket.fee_total,
        discount_total=basket.discount_total,
        promo_code_discount_value=basket.promo_code_discount_value,
        total=basket.total,
        credit_total=basket.credit_total,
        charge_total=basket.charge_total,
        pay_later=basket.pay_later,
    )
