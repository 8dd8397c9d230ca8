"""Basket operations for one customer session.

Every mutating call returns a BasketOperationResult carrying a basket
snapshot, on success and on failure alike. Collaborator exceptions are
caught here and never reach the caller.
"""
from __future__ import annotations

import asyncio
import re
from datetime import datetime
from typing import Optional
from uuid import uuid4

import structlog

from dancecart.core import errors
from dancecart.core.errors import DanceCartError
from dancecart.integrations.backend import BasketBackend, BasketMutation
from dancecart.schemas.basket import Basket, BasketOperationResult
from dancecart.services.pricing import recompute

log = structlog.get_logger(__name__)

_PROMO_CODE_RE = re.compile(r"^[A-Z0-9][A-Z0-9_-]{1,63}$")

# backend error paths / codes / messages that mean "no space left"
_CAPACITY_CODES = {"COURSE_FULL", "FULLY_BOOKED", "CAPACITY", "NO_SPACES"}
_CAPACITY_MESSAGES = ("FULLY BOOKED", "COURSE IS FULL", "NO SPACES")


def normalize_promo_code(code: Optional[str]) -> Optional[str]:
    normalized = (code or "").strip().upper()
    if not _PROMO_CODE_RE.match(normalized):
        return None
    return normalized


def _normalize_error_code(code: Optional[str], message: Optional[str]) -> Optional[str]:
    if code is not None and code.upper() in _CAPACITY_CODES:
        return errors.COURSE_FULL
    if message is not None and any(m in message.upper() for m in _CAPACITY_MESSAGES):
        return errors.COURSE_FULL
    return code


class BasketService:
    def __init__(self, backend: BasketBackend, *, session_id: Optional[str] = None):
        self.backend = backend
        self.session_id = session_id
        self._basket: Optional[Basket] = None
        # one writer per basket: overlapping mutations run one after another
        self._lock = asyncio.Lock()

    # -------------------------
    # Snapshot helpers
    # -------------------------

    @property
    def basket(self) -> Basket:
        if self._basket is None:
            self._basket = self._empty_basket()
        return self._basket

    def _empty_basket(self) -> Basket:
        return Basket(id=f"local-{uuid4().hex[:12]}", session_id=self.session_id)

    def _adopt(self, basket: Basket, **keep) -> Basket:
        """Store a backend basket, carrying over client-side toggles and re-deriving totals."""
        current = self._basket
        update = {}
        if current is not None:
            update["included_optional_fees"] = current.included_optional_fees
        update.update(keep)
        if self.session_id and basket.session_id is None:
            update["session_id"] = self.session_id
        self._basket = recompute(basket.model_copy(update=update))
        return self._basket

    def _ok(self, message: str) -> BasketOperationResult:
        return BasketOperationResult(success=True, basket=self.basket, message=message)

    def _fail(self, message: str, error_code: Optional[str]) -> BasketOperationResult:
        return BasketOperationResult(
            success=False,
            basket=self.basket,
            message=message,
            error_code=error_code,
        )

    def _from_mutation(self, result: BasketMutation, success_message: str) -> BasketOperationResult:
        if result.ok:
            self._adopt(result.basket)
            return self._ok(success_message)

        if result.basket is not None:
            self._adopt(result.basket)
        code = _normalize_error_code(result.error_code, result.error_message)
        return self._fail(result.error_message or "Basket update failed", code)

    def _from_exception(self, action: str, e: Exception) -> BasketOperationResult:
        if isinstance(e, DanceCartError):
            log.warning("basket_backend_error", action=action, error=str(e), error_code=e.error_code)
            code = _normalize_error_code(e.error_code, e.message) or errors.NETWORK_ERROR
            return self._fail(f"Failed to {action}: {e.message}", code)

        log.exception("basket_unexpected_error", action=action)
        return self._fail(f"Failed to {action}: {e}", errors.NETWORK_ERROR)

    # -------------------------
    # Lifecycle
    # -------------------------

    async def init_basket(self) -> BasketOperationResult:
        async with self._lock:
            try:
                basket = await self.backend.init_basket()
            except Exception as e:
                return self._from_exception("initialize basket", e)
            self._basket = None
            self._adopt(basket)
            log.info("basket_initialized", basket_id=self.basket.id)
            return self._ok("Basket initialized")

    async def get_basket(self, *, refresh: bool = False) -> BasketOperationResult:
        if self._basket is not None and not refresh:
            return self._ok("Basket loaded")

        async with self._lock:
            try:
                basket = await self.backend.get_basket()
            except Exception as e:
                return self._from_exception("fetch basket", e)

            if basket is None:
                self._basket = self._empty_basket()
                return self._ok("Basket is empty")

            self._adopt(basket)
            return self._ok("Basket loaded")

    async def destroy_basket(self) -> bool:
        async with self._lock:
            try:
                destroyed = await self.backend.destroy_basket()
            except Exception as e:
                log.warning("basket_destroy_failed", error=str(e))
                return False
            self._basket = None
            log.info("basket_destroyed", destroyed=destroyed)
            return destroyed

    def clear(self) -> None:
        """Drop the local snapshot without contacting the backend (logout)."""
        self._basket = None

    async def item_count(self) -> int:
        result = await self.get_basket()
        return result.basket.item_count

    async def is_item_in_basket(self, item_id: str, item_type: str) -> bool:
        result = await self.get_basket()
        return result.basket.contains_item(item_id, item_type)

    # -------------------------
    # Items
    # -------------------------

    async def add_item(
        self,
        item_id: str,
        item_type: str,
        *,
        pay_deposit: Optional[bool] = None,
        assign_to_user_id: Optional[str] = None,
        charge_from_date: Optional[datetime] = None,
    ) -> BasketOperationResult:
        async with self._lock:
            log.info("basket_add_item", item_id=item_id, item_type=item_type, pay_deposit=pay_deposit)
            try:
                result = await self.backend.add_item(
                    item_id,
                    item_type,
                    pay_deposit=pay_deposit,
                    assign_to_user_id=assign_to_user_id,
                    charge_from_date=charge_from_date,
                )
            except Exception as e:
                return self._from_exception("add item to basket", e)

            op = self._from_mutation(result, "Item added to basket")
            if not op.success:
                log.info("basket_add_item_rejected", item_id=item_id, error_code=op.error_code)
            return op

    async def remove_item(self, item_id: str, item_type: str) -> BasketOperationResult:
        async with self._lock:
            if self._basket is not None and not self._basket.contains_item(item_id, item_type):
                return self._fail("Item is not in the basket", errors.ITEM_NOT_FOUND)

            try:
                result = await self.backend.remove_item(item_id, item_type)
            except Exception as e:
                return self._from_exception("remove item from basket", e)

            return self._from_mutation(result, "Item removed from basket")

    async def set_optional_fee(self, fee_id: str, include: bool) -> BasketOperationResult:
        async with self._lock:
            basket = self.basket
            fee = next((f for f in basket.fee_items if f.id == fee_id), None)
            if fee is None:
                return self._fail("Fee not found", "FEE_NOT_FOUND")
            if not fee.optional:
                return self._fail("Mandatory fees are always charged", "FEE_NOT_OPTIONAL")

            included = [fid for fid in basket.included_optional_fees if fid != fee_id]
            if include:
                included.append(fee_id)
            self._basket = recompute(basket.model_copy(update={"included_optional_fees": included}))
            return self._ok("Fee included" if include else "Fee removed")

    # -------------------------
    # Promo codes and credit
    # -------------------------

    async def apply_promo_code(self, code: str) -> BasketOperationResult:
        normalized = normalize_promo_code(code)
        if normalized is None:
            log.info("promo_code_rejected", reason="malformed")
            return self._fail("Invalid promo code", errors.INVALID_PROMO)

        async with self._lock:
            try:
                basket = await self.backend.apply_promo_code(normalized)
            except DanceCartError as e:
                # any failure leaves the basket untouched; only a rejection of the code is INVALID_PROMO
                log.info("promo_code_rejected", code=normalized, error=e.message)
                if e.error_code == errors.NETWORK_ERROR:
                    return self._fail(f"Failed to apply promo code: {e.message}", errors.NETWORK_ERROR)
                if e.error_code and e.error_code.startswith("HTTP_"):
                    return self._fail(f"Failed to apply promo code: {e.message}", e.error_code)
                return self._fail(e.message or "Invalid promo code", errors.INVALID_PROMO)
            except Exception as e:
                return self._from_exception("apply promo code", e)

            if basket.promo_code is None:
                basket = basket.model_copy(update={"promo_code": normalized})
            self._adopt(basket, use_credit=self._use_credit(basket))
            log.info("promo_code_applied", code=normalized, discount=self.basket.promo_code_discount_value)
            return self._ok("Promo code applied successfully")

    async def remove_promo_code(self) -> BasketOperationResult:
        async with self._lock:
            try:
                basket = await self.backend.remove_promo_code()
            except Exception as e:
                return self._from_exception("remove promo code", e)

            self._adopt(
                basket,
                use_credit=self._use_credit(basket),
                promo_code=None,
                promo_code_discount_value=0,
            )
            return self._ok("Promo code removed successfully")

    async def use_credit_for_basket(self, use_credit: bool) -> BasketOperationResult:
        async with self._lock:
            try:
                result = await self.backend.use_credit_for_basket(use_credit)
            except Exception as e:
                return self._from_exception("update credit usage", e)

            if result.ok:
                self._adopt(result.basket, use_credit=use_credit)
                log.info("basket_credit_toggled", use_credit=use_credit, credit_total=self.basket.credit_total)
                return self._ok("Credit applied" if use_credit else "Credit removed")

            return self._from_mutation(result, "")

    def _use_credit(self, incoming: Basket) -> bool:
        # promo responses may omit the credit toggle; keep the session's choice
        if self._basket is not None:
            return self._basket.use_credit
        return incoming.use_credit
