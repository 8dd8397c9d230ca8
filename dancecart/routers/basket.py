from __future__ import annotations

from fastapi import APIRouter, Depends

from dancecart.core.deps import get_session
from dancecart.schemas.basket import (
    AddItemIn,
    BasketCountOut,
    BasketOperationResult,
    OptionalFeeIn,
    PromoCodeIn,
    UseCreditIn,
)
from dancecart.services.sessions import SessionContext

router = APIRouter(prefix="/basket", tags=["Basket"])


@router.get("", response_model=BasketOperationResult)
async def get_basket(
    refresh: bool = False,
    ctx: SessionContext = Depends(get_session),
) -> BasketOperationResult:
    return await ctx.basket.get_basket(refresh=refresh)


@router.post("/init", response_model=BasketOperationResult)
async def init_basket(ctx: SessionContext = Depends(get_session)) -> BasketOperationResult:
    return await ctx.basket.init_basket()


@router.delete("")
async def destroy_basket(ctx: SessionContext = Depends(get_session)) -> dict:
    destroyed = await ctx.basket.destroy_basket()
    ctx.checkout.reset()
    return {"destroyed": destroyed}


@router.get("/count", response_model=BasketCountOut)
async def basket_count(ctx: SessionContext = Depends(get_session)) -> BasketCountOut:
    return BasketCountOut(count=await ctx.basket.item_count())


@router.post("/items", response_model=BasketOperationResult)
async def add_item(
    payload: AddItemIn,
    ctx: SessionContext = Depends(get_session),
) -> BasketOperationResult:
    return await ctx.basket.add_item(
        payload.item_id,
        payload.item_type,
        pay_deposit=payload.pay_deposit,
        assign_to_user_id=payload.assign_to_user_id,
        charge_from_date=payload.charge_from_date,
    )


@router.delete("/items/{item_type}/{item_id}", response_model=BasketOperationResult)
async def remove_item(
    item_type: str,
    item_id: str,
    ctx: SessionContext = Depends(get_session),
) -> BasketOperationResult:
    return await ctx.basket.remove_item(item_id, item_type)


@router.post("/promo", response_model=BasketOperationResult)
async def apply_promo_code(
    payload: PromoCodeIn,
    ctx: SessionContext = Depends(get_session),
) -> BasketOperationResult:
    return await ctx.basket.apply_promo_code(payload.code)


@router.delete("/promo", response_model=BasketOperationResult)
async def remove_promo_code(ctx: SessionContext = Depends(get_session)) -> BasketOperationResult:
    return await ctx.basket.remove_promo_code()


@router.post("/credit", response_model=BasketOperationResult)
async def use_credit(
    payload: UseCreditIn,
    ctx: SessionContext = Depends(get_session),
) -> BasketOperationResult:
    return await ctx.basket.use_credit_for_basket(payload.use_credit)


@router.post("/fees/{fee_id}", response_model=BasketOperationResult)
async def set_optional_fee(
    fee_id: str,
    payload: OptionalFeeIn,
    ctx: SessionContext = Depends(get_session),
) -> BasketOperationResult:
    return await ctx.basket.set_optional_fee(fee_id, payload.include)
