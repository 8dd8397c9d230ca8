from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends, HTTPException, Query

from dancecart.core.deps import get_session
from dancecart.schemas.checkout import (
    Address,
    CheckoutActionOut,
    CheckoutStateOut,
    CreateCardIn,
    Order,
    ProcessPaymentIn,
    SelectPaymentMethodIn,
    ThreeDSIn,
)
from dancecart.services.checkout import (
    CheckoutError,
    CheckoutLoaded,
    CheckoutProcessing,
    CheckoutStateMachine,
    CheckoutSuccess,
)
from dancecart.services.sessions import SessionContext

router = APIRouter(prefix="/checkout", tags=["Checkout"])


def checkout_state_out(machine: CheckoutStateMachine) -> CheckoutStateOut:
    state = machine.state
    out = CheckoutStateOut(state=state.name)
    if isinstance(state, CheckoutLoaded):
        out.session = state.session
        out.step_title = state.session.step_title
    elif isinstance(state, CheckoutProcessing):
        out.message = state.message
    elif isinstance(state, CheckoutSuccess):
        out.order = state.order
    elif isinstance(state, CheckoutError):
        out.message = state.message
        out.error_code = state.error_code
    return out


def _action(ok: bool, machine: CheckoutStateMachine) -> CheckoutActionOut:
    return CheckoutActionOut(ok=ok, checkout=checkout_state_out(machine))


def _require_method(machine: CheckoutStateMachine, payment_method_id: str) -> None:
    session = machine.session
    if session is None:
        raise HTTPException(status_code=409, detail="Checkout has not been started")
    if not any(pm.id == payment_method_id for pm in session.available_payment_methods):
        raise HTTPException(status_code=404, detail="Payment method not found")


@router.post("/start", response_model=CheckoutStateOut)
async def start_checkout(ctx: SessionContext = Depends(get_session)) -> CheckoutStateOut:
    result = await ctx.basket.get_basket(refresh=True)
    await ctx.checkout.initialize_checkout(result.basket)
    return checkout_state_out(ctx.checkout)


@router.get("", response_model=CheckoutStateOut)
async def get_checkout(ctx: SessionContext = Depends(get_session)) -> CheckoutStateOut:
    return checkout_state_out(ctx.checkout)


@router.post("/next", response_model=CheckoutStateOut)
async def next_step(ctx: SessionContext = Depends(get_session)) -> CheckoutStateOut:
    ctx.checkout.next_step()
    return checkout_state_out(ctx.checkout)


@router.post("/previous", response_model=CheckoutStateOut)
async def previous_step(ctx: SessionContext = Depends(get_session)) -> CheckoutStateOut:
    ctx.checkout.previous_step()
    return checkout_state_out(ctx.checkout)


@router.post("/payment-method", response_model=CheckoutActionOut)
async def select_payment_method(
    payload: SelectPaymentMethodIn,
    ctx: SessionContext = Depends(get_session),
) -> CheckoutActionOut:
    if ctx.checkout.session is None:
        raise HTTPException(status_code=409, detail="Checkout has not been started")
    ok = ctx.checkout.select_payment_method_by_id(payload.payment_method_id)
    if not ok:
        raise HTTPException(status_code=404, detail="Payment method not found")
    return _action(ok, ctx.checkout)


@router.delete("/payment-methods/{payment_method_id}", response_model=CheckoutActionOut)
async def remove_payment_method(
    payment_method_id: str,
    ctx: SessionContext = Depends(get_session),
) -> CheckoutActionOut:
    _require_method(ctx.checkout, payment_method_id)
    ok = await ctx.checkout.remove_payment_method(payment_method_id)
    return _action(ok, ctx.checkout)


@router.post("/payment-methods/{payment_method_id}/default", response_model=CheckoutActionOut)
async def set_default_payment_method(
    payment_method_id: str,
    ctx: SessionContext = Depends(get_session),
) -> CheckoutActionOut:
    _require_method(ctx.checkout, payment_method_id)
    ok = await ctx.checkout.set_default_payment_method(payment_method_id)
    return _action(ok, ctx.checkout)


@router.post("/billing-address", response_model=CheckoutStateOut)
async def update_billing_address(
    payload: Address,
    ctx: SessionContext = Depends(get_session),
) -> CheckoutStateOut:
    if ctx.checkout.session is None:
        raise HTTPException(status_code=409, detail="Checkout has not been started")
    ctx.checkout.update_billing_address(payload)
    return checkout_state_out(ctx.checkout)


@router.post("/cards", response_model=CheckoutActionOut)
async def create_card(
    payload: CreateCardIn,
    ctx: SessionContext = Depends(get_session),
) -> CheckoutActionOut:
    ok = await ctx.checkout.create_payment_method_from_card(
        payload.card,
        email=payload.email,
        name=payload.name,
        billing_address=payload.billing_address,
        set_as_default=payload.set_as_default,
    )
    return _action(ok, ctx.checkout)


@router.post("/pay", response_model=CheckoutActionOut)
async def process_payment(
    payload: ProcessPaymentIn,
    ctx: SessionContext = Depends(get_session),
) -> CheckoutActionOut:
    ok = await ctx.checkout.process_payment(
        payload.payment_method_id,
        payload.payment_method_type,
        basket=ctx.basket.basket,
    )
    if ok and ctx.checkout.success_order is not None:
        # the order now owns the items
        ctx.basket.clear()
    return _action(ok, ctx.checkout)


@router.post("/3ds", response_model=CheckoutActionOut)
async def complete_3ds(
    payload: ThreeDSIn,
    ctx: SessionContext = Depends(get_session),
) -> CheckoutActionOut:
    ok = await ctx.checkout.handle_3ds_authentication(payload.client_secret, user_cancelled=payload.cancelled)
    if ok and ctx.checkout.success_order is not None:
        ctx.basket.clear()
    return _action(ok, ctx.checkout)


@router.post("/reset", response_model=CheckoutStateOut)
async def reset_checkout(ctx: SessionContext = Depends(get_session)) -> CheckoutStateOut:
    ctx.checkout.reset()
    return checkout_state_out(ctx.checkout)


@router.get("/orders", response_model=List[Order])
async def order_history(
    limit: int = Query(default=20, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
    ctx: SessionContext = Depends(get_session),
) -> List[Order]:
    return await ctx.checkout.order_history(limit=limit, offset=offset)


@router.get("/orders/{order_id}", response_model=Order)
async def get_order(order_id: str, ctx: SessionContext = Depends(get_session)) -> Order:
    order = await ctx.checkout.get_order(order_id)
    if order is None:
        raise HTTPException(status_code=404, detail="Order not found")
    return order


@router.get("/stripe-key")
async def stripe_publishable_key(ctx: SessionContext = Depends(get_session)) -> dict:
    key = await ctx.checkout.publishable_key()
    if not key:
        raise HTTPException(status_code=503, detail="Payments are unavailable")
    return {"publishableKey": key}
