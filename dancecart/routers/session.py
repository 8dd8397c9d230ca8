from __future__ import annotations

from fastapi import APIRouter, Depends

from dancecart.core.deps import get_session
from dancecart.schemas.checkout import TokenIn
from dancecart.services.sessions import SessionContext

router = APIRouter(prefix="/session", tags=["Session"])


@router.post("/token")
async def set_token(payload: TokenIn, ctx: SessionContext = Depends(get_session)) -> dict:
    ctx.tokens.set(payload.token)
    # the backend may hand back a different basket once authenticated
    ctx.basket.clear()
    ctx.checkout.reset()
    return {"authenticated": ctx.tokens.is_authenticated}


@router.delete("/token")
async def clear_token(ctx: SessionContext = Depends(get_session)) -> dict:
    # logging out ends the basket along with the token
    await ctx.basket.destroy_basket()
    ctx.tokens.clear()
    ctx.basket.clear()
    ctx.checkout.reset()
    return {"authenticated": False}
