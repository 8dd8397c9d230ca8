from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from dancecart.core.config import settings

_HUNDRED = Decimal(100)


def floor_zero(value: int) -> int:
    return value if value > 0 else 0


def non_negative(value: int | None) -> int:
    # backend omits optional discount fields; treat missing/negative as 0
    if value is None:
        return 0
    return floor_zero(int(value))


def pence_to_pounds(pence: int) -> Decimal:
    return (Decimal(int(pence)) / _HUNDRED).quantize(Decimal("0.01"))


def pounds_to_pence(pounds: str | int | float | Decimal) -> int:
    """Convert a pounds amount to pence, rounding half up.

    Floats go through ``str()`` first so 19.99 does not become 1998.
    """
    try:
        amount = pounds if isinstance(pounds, Decimal) else Decimal(str(pounds))
    except InvalidOperation as e:
        raise ValueError(f"Invalid money amount: {pounds!r}") from e
    return int((amount * _HUNDRED).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def format_pence(pence: int, symbol: str | None = None) -> str:
    symbol = settings.CURRENCY_SYMBOL if symbol is None else symbol
    amount = pence_to_pounds(pence)
    if amount < 0:
        return f"-{symbol}{-amount:.2f}"
    return f"{symbol}{amount:.2f}"


def is_free(pence: int) -> bool:
    return pence == 0


def format_pence_with_free_check(pence: int) -> str:
    return "Free" if is_free(pence) else format_pence(pence)


def format_price_range(min_pence: int | None, max_pence: int | None) -> str:
    if min_pence is None and max_pence is None:
        return "Price on request"

    if min_pence is not None and max_pence is not None:
        if min_pence == max_pence:
            return format_pence(min_pence)
        return f"{format_pence(min_pence)} - {format_pence(max_pence)}"

    if min_pence is not None:
        return f"From {format_pence(min_pence)}"

    return f"Up to {format_pence(max_pence)}"
