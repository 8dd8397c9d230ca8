from __future__ import annotations


class DanceCartError(Exception):
    """Base error for collaborator failures inside the service layer."""

    def __init__(self, message: str, *, error_code: str | None = None, cause: Exception | None = None):
        self.message = message
        self.error_code = error_code
        self.cause = cause
        super().__init__(message)

    def __str__(self) -> str:
        if self.error_code:
            return f"{self.message} ({self.error_code})"
        return self.message


class BackendError(DanceCartError):
    """GraphQL backend failure: transport, HTTP status, or a returned `errors` entry."""

    def __init__(
        self,
        message: str,
        *,
        error_code: str | None = None,
        path: str | None = None,
        cause: Exception | None = None,
    ):
        super().__init__(message, error_code=error_code, cause=cause)
        self.path = path


class PaymentError(DanceCartError):
    """Raised by the payment gateway layer.

    `is_user_cancellation` marks a customer-initiated abort (e.g. closing the
    3-D Secure challenge). Callers must not treat it as a failure.
    """

    def __init__(
        self,
        message: str,
        *,
        code: str,
        details: str | None = None,
        is_user_cancellation: bool = False,
    ):
        super().__init__(message, error_code=code)
        self.code = code
        self.details = details
        self.is_user_cancellation = is_user_cancellation

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, PaymentError):
            return NotImplemented
        return (
            self.message == other.message
            and self.code == other.code
            and self.details == other.details
            and self.is_user_cancellation == other.is_user_cancellation
        )

    def __hash__(self) -> int:
        return hash((self.message, self.code, self.details, self.is_user_cancellation))


# Error codes surfaced on BasketOperationResult / CheckoutError
COURSE_FULL = "COURSE_FULL"
INVALID_PROMO = "INVALID_PROMO"
ITEM_NOT_FOUND = "ITEM_NOT_FOUND"
NETWORK_ERROR = "NETWORK_ERROR"
CARD_DECLINED = "CARD_DECLINED"
BASKET_EMPTY = "BASKET_EMPTY"
INVALID_STATE = "INVALID_STATE"
MISSING_CLIENT_SECRET = "MISSING_CLIENT_SECRET"
PAYMENT_METHOD_NOT_UPDATED = "PAYMENT_METHOD_NOT_UPDATED"
