# storefront/core/errors.py
"""
Domain error taxonomy.

Services raise these; `storefront.main` maps them to
`{"error_kind": ..., "message": ...}` responses using `status_code`.
Nothing in here knows about FastAPI.
"""


class StorefrontError(Exception):
    """Base class for every error the order/coupon engine surfaces."""

    status_code: int = 500
    error_kind: str = "internal_error"

    def __init__(self, message: str, **context):
        super().__init__(message)
        self.message = message
        # e.g. product_id=..., field=...
        self.context = context

    def to_dict(self) -> dict:
        body = {"error_kind": self.error_kind, "message": self.message}
        for key, value in self.context.items():
            body[key] = str(value) if value is not None else None
        return body


# ---- 400 ----


class ValidationError(StorefrontError):
    status_code = 400
    error_kind = "validation_error"


class InvalidQuantityError(ValidationError):
    error_kind = "invalid_quantity"


class PaymentVerificationError(ValidationError):
    error_kind = "payment_verification_failed"


# ---- 401 / 404 ----


class OwnershipError(StorefrontError):
    status_code = 401
    error_kind = "ownership_error"


class NotFoundError(StorefrontError):
    status_code = 404
    error_kind = "not_found"


class InvalidCouponError(StorefrontError):
    status_code = 404
    error_kind = "invalid_coupon"


# ---- 409 ----


class ConflictError(StorefrontError):
    status_code = 409
    error_kind = "conflict"


class InsufficientStockError(ConflictError):
    """Stock was already short when the order was validated."""

    error_kind = "insufficient_stock"


class StockRaceError(ConflictError):
    """A concurrent request consumed the stock this order was counting on."""

    error_kind = "stock_race"


class CartConflictError(ConflictError):
    """Cart rows vanished while the order was being placed."""

    error_kind = "cart_conflict"


class UsageLimitReachedError(ConflictError):
    error_kind = "usage_limit_reached"


# ---- 422 ----


class MinimumPurchaseNotMetError(StorefrontError):
    status_code = 422
    error_kind = "min_purchase_not_met"


# ---- 503 ----


class TransactionError(StorefrontError):
    """The backing store failed (busy, locked, connection lost)."""

    status_code = 503
    error_kind = "transaction_error"
