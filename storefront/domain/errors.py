# storefront/domain/errors.py
"""
Domain errors for cart, pricing, inventory and checkout.

Routers map each family to one HTTP status (see ``storefront.api.errors``);
services raise them and never return error dicts.
"""
from decimal import Decimal
from typing import Any


class StorefrontError(Exception):
    """Base error; ``details`` is safe to return to the caller."""

    code = "error"
    retryable = False

    def __init__(self, message: str, **details: Any):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict:
        return {"code": self.code, "message": self.message, "details": _jsonable(self.details)}


# ---- user-correctable input -------------------------------------------------

class ValidationError(StorefrontError):
    code = "validation_error"


class EmptyCartError(ValidationError):
    code = "empty_cart"


class AuthenticationError(StorefrontError):
    code = "login_required"


# ---- lookups ---------------------------------------------------------------

class NotFoundError(StorefrontError):
    code = "not_found"


class CartLineNotFoundError(NotFoundError):
    code = "cart_line_not_found"


class ProductNotFoundError(NotFoundError):
    code = "product_not_found"


class OrderNotFoundError(NotFoundError):
    code = "order_not_found"


# ---- state changed under the caller -----------------------------------------

class ConflictError(StorefrontError):
    code = "conflict"


class ProductUnavailableError(ConflictError):
    code = "product_unavailable"

    def __init__(self, product_id: int):
        super().__init__(
            f"Product {product_id} is not available",
            product_id=product_id,
            before="active",
            after="inactive",
        )
        self.product_id = product_id


class PriceChangedError(ConflictError):
    code = "price_changed"

    def __init__(self, changes: list[dict]):
        super().__init__("Prices changed since the items were added", changes=changes)
        self.changes = changes


class CartValidationError(ConflictError):
    code = "cart_invalid"

    def __init__(self, issues: list[dict]):
        super().__init__("Cart contains invalid items", issues=issues)
        self.issues = issues


class InsufficientStockError(StorefrontError):
    code = "insufficient_stock"

    def __init__(self, product_id: int, variant: str, available: int, requested: int):
        super().__init__(
            f"Insufficient stock for product {product_id} ({variant or 'default'}). "
            f"Available: {available}, Requested: {requested}",
            product_id=product_id,
            variant=variant,
            available=available,
            requested=requested,
        )
        self.available = available
        self.requested = requested


# ---- coupons (non-fatal inside checkout) ---------------------------------------

class CouponError(StorefrontError):
    code = "coupon_error"


class CouponNotFoundError(CouponError, NotFoundError):
    code = "coupon_not_found"


class CouponExpiredError(CouponError):
    code = "coupon_expired"


class CouponNotYetActiveError(CouponError):
    code = "coupon_not_yet_active"


class CouponBelowMinimumError(CouponError):
    code = "coupon_below_minimum"


class CouponUsageExceededError(CouponError):
    code = "coupon_usage_exceeded"


# ---- transaction phase -------------------------------------------------------

class TransactionError(StorefrontError):
    code = "transaction_failed"
    retryable = True


class BusyError(TransactionError):
    code = "busy"


def _jsonable(value):
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, dict):
        return {k: _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    return value
