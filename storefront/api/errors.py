# storefront/api/errors.py
from typing import NoReturn

from fastapi import HTTPException

from storefront.domain.errors import (
    StorefrontError,
    AuthenticationError,
    ValidationError,
    NotFoundError,
    ConflictError,
    InsufficientStockError,
    CouponError,
    TransactionError,
)

# first match wins: CouponNotFoundError is a 404, other coupon failures a 400
_STATUS_BY_ERROR = (
    (AuthenticationError, 401),
    (NotFoundError, 404),
    (CouponError, 400),
    (ValidationError, 400),
    (InsufficientStockError, 409),
    (ConflictError, 409),
    (TransactionError, 503),
)


def status_for(exc: StorefrontError) -> int:
    for error_type, status in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return status
    return 500


def raise_http(exc: StorefrontError) -> NoReturn:
    headers = {"Retry-After": "1"} if exc.retryable else None
    raise HTTPException(status_code=status_for(exc), detail=exc.to_dict(), headers=headers) from exc
