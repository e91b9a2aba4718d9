# storefront/services/pricing_service.py
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from math import ceil
from typing import Iterable

from sqlalchemy.orm import Session

from storefront.data.models.coupon import CouponModel
from storefront.domain.errors import (
    CouponNotFoundError,
    CouponExpiredError,
    CouponNotYetActiveError,
    CouponBelowMinimumError,
    CouponUsageExceededError,
    ValidationError,
)
from storefront.domain.identity import CartIdentity
from storefront.domain.schemas import CartSummary, CouponHistoryOut, CouponUsageOut
from storefront.repos.coupon_repo import CouponRepo
from storefront.repos.filters import CouponFilter
from storefront.utils.clock import utcnow, as_utc
from storefront.utils.settings import (
    CURRENCY,
    MONEY_QUANTUM,
    VAT_RATE,
    FREE_SHIPPING_THRESHOLD,
    REDUCED_SHIPPING_THRESHOLD,
    REDUCED_SHIPPING_FEE,
    STANDARD_SHIPPING_FEE,
)
from storefront.utils.logging import get_logger

logger = get_logger(__name__)

ZERO = Decimal("0")


def round_money(value) -> Decimal:
    return Decimal(value).quantize(MONEY_QUANTUM, rounding=ROUND_HALF_UP)


def normalize_code(code: str) -> str:
    return code.strip().upper()


@dataclass(frozen=True)
class PricingLine:
    product_id: int
    quantity: int
    unit_price: Decimal
    is_active: bool = True


@dataclass(frozen=True)
class CouponApplication:
    coupon_id: int
    code: str
    discount_type: str
    discount: Decimal
    summary: CartSummary


def shipping_fee(subtotal: Decimal) -> Decimal:
    if subtotal <= ZERO:
        return ZERO
    if subtotal >= FREE_SHIPPING_THRESHOLD:
        return ZERO
    if subtotal >= REDUCED_SHIPPING_THRESHOLD:
        return REDUCED_SHIPPING_FEE
    return STANDARD_SHIPPING_FEE


def calculate_discount(coupon: CouponModel, subtotal: Decimal, shipping: Decimal) -> Decimal:
    value = Decimal(coupon.value or 0)

    if coupon.discount_type == "percentage":
        discount = round_money(subtotal * value / Decimal(100))
        if coupon.max_discount_amount is not None:
            discount = min(discount, Decimal(coupon.max_discount_amount))
    elif coupon.discount_type == "fixed_amount":
        discount = value
    elif coupon.discount_type == "free_shipping":
        discount = shipping
    else:
        raise ValueError(f"Unknown discount type {coupon.discount_type!r}")

    # never more than the goods themselves
    return max(min(discount, subtotal), ZERO)


def with_discount(summary: CartSummary, discount: Decimal, code: str | None) -> CartSummary:
    applied = min(discount, summary.subtotal)
    return summary.model_copy(
        update={
            "discount": applied,
            "grand_total": summary.subtotal + summary.tax + summary.shipping - applied,
            "coupon_code": code,
        }
    )


class PricingEngine:
    """
    Cart totals and coupon application.

    ``summarize`` is pure; coupon methods read the coupons table through the
    session they were given. With ``deactivate_expired`` on, an expired coupon
    is deactivated in that session (flushed, committed by whoever owns it).
    Checkout turns it off and deactivates in a session of its own.
    """

    def __init__(self, db: Session | None = None, currency: str = CURRENCY, deactivate_expired: bool = True):
        self.db = db
        self.coupons = CouponRepo(db) if db is not None else None
        self.currency = currency
        self.deactivate_expired = deactivate_expired

    def summarize(self, lines: Iterable[PricingLine]) -> CartSummary:
        active = [line for line in lines if line.is_active]

        subtotal = sum((Decimal(line.unit_price) * line.quantity for line in active), ZERO)
        tax = round_money(subtotal * VAT_RATE)
        shipping = shipping_fee(subtotal)

        return CartSummary(
            item_count=len(active),
            total_quantity=sum(line.quantity for line in active),
            subtotal=subtotal,
            tax=tax,
            shipping=shipping,
            discount=ZERO,
            grand_total=subtotal + tax + shipping,
            currency=self.currency,
        )

    def summary_for_amount(self, subtotal: Decimal) -> CartSummary:
        subtotal = Decimal(subtotal)
        tax = round_money(subtotal * VAT_RATE)
        shipping = shipping_fee(subtotal)
        return CartSummary(
            subtotal=subtotal,
            tax=tax,
            shipping=shipping,
            grand_total=subtotal + tax + shipping,
            currency=self.currency,
        )

    def validate_coupon(
        self,
        coupon: CouponModel | None,
        subtotal: Decimal,
        identity: CartIdentity | None,
        now: datetime,
    ) -> CouponModel:
        """
        Checks run in a fixed order and stop at the first failure:
        active -> validity window -> minimum order -> total usage -> per-customer usage.

        A coupon found past ``valid_until`` is deactivated here when
        ``deactivate_expired`` is set (a write on the validation path); callers
        commit it even when the coupon is rejected.
        """
        if coupon is None or not coupon.is_active:
            raise CouponNotFoundError("Coupon not found or inactive")

        if now < as_utc(coupon.valid_from):
            raise CouponNotYetActiveError(
                "Coupon is not yet active",
                code=coupon.code,
                valid_from=as_utc(coupon.valid_from).isoformat(),
            )

        if now > as_utc(coupon.valid_until):
            if self.deactivate_expired:
                self.coupons.deactivate(coupon)
                logger.warning(f"Coupon {coupon.code} expired at {coupon.valid_until}, deactivated")
            raise CouponExpiredError("Coupon has expired", code=coupon.code)

        min_amount = Decimal(coupon.min_order_amount or 0)
        if subtotal < min_amount:
            raise CouponBelowMinimumError(
                f"Minimum order amount is {min_amount}",
                code=coupon.code,
                min_order_amount=min_amount,
                subtotal=subtotal,
            )

        if coupon.usage_limit_total is not None and coupon.used_count >= coupon.usage_limit_total:
            raise CouponUsageExceededError("Coupon usage limit exceeded", code=coupon.code)

        if identity is not None and identity.is_registered and coupon.usage_limit_per_customer:
            used = self.coupons.count_customer_usages(coupon.id, identity.user_id)
            if used >= coupon.usage_limit_per_customer:
                raise CouponUsageExceededError(
                    "You have reached the usage limit for this coupon",
                    code=coupon.code,
                    used=used,
                )

        return coupon

    def apply_coupon(
        self,
        code: str,
        summary: CartSummary,
        identity: CartIdentity | None,
        now: datetime | None = None,
        lock: bool = False,
    ) -> CouponApplication:
        now = now or utcnow()
        coupon = self.coupons.get_by_code(normalize_code(code), lock=lock)
        coupon = self.validate_coupon(coupon, summary.subtotal, identity, now)

        discount = calculate_discount(coupon, summary.subtotal, summary.shipping)
        updated = with_discount(summary, discount, coupon.code)

        logger.info(f"Coupon {coupon.code} ({coupon.discount_type}) gives {updated.discount} off {summary.subtotal}")
        return CouponApplication(
            coupon_id=coupon.id,
            code=coupon.code,
            discount_type=coupon.discount_type,
            discount=updated.discount,
            summary=updated,
        )

    def available_coupons(
        self,
        order_amount: Decimal,
        identity: CartIdentity | None,
        now: datetime | None = None,
    ) -> list[tuple[CouponModel, Decimal | None]]:
        """Usable coupons for this amount, each with the discount it would give (None below minimum)."""
        now = now or utcnow()
        flt = CouponFilter(
            valid_at=now,
            with_remaining_uses=True,
            order_amount=order_amount if order_amount > ZERO else None,
        )

        out = []
        for coupon in self.coupons.find(flt):
            if identity is not None and identity.is_registered and coupon.usage_limit_per_customer:
                if self.coupons.count_customer_usages(coupon.id, identity.user_id) >= coupon.usage_limit_per_customer:
                    continue

            preview = None
            if order_amount > ZERO and order_amount >= Decimal(coupon.min_order_amount or 0):
                preview = calculate_discount(coupon, order_amount, shipping_fee(order_amount))
            out.append((coupon, preview))
        return out

    def usage_history(self, identity: CartIdentity, page: int = 1, limit: int = 10) -> CouponHistoryOut:
        """Coupons a registered customer has redeemed, newest first."""
        if page < 1 or not 1 <= limit <= 100:
            raise ValidationError("page must be >= 1 and limit between 1 and 100", page=page, limit=limit)

        rows, total = self.coupons.list_usages(identity.user_id, page=page, limit=limit)
        return CouponHistoryOut(
            history=[
                CouponUsageOut(
                    order_id=usage.order_id,
                    code=coupon.code,
                    name=coupon.name,
                    discount_type=coupon.discount_type,
                    value=coupon.value,
                    discount_amount=usage.discount_amount,
                    original_amount=usage.original_amount,
                    final_amount=usage.final_amount,
                    used_at=usage.used_at,
                )
                for usage, coupon in rows
            ],
            page=page,
            limit=limit,
            total=total,
            total_pages=ceil(total / limit) if total else 0,
        )
