# storefront/api/routers/coupons.py
from decimal import Decimal
from typing import List

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from storefront.api.deps import get_optional_identity, get_user_identity
from storefront.api.errors import raise_http
from storefront.data.database import get_db
from storefront.domain.errors import StorefrontError
from storefront.domain.identity import CartIdentity
from storefront.domain.schemas import CouponApplicationOut, CouponHistoryOut, CouponOut
from storefront.services.pricing_service import PricingEngine

router = APIRouter(prefix="/coupons", tags=["coupons"])


@router.get("/available", response_model=List[CouponOut])
def available_coupons(
    order_amount: Decimal = Query(Decimal("0"), ge=0),
    identity: CartIdentity | None = Depends(get_optional_identity),
    db: Session = Depends(get_db),
):
    pricing = PricingEngine(db)
    out = []
    for coupon, preview in pricing.available_coupons(order_amount, identity):
        item = CouponOut.model_validate(coupon)
        item.discount_preview = preview
        out.append(item)
    return out


@router.get("/history", response_model=CouponHistoryOut)
def coupon_history(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    identity: CartIdentity = Depends(get_user_identity),
    db: Session = Depends(get_db),
):
    try:
        return PricingEngine(db).usage_history(identity, page=page, limit=limit)
    except StorefrontError as e:
        raise_http(e)


@router.get("/{code}/validate", response_model=CouponApplicationOut)
def validate_coupon(
    code: str,
    order_amount: Decimal = Query(..., gt=0),
    identity: CartIdentity | None = Depends(get_optional_identity),
    db: Session = Depends(get_db),
):
    pricing = PricingEngine(db)
    try:
        applied = pricing.apply_coupon(code, pricing.summary_for_amount(order_amount), identity)
    except StorefrontError as e:
        raise_http(e)
    finally:
        # keeps an expired coupon's deactivation
        db.commit()

    return CouponApplicationOut(
        code=applied.code,
        discount_type=applied.discount_type,
        discount=applied.discount,
        summary=applied.summary,
    )
