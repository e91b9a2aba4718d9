# storefront/api/routers/carts.py
from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.orm import Session

from storefront.api.deps import get_identity, get_user_identity
from storefront.api.errors import raise_http
from storefront.data.database import get_db
from storefront.domain.errors import StorefrontError
from storefront.domain.identity import CartIdentity
from storefront.domain.schemas import (
    AddItemIn,
    CartCountOut,
    CartLineOut,
    CartOut,
    CartStatisticsOut,
    CartSummary,
    CartValidationOut,
    CheckoutPreviewOut,
    CouponApplicationOut,
    CouponApplyIn,
    PriceRefreshOut,
    ReconciliationOut,
    TransferIn,
    TransferOut,
    UpdateQuantityIn,
    UpdateQuantityOut,
)
from storefront.services.cart_service import CartService
from storefront.services.reconciliation_service import ReconciliationJob

router = APIRouter(prefix="/cart", tags=["cart"])


def get_service(db: Session):
    return CartService(db=db)


@router.get("", response_model=CartOut)
def get_cart(identity: CartIdentity = Depends(get_identity), db: Session = Depends(get_db)):
    return get_service(db).get_cart(identity)


@router.get("/summary", response_model=CartSummary)
def get_summary(identity: CartIdentity = Depends(get_identity), db: Session = Depends(get_db)):
    return get_service(db).summary(identity)


@router.get("/validate", response_model=CartValidationOut)
def validate_cart(identity: CartIdentity = Depends(get_identity), db: Session = Depends(get_db)):
    try:
        return get_service(db).validate(identity)
    except StorefrontError as e:
        raise_http(e)


@router.get("/count", response_model=CartCountOut)
def get_count(identity: CartIdentity = Depends(get_identity), db: Session = Depends(get_db)):
    return CartCountOut(count=get_service(db).count(identity))


@router.get("/statistics", response_model=CartStatisticsOut)
def get_statistics(identity: CartIdentity = Depends(get_identity), db: Session = Depends(get_db)):
    return get_service(db).statistics(identity)


@router.get("/checkout/prepare", response_model=CheckoutPreviewOut)
def prepare_checkout(
    coupon_code: str | None = Query(None, min_length=3, max_length=50),
    identity: CartIdentity = Depends(get_identity),
    db: Session = Depends(get_db),
):
    try:
        return get_service(db).prepare_checkout(identity, coupon_code)
    except StorefrontError as e:
        raise_http(e)


@router.post("/add", response_model=CartLineOut, status_code=201)
def add_item(
    payload: AddItemIn,
    identity: CartIdentity = Depends(get_identity),
    db: Session = Depends(get_db),
):
    try:
        return get_service(db).add_item(
            identity,
            product_id=payload.product_id,
            quantity=payload.quantity,
            attributes=payload.attributes,
        )
    except StorefrontError as e:
        raise_http(e)


@router.put("/line/{line_id}", response_model=UpdateQuantityOut)
def update_quantity(
    line_id: int,
    payload: UpdateQuantityIn,
    identity: CartIdentity = Depends(get_identity),
    db: Session = Depends(get_db),
):
    try:
        return get_service(db).update_quantity(identity, line_id, payload.quantity)
    except StorefrontError as e:
        raise_http(e)


@router.delete("/line/{line_id}", status_code=204)
def remove_item(
    line_id: int,
    identity: CartIdentity = Depends(get_identity),
    db: Session = Depends(get_db),
):
    try:
        get_service(db).remove_item(identity, line_id)
    except StorefrontError as e:
        raise_http(e)
    return Response(status_code=204)


@router.delete("")
def clear_cart(identity: CartIdentity = Depends(get_identity), db: Session = Depends(get_db)):
    return {"removed": get_service(db).clear(identity)}


@router.put("/prices", response_model=PriceRefreshOut)
def refresh_prices(identity: CartIdentity = Depends(get_identity), db: Session = Depends(get_db)):
    return get_service(db).refresh_prices(identity)


@router.post("/sync", response_model=ReconciliationOut)
def sync_with_inventory(identity: CartIdentity = Depends(get_identity), db: Session = Depends(get_db)):
    return ReconciliationJob(db).reconcile(identity)


@router.post("/coupon", response_model=CouponApplicationOut)
def apply_coupon(
    payload: CouponApplyIn,
    identity: CartIdentity = Depends(get_identity),
    db: Session = Depends(get_db),
):
    try:
        return get_service(db).apply_coupon(identity, payload.code)
    except StorefrontError as e:
        raise_http(e)


@router.post("/transfer", response_model=TransferOut)
def transfer_guest_cart(
    payload: TransferIn,
    identity: CartIdentity = Depends(get_user_identity),
    db: Session = Depends(get_db),
):
    """Called by the auth layer once, right after a guest logs in."""
    try:
        return get_service(db).transfer_guest_cart_to_user(payload.session_id, identity.user_id)
    except StorefrontError as e:
        raise_http(e)
