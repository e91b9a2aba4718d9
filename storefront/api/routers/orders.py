# storefront/api/routers/orders.py
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from storefront.api.deps import get_identity
from storefront.api.errors import raise_http
from storefront.data.database import get_db
from storefront.domain.errors import StorefrontError
from storefront.domain.identity import CartIdentity
from storefront.domain.schemas import OrderOut, OrderPageOut
from storefront.services.order_service import OrderService

router = APIRouter(prefix="/orders", tags=["orders"])


def get_service(db: Session):
    return OrderService(db)


@router.get("", response_model=OrderPageOut)
def list_orders(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    status: str | None = Query(None),
    identity: CartIdentity = Depends(get_identity),
    db: Session = Depends(get_db),
):
    try:
        return get_service(db).list_orders(identity, page=page, limit=limit, status=status)
    except StorefrontError as e:
        raise_http(e)


@router.get("/{order_id}", response_model=OrderOut)
def get_order(
    order_id: int,
    identity: CartIdentity = Depends(get_identity),
    db: Session = Depends(get_db),
):
    try:
        return get_service(db).get_order(order_id, identity)
    except StorefrontError as e:
        raise_http(e)
