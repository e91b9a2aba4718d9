# storefront/api/routers/checkout.py
from fastapi import APIRouter, Depends

from storefront.api.deps import get_identity, get_orchestrator
from storefront.api.errors import raise_http
from storefront.domain.errors import StorefrontError
from storefront.domain.identity import CartIdentity
from storefront.domain.schemas import CheckoutIn, CheckoutOut
from storefront.services.checkout_service import CheckoutOrchestrator
from storefront.utils.retry import checkout_retry

router = APIRouter(prefix="/checkout", tags=["checkout"])


@router.post("", response_model=CheckoutOut, status_code=201)
def checkout(
    payload: CheckoutIn,
    identity: CartIdentity = Depends(get_identity),
    orchestrator: CheckoutOrchestrator = Depends(get_orchestrator),
):
    """
    Turns the caller's cart into an order.

    A Busy attempt was rolled back completely, so it is retried from the
    start a few times before the 503 reaches the client.
    """
    run = checkout_retry()(orchestrator.checkout)
    try:
        result = run(identity, payload)
    except StorefrontError as e:
        raise_http(e)

    return CheckoutOut(
        order_id=result.order_id,
        order_number=result.order_number,
        grand_total=result.grand_total,
        summary=result.summary,
        warnings=result.warnings,
    )
