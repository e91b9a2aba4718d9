# storefront/services/checkout_service.py
"""
CheckoutOrchestrator: cart -> order as one atomic unit of work.

Every attempt gets its own session from the session factory and walks
VALIDATING -> PRICING -> RESERVING -> PERSISTING -> COMPLETED. Any failure
moves it to FAILED and rolls the whole session back, so stock decrements,
coupon usage and the order rows land together or not at all.

Clearing the cart and sending the notification happen after the commit
and are best-effort: a failure there is logged and the order stands.
An expired coupon seen during Pricing is deactivated afterwards in a
session of its own, so a failed attempt does not undo it.
"""
from collections import defaultdict
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Callable
from uuid import uuid4

from redis.exceptions import RedisError
from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from storefront.data.models.coupon import CouponUsageModel
from storefront.data.models.order import OrderModel, OrderLineModel
from storefront.domain.errors import (
    BusyError,
    CartValidationError,
    CouponError,
    CouponExpiredError,
    EmptyCartError,
    PriceChangedError,
    StorefrontError,
    TransactionError,
)
from storefront.domain.identity import CartIdentity
from storefront.domain.schemas import CartSummary, CheckoutIn
from storefront.repos.cart_repo import CartRepo
from storefront.repos.coupon_repo import CouponRepo
from storefront.repos.order_repo import OrderRepo
from storefront.services.cart_service import LineInspection, collect_issues, inspect_lines
from storefront.services.catalog import Catalog, build_catalog
from storefront.services.inventory_service import InventoryLedger, VariantKey, is_lock_timeout
from storefront.services.lock_service import LockService
from storefront.services.pricing_service import CouponApplication, PricingEngine
from storefront.utils.clock import utcnow
from storefront.utils.settings import CHECKOUT_GUARD_TTL_SECONDS
from storefront.utils.logging import get_logger

logger = get_logger(__name__)


class CheckoutState(str, Enum):
    VALIDATING = "validating"
    PRICING = "pricing"
    RESERVING = "reserving"
    PERSISTING = "persisting"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class CheckoutAttempt:
    identity: CartIdentity
    request: CheckoutIn
    db: Session
    id: str = field(default_factory=lambda: uuid4().hex[:12])
    state: CheckoutState = CheckoutState.VALIDATING
    history: list[CheckoutState] = field(default_factory=lambda: [CheckoutState.VALIDATING])
    warnings: list[str] = field(default_factory=list)
    inspections: list[LineInspection] = field(default_factory=list)
    summary: CartSummary | None = None
    coupon: CouponApplication | None = None
    expired_coupon: str | None = None
    order: OrderModel | None = None

    def advance(self, state: CheckoutState) -> None:
        logger.info(f"Checkout {self.id} ({self.identity}): {self.state.value} -> {state.value}")
        self.state = state
        self.history.append(state)


@dataclass(frozen=True)
class CheckoutResult:
    order_id: int
    order_number: str
    grand_total: Decimal
    summary: CartSummary
    warnings: list[str]
    history: list[CheckoutState]


def generate_order_number(now=None) -> str:
    now = now or utcnow()
    return f"ORD-{now:%Y%m%d%H%M%S}-{uuid4().hex[:10].upper()}"


class CheckoutOrchestrator:
    def __init__(
        self,
        session_factory: sessionmaker,
        catalog_factory: Callable[[Session], Catalog] = build_catalog,
        lock_service: LockService | None = None,
        notifier=None,
        guard_ttl: int = CHECKOUT_GUARD_TTL_SECONDS,
    ):
        self.session_factory = session_factory
        self.catalog_factory = catalog_factory
        self.lock_service = lock_service
        self.notifier = notifier
        self.guard_ttl = guard_ttl

    def checkout(self, identity: CartIdentity, request: CheckoutIn) -> CheckoutResult:
        token = uuid4().hex
        guarded = self._acquire_guard(identity, token)
        try:
            result = self._run_attempt(identity, request)
        finally:
            if guarded:
                self._release_guard(identity, token)

        self._clear_cart(identity)
        self._notify(identity, result)
        return result

    # guard

    def _acquire_guard(self, identity: CartIdentity, token: str) -> bool:
        if self.lock_service is None:
            return False
        try:
            acquired = self.lock_service.acquire_checkout_lock(identity.key, token, self.guard_ttl)
        except RedisError as e:
            # stock safety comes from the row locks; run unguarded
            logger.warning(f"Checkout guard unavailable for {identity}: {e}")
            return False

        if not acquired:
            raise BusyError("A checkout for this cart is already in progress", identity=identity.key)
        return True

    def _release_guard(self, identity: CartIdentity, token: str) -> None:
        try:
            self.lock_service.release_checkout_lock(identity.key, token)
        except RedisError as e:
            logger.warning(f"Failed to release checkout guard for {identity}: {e}")

    # transaction

    def _run_attempt(self, identity: CartIdentity, request: CheckoutIn) -> CheckoutResult:
        db = self.session_factory()
        attempt = CheckoutAttempt(identity=identity, request=request, db=db)
        try:
            self._validate(attempt)
            attempt.advance(CheckoutState.PRICING)
            self._price(attempt)
            attempt.advance(CheckoutState.RESERVING)
            self._reserve(attempt)
            attempt.advance(CheckoutState.PERSISTING)
            self._persist(attempt)
            db.commit()
            attempt.advance(CheckoutState.COMPLETED)
        except StorefrontError as e:
            db.rollback()
            self._fail(attempt, e)
            raise
        except OperationalError as e:
            db.rollback()
            self._fail(attempt, e)
            if is_lock_timeout(e):
                raise BusyError("Inventory is busy, retry the checkout") from e
            raise TransactionError("Checkout failed and was rolled back", state=attempt.history[-2].value) from e
        except Exception as e:
            db.rollback()
            self._fail(attempt, e)
            raise TransactionError("Checkout failed and was rolled back", state=attempt.history[-2].value) from e
        finally:
            db.close()
            if attempt.expired_coupon:
                self._deactivate_coupon(attempt.expired_coupon)

        logger.info(f"Checkout {attempt.id} created order {attempt.order.order_number} for {identity}")
        return CheckoutResult(
            order_id=attempt.order.id,
            order_number=attempt.order.order_number,
            grand_total=attempt.summary.grand_total,
            summary=attempt.summary,
            warnings=list(attempt.warnings),
            history=list(attempt.history),
        )

    def _fail(self, attempt: CheckoutAttempt, exc: Exception) -> None:
        failed_in = attempt.state
        attempt.advance(CheckoutState.FAILED)
        if isinstance(exc, StorefrontError) and not isinstance(exc, TransactionError):
            logger.info(f"Checkout {attempt.id} rejected in {failed_in.value}: {exc}")
        else:
            logger.error(f"Checkout {attempt.id} failed in {failed_in.value}: {exc!r}")

    def _validate(self, attempt: CheckoutAttempt) -> None:
        db = attempt.db
        lines = CartRepo(db).get_lines(attempt.identity, lock=True)
        if not lines:
            raise EmptyCartError("Cart is empty")

        attempt.inspections = inspect_lines(self.catalog_factory(db), lines)

        issues = collect_issues(attempt.inspections, InventoryLedger(db))
        invalid = [i for i in issues if not i.valid]
        if invalid:
            raise CartValidationError([i.model_dump(mode="json") for i in invalid])

        changed = [i for i in attempt.inspections if i.price_changed]
        if not changed:
            return

        if not attempt.request.confirm_price_changes:
            raise PriceChangedError(
                [
                    {
                        "line_id": i.line.id,
                        "product_id": i.line.product_id,
                        "before": str(Decimal(i.line.unit_price)),
                        "after": str(i.current_price),
                    }
                    for i in changed
                ]
            )

        for item in changed:
            item.line.unit_price = item.current_price
        db.flush()
        attempt.warnings.append(f"Prices were updated for {len(changed)} item(s)")

    def _price(self, attempt: CheckoutAttempt) -> None:
        # an expired coupon is deactivated after the attempt, whatever its outcome
        pricing = PricingEngine(attempt.db, deactivate_expired=False)
        attempt.summary = pricing.summarize(i.pricing_line() for i in attempt.inspections)

        code = attempt.request.coupon_code
        if not code:
            return

        try:
            # coupon row stays locked until commit so used_count cannot be oversold
            attempt.coupon = pricing.apply_coupon(code, attempt.summary, attempt.identity, lock=True)
            attempt.summary = attempt.coupon.summary
        except CouponError as e:
            logger.warning(f"Checkout {attempt.id}: coupon {code} not applied ({e.code}): {e.message}")
            attempt.warnings.append(f"Coupon {code} was not applied: {e.message}")
            if isinstance(e, CouponExpiredError):
                attempt.expired_coupon = e.details["code"]

    def _reserve(self, attempt: CheckoutAttempt) -> None:
        ledger = InventoryLedger(attempt.db)

        requested: dict[VariantKey, int] = defaultdict(int)
        for item in attempt.inspections:
            requested[item.key] += item.line.quantity

        # fixed order so two checkouts never wait on each other's rows in reverse
        for key in sorted(requested):
            ledger.decrement(key, requested[key])

    def _persist(self, attempt: CheckoutAttempt) -> None:
        db = attempt.db
        request = attempt.request
        summary = attempt.summary
        address = request.shipping_address

        orders = OrderRepo(db)
        order = orders.create_order(
            OrderModel(
                order_number=generate_order_number(),
                user_id=attempt.identity.user_id,
                session_id=attempt.identity.session_id,
                status="pending",
                payment_status="pending",
                payment_method=request.payment_method,
                customer_name=address.full_name,
                customer_email=request.customer_email,
                customer_phone=address.phone,
                shipping_address=address.model_dump(),
                subtotal=summary.subtotal,
                tax=summary.tax,
                shipping=summary.shipping,
                discount=summary.discount,
                grand_total=summary.grand_total,
                currency=summary.currency,
                coupon_code=attempt.coupon.code if attempt.coupon else None,
                notes=request.notes,
            )
        )

        orders.add_lines(
            order,
            [
                OrderLineModel(
                    product_id=item.line.product_id,
                    product_name=item.product.name,
                    variant=item.key.variant,
                    selected_attributes=item.attributes.as_dict(),
                    quantity=item.line.quantity,
                    unit_price=Decimal(item.line.unit_price),
                    line_total=Decimal(item.line.unit_price) * item.line.quantity,
                )
                for item in attempt.inspections
            ],
        )

        if attempt.coupon is not None:
            coupons = CouponRepo(db)
            if coupons.increment_usage(attempt.coupon.coupon_id) == 0:
                raise TransactionError("Coupon usage limit reached during checkout", code=attempt.coupon.code)
            coupons.add_usage(
                CouponUsageModel(
                    coupon_id=attempt.coupon.coupon_id,
                    user_id=attempt.identity.user_id,
                    order_id=order.id,
                    discount_amount=summary.discount,
                    original_amount=summary.subtotal + summary.tax + summary.shipping,
                    final_amount=summary.grand_total,
                )
            )

        attempt.order = order

    def _deactivate_coupon(self, code: str) -> None:
        db = self.session_factory()
        try:
            coupons = CouponRepo(db)
            coupon = coupons.get_by_code(code)
            if coupon is not None and coupon.is_active:
                coupons.deactivate(coupon)
                db.commit()
                logger.warning(f"Coupon {code} expired at {coupon.valid_until}, deactivated")
        except SQLAlchemyError as e:
            db.rollback()
            logger.warning(f"Failed to deactivate expired coupon {code}: {e}")
        finally:
            db.close()

    # post-commit

    def _clear_cart(self, identity: CartIdentity) -> None:
        db = self.session_factory()
        try:
            CartRepo(db).clear(identity)
            db.commit()
        except Exception as e:
            db.rollback()
            logger.warning(f"Order placed but clearing cart {identity} failed: {e}")
        finally:
            db.close()

    def _notify(self, identity: CartIdentity, result: CheckoutResult) -> None:
        if self.notifier is None:
            return
        try:
            self.notifier.send_order_notification(
                {
                    "order_id": result.order_id,
                    "order_number": result.order_number,
                    "user_id": identity.user_id,
                    "session_id": identity.session_id,
                    "grand_total": str(result.grand_total),
                    "currency": result.summary.currency,
                }
            )
        except Exception as e:
            logger.warning(f"Order {result.order_number} placed but notification failed: {e}")
