# storefront/services/cart_service.py
from collections import defaultdict
from dataclasses import dataclass
from decimal import Decimal

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from storefront.data.models.cart_line import CartLineModel
from storefront.domain.attributes import SelectedAttributes
from storefront.domain.errors import (
    CartLineNotFoundError,
    CartValidationError,
    CouponError,
    ProductNotFoundError,
    ProductUnavailableError,
    ValidationError,
    EmptyCartError,
)
from storefront.domain.identity import CartIdentity
from storefront.domain.schemas import (
    CartLineOut,
    CartOut,
    CartStatisticsOut,
    CartSummary,
    CartValidationOut,
    CheckoutPreviewOut,
    CouponApplicationOut,
    LineIssue,
    PriceRange,
    PriceRefreshOut,
    TransferOut,
    UpdateQuantityOut,
)
from storefront.repos.cart_repo import CartRepo
from storefront.services.catalog import Catalog, ProductSnapshot, build_catalog
from storefront.services.inventory_service import InventoryLedger, VariantKey
from storefront.services.pricing_service import PricingEngine, PricingLine, round_money
from storefront.utils.clock import utcnow
from storefront.utils.settings import MAX_LINE_QUANTITY
from storefront.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass
class LineInspection:
    """A cart line next to what the catalog says about its product right now."""

    line: CartLineModel
    attributes: SelectedAttributes
    product: ProductSnapshot | None

    @property
    def key(self) -> VariantKey:
        return VariantKey.for_line(self.line.product_id, self.attributes)

    @property
    def is_active(self) -> bool:
        return self.product is not None and self.product.is_active

    @property
    def current_price(self) -> Decimal | None:
        return self.product.current_price if self.product is not None else None

    @property
    def price_changed(self) -> bool:
        return self.is_active and Decimal(self.line.unit_price) != self.current_price

    def pricing_line(self) -> PricingLine:
        return PricingLine(
            product_id=self.line.product_id,
            quantity=self.line.quantity,
            unit_price=Decimal(self.line.unit_price),
            is_active=self.is_active,
        )

    def to_out(self) -> CartLineOut:
        unit_price = Decimal(self.line.unit_price)
        return CartLineOut(
            id=self.line.id,
            product_id=self.line.product_id,
            product_name=self.product.name if self.product else None,
            quantity=self.line.quantity,
            unit_price=unit_price,
            line_total=unit_price * self.line.quantity,
            selected_attributes=self.attributes.as_dict(),
            created_at=self.line.created_at,
            is_active=self.is_active,
            current_price=self.current_price,
            price_changed=self.price_changed,
        )


def inspect_lines(catalog: Catalog, lines: list[CartLineModel]) -> list[LineInspection]:
    products: dict[int, ProductSnapshot | None] = {}
    out = []
    for line in lines:
        if line.product_id not in products:
            products[line.product_id] = catalog.get_product(line.product_id)
        out.append(
            LineInspection(
                line=line,
                attributes=SelectedAttributes.from_canonical(line.attributes_key),
                product=products[line.product_id],
            )
        )
    return out


def collect_issues(inspections: list[LineInspection], ledger: InventoryLedger) -> list[LineIssue]:
    """
    One LineIssue per line. Stock is judged per variant, so two lines that
    share a variant (e.g. same size, different colour) are checked against
    their combined quantity.
    """
    requested: dict[VariantKey, int] = defaultdict(int)
    for item in inspections:
        requested[item.key] += item.line.quantity

    available = {key: ledger.available(key) for key in requested}

    issues = []
    for item in inspections:
        entry = LineIssue(
            line_id=item.line.id,
            product_id=item.line.product_id,
            requested_quantity=item.line.quantity,
        )
        if not item.is_active:
            entry.issues.append("Product is no longer available")

        stock = available[item.key]
        if stock < requested[item.key]:
            entry.issues.append(f"Only {stock} items in stock")
            entry.available_quantity = stock

        if item.price_changed:
            entry.price_changed = True
            entry.old_price = Decimal(item.line.unit_price)
            entry.new_price = item.current_price

        issues.append(entry)
    return issues


class CartService:
    """
    CartStore: per-identity cart lines.

    Commands commit their own transaction; queries only read. A line is
    matched on (identity, product, canonical attributes), so re-adding the
    same selection grows the existing line.
    """

    def __init__(
        self,
        db: Session,
        catalog: Catalog | None = None,
        pricing: PricingEngine | None = None,
    ):
        self.db = db
        self.repo = CartRepo(db)
        self.catalog = catalog or build_catalog(db)
        self.pricing = pricing or PricingEngine(db)
        self.ledger = InventoryLedger(db)

    # queries

    def inspect(self, identity: CartIdentity) -> list[LineInspection]:
        return inspect_lines(self.catalog, self.repo.get_lines(identity))

    def get_cart(self, identity: CartIdentity) -> CartOut:
        inspections = self.inspect(identity)
        summary = self.pricing.summarize(i.pricing_line() for i in inspections)
        return CartOut(
            identity=identity.key,
            items=[i.to_out() for i in inspections],
            summary=summary,
        )

    def summary(self, identity: CartIdentity) -> CartSummary:
        return self.pricing.summarize(i.pricing_line() for i in self.inspect(identity))

    def validate(self, identity: CartIdentity) -> CartValidationOut:
        inspections = self.inspect(identity)
        if not inspections:
            raise EmptyCartError("Cart is empty")

        issues = collect_issues(inspections, self.ledger)
        invalid = sum(1 for i in issues if not i.valid)
        return CartValidationOut(
            valid=invalid == 0,
            total_items=len(issues),
            invalid_items=invalid,
            items=issues,
        )

    def count(self, identity: CartIdentity) -> int:
        return self.summary(identity).total_quantity

    def statistics(self, identity: CartIdentity) -> CartStatisticsOut:
        inspections = self.inspect(identity)
        summary = self.pricing.summarize(i.pricing_line() for i in inspections)

        out_of_stock = sum(
            1 for i in inspections if not i.is_active or self.ledger.available(i.key) == 0
        )
        prices = [Decimal(i.line.unit_price) for i in inspections]
        price_range = PriceRange()
        if prices:
            price_range = PriceRange(
                min=min(prices),
                max=max(prices),
                average=round_money(sum(prices) / len(prices)),
            )

        return CartStatisticsOut(
            item_count=len(inspections),
            total_quantity=sum(i.line.quantity for i in inspections),
            subtotal=summary.subtotal,
            out_of_stock_items=out_of_stock,
            price_changed_items=sum(1 for i in inspections if i.price_changed),
            price_range=price_range,
            currency=summary.currency,
        )

    def prepare_checkout(self, identity: CartIdentity, coupon_code: str | None = None) -> CheckoutPreviewOut:
        """
        Dry run of checkout pricing: validates the lines, totals them and tries
        the coupon. A coupon that does not apply becomes a warning. Nothing is
        reserved, so the real checkout can still fail on stock.
        """
        inspections = self.inspect(identity)
        if not inspections:
            raise EmptyCartError("Cart is empty")

        invalid = [i for i in collect_issues(inspections, self.ledger) if not i.valid]
        if invalid:
            raise CartValidationError([i.model_dump(mode="json") for i in invalid])

        warnings = []
        changed = sum(1 for i in inspections if i.price_changed)
        if changed:
            warnings.append(f"Prices changed for {changed} item(s) and must be confirmed at checkout")

        summary = self.pricing.summarize(i.pricing_line() for i in inspections)
        coupon = None
        if coupon_code:
            try:
                applied = self.pricing.apply_coupon(coupon_code, summary, identity)
                summary = applied.summary
                coupon = CouponApplicationOut(
                    code=applied.code,
                    discount_type=applied.discount_type,
                    discount=applied.discount,
                    summary=applied.summary,
                )
            except CouponError as e:
                logger.warning(f"Checkout preview for {identity}: coupon {coupon_code} not applied ({e.code})")
                warnings.append(f"Coupon {coupon_code} was not applied: {e.message}")
            finally:
                self.repo.commit()

        return CheckoutPreviewOut(
            items=[i.to_out() for i in inspections],
            summary=summary,
            coupon=coupon,
            final_total=summary.grand_total,
            warnings=warnings,
        )

    # commands

    def add_item(
        self,
        identity: CartIdentity,
        product_id: int,
        quantity: int,
        attributes: dict | None = None,
    ) -> CartLineOut:
        if quantity <= 0:
            raise ValidationError("Quantity must be greater than 0", quantity=quantity)
        if quantity > MAX_LINE_QUANTITY:
            raise ValidationError(f"Quantity cannot exceed {MAX_LINE_QUANTITY}", quantity=quantity)

        selected = SelectedAttributes.from_mapping(attributes)

        product = self.catalog.get_product(product_id)
        if product is None:
            raise ProductNotFoundError(f"Product {product_id} not found", product_id=product_id)
        if not product.is_active:
            raise ProductUnavailableError(product_id)

        try:
            line = self._upsert_line(identity, product, quantity, selected)
            self.repo.commit()
        except IntegrityError:
            # a concurrent add inserted the same line first; the retry finds and grows it
            self.repo.rollback()
            logger.info(f"Concurrent add for {identity} product {product_id}, retrying as update")
            line = self._upsert_line(identity, product, quantity, selected)
            self.repo.commit()

        return LineInspection(line=line, attributes=selected, product=product).to_out()

    def _upsert_line(
        self,
        identity: CartIdentity,
        product: ProductSnapshot,
        quantity: int,
        selected: SelectedAttributes,
    ) -> CartLineModel:
        key = selected.canonical()
        existing = self.repo.find_line(identity, product.product_id, key, lock=True)

        if existing:
            logger.info(
                f"Product {product.product_id} already in cart {identity}, "
                f"quantity {existing.quantity} -> {existing.quantity + quantity}"
            )
            existing.quantity += quantity
            # re-stamp to the price the customer sees now
            existing.unit_price = product.current_price
            existing.updated_at = utcnow()
            self.db.flush()
            return existing

        logger.info(f"Adding product {product.product_id} {key} to cart {identity}")
        return self.repo.add_line(
            CartLineModel(
                user_id=identity.user_id,
                session_id=identity.session_id,
                product_id=product.product_id,
                attributes_key=key,
                selected_attributes=selected.as_dict(),
                quantity=quantity,
                unit_price=product.current_price,
            )
        )

    def update_quantity(self, identity: CartIdentity, line_id: int, quantity: int) -> UpdateQuantityOut:
        if quantity > MAX_LINE_QUANTITY:
            raise ValidationError(f"Quantity cannot exceed {MAX_LINE_QUANTITY}", quantity=quantity)

        line = self.repo.get_line_for_identity(line_id, identity)
        if line is None:
            raise CartLineNotFoundError("Cart item not found", line_id=line_id)

        if quantity <= 0:
            self.repo.delete_line(line)
            self.repo.commit()
            logger.info(f"Line {line_id} removed from cart {identity} (quantity {quantity})")
            return UpdateQuantityOut(removed=True)

        line.quantity = quantity
        line.updated_at = utcnow()
        self.repo.commit()

        [inspection] = inspect_lines(self.catalog, [line])
        return UpdateQuantityOut(removed=False, line=inspection.to_out())

    def remove_item(self, identity: CartIdentity, line_id: int) -> None:
        line = self.repo.get_line_for_identity(line_id, identity)
        if line is None:
            raise CartLineNotFoundError("Cart item not found", line_id=line_id)

        self.repo.delete_line(line)
        self.repo.commit()
        logger.info(f"Line {line_id} removed from cart {identity}")

    def clear(self, identity: CartIdentity) -> int:
        removed = self.repo.clear(identity)
        self.repo.commit()
        logger.info(f"Cleared {removed} lines from cart {identity}")
        return removed

    def transfer_guest_cart_to_user(self, session_id: str, user_id: int) -> TransferOut:
        """
        Merge a guest cart into a user's cart in one transaction.

        Matching lines (same product and attributes) are summed into the
        user's line; the rest are re-owned. Whatever guest lines are left
        for the session are purged before the commit.
        """
        guest = CartIdentity.for_guest(session_id)
        user = CartIdentity.for_user(user_id)

        merged = reassigned = 0
        try:
            user_lines = {
                (line.product_id, line.attributes_key): line
                for line in self.repo.get_lines(user, lock=True)
            }

            for line in self.repo.get_lines(guest, lock=True):
                target = user_lines.get((line.product_id, line.attributes_key))
                if target is not None:
                    target.quantity += line.quantity
                    target.updated_at = utcnow()
                    self.repo.delete_line(line)
                    merged += 1
                else:
                    line.session_id = None
                    line.user_id = user_id
                    line.updated_at = utcnow()
                    self.db.flush()
                    user_lines[(line.product_id, line.attributes_key)] = line
                    reassigned += 1

            self.repo.clear(guest)
            self.repo.commit()
        except Exception:
            self.repo.rollback()
            raise

        logger.info(f"Transferred guest cart {session_id} to user {user_id}: merged={merged} reassigned={reassigned}")
        return TransferOut(merged=merged, reassigned=reassigned)

    def refresh_prices(self, identity: CartIdentity) -> PriceRefreshOut:
        updated = 0
        for item in inspect_lines(self.catalog, self.repo.get_lines(identity, lock=True)):
            if item.price_changed:
                item.line.unit_price = item.current_price
                item.line.updated_at = utcnow()
                updated += 1
        self.repo.commit()

        logger.info(f"Refreshed {updated} prices in cart {identity}")
        return PriceRefreshOut(updated=updated)

    def apply_coupon(self, identity: CartIdentity, code: str) -> CouponApplicationOut:
        inspections = self.inspect(identity)
        if not inspections:
            raise EmptyCartError("Cart is empty")

        summary = self.pricing.summarize(i.pricing_line() for i in inspections)
        try:
            applied = self.pricing.apply_coupon(code, summary, identity)
        finally:
            # an expired coupon is deactivated during validation and that sticks
            self.repo.commit()

        return CouponApplicationOut(
            code=applied.code,
            discount_type=applied.discount_type,
            discount=applied.discount,
            summary=applied.summary,
        )
