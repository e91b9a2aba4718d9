from datetime import timedelta
from decimal import Decimal

import pytest

from storefront.data.models import CouponModel
from storefront.domain.errors import (
    CouponBelowMinimumError,
    CouponExpiredError,
    CouponNotFoundError,
    CouponNotYetActiveError,
    CouponUsageExceededError,
)
from storefront.domain.identity import CartIdentity
from storefront.services.pricing_service import PricingEngine, PricingLine, shipping_fee
from storefront.utils.clock import utcnow


def lines(*amounts, inactive=()):
    return [
        PricingLine(product_id=i, quantity=1, unit_price=Decimal(a), is_active=i not in inactive)
        for i, a in enumerate(amounts)
    ]


@pytest.mark.parametrize(
    "subtotal, fee",
    [
        ("0", "0"),
        ("1", "50000"),
        ("499999", "50000"),
        ("500000", "30000"),
        ("999999", "30000"),
        ("1000000", "0"),
    ],
)
def test_shipping_tiers(subtotal, fee):
    assert shipping_fee(Decimal(subtotal)) == Decimal(fee)


def test_summary_excludes_inactive_lines():
    engine = PricingEngine()
    items = [
        PricingLine(product_id=1, quantity=2, unit_price=Decimal("100000")),
        PricingLine(product_id=2, quantity=1, unit_price=Decimal("300000"), is_active=False),
    ]

    summary = engine.summarize(items)

    assert summary.item_count == 1
    assert summary.total_quantity == 2
    assert summary.subtotal == Decimal("200000")
    assert summary.tax == Decimal("20000")
    assert summary.shipping == Decimal("50000")
    assert summary.grand_total == Decimal("270000")


def test_empty_cart_has_no_shipping():
    summary = PricingEngine().summarize([])
    assert summary.subtotal == 0
    assert summary.shipping == 0
    assert summary.grand_total == 0


def test_tax_rounds_half_up():
    summary = PricingEngine().summarize(lines("15"))
    # 1.5 -> 2
    assert summary.tax == Decimal("2")


def test_save10_on_200000(db, save10):
    engine = PricingEngine(db)
    summary = engine.summarize(lines("200000"))

    applied = engine.apply_coupon("SAVE10", summary, None)

    assert applied.discount == Decimal("20000")
    assert applied.summary.grand_total == Decimal("200000") + Decimal("20000") + Decimal("50000") - Decimal("20000")
    assert applied.summary.coupon_code == "SAVE10"


def test_code_lookup_is_case_insensitive(db, save10):
    engine = PricingEngine(db)
    applied = engine.apply_coupon("  save10 ", engine.summarize(lines("200000")), None)
    assert applied.code == "SAVE10"


def test_save10_below_minimum(db, save10):
    engine = PricingEngine(db)
    with pytest.raises(CouponBelowMinimumError):
        engine.apply_coupon("SAVE10", engine.summarize(lines("50000")), None)


def test_percentage_capped_by_max_discount(db, add_coupon):
    add_coupon("HALF", value="50", max_discount_amount=Decimal("30000"))
    engine = PricingEngine(db)

    applied = engine.apply_coupon("HALF", engine.summarize(lines("200000")), None)

    assert applied.discount == Decimal("30000")


def test_free_shipping_discount_equals_fee(db, add_coupon):
    add_coupon("SHIPFREE", discount_type="free_shipping", value="0")
    engine = PricingEngine(db)

    applied = engine.apply_coupon("SHIPFREE", engine.summarize(lines("200000")), None)

    assert applied.discount == Decimal("50000")
    assert applied.summary.grand_total == Decimal("220000")


@pytest.mark.parametrize(
    "discount_type, value",
    [("percentage", "100"), ("fixed_amount", "999999999"), ("free_shipping", "0")],
)
def test_discount_never_exceeds_subtotal(db, add_coupon, discount_type, value):
    add_coupon("BIG", discount_type=discount_type, value=value, min_order_amount=Decimal("0"))
    engine = PricingEngine(db)
    summary = engine.summarize(lines("1000"))

    applied = engine.apply_coupon("BIG", summary, None)

    assert applied.discount <= summary.subtotal
    assert applied.summary.grand_total >= summary.tax + summary.shipping


def test_unknown_and_inactive_coupons(db, add_coupon):
    add_coupon("OFF", is_active=False)
    engine = PricingEngine(db)
    summary = engine.summarize(lines("200000"))

    with pytest.raises(CouponNotFoundError):
        engine.apply_coupon("NOPE", summary, None)
    with pytest.raises(CouponNotFoundError):
        engine.apply_coupon("OFF", summary, None)


def test_expired_coupon_is_deactivated(db, add_coupon):
    coupon = add_coupon(
        "OLD",
        valid_from=utcnow() - timedelta(days=10),
        valid_until=utcnow() - timedelta(days=1),
    )
    engine = PricingEngine(db)

    with pytest.raises(CouponExpiredError):
        engine.apply_coupon("OLD", engine.summarize(lines("200000")), None)
    db.commit()

    db.expire_all()
    assert db.get(CouponModel, coupon.id).is_active is False
    # second encounter: no longer active at all
    with pytest.raises(CouponNotFoundError):
        engine.apply_coupon("OLD", engine.summarize(lines("200000")), None)


def test_expired_coupon_left_active_when_deactivation_is_off(db, add_coupon):
    coupon = add_coupon("OLD", valid_from=utcnow() - timedelta(days=10), valid_until=utcnow() - timedelta(days=1))
    engine = PricingEngine(db, deactivate_expired=False)

    with pytest.raises(CouponExpiredError):
        engine.apply_coupon("OLD", engine.summarize(lines("200000")), None)

    assert not db.dirty
    assert db.get(CouponModel, coupon.id).is_active is True


def test_not_yet_active(db, add_coupon):
    add_coupon("SOON", valid_from=utcnow() + timedelta(days=1))
    engine = PricingEngine(db)
    with pytest.raises(CouponNotYetActiveError):
        engine.apply_coupon("SOON", engine.summarize(lines("200000")), None)


def test_validation_order_stops_at_first_failure(db, add_coupon):
    # below minimum and used up: minimum is checked first
    add_coupon("BOTH", usage_limit_total=1, used_count=1, min_order_amount=Decimal("500000"))
    engine = PricingEngine(db)
    with pytest.raises(CouponBelowMinimumError):
        engine.apply_coupon("BOTH", engine.summarize(lines("200000")), None)


def test_total_usage_limit(db, add_coupon):
    add_coupon("LIMITED", usage_limit_total=2, used_count=2)
    engine = PricingEngine(db)
    with pytest.raises(CouponUsageExceededError):
        engine.apply_coupon("LIMITED", engine.summarize(lines("200000")), CartIdentity.for_user(1))


def test_available_coupons_preview(db, save10, add_coupon):
    add_coupon("USEDUP", usage_limit_total=1, used_count=1)
    add_coupon("BIGMIN", min_order_amount=Decimal("5000000"))
    engine = PricingEngine(db)

    found = {c.code: preview for c, preview in engine.available_coupons(Decimal("200000"), None)}

    assert found == {"SAVE10": Decimal("20000")}


def test_available_coupons_without_amount_lists_all_usable(db, save10, add_coupon):
    add_coupon("BIGMIN", min_order_amount=Decimal("5000000"))
    engine = PricingEngine(db)

    found = {c.code: preview for c, preview in engine.available_coupons(Decimal("0"), None)}

    assert found == {"SAVE10": None, "BIGMIN": None}
