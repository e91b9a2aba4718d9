# storefront/domain/schemas.py
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from storefront.utils.settings import MAX_LINE_QUANTITY

PaymentMethod = Literal["cod", "bank_transfer", "credit_card", "paypal"]


class CartSummary(BaseModel):
    """Derived on every read, never stored."""

    item_count: int = 0
    total_quantity: int = 0
    subtotal: Decimal = Decimal("0")
    tax: Decimal = Decimal("0")
    shipping: Decimal = Decimal("0")
    discount: Decimal = Decimal("0")
    grand_total: Decimal = Decimal("0")
    currency: str
    coupon_code: str | None = None


class CartLineOut(BaseModel):
    id: int
    product_id: int
    product_name: str | None = None
    quantity: int
    unit_price: Decimal
    line_total: Decimal
    selected_attributes: Dict[str, str] = {}
    created_at: datetime | None = None
    is_active: bool = True
    current_price: Decimal | None = None
    price_changed: bool = False


class CartOut(BaseModel):
    identity: str
    items: List[CartLineOut]
    summary: CartSummary


class AddItemIn(BaseModel):
    product_id: int = Field(..., gt=0)
    quantity: int = Field(1, ge=1, le=MAX_LINE_QUANTITY)
    attributes: Dict[str, Any] | None = None


class UpdateQuantityIn(BaseModel):
    # 0 removes the line; negative values never reach the service
    quantity: int = Field(..., ge=0, le=MAX_LINE_QUANTITY)


class UpdateQuantityOut(BaseModel):
    removed: bool
    line: CartLineOut | None = None


class CouponApplyIn(BaseModel):
    code: str = Field(..., min_length=3, max_length=50)

    @field_validator("code")
    @classmethod
    def strip_code(cls, v: str) -> str:
        return v.strip()


class CouponApplicationOut(BaseModel):
    code: str
    discount_type: str
    discount: Decimal
    summary: CartSummary


class CouponOut(BaseModel):
    code: str
    name: str | None = None
    discount_type: str
    value: Decimal
    min_order_amount: Decimal
    max_discount_amount: Decimal | None = None
    valid_from: datetime
    valid_until: datetime
    usage_limit_total: int | None = None
    used_count: int
    discount_preview: Decimal | None = None

    model_config = ConfigDict(from_attributes=True)


class CouponUsageOut(BaseModel):
    order_id: int
    code: str
    name: str | None = None
    discount_type: str
    value: Decimal
    discount_amount: Decimal
    original_amount: Decimal
    final_amount: Decimal
    used_at: datetime


class CouponHistoryOut(BaseModel):
    history: List[CouponUsageOut]
    page: int
    limit: int
    total: int
    total_pages: int


class LineIssue(BaseModel):
    line_id: int
    product_id: int
    requested_quantity: int
    issues: List[str] = []
    available_quantity: int | None = None
    price_changed: bool = False
    old_price: Decimal | None = None
    new_price: Decimal | None = None

    @property
    def valid(self) -> bool:
        return not self.issues


class CartValidationOut(BaseModel):
    valid: bool
    total_items: int
    invalid_items: int
    items: List[LineIssue]


class CartCountOut(BaseModel):
    count: int


class PriceRange(BaseModel):
    min: Decimal = Decimal("0")
    max: Decimal = Decimal("0")
    average: Decimal = Decimal("0")


class CartStatisticsOut(BaseModel):
    item_count: int
    total_quantity: int
    subtotal: Decimal
    out_of_stock_items: int
    price_changed_items: int
    price_range: PriceRange
    currency: str


class CheckoutPreviewOut(BaseModel):
    """What checkout would charge right now; nothing is reserved."""

    items: List[CartLineOut]
    summary: CartSummary
    coupon: CouponApplicationOut | None = None
    final_total: Decimal
    warnings: List[str] = []


class ReconciliationOut(BaseModel):
    removed_items: int
    adjusted_items: int
    total_changes: int


class TransferIn(BaseModel):
    session_id: str = Field(..., min_length=1, max_length=128)


class TransferOut(BaseModel):
    merged: int
    reassigned: int


class PriceRefreshOut(BaseModel):
    updated: int


class ShippingAddress(BaseModel):
    full_name: str = Field(..., min_length=2, max_length=100)
    phone: str = Field(..., pattern=r"^[0-9+\-\s()]{10,15}$")
    line1: str = Field(..., min_length=1, max_length=255)
    line2: str | None = Field(None, max_length=255)
    city: str = Field(..., min_length=1, max_length=50)
    state: str | None = Field(None, max_length=50)
    postal_code: str | None = Field(None, max_length=20)
    country: str = Field("VN", min_length=2, max_length=2)


class CheckoutIn(BaseModel):
    shipping_address: ShippingAddress
    payment_method: PaymentMethod = "cod"
    coupon_code: str | None = Field(None, min_length=3, max_length=50)
    customer_email: str | None = Field(None, max_length=255, pattern=r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
    notes: str | None = Field(None, max_length=500)
    confirm_price_changes: bool = False


class CheckoutOut(BaseModel):
    order_id: int
    order_number: str
    grand_total: Decimal
    summary: CartSummary
    warnings: List[str] = []


class OrderLineOut(BaseModel):
    product_id: int
    product_name: str
    variant: str
    selected_attributes: Dict[str, str] = {}
    quantity: int
    unit_price: Decimal
    line_total: Decimal

    model_config = ConfigDict(from_attributes=True)


class OrderOut(BaseModel):
    id: int
    order_number: str
    user_id: int | None = None
    status: str
    payment_status: str
    payment_method: str
    subtotal: Decimal
    tax: Decimal
    shipping: Decimal
    discount: Decimal
    grand_total: Decimal
    currency: str
    coupon_code: str | None = None
    created_at: datetime
    lines: List[OrderLineOut] = []

    model_config = ConfigDict(from_attributes=True)


class OrderPageOut(BaseModel):
    orders: List[OrderOut]
    page: int
    limit: int
    total: int
    total_pages: int
