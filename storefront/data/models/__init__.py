# import all models so SQLAlchemy registers them in Base.metadata

from storefront.data.models.product import ProductModel
from storefront.data.models.inventory import InventoryModel
from storefront.data.models.cart_line import CartLineModel
from storefront.data.models.coupon import CouponModel, CouponUsageModel
from storefront.data.models.order import OrderModel, OrderLineModel

__all__ = [
    "ProductModel",
    "InventoryModel",
    "CartLineModel",
    "CouponModel",
    "CouponUsageModel",
    "OrderModel",
    "OrderLineModel",
]
