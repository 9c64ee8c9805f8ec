#import wszystkich modeli zeby SQLAlchemy je zarejestrowal w base metadata

from cart_engine.data.models.cart_line import CartLineModel
from cart_engine.data.models.bulk_tier import BulkTierModel
from cart_engine.data.models.special_offer import SpecialOfferModel, SpecialOfferProductModel
from cart_engine.data.models.product_variant import ProductVariantModel
from cart_engine.data.models.wishlist import WishlistItemModel
from cart_engine.data.models.cart_line_import import CartLineImportModel
from cart_engine.data.models.stock_reservation import StockReservationModel

__all__ = [
    "CartLineModel",
    "BulkTierModel",
    "SpecialOfferModel",
    "SpecialOfferProductModel",
    "ProductVariantModel",
    "WishlistItemModel",
    "CartLineImportModel",
    "StockReservationModel",
]
