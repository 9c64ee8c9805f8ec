# cart_engine/data/models/cart_line.py
from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, DateTime, Integer, Numeric, String, UniqueConstraint

from cart_engine.data.database import Base


def _now():
    return datetime.now(timezone.utc)


class CartLineModel(Base):
    """
    Linia koszyka zalogowanego uzytkownika.
    size/color jako "" zamiast NULL, bo NULL psuje unique constraint
    """

    __tablename__ = "cart_lines"

    id = Column(Integer, primary_key=True)
    owner_id = Column(Integer, nullable=False, index=True)
    product_id = Column(String, nullable=False)
    variant_id = Column(String, nullable=True)
    size = Column(String, nullable=False, default="")
    color = Column(String, nullable=False, default="")

    quantity = Column(Integer, nullable=False)
    version = Column(Integer, nullable=False, default=1)

    original_price = Column(Numeric(10, 2), nullable=True)

    is_bulk_order = Column(Boolean, nullable=False, default=False)
    bulk_tier_id = Column(String, nullable=True)
    bulk_price = Column(Numeric(10, 2), nullable=True)
    bulk_savings = Column(Numeric(10, 2), nullable=True)

    special_offer_id = Column(String, nullable=True)
    special_offer_price = Column(Numeric(10, 2), nullable=True)
    bundle_quantity = Column(Integer, nullable=True)
    bundle_count = Column(Integer, nullable=False, default=0)

    created_at = Column(DateTime(timezone=True), nullable=False, default=_now)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_now, onupdate=_now)

    __table_args__ = (
        UniqueConstraint("owner_id", "product_id", "size", "color", name="u_owner_product_variant"),
    )
