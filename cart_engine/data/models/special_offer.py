from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, Numeric, String
from sqlalchemy.orm import relationship

from cart_engine.data.database import Base


class SpecialOfferModel(Base):
    __tablename__ = "special_offers"

    id = Column(String, primary_key=True)
    title = Column(String, nullable=False, default="")

    special_price = Column(Numeric(10, 2), nullable=False)
    original_price = Column(Numeric(10, 2), nullable=True)

    is_active = Column(Boolean, nullable=False, default=True)
    start_date = Column(DateTime(timezone=True), nullable=False)
    end_date = Column(DateTime(timezone=True), nullable=True)
    max_uses = Column(Integer, nullable=True)
    current_uses = Column(Integer, nullable=False, default=0)

    products = relationship(
        "SpecialOfferProductModel",
        back_populates="offer",
        cascade="all, delete-orphan",
        order_by="SpecialOfferProductModel.position",
    )


class SpecialOfferProductModel(Base):
    __tablename__ = "special_offer_products"

    id = Column(Integer, primary_key=True)
    special_offer_id = Column(String, ForeignKey("special_offers.id", ondelete="CASCADE"), nullable=False)
    product_id = Column(String, nullable=False)
    quantity = Column(Integer, nullable=False, default=1)
    position = Column(Integer, nullable=False, default=0)

    offer = relationship("SpecialOfferModel", back_populates="products")
