from sqlalchemy import Column, Integer, Numeric, String

from cart_engine.data.database import Base


class ProductVariantModel(Base):
    __tablename__ = "product_variants"

    id = Column(String, primary_key=True)
    product_id = Column(String, nullable=False, index=True)
    size = Column(String, nullable=False, default="")
    color = Column(String, nullable=False, default="")

    stock_quantity = Column(Integer, nullable=False, default=0)
    price_adjustment = Column(Numeric(10, 2), nullable=False, default=0)
