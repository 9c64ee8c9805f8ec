from sqlalchemy import Boolean, Column, Integer, Numeric, String

from cart_engine.data.database import Base


class BulkTierModel(Base):
    __tablename__ = "bulk_pricing_tiers"

    id = Column(String, primary_key=True)
    product_id = Column(String, nullable=False, index=True)

    min_quantity = Column(Integer, nullable=False)
    max_quantity = Column(Integer, nullable=True)  # NULL = bez gornej granicy
    discount_type = Column(String, nullable=False)  # percentage, fixed_amount, fixed_price
    discount_value = Column(Numeric(10, 2), nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)
