# cart_engine/data/models/cart_line_import.py
from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, Integer, String

from cart_engine.data.database import Base


class CartLineImportModel(Base):
    """
    Linia goscia juz przeniesiona do koszyka uzytkownika.
    Zapisywana w tej samej transakcji co linia koszyka, wiec ponowna migracja jej nie zdubluje
    """

    __tablename__ = "cart_line_imports"

    source_id = Column(String, primary_key=True)
    owner_id = Column(Integer, nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
