# cart_engine/data/models/stock_reservation.py
from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, Integer, String, UniqueConstraint

from cart_engine.data.database import Base


def _now():
    return datetime.now(timezone.utc)


class StockReservationModel(Base):
    """
    Ile sztuk wariantu trzyma dany koszyk (owner_ref: guest:<token> / user:<id>).
    Koszyk goscia moze wygasnac w redisie - wtedy sprzatacz oddaje stan na magazyn
    """

    __tablename__ = "stock_reservations"

    id = Column(Integer, primary_key=True)
    owner_ref = Column(String, nullable=False, index=True)
    variant_id = Column(String, nullable=False)
    quantity = Column(Integer, nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_now, onupdate=_now)

    __table_args__ = (UniqueConstraint("owner_ref", "variant_id", name="u_owner_variant"),)
