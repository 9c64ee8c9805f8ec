# cart_engine/repos/reservation_repo.py
from datetime import datetime
from typing import List

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from cart_engine.data.models.stock_reservation import StockReservationModel


class ReservationRepo:
    """Rejestr rezerwacji per koszyk. Commit robi wywolujacy, razem ze zmiana stanu."""

    def __init__(self, db: Session):
        self.db = db

    def get(self, owner_ref: str, variant_id: str) -> StockReservationModel | None:
        return self.db.execute(
            select(StockReservationModel)
            .where(
                StockReservationModel.owner_ref == owner_ref,
                StockReservationModel.variant_id == variant_id,
            )
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def list_for(self, owner_ref: str) -> List[StockReservationModel]:
        return list(
            self.db.execute(
                select(StockReservationModel)
                .where(StockReservationModel.owner_ref == owner_ref)
                .order_by(StockReservationModel.id)
            ).scalars()
        )

    def hold(self, owner_ref: str, variant_id: str, quantity: int) -> None:
        row = self.get(owner_ref, variant_id)
        if row:
            row.quantity += quantity
        else:
            self.db.add(StockReservationModel(owner_ref=owner_ref, variant_id=variant_id, quantity=quantity))
        self.db.flush()

    def drop(self, owner_ref: str, variant_id: str, quantity: int) -> int:
        """Zmniejsza rezerwacje, zwraca ile sztuk faktycznie bylo trzymane."""
        row = self.get(owner_ref, variant_id)
        if row is None:
            return 0

        dropped = min(quantity, row.quantity)
        row.quantity -= dropped
        if row.quantity <= 0:
            self.db.delete(row)
        self.db.flush()
        return dropped

    def delete_for(self, owner_ref: str) -> int:
        result = self.db.execute(
            delete(StockReservationModel)
            .where(StockReservationModel.owner_ref == owner_ref)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    def guest_owners_before(self, before: datetime) -> List[str]:
        #gosc bez zmian od `before` - kandydat do sprawdzenia czy koszyk jeszcze zyje
        return list(
            self.db.execute(
                select(StockReservationModel.owner_ref)
                .where(
                    StockReservationModel.owner_ref.like("guest:%"),
                    StockReservationModel.updated_at < before,
                )
                .distinct()
                .order_by(StockReservationModel.owner_ref)
            ).scalars()
        )

    def commit(self):
        self.db.commit()

    def rollback(self):
        self.db.rollback()
