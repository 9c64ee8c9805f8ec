# cart_engine/services/stock_service.py
from typing import Iterable, List, Tuple

from sqlalchemy.orm import Session

from cart_engine.domain.errors import CartValidationError, InsufficientStock
from cart_engine.repos.catalog_repo import CatalogRepo
from cart_engine.repos.reservation_repo import ReservationRepo
from cart_engine.utils.logging import get_logger

logger = get_logger(__name__)

Reservation = Tuple[str, int]


class StockReservationService:
    """
    Rezerwacja stanu magazynowego przed dodaniem pakietu do koszyka
    -dekrementacja robiona przez baze jednym warunkowym UPDATE
    -kilka wariantow w jednej transakcji, blad jednego = rollback wszystkich
    -release jako kompensacja, gdy zapis koszyka po rezerwacji sie nie uda
    -z owner_ref kazda rezerwacja trafia tez do rejestru koszyka (ta sama transakcja),
     zeby po wygasnieciu koszyka goscia dalo sie oddac stan
    """

    def __init__(self, db: Session):
        self.repo = CatalogRepo(db)
        self.ledger = ReservationRepo(db)

    def reserve_stock(self, variant_id: str, quantity: int) -> bool:
        if quantity <= 0:
            raise CartValidationError("Ilosc musi byc wieksza niz 0", item_ref=variant_id)

        rowcount = self.repo.decrement_stock(variant_id, quantity)
        if rowcount == 0:
            self.repo.rollback()
            logger.info(f"Brak stanu dla wariantu {variant_id} (potrzeba {quantity})")
            return False

        self.repo.commit()
        logger.info(f"Zarezerwowano {quantity} szt. wariantu {variant_id}")
        return True

    def reserve_all(self, reservations: Iterable[Reservation], owner_ref: str | None = None) -> List[Reservation]:
        reservations = list(reservations)

        for variant_id, quantity in reservations:
            if quantity <= 0:
                raise CartValidationError("Ilosc musi byc wieksza niz 0", item_ref=variant_id)

        try:
            for variant_id, quantity in reservations:
                if self.repo.decrement_stock(variant_id, quantity) == 0:
                    #wczesniejsze dekrementacje z tej samej proby tez ida do rollbacku
                    self.repo.rollback()
                    raise InsufficientStock(f"Brak stanu dla wariantu {variant_id}", item_ref=variant_id)
                if owner_ref:
                    self.ledger.hold(owner_ref, variant_id, quantity)
            self.repo.commit()
        except InsufficientStock:
            raise
        except Exception:
            self.repo.rollback()
            raise

        logger.info(f"Zarezerwowano warianty: {reservations} dla {owner_ref}")
        return reservations

    def release_all(self, reservations: Iterable[Reservation], owner_ref: str | None = None) -> None:
        """
        Zwrot sztuk na magazyn.
        Z owner_ref wraca tylko tyle, ile koszyk faktycznie trzyma w rejestrze - drugi zwrot tej samej rezerwacji nic nie robi.
        """
        reservations = [(v, q) for v, q in reservations if q > 0]
        if not reservations:
            return

        released = []
        try:
            for variant_id, quantity in reservations:
                if owner_ref:
                    quantity = self.ledger.drop(owner_ref, variant_id, quantity)
                if quantity > 0:
                    self.repo.increment_stock(variant_id, quantity)
                    released.append((variant_id, quantity))
            self.repo.commit()
        except Exception:
            self.repo.rollback()
            raise

        logger.info(f"Zwolniono rezerwacje: {released}")

    def transfer(self, from_ref: str, to_ref: str, variant_id: str, quantity: int) -> int:
        """Przeniesienie rezerwacji miedzy koszykami (migracja gosc -> uzytkownik), stan magazynu bez zmian."""
        if quantity <= 0 or from_ref == to_ref:
            return 0

        try:
            moved = self.ledger.drop(from_ref, variant_id, quantity)
            if moved > 0:
                self.ledger.hold(to_ref, variant_id, moved)
            self.repo.commit()
        except Exception:
            self.repo.rollback()
            raise

        if moved:
            logger.info(f"Przeniesiono {moved} szt. wariantu {variant_id} z {from_ref} do {to_ref}")
        return moved

    def release_owner(self, owner_ref: str) -> List[Reservation]:
        """Koszyk przestal istniec - cala jego rezerwacja wraca na magazyn."""
        try:
            held = [(row.variant_id, row.quantity) for row in self.ledger.list_for(owner_ref)]
            for variant_id, quantity in held:
                if quantity > 0:
                    self.repo.increment_stock(variant_id, quantity)
            self.ledger.delete_for(owner_ref)
            self.repo.commit()
        except Exception:
            self.repo.rollback()
            raise

        if held:
            logger.info(f"Zwolniono rezerwacje koszyka {owner_ref}: {held}")
        return held
