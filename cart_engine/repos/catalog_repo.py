# cart_engine/repos/catalog_repo.py
from typing import Dict, Iterable, List

from sqlalchemy import select, update
from sqlalchemy.orm import Session, selectinload

from cart_engine.data.models.bulk_tier import BulkTierModel
from cart_engine.data.models.product_variant import ProductVariantModel
from cart_engine.data.models.special_offer import SpecialOfferModel


class CatalogRepo:
    """Odczyt tabel katalogu (progi, oferty, warianty) + atomowe operacje na stanie."""

    def __init__(self, db: Session):
        self.db = db

    def get_tiers(self, product_id: str) -> List[BulkTierModel]:
        return list(
            self.db.execute(
                select(BulkTierModel)
                .where(BulkTierModel.product_id == product_id, BulkTierModel.is_active.is_(True))
                .order_by(BulkTierModel.min_quantity)
            ).scalars()
        )

    def get_offer(self, offer_id: str) -> SpecialOfferModel | None:
        return self.db.execute(
            select(SpecialOfferModel)
            .where(SpecialOfferModel.id == offer_id)
            .options(selectinload(SpecialOfferModel.products))
        ).scalar_one_or_none()

    def get_variants(self, variant_ids: Iterable[str]) -> Dict[str, ProductVariantModel]:
        ids = [v for v in variant_ids if v]
        if not ids:
            return {}
        rows = self.db.execute(
            select(ProductVariantModel).where(ProductVariantModel.id.in_(ids))
        ).scalars()
        return {row.id: row for row in rows}

    def find_variant(self, product_id: str, size: str, color: str) -> ProductVariantModel | None:
        return self.db.execute(
            select(ProductVariantModel).where(
                ProductVariantModel.product_id == product_id,
                ProductVariantModel.size == size,
                ProductVariantModel.color == color,
            )
        ).scalar_one_or_none()

    def decrement_stock(self, variant_id: str, quantity: int) -> int:
        # jedno zapytanie w bazie: update ... set stock = stock - q where id = :id and stock >= q
        # dwa rownolegle zakupy nie przejda oba przez sprawdzenie stanu
        result = self.db.execute(
            update(ProductVariantModel)
            .where(
                ProductVariantModel.id == variant_id,
                ProductVariantModel.stock_quantity >= quantity,
            )
            .values(stock_quantity=ProductVariantModel.stock_quantity - quantity)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    def increment_stock(self, variant_id: str, quantity: int) -> int:
        result = self.db.execute(
            update(ProductVariantModel)
            .where(ProductVariantModel.id == variant_id)
            .values(stock_quantity=ProductVariantModel.stock_quantity + quantity)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    def commit(self):
        self.db.commit()

    def rollback(self):
        self.db.rollback()
