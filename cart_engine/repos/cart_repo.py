# cart_engine/repos/cart_repo.py
from typing import Any, Dict, List

from sqlalchemy import delete, select, update
from sqlalchemy.orm import Session

from cart_engine.data.models.cart_line import CartLineModel
from cart_engine.data.models.cart_line_import import CartLineImportModel


class CartRepo:
    def __init__(self, db: Session):
        self.db = db

    def list_lines(self, owner_id: int) -> List[CartLineModel]:
        return list(
            self.db.execute(
                select(CartLineModel)
                .where(CartLineModel.owner_id == owner_id)
                .order_by(CartLineModel.id)
            ).scalars()
        )

    def get_line(self, owner_id: int, line_id: int) -> CartLineModel | None:
        return self.db.execute(
            select(CartLineModel)
            .where(
                CartLineModel.id == line_id,
                CartLineModel.owner_id == owner_id,
            )
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def find_line(self, owner_id: int, product_id: str, size: str, color: str) -> CartLineModel | None:
        return self.db.execute(
            select(CartLineModel)
            .where(
                CartLineModel.owner_id == owner_id,
                CartLineModel.product_id == product_id,
                CartLineModel.size == size,
                CartLineModel.color == color,
            )
            #swiezy odczyt z bazy, nie wersja z identity map sesji
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def add_line(self, line: CartLineModel) -> CartLineModel:
        #flush zamiast commit - commit robi wywolujacy, zeby kilka linii poszlo w jednej transakcji
        self.db.add(line)
        self.db.flush()
        return line

    def update_line_version(self, owner_id: int, line_id: int, old_version: int, new_data: Dict[str, Any]) -> int:
        # optimistic locking: update ... where id = :id and version = :old_version
        result = self.db.execute(
            update(CartLineModel)
            .where(
                CartLineModel.id == line_id,
                CartLineModel.owner_id == owner_id,
                CartLineModel.version == old_version,
            )
            .values(**new_data)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    def delete_line(self, owner_id: int, line_id: int) -> int:
        result = self.db.execute(
            delete(CartLineModel)
            .where(CartLineModel.id == line_id, CartLineModel.owner_id == owner_id)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    def delete_all(self, owner_id: int) -> int:
        result = self.db.execute(
            delete(CartLineModel)
            .where(CartLineModel.owner_id == owner_id)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    def has_import(self, owner_id: int, source_id: str) -> bool:
        row = self.db.get(CartLineImportModel, source_id)
        return row is not None and row.owner_id == owner_id

    def add_import(self, owner_id: int, source_id: str) -> None:
        self.db.add(CartLineImportModel(source_id=source_id, owner_id=owner_id))
        self.db.flush()

    def commit(self):
        self.db.commit()

    def rollback(self):
        self.db.rollback()
