from typing import List

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from cart_engine.data.models.wishlist import WishlistItemModel


class WishlistRepo:
    def __init__(self, db: Session):
        self.db = db

    def list_items(self, user_id: int) -> List[WishlistItemModel]:
        return list(
            self.db.execute(
                select(WishlistItemModel)
                .where(WishlistItemModel.user_id == user_id)
                .order_by(WishlistItemModel.id)
            ).scalars()
        )

    def find_item(self, user_id: int, product_id: str) -> WishlistItemModel | None:
        return self.db.execute(
            select(WishlistItemModel).where(
                WishlistItemModel.user_id == user_id,
                WishlistItemModel.product_id == product_id,
            )
        ).scalar_one_or_none()

    def add_item(self, item: WishlistItemModel) -> WishlistItemModel:
        self.db.add(item)
        self.db.commit()
        self.db.refresh(item)
        return item

    def delete_item(self, user_id: int, item_id: int) -> int:
        result = self.db.execute(
            delete(WishlistItemModel).where(
                WishlistItemModel.id == item_id,
                WishlistItemModel.user_id == user_id,
            )
        )
        self.db.commit()
        return result.rowcount
