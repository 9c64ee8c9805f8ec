from typing import List

from sqlalchemy.orm import Session

from cart_engine.data.models.wishlist import WishlistItemModel
from cart_engine.domain.errors import AuthorizationRequired
from cart_engine.domain.schemas import Identity, WishlistItemOut
from cart_engine.repos.wishlist_repo import WishlistRepo
from cart_engine.utils.logging import get_logger

logger = get_logger(__name__)


class WishlistService:
    """Lista zyczen - tylko dla zalogowanych, gosc nie ma odpowiednika."""

    def __init__(self, db: Session, identity: Identity):
        if not identity.is_authenticated:
            raise AuthorizationRequired("Zaloguj sie, aby korzystac z listy zyczen")
        self.user_id = identity.user_id
        self.repo = WishlistRepo(db)

    def list_items(self) -> List[WishlistItemOut]:
        return [WishlistItemOut.model_validate(i) for i in self.repo.list_items(self.user_id)]

    def add_item(self, product_id: str) -> WishlistItemOut:
        existing = self.repo.find_item(self.user_id, product_id)
        if existing:
            logger.info(f"Produkt {product_id} juz jest na liscie zyczen uzytkownika {self.user_id}")
            return WishlistItemOut.model_validate(existing)

        created = self.repo.add_item(WishlistItemModel(user_id=self.user_id, product_id=product_id))
        logger.info(f"Produkt {product_id} dodany do listy zyczen uzytkownika {self.user_id}")
        return WishlistItemOut.model_validate(created)

    def remove_item(self, item_id: int) -> None:
        removed = self.repo.delete_item(self.user_id, item_id)
        if removed:
            logger.info(f"Pozycja {item_id} usunieta z listy zyczen uzytkownika {self.user_id}")
