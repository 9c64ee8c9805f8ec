from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from cart_engine.api.errors import to_http
from cart_engine.api.routers.carts import get_identity
from cart_engine.data.database import get_db
from cart_engine.domain.errors import CartError
from cart_engine.domain.schemas import Identity, WishlistIn, WishlistItemOut
from cart_engine.services.wishlist_service import WishlistService

router = APIRouter(prefix="/wishlist", tags=["wishlist"])


def get_service(
    identity: Identity = Depends(get_identity),
    db: Session = Depends(get_db),
) -> WishlistService:
    try:
        return WishlistService(db, identity)
    except CartError as e:
        raise to_http(e)


@router.get("", response_model=List[WishlistItemOut])
def list_items(svc: WishlistService = Depends(get_service)):
    return svc.list_items()


@router.post("", response_model=WishlistItemOut)
def add_item(payload: WishlistIn, svc: WishlistService = Depends(get_service)):
    return svc.add_item(payload.product_id)


@router.delete("/{item_id}", status_code=204)
def remove_item(item_id: int, svc: WishlistService = Depends(get_service)):
    svc.remove_item(item_id)
