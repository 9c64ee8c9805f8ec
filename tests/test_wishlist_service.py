import pytest

from cart_engine.domain.errors import AuthorizationRequired
from cart_engine.domain.schemas import Identity
from cart_engine.services.wishlist_service import WishlistService


def test_guest_has_no_wishlist(db):
    with pytest.raises(AuthorizationRequired):
        WishlistService(db, Identity(session_token="abc"))


def test_add_is_idempotent(db):
    wishlist = WishlistService(db, Identity(user_id=7))

    first = wishlist.add_item("tshirt")
    second = wishlist.add_item("tshirt")

    assert first.id == second.id
    assert [i.product_id for i in wishlist.list_items()] == ["tshirt"]


def test_remove_item(db):
    wishlist = WishlistService(db, Identity(user_id=7))
    item = wishlist.add_item("tshirt")
    wishlist.add_item("cap")

    wishlist.remove_item(item.id)
    wishlist.remove_item(item.id)

    assert [i.product_id for i in wishlist.list_items()] == ["cap"]


def test_wishlists_are_per_user(db):
    WishlistService(db, Identity(user_id=7)).add_item("tshirt")

    assert WishlistService(db, Identity(user_id=8)).list_items() == []
