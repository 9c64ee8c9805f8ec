#cart_engine/api/routers/carts.py
from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import ValidationError
from sqlalchemy.orm import Session

from cart_engine.api.errors import to_http
from cart_engine.data.database import get_db
from cart_engine.domain.errors import CartError
from cart_engine.domain.schemas import (
    BulkOrderIn,
    BundleIn,
    CartOut,
    Identity,
    LineIn,
    QuantityIn,
)
from cart_engine.services.cart_service import CartService
from cart_engine.services.cart_store import select_store
from cart_engine.services.change_feed import ChangeFeed
from cart_engine.services.product_client import ProductClient

router = APIRouter(prefix="/cart", tags=["cart"])


def get_identity(
    user_id: int | None = Query(None),
    session_token: str | None = Query(None),
) -> Identity:
    try:
        return Identity(user_id=user_id, session_token=session_token)
    except ValidationError:
        raise HTTPException(status_code=400, detail="Podaj user_id albo session_token")


def get_service(
    identity: Identity = Depends(get_identity),
    db: Session = Depends(get_db),
) -> CartService:
    store = select_store(identity, db=db, feed=ChangeFeed())
    return CartService(store=store, db=db, product_client=ProductClient())


@router.get("", response_model=CartOut)
def get_cart(svc: CartService = Depends(get_service)):
    return svc.get_cart()


@router.post("/lines", response_model=CartOut)
def add_line(payload: LineIn, svc: CartService = Depends(get_service)):
    try:
        svc.add_product(payload.product_id, payload.quantity, payload.size, payload.color)
    except CartError as e:
        raise to_http(e)
    return svc.get_cart()


@router.post("/bulk", response_model=CartOut)
def add_bulk_order(payload: BulkOrderIn, svc: CartService = Depends(get_service)):
    try:
        svc.add_bulk_order(payload.product_id, payload.variants)
    except CartError as e:
        raise to_http(e)
    return svc.get_cart()


@router.post("/bundles/{offer_id}", response_model=CartOut)
def add_bundle(offer_id: str, payload: BundleIn, svc: CartService = Depends(get_service)):
    try:
        svc.add_bundle(offer_id, payload.selections)
    except CartError as e:
        raise to_http(e)
    return svc.get_cart()


@router.patch("/lines/{line_id}", response_model=CartOut)
def update_quantity(line_id: str, payload: QuantityIn, svc: CartService = Depends(get_service)):
    try:
        svc.update_quantity(line_id, payload.quantity, payload.expected_version)
    except CartError as e:
        raise to_http(e)
    return svc.get_cart()


@router.delete("/lines/{line_id}", response_model=CartOut)
def remove_line(line_id: str, svc: CartService = Depends(get_service)):
    try:
        svc.remove_line(line_id)
    except CartError as e:
        raise to_http(e)
    return svc.get_cart()
