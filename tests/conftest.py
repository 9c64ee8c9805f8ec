"""Shared pytest fixtures for cart_engine tests."""

import os

os.environ["DATABASE_URL"] = "sqlite://"

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from unittest.mock import MagicMock

import fakeredis
import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from cart_engine.data.database import Base
from cart_engine.data.models import (
    BulkTierModel,
    ProductVariantModel,
    SpecialOfferModel,
    SpecialOfferProductModel,
)
from cart_engine.services.cart_service import CartService
from cart_engine.services.cart_store import GuestCartStore, RemoteCartStore
from cart_engine.services.product_client import ProductClient

PRICES = {
    "tshirt": Decimal("100.00"),
    "hoodie": Decimal("250.00"),
    "cap": Decimal("80.00"),
}


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autocommit=False, autoflush=False)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def redis_client():
    client = fakeredis.FakeRedis(decode_responses=True)
    yield client
    client.flushall()


@pytest.fixture
def product_client():
    client = MagicMock(spec=ProductClient)
    client.get_base_price.side_effect = lambda product_id: PRICES[product_id]
    return client


@pytest.fixture
def guest_store(redis_client):
    return GuestCartStore("session-abc", client=redis_client)


@pytest.fixture
def remote_store(db):
    return RemoteCartStore(db, user_id=7)


@pytest.fixture(params=["guest", "remote"])
def store(request):
    """Both backends must satisfy the same contract."""
    return request.getfixturevalue(f"{request.param}_store")


@pytest.fixture
def service(store, db, product_client):
    return CartService(store=store, db=db, product_client=product_client)


@pytest.fixture
def variants(db):
    """Stock for tshirt/hoodie/cap variants."""
    rows = [
        ProductVariantModel(id="ts-m-red", product_id="tshirt", size="M", color="Red", stock_quantity=10),
        ProductVariantModel(id="ts-l-red", product_id="tshirt", size="L", color="Red", stock_quantity=10),
        ProductVariantModel(
            id="hd-m-black", product_id="hoodie", size="M", color="Black", stock_quantity=5,
            price_adjustment=Decimal("20.00"),
        ),
        ProductVariantModel(id="cap-one", product_id="cap", size="", color="Blue", stock_quantity=1),
    ]
    db.add_all(rows)
    db.commit()
    return {row.id: row for row in rows}


@pytest.fixture
def tshirt_tiers(db):
    rows = [
        BulkTierModel(id="t10", product_id="tshirt", min_quantity=10, max_quantity=24,
                      discount_type="percentage", discount_value=Decimal("10")),
        BulkTierModel(id="t25", product_id="tshirt", min_quantity=25, max_quantity=49,
                      discount_type="percentage", discount_value=Decimal("15")),
        BulkTierModel(id="t50", product_id="tshirt", min_quantity=50, max_quantity=None,
                      discount_type="percentage", discount_value=Decimal("20")),
    ]
    db.add_all(rows)
    db.commit()
    return rows


@pytest.fixture
def make_offer(db):
    def _make(
        offer_id="summer",
        special_price=Decimal("300.00"),
        components=(("tshirt", 1), ("hoodie", 1), ("cap", 1)),
        start_date=None,
        end_date=None,
        max_uses=None,
        current_uses=0,
        is_active=True,
    ):
        now = datetime.now(timezone.utc)
        offer = SpecialOfferModel(
            id=offer_id,
            title="Summer pack",
            special_price=special_price,
            original_price=Decimal("430.00"),
            is_active=is_active,
            start_date=start_date or now - timedelta(days=1),
            end_date=end_date,
            max_uses=max_uses,
            current_uses=current_uses,
        )
        offer.products = [
            SpecialOfferProductModel(product_id=product_id, quantity=quantity, position=i)
            for i, (product_id, quantity) in enumerate(components)
        ]
        db.add(offer)
        db.commit()
        return offer

    return _make


@pytest.fixture
def stock_of(db):
    def _stock(variant_id):
        db.expire_all()
        return db.get(ProductVariantModel, variant_id).stock_quantity

    return _stock
