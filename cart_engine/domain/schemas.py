# cart_engine/domain/schemas.py
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import List

from pydantic import BaseModel, ConfigDict, Field, model_validator

from cart_engine.domain.errors import ErrorKind


class PricingBasis(str, Enum):
    REGULAR = "regular"
    BULK = "bulk"
    BUNDLE = "bundle"


class DiscountType(str, Enum):
    PERCENTAGE = "percentage"
    FIXED_AMOUNT = "fixed_amount"
    FIXED_PRICE = "fixed_price"


class Identity(BaseModel):
    """Wlasciciel koszyka - token sesji goscia albo ID uzytkownika, nigdy oba."""

    user_id: int | None = None
    session_token: str | None = None

    @model_validator(mode="after")
    def _exactly_one(self):
        if (self.user_id is None) == (self.session_token is None):
            raise ValueError("Identity wymaga dokladnie jednego z: user_id, session_token")
        return self

    @property
    def is_authenticated(self) -> bool:
        return self.user_id is not None

    @property
    def owner_ref(self) -> str:
        if self.user_id is not None:
            return f"user:{self.user_id}"
        return f"guest:{self.session_token}"


class PricingAnnotations(BaseModel):
    """Pola potrzebne do odtworzenia ceny linii."""

    variant_id: str | None = None
    original_price: Decimal | None = None

    is_bulk_order: bool = False
    bulk_tier_id: str | None = None
    bulk_price: Decimal | None = None
    bulk_savings: Decimal | None = None

    special_offer_id: str | None = None
    special_offer_price: Decimal | None = None
    bundle_quantity: int | None = None
    bundle_count: int = 0


class CartLine(PricingAnnotations):
    id: str
    owner_ref: str
    product_id: str
    size: str = ""
    color: str = ""
    quantity: int = Field(..., gt=0)
    version: int = 1
    added_at: datetime | None = None
    updated_at: datetime | None = None

    model_config = ConfigDict(from_attributes=True)

    @property
    def variant_key(self) -> str:
        return f"{self.size}|{self.color}"

    @property
    def pricing_basis(self) -> PricingBasis:
        if self.special_offer_id and self.bundle_count > 0:
            return PricingBasis.BUNDLE
        if self.is_bulk_order and self.bulk_price is not None:
            return PricingBasis.BULK
        return PricingBasis.REGULAR

    def annotations(self) -> PricingAnnotations:
        return PricingAnnotations(**self.model_dump(include=set(PricingAnnotations.model_fields)))


class BulkTier(BaseModel):
    id: str | None = None
    min_quantity: int = Field(..., gt=0)
    max_quantity: int | None = None
    discount_type: DiscountType
    discount_value: Decimal

    model_config = ConfigDict(from_attributes=True)


class BundleComponent(BaseModel):
    product_id: str
    quantity: int = Field(1, gt=0)

    model_config = ConfigDict(from_attributes=True)


class BundleOffer(BaseModel):
    id: str
    title: str = ""
    special_price: Decimal
    original_price: Decimal | None = None
    components: List[BundleComponent]
    is_active: bool = True
    start_date: datetime
    end_date: datetime | None = None
    max_uses: int | None = None
    current_uses: int = 0


class ComponentSelection(BaseModel):
    """Wybor kupujacego dla jednej pozycji pakietu."""

    product_id: str
    variant_id: str | None = None


class SelectedVariant(BaseModel):
    id: str
    product_id: str
    size: str = ""
    color: str = ""
    stock_quantity: int = 0
    price_adjustment: Decimal = Decimal("0.00")

    model_config = ConfigDict(from_attributes=True)


class BundleAllocation(BaseModel):
    product_id: str
    variant_id: str
    size: str = ""
    color: str = ""
    quantity: int
    allocated_price: Decimal


class BundleGroup(BaseModel):
    special_offer_id: str
    original_total: Decimal
    bundle_total: Decimal
    savings: Decimal


class CartSummary(BaseModel):
    item_count: int
    subtotal: Decimal
    savings: Decimal
    bundles: List[BundleGroup] = []


class MutationResult(BaseModel):
    """Wynik operacji na koszyku - bledy zwracane jako dane, nie wyjatki."""

    ok: bool
    kind: ErrorKind | None = None
    message: str | None = None
    item_ref: str | None = None
    line: CartLine | None = None


class MigrationReport(BaseModel):
    merged: int = 0
    inserted: int = 0
    skipped: List[str] = []
    ran: bool = True
    error: str | None = None


# --- API ---


class LineIn(BaseModel):
    product_id: str = Field(..., min_length=1)
    quantity: int = Field(1, gt=0, description="Ilosc produktu (musi byc > 0)")
    size: str | None = None
    color: str | None = None


class BulkVariantIn(BaseModel):
    size: str | None = None
    color: str | None = None
    quantity: int = Field(..., gt=0)


class BulkOrderIn(BaseModel):
    product_id: str = Field(..., min_length=1)
    variants: List[BulkVariantIn] = Field(..., min_length=1)


class BundleIn(BaseModel):
    selections: List[ComponentSelection]


class QuantityIn(BaseModel):
    quantity: int
    expected_version: int | None = None


class CartOut(BaseModel):
    owner_ref: str
    lines: List[CartLine]
    summary: CartSummary


class SessionIn(BaseModel):
    session_token: str = Field(..., min_length=1)
    user_id: int = Field(..., gt=0)


class WishlistIn(BaseModel):
    product_id: str = Field(..., min_length=1)


class WishlistItemOut(BaseModel):
    id: int
    product_id: str
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class LineDraft(BaseModel):
    """Linia do dodania - jeszcze bez id i wlasciciela."""

    product_id: str
    quantity: int = Field(..., gt=0)
    size: str = ""
    color: str = ""
    annotations: PricingAnnotations = Field(default_factory=PricingAnnotations)
    #id linii goscia, z ktorej powstala - znacznik migracji
    source_id: str | None = None
