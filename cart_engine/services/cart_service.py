# cart_engine/services/cart_service.py
from decimal import Decimal
from typing import Dict, List, Sequence

from sqlalchemy.orm import Session

from cart_engine.domain.errors import CartValidationError, OfferUnavailable
from cart_engine.domain.schemas import (
    BulkTier,
    BulkVariantIn,
    BundleComponent,
    BundleOffer,
    CartLine,
    CartOut,
    ComponentSelection,
    LineDraft,
    PricingAnnotations,
    PricingBasis,
    SelectedVariant,
)
from cart_engine.repos.catalog_repo import CatalogRepo
from cart_engine.services import pricing
from cart_engine.services.cart_store import CartStore
from cart_engine.services.product_client import ProductClient
from cart_engine.services.stock_service import StockReservationService
from cart_engine.utils.logging import get_logger

logger = get_logger(__name__)


class CartService:
    """
    Use case'y koszyka, niezaleznie od backendu (gosc / zalogowany)
    commands (add, bulk, bundle, update, remove) - zapis przez store + przeliczenie cen
    query (list, get_cart) - zawsze swiezy odczyt ze store
    """

    def __init__(
        self,
        store: CartStore,
        db: Session,
        product_client: ProductClient,
        stock: StockReservationService | None = None,
    ):
        self.store = store
        self.catalog = CatalogRepo(db)
        self.product_client = product_client
        self.stock = stock or StockReservationService(db)

    #query
    def list_lines(self) -> List[CartLine]:
        return self.store.list()

    def get_cart(self) -> CartOut:
        lines = self.store.list()
        return CartOut(owner_ref=self.store.owner_ref, lines=lines, summary=pricing.summarize(lines))

    def get_offer(self, offer_id: str) -> BundleOffer:
        row = self.catalog.get_offer(offer_id)
        if row is None:
            raise OfferUnavailable(f"Oferta {offer_id} nie istnieje", item_ref=offer_id)

        return BundleOffer(
            id=row.id,
            title=row.title,
            special_price=row.special_price,
            original_price=row.original_price,
            components=[BundleComponent.model_validate(p) for p in row.products],
            is_active=row.is_active,
            start_date=row.start_date,
            end_date=row.end_date,
            max_uses=row.max_uses,
            current_uses=row.current_uses,
        )

    #commands
    def add_product(
        self,
        product_id: str,
        quantity: int,
        size: str | None = None,
        color: str | None = None,
    ) -> CartLine:
        if quantity <= 0:
            raise CartValidationError("Ilosc musi byc wieksza niz 0", item_ref=product_id)

        draft = self._draft(product_id, quantity, size, color, self.product_client.get_base_price(product_id))
        self.store.add_lines([draft])
        self.reprice_product(product_id)

        return self.store.find_line(product_id, size, color)

    def add_bulk_order(self, product_id: str, variants: Sequence[BulkVariantIn]) -> List[CartLine]:
        """Kilka rozmiarow/kolorow jednego produktu naraz, prog liczony od lacznej ilosci."""
        if not variants:
            raise CartValidationError("Wybierz co najmniej jeden wariant", item_ref=product_id)

        for variant in variants:
            if variant.quantity <= 0:
                raise CartValidationError("Ilosc musi byc wieksza niz 0", item_ref=product_id)

        base_price = self.product_client.get_base_price(product_id)
        drafts = [self._draft(product_id, v.quantity, v.size, v.color, base_price) for v in variants]

        self.store.add_lines(drafts)
        self.reprice_product(product_id)

        keys = {(d.size, d.color) for d in drafts}
        return [l for l in self.store.list() if l.product_id == product_id and (l.size, l.color) in keys]

    def add_bundle(self, offer_id: str, selections: Sequence[ComponentSelection]) -> List[CartLine]:
        """
        Dodanie pakietu: wszystko albo nic.

        1. walidacja wyboru wariantow + aktywnosci oferty (bez zapisow)
        2. rezerwacja stanu wszystkich wariantow w jednej transakcji
        3. zapis wszystkich linii naraz; jak sie nie uda - zwolnienie rezerwacji
        """
        if not selections:
            raise CartValidationError("Wybierz warianty dla wszystkich produktow pakietu", item_ref=offer_id)

        offer = self.get_offer(offer_id)
        rows = self.catalog.get_variants(s.variant_id for s in selections)
        variants = {vid: SelectedVariant.model_validate(row) for vid, row in rows.items()}

        #ten sam produkt/wariant w kilku pozycjach oferty = jedna linia koszyka
        allocations = pricing.group_allocations(pricing.resolve_bundle(offer, selections, variants))

        base_prices = {a.product_id: self.product_client.get_base_price(a.product_id) for a in allocations}

        reservations = self.stock.reserve_all(
            ((a.variant_id, a.quantity) for a in allocations),
            owner_ref=self.store.owner_ref,
        )

        drafts = [
            LineDraft(
                product_id=a.product_id,
                quantity=a.quantity,
                size=a.size,
                color=a.color,
                annotations=PricingAnnotations(
                    variant_id=a.variant_id,
                    original_price=pricing.round_money(base_prices[a.product_id] + variants[a.variant_id].price_adjustment),
                    special_offer_id=offer.id,
                    special_offer_price=a.allocated_price,
                    bundle_quantity=a.quantity,
                    bundle_count=1,
                ),
            )
            for a in allocations
        ]

        try:
            lines = self.store.add_lines(drafts)
        except Exception:
            logger.error(f"Zapis pakietu {offer_id} nieudany, zwalniam rezerwacje")
            self.stock.release_all(reservations, owner_ref=self.store.owner_ref)
            raise

        #linie pakietu wypadaja z progu hurtowego - pozostale linie tych produktow trzeba przeliczyc
        for product_id in sorted({a.product_id for a in allocations}):
            self.reprice_product(product_id)

        logger.info(f"Pakiet {offer_id} dodany do koszyka {self.store.owner_ref} ({len(lines)} linii)")
        return lines

    def update_quantity(self, line_id: str, quantity: int, expected_version: int | None = None) -> None:
        if quantity <= 0:
            self.remove_line(line_id)
            return

        line = self.store.get_line(line_id)
        if line is None:
            raise CartValidationError(f"Linia {line_id} nie istnieje", item_ref=line_id)

        self.store.update_quantity(line_id, quantity, expected_version)

        updated = self.store.get_line(line_id)
        self._release_bundle_units(line, updated.bundle_count if updated else 0)
        self.reprice_product(line.product_id)

    def remove_line(self, line_id: str) -> None:
        line = self.store.get_line(line_id)

        self.store.remove_line(line_id)

        if line is not None:
            self._release_bundle_units(line, 0)
            self.reprice_product(line.product_id)

    def reprice_product(self, product_id: str) -> None:
        """
        Przeliczenie progow hurtowych dla wszystkich linii produktu.
        Linie z pakietu maja swoja cene i nie licza sie do progu.
        """
        lines = [
            l for l in self.store.list()
            if l.product_id == product_id and l.pricing_basis != PricingBasis.BUNDLE
        ]
        if not lines:
            return

        tiers = [BulkTier.model_validate(t) for t in self.catalog.get_tiers(product_id)]
        total = sum(l.quantity for l in lines)
        tier = pricing.resolve_tier(total, tiers)

        repriced: Dict[str, PricingAnnotations] = {}
        for line in lines:
            current = line.annotations()
            updated = self._bulk_annotations(product_id, current, line.quantity, tier)
            if updated != current:
                repriced[line.id] = updated

        if repriced:
            logger.info(
                f"Przeliczono ceny produktu {product_id} w koszyku {self.store.owner_ref}: "
                f"ilosc {total}, prog {tier.id if tier else None}"
            )
            self.store.reprice_lines(repriced)

    def _bulk_annotations(
        self,
        product_id: str,
        current: PricingAnnotations,
        quantity: int,
        tier: BulkTier | None,
    ) -> PricingAnnotations:
        updated = current.model_copy()
        if tier is None:
            updated.is_bulk_order = False
            updated.bulk_tier_id = None
            updated.bulk_price = None
            updated.bulk_savings = None
            return updated

        original = current.original_price
        if original is None:
            original = pricing.round_money(self.product_client.get_base_price(product_id))
            updated.original_price = original

        bulk_price = pricing.tier_unit_price(original, tier)
        updated.is_bulk_order = True
        updated.bulk_tier_id = tier.id
        updated.bulk_price = bulk_price
        updated.bulk_savings = pricing.bulk_savings(original, bulk_price, quantity)
        return updated

    def _draft(
        self,
        product_id: str,
        quantity: int,
        size: str | None,
        color: str | None,
        base_price: Decimal,
    ) -> LineDraft:
        size, color = size or "", color or ""
        variant = self.catalog.find_variant(product_id, size, color)
        adjustment = Decimal(variant.price_adjustment) if variant else Decimal("0")

        return LineDraft(
            product_id=product_id,
            quantity=quantity,
            size=size,
            color=color,
            annotations=PricingAnnotations(
                variant_id=variant.id if variant else None,
                original_price=pricing.round_money(base_price + adjustment),
            ),
        )

    def _release_bundle_units(self, before: CartLine, bundle_count_after: int) -> None:
        freed = before.bundle_count - bundle_count_after
        if freed <= 0 or not before.variant_id:
            return

        units = freed * (before.bundle_quantity or 1)
        try:
            self.stock.release_all([(before.variant_id, units)], owner_ref=self.store.owner_ref)
        except Exception as e:
            #linia juz zapisana, stan magazynu wyrownuje zamowienie/admin
            logger.warning(f"Nie udalo sie zwolnic {units} szt. wariantu {before.variant_id}: {e}")
