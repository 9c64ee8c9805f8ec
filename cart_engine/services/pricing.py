"""
Zasady cenowe linii koszyka.

Tylko czyste funkcje - bez bazy i bez redisa:

-progi hurtowe: wybor progu dla lacznej ilosci, cena jednostkowa
-pakiety: czy oferte mozna kupic, podzial ceny pakietu na linie tak,
 zeby czesci sumowaly sie dokladnie do calosci
-suma linii i podsumowanie koszyka (subtotal, oszczednosci, pakiety)
"""

from datetime import datetime, timezone
from decimal import Decimal, ROUND_HALF_EVEN
from typing import Dict, Iterable, List, Sequence

from cart_engine.domain.errors import CartValidationError, InsufficientStock, OfferUnavailable
from cart_engine.domain.schemas import (
    BulkTier,
    BundleAllocation,
    BundleComponent,
    BundleGroup,
    BundleOffer,
    CartLine,
    CartSummary,
    ComponentSelection,
    DiscountType,
    PricingBasis,
    SelectedVariant,
)

ZERO = Decimal("0.00")
CENT = Decimal("0.01")


def round_money(amount: Decimal) -> Decimal:
    """Zaokraglenie do groszy, ROUND_HALF_EVEN."""
    return Decimal(amount).quantize(CENT, rounding=ROUND_HALF_EVEN)


def _aware(value: datetime) -> datetime:
    #sqlite zwraca naive datetime mimo timezone=True
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


# --- bulk tiers ---


def resolve_tier(quantity: int, tiers: Iterable[BulkTier]) -> BulkTier | None:
    """
    Prog, ktorego zakres zawiera ``quantity``.
    Przy nakladajacych sie zakresach wygrywa najwyzsze ``min_quantity``,
    ``None`` = zaden prog nie obowiazuje.
    """
    matching = [
        t
        for t in tiers
        if t.min_quantity <= quantity and (t.max_quantity is None or quantity <= t.max_quantity)
    ]
    return max(matching, key=lambda t: t.min_quantity, default=None)


def tier_unit_price(base_price: Decimal, tier: BulkTier | None) -> Decimal:
    base_price = Decimal(base_price)

    if tier is None:
        return round_money(base_price)

    value = Decimal(tier.discount_value)

    if tier.discount_type == DiscountType.PERCENTAGE:
        price = base_price * (1 - value / 100)
    elif tier.discount_type == DiscountType.FIXED_AMOUNT:
        price = max(ZERO, base_price - value)
    else:
        price = value

    return round_money(price)


def bulk_savings(original_price: Decimal, bulk_price: Decimal, quantity: int) -> Decimal:
    return round_money((Decimal(original_price) - Decimal(bulk_price)) * quantity)


# --- bundles ---


def is_offer_available(offer: BundleOffer, now: datetime | None = None) -> bool:
    now = _aware(now or datetime.now(timezone.utc))

    if not offer.is_active:
        return False
    if _aware(offer.start_date) > now:
        return False
    if offer.end_date is not None and _aware(offer.end_date) < now:
        return False
    if offer.max_uses is not None and offer.current_uses >= offer.max_uses:
        return False
    return True


def allocate_bundle_price(special_price: Decimal, parts: int) -> List[Decimal]:
    """
    Rowny podzial ``special_price`` na ``parts`` linii, liczony w groszach.
    Reszta z dzielenia trafia do pierwszej linii, suma zawsze = ``special_price``.
    """
    if parts <= 0:
        raise CartValidationError("Pakiet musi miec co najmniej jeden produkt")

    cents = int(round_money(special_price).scaleb(2))
    share, remainder = divmod(cents, parts)

    allocations = [share] * parts
    allocations[0] += remainder

    return [Decimal(c).scaleb(-2) for c in allocations]


def _match_selections(
    components: Sequence[BundleComponent],
    selections: Sequence[ComponentSelection],
) -> List[ComponentSelection | None]:
    """
    Wybor dla kazdej pozycji oferty, po kolejnosci.
    Ten sam produkt moze byc w ofercie dwa razy, wiec product_id nie wystarcza.
    """
    unused = list(range(len(selections)))
    matched = []

    for i, component in enumerate(components):
        if i in unused and selections[i].product_id == component.product_id:
            index = i
        else:
            index = next((j for j in unused if selections[j].product_id == component.product_id), None)

        if index is None:
            matched.append(None)
            continue
        unused.remove(index)
        matched.append(selections[index])

    return matched


def resolve_bundle(
    offer: BundleOffer,
    selections: Sequence[ComponentSelection],
    variants: Dict[str, SelectedVariant],
    now: datetime | None = None,
) -> List[BundleAllocation]:
    """
    Walidacja zakupu pakietu i cena kazdej pozycji.
    Pierwszy niespelniony warunek przerywa calosc:

    -OfferUnavailable: oferta nieaktywna, poza oknem czasowym albo limit uzyc
    -CartValidationError: brak wybranego wariantu dla pozycji
    -InsufficientStock: wybrany wariant bez stanu
    """
    if not is_offer_available(offer, now):
        raise OfferUnavailable(f"Oferta {offer.id} jest niedostepna", item_ref=offer.id)

    needed: Dict[str, int] = {}
    resolved = []
    for component, selection in zip(offer.components, _match_selections(offer.components, selections)):
        variant_id = selection.variant_id if selection else None
        if not variant_id:
            raise CartValidationError(
                f"Nie wybrano wariantu dla produktu {component.product_id}",
                item_ref=component.product_id,
            )

        variant = variants.get(variant_id)
        if variant is None or variant.product_id != component.product_id:
            raise CartValidationError(
                f"Wariant {variant_id} nie nalezy do produktu {component.product_id}",
                item_ref=variant_id,
            )

        #ten sam wariant w dwoch pozycjach - stan musi wystarczyc na obie
        needed[variant_id] = needed.get(variant_id, 0) + component.quantity
        if variant.stock_quantity < needed[variant_id]:
            raise InsufficientStock(f"Brak stanu dla wariantu {variant_id}", item_ref=variant_id)

        resolved.append((component, variant))

    prices = allocate_bundle_price(offer.special_price, len(resolved))

    return [
        BundleAllocation(
            product_id=component.product_id,
            variant_id=variant.id,
            size=variant.size,
            color=variant.color,
            quantity=component.quantity,
            allocated_price=price,
        )
        for (component, variant), price in zip(resolved, prices)
    ]


def group_allocations(allocations: Iterable[BundleAllocation]) -> List[BundleAllocation]:
    """
    Pozycje trafiajace na ta sama linie koszyka (produkt/rozmiar/kolor) laczone w jedna.
    Ilosci i ceny sie sumuja, wiec suma pakietu zostaje nietknieta.
    """
    grouped: Dict[tuple, BundleAllocation] = {}
    for a in allocations:
        key = (a.product_id, a.size, a.color)
        if key in grouped:
            current = grouped[key]
            grouped[key] = current.model_copy(
                update={
                    "quantity": current.quantity + a.quantity,
                    "allocated_price": current.allocated_price + a.allocated_price,
                }
            )
        else:
            grouped[key] = a
    return list(grouped.values())


# --- totals ---


def _bundle_units(line: CartLine) -> int:
    return min(line.quantity, line.bundle_count * (line.bundle_quantity or 1))


def line_total(line: CartLine) -> Decimal:
    original = Decimal(line.original_price or ZERO)
    basis = line.pricing_basis

    if basis == PricingBasis.BUNDLE:
        extra_units = line.quantity - _bundle_units(line)
        return round_money(Decimal(line.special_offer_price or ZERO) * line.bundle_count + original * extra_units)

    if basis == PricingBasis.BULK:
        return round_money(Decimal(line.bulk_price) * line.quantity)

    return round_money(original * line.quantity)


def summarize(lines: Iterable[CartLine]) -> CartSummary:
    item_count = 0
    subtotal = ZERO
    savings = ZERO
    groups: Dict[str, BundleGroup] = {}

    for line in lines:
        item_count += line.quantity
        subtotal += line_total(line)

        basis = line.pricing_basis
        if basis == PricingBasis.BULK:
            savings += bulk_savings(line.original_price or ZERO, line.bulk_price, line.quantity)
        elif basis == PricingBasis.BUNDLE:
            original_part = round_money(Decimal(line.original_price or ZERO) * _bundle_units(line))
            bundle_part = round_money(Decimal(line.special_offer_price or ZERO) * line.bundle_count)
            savings += original_part - bundle_part

            group = groups.setdefault(
                line.special_offer_id,
                BundleGroup(special_offer_id=line.special_offer_id, original_total=ZERO, bundle_total=ZERO, savings=ZERO),
            )
            group.original_total += original_part
            group.bundle_total += bundle_part
            group.savings = group.original_total - group.bundle_total

    return CartSummary(
        item_count=item_count,
        subtotal=round_money(subtotal),
        savings=round_money(savings),
        bundles=list(groups.values()),
    )
