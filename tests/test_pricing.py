from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from cart_engine.domain.errors import CartValidationError, InsufficientStock, OfferUnavailable
from cart_engine.domain.schemas import (
    BulkTier,
    BundleComponent,
    BundleOffer,
    CartLine,
    ComponentSelection,
    DiscountType,
    PricingBasis,
    SelectedVariant,
)
from cart_engine.services import pricing

NOW = datetime(2026, 6, 1, 12, 0, tzinfo=timezone.utc)

TIERS = [
    BulkTier(id="t10", min_quantity=10, max_quantity=24, discount_type=DiscountType.PERCENTAGE, discount_value=Decimal("10")),
    BulkTier(id="t25", min_quantity=25, max_quantity=49, discount_type=DiscountType.PERCENTAGE, discount_value=Decimal("15")),
    BulkTier(id="t50", min_quantity=50, max_quantity=None, discount_type=DiscountType.PERCENTAGE, discount_value=Decimal("20")),
]


@pytest.mark.parametrize(
    "quantity, tier_id, unit_price",
    [
        (1, None, "100.00"),
        (9, None, "100.00"),
        (10, "t10", "90.00"),
        (24, "t10", "90.00"),
        (25, "t25", "85.00"),
        (49, "t25", "85.00"),
        (50, "t50", "80.00"),
        (500, "t50", "80.00"),
    ],
)
def test_tier_boundaries(quantity, tier_id, unit_price):
    tier = pricing.resolve_tier(quantity, TIERS)

    assert (tier.id if tier else None) == tier_id
    assert pricing.tier_unit_price(Decimal("100.00"), tier) == Decimal(unit_price)


def test_overlapping_tiers_pick_highest_min_quantity():
    tiers = [
        BulkTier(id="wide", min_quantity=10, max_quantity=100, discount_type=DiscountType.PERCENTAGE, discount_value=Decimal("5")),
        BulkTier(id="narrow", min_quantity=20, max_quantity=30, discount_type=DiscountType.PERCENTAGE, discount_value=Decimal("12")),
    ]

    assert pricing.resolve_tier(25, tiers).id == "narrow"
    assert pricing.resolve_tier(35, tiers).id == "wide"


def test_fixed_amount_never_goes_below_zero():
    off_30 = BulkTier(min_quantity=1, discount_type=DiscountType.FIXED_AMOUNT, discount_value=Decimal("30"))
    off_120 = BulkTier(min_quantity=1, discount_type=DiscountType.FIXED_AMOUNT, discount_value=Decimal("120"))

    assert pricing.tier_unit_price(Decimal("100.00"), off_30) == Decimal("70.00")
    assert pricing.tier_unit_price(Decimal("100.00"), off_120) == Decimal("0.00")


def test_fixed_price_replaces_base_price():
    tier = BulkTier(min_quantity=1, discount_type=DiscountType.FIXED_PRICE, discount_value=Decimal("59.99"))

    assert pricing.tier_unit_price(Decimal("100.00"), tier) == Decimal("59.99")


def test_round_money_is_half_even():
    assert pricing.round_money(Decimal("0.125")) == Decimal("0.12")
    assert pricing.round_money(Decimal("0.135")) == Decimal("0.14")


@pytest.mark.parametrize(
    "special_price, parts, expected",
    [
        ("10.00", 3, ["3.34", "3.33", "3.33"]),
        ("100.00", 4, ["25.00", "25.00", "25.00", "25.00"]),
        ("0.01", 3, ["0.01", "0.00", "0.00"]),
        ("200.00", 7, ["28.58", "28.57", "28.57", "28.57", "28.57", "28.57", "28.57"]),
    ],
)
def test_bundle_allocation_sums_exactly(special_price, parts, expected):
    allocations = pricing.allocate_bundle_price(Decimal(special_price), parts)

    assert allocations == [Decimal(e) for e in expected]
    assert sum(allocations) == Decimal(special_price)


def test_bundle_allocation_needs_parts():
    with pytest.raises(CartValidationError):
        pricing.allocate_bundle_price(Decimal("10.00"), 0)


def _offer(**overrides):
    data = dict(
        id="summer",
        special_price=Decimal("250.00"),
        components=[
            BundleComponent(product_id="tshirt"),
            BundleComponent(product_id="hoodie"),
            BundleComponent(product_id="cap"),
        ],
        start_date=NOW - timedelta(days=1),
    )
    data.update(overrides)
    return BundleOffer(**data)


VARIANTS = {
    "ts-m-red": SelectedVariant(id="ts-m-red", product_id="tshirt", size="M", color="Red", stock_quantity=3),
    "hd-m-black": SelectedVariant(id="hd-m-black", product_id="hoodie", size="M", color="Black", stock_quantity=1),
    "cap-one": SelectedVariant(id="cap-one", product_id="cap", color="Blue", stock_quantity=0),
    "cap-two": SelectedVariant(id="cap-two", product_id="cap", color="Green", stock_quantity=2),
}

SELECTIONS = [
    ComponentSelection(product_id="tshirt", variant_id="ts-m-red"),
    ComponentSelection(product_id="hoodie", variant_id="hd-m-black"),
    ComponentSelection(product_id="cap", variant_id="cap-two"),
]


def test_resolve_bundle_allocates_per_component():
    allocations = pricing.resolve_bundle(_offer(), SELECTIONS, VARIANTS, now=NOW)

    assert [a.product_id for a in allocations] == ["tshirt", "hoodie", "cap"]
    assert [a.allocated_price for a in allocations] == [Decimal("83.34"), Decimal("83.33"), Decimal("83.33")]
    assert sum(a.allocated_price for a in allocations) == Decimal("250.00")
    assert allocations[0].size == "M" and allocations[0].color == "Red"


def test_resolve_bundle_missing_selection():
    with pytest.raises(CartValidationError) as exc:
        pricing.resolve_bundle(_offer(), SELECTIONS[:2], VARIANTS, now=NOW)

    assert exc.value.item_ref == "cap"


def test_resolve_bundle_rejects_variant_of_other_product():
    selections = SELECTIONS[:2] + [ComponentSelection(product_id="cap", variant_id="ts-m-red")]

    with pytest.raises(CartValidationError):
        pricing.resolve_bundle(_offer(), selections, VARIANTS, now=NOW)


def test_resolve_bundle_out_of_stock():
    selections = SELECTIONS[:2] + [ComponentSelection(product_id="cap", variant_id="cap-one")]

    with pytest.raises(InsufficientStock) as exc:
        pricing.resolve_bundle(_offer(), selections, VARIANTS, now=NOW)

    assert exc.value.item_ref == "cap-one"


def test_resolve_bundle_component_quantity_above_stock():
    offer = _offer(components=[BundleComponent(product_id="hoodie", quantity=2)])

    with pytest.raises(InsufficientStock):
        pricing.resolve_bundle(offer, SELECTIONS, VARIANTS, now=NOW)


TWO_TSHIRTS = [BundleComponent(product_id="tshirt"), BundleComponent(product_id="tshirt")]


def test_resolve_bundle_same_product_twice_uses_each_selection():
    variants = dict(
        VARIANTS,
        **{"ts-l-red": SelectedVariant(id="ts-l-red", product_id="tshirt", size="L", color="Red", stock_quantity=1)},
    )
    selections = [
        ComponentSelection(product_id="tshirt", variant_id="ts-m-red"),
        ComponentSelection(product_id="tshirt", variant_id="ts-l-red"),
    ]

    allocations = pricing.resolve_bundle(_offer(components=TWO_TSHIRTS), selections, variants, now=NOW)

    assert [a.variant_id for a in allocations] == ["ts-m-red", "ts-l-red"]
    assert [a.size for a in allocations] == ["M", "L"]


def test_resolve_bundle_same_variant_twice_needs_stock_for_both():
    variants = {"ts-m-red": VARIANTS["ts-m-red"].model_copy(update={"stock_quantity": 1})}
    selections = [ComponentSelection(product_id="tshirt", variant_id="ts-m-red")] * 2

    with pytest.raises(InsufficientStock):
        pricing.resolve_bundle(_offer(components=TWO_TSHIRTS), selections, variants, now=NOW)


def test_group_allocations_merges_same_line_and_keeps_total():
    selections = [ComponentSelection(product_id="tshirt", variant_id="ts-m-red")] * 2
    offer = _offer(components=TWO_TSHIRTS + [BundleComponent(product_id="cap")], special_price=Decimal("100.01"))

    allocations = pricing.resolve_bundle(
        offer, selections + [ComponentSelection(product_id="cap", variant_id="cap-two")], VARIANTS, now=NOW
    )
    grouped = pricing.group_allocations(allocations)

    assert [(a.product_id, a.quantity) for a in grouped] == [("tshirt", 2), ("cap", 1)]
    assert grouped[0].allocated_price == Decimal("66.68")
    assert sum(a.allocated_price for a in grouped) == Decimal("100.01")


@pytest.mark.parametrize(
    "overrides",
    [
        {"is_active": False},
        {"start_date": NOW + timedelta(hours=1)},
        {"end_date": NOW - timedelta(seconds=1)},
        {"max_uses": 10, "current_uses": 10},
    ],
)
def test_unavailable_offer(overrides):
    offer = _offer(**overrides)

    assert not pricing.is_offer_available(offer, now=NOW)
    with pytest.raises(OfferUnavailable):
        pricing.resolve_bundle(offer, SELECTIONS, VARIANTS, now=NOW)


def test_offer_available_under_cap_and_inside_window():
    offer = _offer(end_date=NOW + timedelta(days=1), max_uses=10, current_uses=9)

    assert pricing.is_offer_available(offer, now=NOW)


def test_offer_window_accepts_naive_datetimes():
    offer = _offer(start_date=datetime(2026, 5, 1), end_date=datetime(2026, 7, 1))

    assert pricing.is_offer_available(offer, now=NOW)


def _line(**fields):
    data = dict(id="l1", owner_ref="guest:abc", product_id="tshirt", quantity=1, original_price=Decimal("100.00"))
    data.update(fields)
    return CartLine(**data)


def test_line_totals_per_pricing_basis():
    regular = _line(quantity=3)
    bulk = _line(quantity=25, is_bulk_order=True, bulk_tier_id="t25", bulk_price=Decimal("85.00"))
    bundle = _line(
        quantity=3,
        special_offer_id="summer",
        special_offer_price=Decimal("83.34"),
        bundle_quantity=1,
        bundle_count=1,
    )

    assert regular.pricing_basis == PricingBasis.REGULAR
    assert bulk.pricing_basis == PricingBasis.BULK
    assert bundle.pricing_basis == PricingBasis.BUNDLE

    assert pricing.line_total(regular) == Decimal("300.00")
    assert pricing.line_total(bulk) == Decimal("2125.00")
    #1 sztuka w cenie pakietu, 2 w cenie regularnej
    assert pricing.line_total(bundle) == Decimal("283.34")


def test_summary_groups_bundles_and_counts_savings():
    lines = [
        _line(id="a", quantity=25, is_bulk_order=True, bulk_tier_id="t25", bulk_price=Decimal("85.00")),
        _line(
            id="b", product_id="hoodie", quantity=1, original_price=Decimal("270.00"),
            special_offer_id="summer", special_offer_price=Decimal("83.33"), bundle_quantity=1, bundle_count=1,
        ),
        _line(
            id="c", product_id="cap", quantity=1, original_price=Decimal("80.00"),
            special_offer_id="summer", special_offer_price=Decimal("83.33"), bundle_quantity=1, bundle_count=1,
        ),
    ]

    summary = pricing.summarize(lines)

    assert summary.item_count == 27
    assert summary.subtotal == Decimal("2291.66")
    assert summary.savings == Decimal("375.00") + Decimal("183.34")
    assert len(summary.bundles) == 1
    group = summary.bundles[0]
    assert group.special_offer_id == "summer"
    assert group.original_total == Decimal("350.00")
    assert group.bundle_total == Decimal("166.66")
    assert group.savings == Decimal("183.34")
