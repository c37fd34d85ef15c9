"""
Listing statistics used by the procurement optimizer.

Mode price, fraud filtering, atomic stack consumption and value scoring
for a single world's listings.
"""

import math
from typing import Dict, List, Sequence

from engine.market_models import CachedListing, ShoppingListingEntry, WorldShoppingSummary
from utils.constants import (
    ADDITIONAL_LISTING_OPTIONS,
    DEFAULT_MAX_PRICE_MULTIPLIER,
    MODE_FALLBACK_LISTINGS,
    MODE_OUTLIER_FACTOR,
)


def mode_price(listings: Sequence[CachedListing]) -> float:
    """
    Typical unit price of ``listings``, resistant to bait listings.

    The mean of the cheapest half is the baseline; listings above ten times
    the baseline are dropped (falling back to the three cheapest if nothing
    survives) and the price carrying the largest total quantity wins, ties
    going to the lower price.
    """
    ordered = sorted(listings, key=lambda l: l.price_per_unit)
    if not ordered:
        return 0.0

    half = ordered[:max(1, len(ordered) // 2)]
    baseline = sum(l.price_per_unit for l in half) / len(half)

    kept = [l for l in ordered if l.price_per_unit <= baseline * MODE_OUTLIER_FACTOR]
    if not kept:
        kept = ordered[:MODE_FALLBACK_LISTINGS]

    quantity_at: Dict[int, int] = {}
    for listing in kept:
        quantity_at[listing.price_per_unit] = quantity_at.get(listing.price_per_unit, 0) + listing.quantity

    best_price, _ = min(quantity_at.items(), key=lambda kv: (-kv[1], kv[0]))
    return float(best_price)


def fraud_threshold(mode: float, multiplier: float = DEFAULT_MAX_PRICE_MULTIPLIER) -> float:
    """Highest acceptable unit price; unbounded when there is no mode price."""
    if mode <= 0:
        return math.inf
    return int(mode * multiplier)


def _entry(listing: CachedListing, dc_average: float, **kwargs) -> ShoppingListingEntry:
    return ShoppingListingEntry(
        quantity=listing.quantity,
        price_per_unit=listing.price_per_unit,
        retainer_name=listing.retainer_name,
        is_under_average=listing.price_per_unit <= dc_average,
        is_hq=listing.is_hq,
        **kwargs,
    )


def summarize_listings(world_name: str, listings: Sequence[CachedListing], needed: int,
                       dc_average: float = 0.0,
                       max_price_multiplier: float = DEFAULT_MAX_PRICE_MULTIPLIER) -> WorldShoppingSummary:
    """
    Build one world's purchase offer for ``needed`` units.

    Stacks are bought whole: the last stack consumed may overshoot the need
    and the surplus is reported as excess.
    """
    ordered = sorted(listings, key=lambda l: l.price_per_unit)
    summary = WorldShoppingSummary(world_name=world_name, dc_average_price=dc_average)
    if not ordered:
        summary.shortfall_quantity = max(0, needed)
        return summary

    summary.best_single_listing = _entry(ordered[0], dc_average)
    summary.mode_price_per_unit = mode_price(ordered)
    threshold = fraud_threshold(summary.mode_price_per_unit, max_price_multiplier)

    candidates: List[CachedListing] = []
    for listing in ordered:
        if listing.price_per_unit > threshold:
            summary.excluded_listings.append(_entry(listing, dc_average, excess_quantity=listing.quantity))
        else:
            candidates.append(listing)

    remaining = needed
    used = 0
    for listing in candidates:
        if remaining <= 0:
            break
        summary.listings.append(_entry(
            listing, dc_average,
            needed_from_stack=min(listing.quantity, remaining),
            excess_quantity=max(0, listing.quantity - remaining),
        ))
        summary.total_cost += listing.quantity * listing.price_per_unit
        remaining -= listing.quantity
        used += 1

    for listing in candidates[used:used + ADDITIONAL_LISTING_OPTIONS]:
        summary.listings.append(_entry(
            listing, dc_average,
            is_additional_option=True,
            excess_quantity=listing.quantity,
        ))

    purchased = sum(l.quantity for l in summary.purchased_listings)
    summary.listings_used = used
    summary.total_quantity_purchased = purchased
    summary.has_sufficient_stock = purchased >= needed
    summary.shortfall_quantity = max(0, needed - purchased)
    summary.excess_quantity = max(0, purchased - needed)
    summary.average_price_per_unit = summary.total_cost / max(1, purchased)
    summary.is_fully_under_average = used > 0 and all(l.is_under_average for l in summary.purchased_listings)
    return summary


def value_score(summary: WorldShoppingSummary, needed: int, split: bool = False) -> float:
    """
    Ranking score, lower is better.

    Single-world: total cost when the world covers the need, else infinity.
    Split: mode price divided by the fraction of the need the world covers.
    """
    if split:
        ratio = 1.0 if needed <= 0 else min(summary.total_quantity_purchased / needed, 1.0)
        if ratio <= 0 or summary.mode_price_per_unit <= 0:
            return math.inf
        return summary.mode_price_per_unit / ratio

    if summary.total_quantity_purchased < needed:
        return math.inf
    return float(summary.total_cost)


def allocation_cost(summary: WorldShoppingSummary, quantity: int) -> int:
    """Cost of ``quantity`` units taken cheapest-first from the world's purchased listings."""
    remaining = quantity
    cost = 0
    for listing in sorted(summary.purchased_listings, key=lambda l: l.price_per_unit):
        if remaining <= 0:
            break
        take = min(remaining, listing.quantity)
        cost += take * listing.price_per_unit
        remaining -= take
    return cost
