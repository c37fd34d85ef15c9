import math

import pytest

from engine.market_models import CachedListing
from engine.pricing import allocation_cost, fraud_threshold, mode_price, summarize_listings, value_score


def _listings(*pairs):
    return [CachedListing(quantity=q, price_per_unit=p, retainer_name=f"R{i}") for i, (q, p) in enumerate(pairs)]


MARKET = _listings((5, 110), (1, 1000), (5, 100), (3, 120), (2, 130), (1, 140))


def test_mode_price_prefers_largest_quantity():
    listings = _listings((5, 100), (3, 100), (10, 120), (1, 5000))
    assert mode_price(listings) == 120


def test_mode_price_tie_goes_to_lower_price():
    assert mode_price(_listings((5, 110), (5, 100))) == 100
    assert mode_price([]) == 0


def test_mode_price_ignores_outliers():
    # the bait stack is far above the cheapest half and is dropped
    listings = _listings((1, 10), (1, 12), (50, 900))
    assert mode_price(listings) == 10


def test_fraud_threshold():
    assert fraud_threshold(100, 2.5) == 250
    assert fraud_threshold(0) == math.inf


def test_whole_stacks_are_bought():
    summary = summarize_listings("Siren", MARKET, 7, dc_average=115)

    purchased = summary.purchased_listings
    assert [(l.quantity, l.price_per_unit) for l in purchased] == [(5, 100), (5, 110)]
    assert purchased[1].needed_from_stack == 2
    assert purchased[1].excess_quantity == 3
    assert summary.total_cost == 1050
    assert summary.total_quantity_purchased == 10
    assert summary.excess_quantity == 3
    assert summary.listings_used == 2
    assert summary.has_sufficient_stock
    assert summary.average_price_per_unit == pytest.approx(105.0)
    assert summary.is_fully_under_average


def test_additional_options_and_exclusions():
    summary = summarize_listings("Siren", MARKET, 7, dc_average=115)

    extras = [l for l in summary.listings if l.is_additional_option]
    assert [l.price_per_unit for l in extras] == [120, 130]
    assert [l.price_per_unit for l in summary.excluded_listings] == [1000]
    assert summary.excluded_price_multipliers == [10.0]
    assert summary.mode_price_per_unit == 100
    assert summary.best_single_listing.price_per_unit == 100


def test_total_cost_covers_need_at_cheapest_price():
    for needed in (1, 5, 6, 10, 14):
        summary = summarize_listings("Siren", MARKET, needed)
        assert summary.total_quantity_purchased >= needed
        assert summary.total_cost >= needed * 100
        assert value_score(summary, needed) == summary.total_cost


def test_insufficient_stock():
    summary = summarize_listings("Siren", MARKET, 20)

    assert not summary.has_sufficient_stock
    assert summary.total_quantity_purchased == 16
    assert summary.shortfall_quantity == 4
    assert summary.total_cost == 1810
    assert value_score(summary, 20) == math.inf
    assert value_score(summary, 20, split=True) == pytest.approx(125.0)


def test_empty_world():
    summary = summarize_listings("Siren", [], 4)
    assert summary.shortfall_quantity == 4
    assert summary.best_single_listing is None
    assert value_score(summary, 4, split=True) == math.inf


def test_allocation_cost_takes_cheapest_units():
    summary = summarize_listings("Siren", MARKET, 7)
    assert allocation_cost(summary, 7) == 5 * 100 + 2 * 110
    assert allocation_cost(summary, 3) == 300
