from engine.market_models import CachedListing, DetailedShoppingPlan, SplitWorldPurchase, WorldShoppingSummary
from engine.pricing import summarize_listings
from engine.procurement_summary import purchase_rows, summarize_by_world, unplanned_items


def _world(name, quantity, cost, vendor=""):
    return WorldShoppingSummary(
        world_name=name,
        total_quantity_purchased=quantity,
        total_cost=cost,
        average_price_per_unit=cost / quantity,
        has_sufficient_stock=True,
        is_vendor=bool(vendor),
        vendor_name=vendor,
    )


def _plans():
    ore = DetailedShoppingPlan(1, "Ore", 10, recommended_world=_world("Siren", 10, 500))
    silk = DetailedShoppingPlan(2, "Silk", 8, recommended_split=[
        SplitWorldPurchase("Siren", 5, 100, 500),
        SplitWorldPurchase("Jenova", 3, 100, 300, is_partial=True),
    ])
    salt = DetailedShoppingPlan(3, "Salt", 4, recommended_world=_world("Vendor", 4, 16, vendor="Merchant"))
    missing = DetailedShoppingPlan(4, "Resin", 2, error="no data")
    short = DetailedShoppingPlan(5, "Sap", 9, world_options=[_world("Jenova", 2, 40)])
    return [ore, silk, salt, missing, short]


def test_purchase_rows():
    df = purchase_rows(_plans())

    assert list(df["item"]) == ["Ore", "Silk", "Silk", "Salt"]
    assert list(df["is_split"]) == [False, True, True, False]
    assert df[df["item"] == "Salt"]["is_vendor"].iloc[0]


def test_summarize_by_world():
    df = summarize_by_world(_plans())

    assert list(df["world"]) == ["Siren", "Jenova", "Vendor"]
    siren = df.iloc[0]
    assert siren["items"] == 2
    assert siren["quantity"] == 15
    assert siren["total_cost"] == 1000


def test_summarize_empty():
    df = summarize_by_world([DetailedShoppingPlan(1, "Ore", 1, error="no data")])
    assert df.empty
    assert list(df.columns) == ["world", "items", "quantity", "total_cost"]


def test_unplanned_items():
    out = unplanned_items(_plans())
    assert [(o["item"], o["reason"]) for o in out] == [("Resin", "no data"), ("Sap", "short by 7")]


def test_route_row_matches_bought_stacks():
    world = summarize_listings("Siren", [CachedListing(5, 100), CachedListing(5, 110)], 7, dc_average=105)
    row = purchase_rows([DetailedShoppingPlan(1, "Ore", 7, recommended_world=world)]).iloc[0]

    assert row["quantity"] == 10
    assert row["unit_price"] == 105
    assert row["quantity"] * row["unit_price"] == row["total_cost"] == 1050
