import threading

import pytest

from engine.errors import BuildCancelled
from engine.market_models import CachedMarketData
from engine.models import (
    AcquisitionSource,
    CompanyCraft,
    CompanyCraftPhase,
    Ingredient,
    PriceSource,
    Recipe,
    VendorRecord,
)
from engine.plan_prices import categorize_materials, prices_from_market
from engine.recipe_tree import BuildTarget, RecipeTreeBuilder, can_be_hq, select_recipe


def _children(node):
    return {c.item_id: c for c in node.children}


def test_craft_count_and_child_quantities(items):
    items.add(100, "Rivets", recipe=[(200, 2), (201, 5)], yield_=3)
    items.add(200, "Iron Ore")
    items.add(201, "Fire Shard")

    plan = RecipeTreeBuilder(items).build_plan([(100, "Rivets", 10, False)], "Aether")
    root = plan.root_items[0]

    assert root.yield_ == 3
    assert root.craft_count == 4
    kids = _children(root)
    assert kids[200].quantity == 8
    assert kids[201].quantity == 20
    assert [c.item_id for c in root.children] == [200, 201]
    assert all(c.parent is root for c in root.children)


def test_end_to_end_child_quantity(items):
    items.add(100, "Bronze Ingot", recipe=[(200, 2)])
    items.add(200, "Copper Ore")

    plan = RecipeTreeBuilder(items).build_plan([BuildTarget(100, "Bronze Ingot", 5)], "Aether", "Siren")

    assert plan.data_center == "Aether"
    assert plan.world == "Siren"
    assert plan.name.startswith("Plan ")
    ore = plan.root_items[0].children[0]
    assert ore.item_id == 200
    assert ore.quantity == 10
    assert ore.source is AcquisitionSource.MARKET_BUY_NQ


def test_vendor_only_ingredient_becomes_vendor_buy(items):
    items.add(100, "Maple Lumber", recipe=[(300, 3), (200, 1)])
    items.add(200, "Wind Shard")
    items.add(300, "Maple Log", vendors=[VendorRecord("Merchant", "Gridania", 10)])

    plan = RecipeTreeBuilder(items).build_plan([(100, "Maple Lumber", 1, False)])
    log_node = _children(plan.root_items[0])[300]

    assert log_node.source is AcquisitionSource.VENDOR_BUY
    assert log_node.vendor_price == 10
    assert log_node.can_buy_from_vendor
    assert log_node.cheapest_gil_vendor.name == "Merchant"


def test_smart_defaults_for_intermediates(items):
    items.add(100, "Goal", recipe=[(110, 1), (120, 1), (130, 1)], level=5)
    # vendor-sold intermediate
    items.add(110, "Sold Part", recipe=[(200, 1)], vendor_ids=[9], price=50)
    # low level recipe with many inputs
    items.add(120, "Cheap Part", recipe=[(200, 1), (201, 1), (202, 1), (203, 1)], level=5)
    # low level recipe with few inputs stays crafted
    items.add(130, "Real Part", recipe=[(200, 1), (201, 1), (202, 1)], level=5)
    for i in (200, 201, 202, 203):
        items.add(i, f"Mat {i}")

    root = RecipeTreeBuilder(items).build_plan([(100, "Goal", 1, False)]).root_items[0]
    kids = _children(root)

    assert root.source is AcquisitionSource.CRAFT
    assert kids[110].source is AcquisitionSource.VENDOR_BUY
    assert kids[120].source is AcquisitionSource.MARKET_BUY_NQ
    assert kids[130].source is AcquisitionSource.CRAFT


def test_root_exempt_from_smart_defaults(items):
    items.add(100, "Goal", recipe=[(200, 1), (201, 1), (202, 1), (203, 1)], level=2,
              vendor_ids=[4], price=10)
    for i in (200, 201, 202, 203):
        items.add(i, f"Mat {i}")

    root = RecipeTreeBuilder(items).build_plan([(100, "Goal", 1, True)]).root_items[0]
    assert root.source is AcquisitionSource.CRAFT
    assert root.must_be_hq is True


def test_company_craft_flattens_phases(items):
    items.add(500, "Airship Hull", company_crafts=[CompanyCraft(1, [
        CompanyCraftPhase(0, [Ingredient(600, 3, "Plank")]),
        CompanyCraftPhase(1, [Ingredient(601, 2, "Rivet")]),
    ])])
    items.add(600, "Plank")
    items.add(601, "Rivet")

    root = RecipeTreeBuilder(items).build_plan([(500, "Airship Hull", 2, False)]).root_items[0]
    kids = _children(root)

    assert root.job == "Company Workshop"
    assert root.recipe_level == 1
    assert kids[600].quantity == 6
    assert kids[601].quantity == 4
    assert [c.name for c in root.children] == ["Plank", "Rivet"]


def test_circular_reference_is_truncated(items):
    items.add(700, "Alpha", recipe=[(701, 1)])
    items.add(701, "Beta", recipe=[(700, 1)])

    root = RecipeTreeBuilder(items).build_plan([(700, "Alpha", 1, False)]).root_items[0]
    beta = root.children[0]
    loop = beta.children[0]

    assert loop.item_id == 700
    assert loop.is_circular_reference
    assert loop.children == []
    assert loop.source is AcquisitionSource.MARKET_BUY_NQ


def test_depth_cap_is_a_backstop(items):
    for i in range(1000, 1010):
        items.add(i, f"Tier {i}", recipe=[(i + 1, 1)])

    builder = RecipeTreeBuilder(items, {'planner': {'max_depth': 3}})
    root = builder.build_plan([(1000, "Tier 1000", 1, False)]).root_items[0]
    nodes = list(root.walk())

    assert len(nodes) == 5
    deepest = nodes[-1]
    assert deepest.item_id == 1004
    assert deepest.can_craft is False
    assert deepest.source is AcquisitionSource.MARKET_BUY_NQ
    assert not deepest.is_circular_reference


def test_metadata_failure_degrades_node(items, caplog):
    items.add(100, "Ingot", recipe=[(200, 2), (201, 1)])
    items.add(201, "Shard")
    items.fail_ids = {200}

    root = RecipeTreeBuilder(items).build_plan([(100, "Ingot", 1, False)]).root_items[0]
    broken = _children(root)[200]

    assert broken.can_craft is False
    assert broken.source is AcquisitionSource.MARKET_BUY_NQ
    assert broken.quantity == 2
    assert any("Metadata fetch failed" in r.message for r in caplog.records)


def test_failed_target_becomes_placeholder(items, monkeypatch):
    items.add(1, "Good", recipe=[(200, 1)])
    items.add(200, "Ore")
    builder = RecipeTreeBuilder(items)
    original = builder.build_tree

    def flaky(ctx, item_id, name, quantity):
        if item_id == 2:
            raise ValueError("bad recipe")
        return original(ctx, item_id, name, quantity)

    monkeypatch.setattr(builder, "build_tree", flaky)
    plan = builder.build_plan([(1, "Good", 1, False), (2, "Widget", 3, True), (1, "Good", 2, False)])

    assert len(plan.root_items) == 3
    placeholder = plan.root_items[1]
    assert placeholder.name == "Widget (Error: bad recipe)"
    assert placeholder.source is AcquisitionSource.MARKET_BUY_NQ
    assert placeholder.can_craft is False
    assert placeholder.must_be_hq is True
    assert plan.root_items[2].quantity == 2


def test_shared_ingredient_fetched_once(items):
    items.add(100, "Goal", recipe=[(110, 1), (120, 1)])
    items.add(110, "Left", recipe=[(200, 1)])
    items.add(120, "Right", recipe=[(200, 2)])
    items.add(200, "Ore")

    RecipeTreeBuilder(items).build_plan([(100, "Goal", 1, False)])
    assert items.calls.count(200) == 1


def test_recipe_selection_lowest_level_then_id():
    recipes = [
        Recipe(id="20", job_id=1, recipe_level=10),
        Recipe(id="3", job_id=2, recipe_level=10),
        Recipe(id="1", job_id=3, recipe_level=30),
    ]
    assert select_recipe(recipes).id == "3"


def test_tie_break_sets_job(items):
    items.add(100, "Ring", crafts=[
        Recipe(id="20", job_id=1, recipe_level=10, ingredients=[Ingredient(200, 1)]),
        Recipe(id="3", job_id=4, recipe_level=10, ingredients=[Ingredient(200, 1)]),
    ])
    items.add(200, "Ore")

    root = RecipeTreeBuilder(items).build_plan([(100, "Ring", 1, False)]).root_items[0]
    assert root.job == "Goldsmith"


def test_can_be_hq_rules(items):
    craftable = items.add(100, "Sword", recipe=[(200, 1)])
    plain = items.add(200, "Ore")

    assert can_be_hq(5, "Ice Shard", None) is False
    assert can_be_hq(100, "Sword", craftable) is True
    assert can_be_hq(300, "Lightning Cluster", craftable) is False
    assert can_be_hq(301, "Fine Aethersand", craftable) is False
    assert can_be_hq(200, "Ore", plain) is False


def test_cancellation_with_event(items):
    items.add(100, "Goal", recipe=[(200, 1)])
    stop = threading.Event()
    stop.set()

    with pytest.raises(BuildCancelled):
        RecipeTreeBuilder(items).build_plan([(100, "Goal", 1, False)], cancel=stop)


def test_cancellation_between_targets(items):
    items.add(100, "Goal", recipe=[(200, 1)])
    items.add(200, "Ore")
    checks = []

    def cancel():
        checks.append(1)
        return len(items.calls) >= 2

    with pytest.raises(BuildCancelled):
        RecipeTreeBuilder(items).build_plan([(100, "Goal", 1, False), (100, "Goal", 1, False)], cancel=cancel)
    assert checks


def test_vendor_prices_fall_back_to_single_fetches(items):
    items.add(100, "Lumber", recipe=[(300, 1), (301, 1)])
    items.add(300, "Log", vendors=[VendorRecord("Merchant", "Gridania", 12)])
    items.add(301, "Resin", vendors=[VendorRecord("Merchant", "Gridania", 7)])
    items.fail_batch = True

    builder = RecipeTreeBuilder(items)
    plan = builder.build_plan([(100, "Lumber", 1, False)])
    kids = _children(plan.root_items[0])

    assert items.batch_calls == [[100, 300, 301]]
    assert kids[300].vendor_price == 12
    assert kids[301].vendor_price == 7

    items.fail_ids = {300}
    kids[300].vendor_price = 0
    builder.fetch_vendor_prices(plan)
    assert kids[300].vendor_price == 0
    assert kids[301].vendor_price == 7


def test_non_gil_vendor_does_not_set_price(items):
    items.add(100, "Gear", recipe=[(300, 1)])
    items.add(300, "Token Item", vendors=[VendorRecord("Scrip Exchange", "Eulmore", 250, "Scrips")])

    node = RecipeTreeBuilder(items).build_plan([(100, "Gear", 1, False)]).root_items[0].children[0]
    assert node.source is AcquisitionSource.VENDOR_BUY
    assert node.vendor_price == 0
    assert node.can_buy_from_vendor is False
    assert node.vendor_options[0].currency == "scrips"


def test_fetched_name_wins_over_target_name(items):
    items.add(100, "Bronze Ingot", recipe=[(200, 1)])
    items.add(200, "Copper Ore")

    root = RecipeTreeBuilder(items).build_plan([(100, "ingot", 1, False)]).root_items[0]
    assert root.name == "Bronze Ingot"
    assert root.children[0].name == "Copper Ore"


def test_untradeable_material_is_categorized(items):
    items.add(100, "Sealed Crate", recipe=[(200, 2), (201, 1), (202, 1)])
    items.add(200, "Bound Token", tradeable=False)
    items.add(201, "Salt", vendors=[VendorRecord("Merchant", "Limsa Lominsa", 5)])
    items.add(202, "Copper Ore")
    builder = RecipeTreeBuilder(items)
    plan = builder.build_plan([(100, "Sealed Crate", 1, False)], "Aether")
    for node in plan.walk():
        node.tradeable = True

    builder.fetch_vendor_prices(plan)
    snapshots = {
        200: CachedMarketData(200, "Aether", dc_average_price=99),
        202: CachedMarketData(202, "Aether", dc_average_price=12),
    }
    prices = prices_from_market(plan, snapshots)

    assert prices[200].source is PriceSource.UNTRADEABLE
    assert prices[200].source_details == "Untradeable"
    assert prices[200].unit_price == 0

    vendor, market, untradeable = categorize_materials(plan.aggregate_materials(), prices)
    assert [m.item_id for m in vendor] == [201]
    assert [m.item_id for m in market] == [202]
    assert [m.item_id for m in untradeable] == [200]
