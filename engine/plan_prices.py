"""Moving resolved prices in and out of a crafting plan."""

from typing import Dict, List, Mapping, Optional, Tuple

from engine.market_models import CachedMarketData
from engine.models import AcquisitionSource, CraftingPlan, MaterialAggregate, PlanNode, PriceInfo, PriceSource


def apply_prices(plan: CraftingPlan, prices: Mapping[int, PriceInfo]) -> int:
    """Write unit prices onto every matching node; returns nodes updated."""
    updated = 0
    for node in plan.walk():
        info = prices.get(node.item_id)
        if info is None:
            continue
        node.market_price = info.unit_price
        node.hq_market_price = info.hq_unit_price if node.can_be_hq else 0
        node.price_source = info.source
        node.price_source_details = info.source_details
        updated += 1
    if updated:
        plan.mark_modified()
    return updated


def extract_prices(plan: CraftingPlan) -> Dict[int, PriceInfo]:
    """Collect the prices currently stored on the plan, first node per item wins."""
    prices: Dict[int, PriceInfo] = {}
    for node in plan.walk():
        if node.item_id in prices:
            continue
        if node.market_price <= 0 and node.hq_market_price <= 0 and node.price_source is PriceSource.UNKNOWN:
            continue
        prices[node.item_id] = PriceInfo(
            item_id=node.item_id,
            item_name=node.name,
            unit_price=node.market_price,
            hq_unit_price=node.hq_market_price,
            source=node.price_source,
            source_details=node.price_source_details,
        )
    return prices


def prices_from_market(plan: CraftingPlan, snapshots: Mapping[int, Optional[CachedMarketData]]) -> Dict[int, PriceInfo]:
    """
    Derive PriceInfo for every item in ``plan`` from cached market snapshots.

    Untradeable items are flagged with no price. Items with a vendor price
    and no cheaper market average are priced at the vendor; items without a
    snapshot keep an unknown source.
    """
    prices: Dict[int, PriceInfo] = {}
    for node in plan.walk():
        if node.item_id in prices:
            continue
        if not node.tradeable:
            prices[node.item_id] = PriceInfo(node.item_id, node.name, 0.0, 0.0, PriceSource.UNTRADEABLE, "Untradeable")
            continue
        data = snapshots.get(node.item_id)
        market = data.dc_average_price if data is not None else 0.0
        hq = data.hq_average_price if data is not None else 0.0

        if node.vendor_price > 0 and (market <= 0 or node.vendor_price <= market):
            vendor = node.cheapest_gil_vendor
            details = f"Vendor: {vendor.display_name}" if vendor else "Vendor"
            prices[node.item_id] = PriceInfo(node.item_id, node.name, node.vendor_price, hq, PriceSource.VENDOR, details)
        elif data is not None:
            details = f"Market: {data.data_center} average"
            prices[node.item_id] = PriceInfo(node.item_id, node.name, market, hq, PriceSource.MARKET, details)
    return prices


def child_unit_price(node: PlanNode, prices: Optional[Mapping[int, PriceInfo]] = None) -> float:
    """Purchase price per unit for a bought or leaf node."""
    if node.source is AcquisitionSource.VENDOR_BUY and node.vendor_price > 0:
        return node.vendor_price
    info = prices.get(node.item_id) if prices is not None else None
    if info is None:
        return node.unit_cost()
    if node.source is AcquisitionSource.MARKET_BUY_HQ and info.has_hq_data:
        return info.hq_unit_price
    return info.unit_price


def component_cost(node: PlanNode, prices: Optional[Mapping[int, PriceInfo]] = None) -> float:
    """
    Total cost of the ingredients below ``node`` for its full quantity.

    Bought children and leaves cost their purchase price; crafted children
    are costed from their own children.
    """
    total = 0.0
    stack = list(node.children)
    while stack:
        child = stack.pop()
        if child.is_buy or not child.children:
            total += child_unit_price(child, prices) * child.quantity
        else:
            stack.extend(child.children)
    return total


def node_craft_cost(node: PlanNode, prices: Optional[Mapping[int, PriceInfo]] = None) -> float:
    """Per-unit craft cost of ``node``: ingredient total over the quantity produced."""
    if not node.children:
        return 0.0
    return component_cost(node, prices) / max(1, node.quantity)


def categorize_materials(materials: List[MaterialAggregate],
                         prices: Mapping[int, PriceInfo]) -> Tuple[List[MaterialAggregate], List[MaterialAggregate], List[MaterialAggregate]]:
    """Split materials into (vendor, market, untradeable) by their price source."""
    vendor, market, untradeable = [], [], []
    for material in materials:
        info = prices.get(material.item_id)
        if info is None:
            market.append(material)
        elif info.source is PriceSource.VENDOR:
            vendor.append(material)
        elif info.source is PriceSource.UNTRADEABLE:
            untradeable.append(material)
        else:
            market.append(material)
    return vendor, market, untradeable
