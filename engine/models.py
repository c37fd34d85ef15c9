"""
Plan models for Craft Architect.

Defines the recipe tree (plan nodes and crafting plans), the flattened
material aggregates and the item metadata shapes consumed by the builder.
"""

import copy
import math
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, Iterator, List, Optional, Tuple


class AcquisitionSource(Enum):
    """How a plan node is obtained."""
    CRAFT = "craft"
    MARKET_BUY_NQ = "market_buy_nq"
    MARKET_BUY_HQ = "market_buy_hq"
    VENDOR_BUY = "vendor_buy"


class PriceSource(Enum):
    """Where a node's unit price came from."""
    UNKNOWN = "unknown"
    VENDOR = "vendor"
    MARKET = "market"
    UNTRADEABLE = "untradeable"


# ---------------------------------------------------------------------------
# Item metadata as returned by the item provider
# ---------------------------------------------------------------------------

@dataclass
class Ingredient:
    """One ingredient line of a recipe."""
    id: int
    amount: int
    name: str = ""


@dataclass
class Recipe:
    """An ordinary crafting recipe."""
    id: str
    job_id: int
    recipe_level: int
    yield_: int = 1
    ingredients: List[Ingredient] = field(default_factory=list)

    def sort_key(self) -> Tuple[int, int, str]:
        """Lowest level first, then lowest recipe id."""
        rid = str(self.id or "")
        if rid.isdigit():
            return (self.recipe_level, 0, f"{int(rid):020d}")
        return (self.recipe_level, 1, rid)


@dataclass
class CompanyCraftPhase:
    phase: int
    items: List[Ingredient] = field(default_factory=list)


@dataclass
class CompanyCraft:
    """A multi-phase company workshop project."""
    id: int
    phases: List[CompanyCraftPhase] = field(default_factory=list)


@dataclass
class VendorRecord:
    """A fully described vendor entry."""
    name: str
    location: str = ""
    price: int = 0
    currency: str = "gil"


@dataclass
class NpcRecord:
    """Auxiliary NPC record shipped alongside an item document."""
    id: int
    name: str
    location: str = ""


@dataclass
class ItemMetadata:
    """Everything the builder needs to know about one item."""
    id: int
    name: str
    icon_id: int = 0
    tradeable: bool = True
    price: int = 0
    vendors: List[VendorRecord] = field(default_factory=list)
    vendor_ids: List[int] = field(default_factory=list)
    npcs: List[NpcRecord] = field(default_factory=list)
    crafts: List[Recipe] = field(default_factory=list)
    company_crafts: List[CompanyCraft] = field(default_factory=list)

    @property
    def has_vendor_references(self) -> bool:
        return bool(self.vendors or self.vendor_ids)

    @property
    def can_craft(self) -> bool:
        return bool(self.crafts or self.company_crafts)

    def npcs_named(self, name: str) -> List[NpcRecord]:
        wanted = name.lower()
        return [npc for npc in self.npcs if npc.name.lower() == wanted]


# ---------------------------------------------------------------------------
# Plan tree
# ---------------------------------------------------------------------------

@dataclass
class VendorInfo:
    """A vendor option shown for a plan node."""
    name: str
    location: str = ""
    price: int = 0
    currency: str = "gil"
    alternate_locations: List[str] = field(default_factory=list)

    @property
    def is_gil_vendor(self) -> bool:
        return (self.currency or "").lower() == "gil"

    @property
    def display_name(self) -> str:
        return f"{self.name} ({self.location})" if self.location else self.name


@dataclass
class PriceInfo:
    """Unit prices resolved for one item."""
    item_id: int
    item_name: str = ""
    unit_price: float = 0.0
    hq_unit_price: float = 0.0
    source: PriceSource = PriceSource.UNKNOWN
    source_details: str = ""

    @property
    def has_hq_data(self) -> bool:
        return self.hq_unit_price > 0


@dataclass(eq=False)
class PlanNode:
    """One acquisition decision in the recipe tree."""
    item_id: int
    name: str
    quantity: int = 1
    icon_id: int = 0
    source: AcquisitionSource = AcquisitionSource.CRAFT
    can_be_hq: bool = False
    must_be_hq: bool = False
    can_craft: bool = False
    can_buy_from_vendor: bool = False
    tradeable: bool = True
    recipe_level: int = 0
    job: str = ""
    yield_: int = 1
    # ingredient amount per parent craft execution; 0 for roots
    amount_per_craft: int = 0
    market_price: float = 0.0
    hq_market_price: float = 0.0
    vendor_price: float = 0.0
    price_source: PriceSource = PriceSource.UNKNOWN
    price_source_details: str = ""
    vendor_options: List[VendorInfo] = field(default_factory=list)
    selected_vendor_index: int = -1
    children: List['PlanNode'] = field(default_factory=list)
    parent: Optional['PlanNode'] = field(default=None, repr=False)
    is_circular_reference: bool = False
    notes: str = ""
    node_id: str = field(default_factory=lambda: uuid.uuid4().hex)

    @property
    def craft_count(self) -> int:
        return math.ceil(self.quantity / max(1, self.yield_))

    @property
    def is_buy(self) -> bool:
        return self.source is not AcquisitionSource.CRAFT

    @property
    def is_leaf(self) -> bool:
        return not self.children

    @property
    def cheapest_gil_vendor(self) -> Optional[VendorInfo]:
        gil = [v for v in self.vendor_options if v.is_gil_vendor]
        if not gil:
            return None
        return min(gil, key=lambda v: v.price)

    @property
    def selected_vendor(self) -> Optional[VendorInfo]:
        if 0 <= self.selected_vendor_index < len(self.vendor_options):
            return self.vendor_options[self.selected_vendor_index]
        return self.cheapest_gil_vendor

    def set_source(self, source: AcquisitionSource) -> None:
        """Change how this node is obtained."""
        self.source = source
        if source is AcquisitionSource.MARKET_BUY_HQ:
            self.must_be_hq = True

    def unit_cost(self) -> float:
        """Per-unit purchase cost for this node's current source."""
        if self.source is AcquisitionSource.VENDOR_BUY and self.vendor_price > 0:
            return self.vendor_price
        if self.source is AcquisitionSource.MARKET_BUY_HQ and self.hq_market_price > 0:
            return self.hq_market_price
        return self.market_price

    def add_child(self, child: 'PlanNode') -> 'PlanNode':
        child.parent = self
        self.children.append(child)
        return child

    def walk(self) -> Iterator['PlanNode']:
        """Depth-first pre-order iteration over this subtree."""
        stack = [self]
        while stack:
            node = stack.pop()
            yield node
            stack.extend(reversed(node.children))

    def set_quantity(self, quantity: int) -> None:
        """Set the quantity and rescale every descendant from its per-craft amount."""
        self.quantity = max(0, int(quantity))
        stack = [self]
        while stack:
            node = stack.pop()
            for child in node.children:
                if child.amount_per_craft > 0:
                    child.quantity = child.amount_per_craft * node.craft_count
                stack.append(child)

    def clone(self) -> 'PlanNode':
        """Deep copy of this subtree, detached from the original parent."""
        memo = {id(self.parent): None} if self.parent is not None else {}
        return copy.deepcopy(self, memo)

    def __str__(self) -> str:
        return f"{self.name} x{self.quantity}"


@dataclass
class MaterialSource:
    """Where an aggregated material is used."""
    parent_name: str
    quantity: int
    is_crafted: bool = False


@dataclass
class MaterialAggregate:
    """A flattened purchase line across the whole tree."""
    item_id: int
    name: str
    total_quantity: int
    unit_price: float = 0.0
    icon_id: int = 0
    requires_hq: bool = False
    sources: List[MaterialSource] = field(default_factory=list)

    @property
    def total_cost(self) -> float:
        return self.total_quantity * self.unit_price


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class CraftingPlan:
    """Owns the root nodes requested in one planning session."""
    name: str = ""
    data_center: str = ""
    world: str = ""
    root_items: List[PlanNode] = field(default_factory=list)
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    created_at: datetime = field(default_factory=_utcnow)
    modified_at: datetime = field(default_factory=_utcnow)

    def walk(self) -> Iterator[PlanNode]:
        for root in self.root_items:
            yield from root.walk()

    def mark_modified(self) -> None:
        self.modified_at = _utcnow()

    def link_parents(self) -> None:
        """Restore parent back references after deserialization or copying."""
        for root in self.root_items:
            root.parent = None
            for node in root.walk():
                for child in node.children:
                    child.parent = node

    def find_node(self, item_id: int) -> Optional[PlanNode]:
        for node in self.walk():
            if node.item_id == item_id:
                return node
        return None

    def find_nodes(self, item_id: int) -> List[PlanNode]:
        return [node for node in self.walk() if node.item_id == item_id]

    def all_item_ids(self) -> List[int]:
        """Unique item ids in the tree, in first-seen order."""
        seen: Dict[int, None] = {}
        for node in self.walk():
            seen.setdefault(node.item_id, None)
        return list(seen)

    def set_acquisition_source(self, node_id: str, source: AcquisitionSource) -> bool:
        for node in self.walk():
            if node.node_id == node_id:
                node.set_source(source)
                self.mark_modified()
                return True
        return False

    def recalculate_quantities(self, root: PlanNode, new_quantity: int) -> None:
        """Change a root's quantity and rescale its subtree."""
        root.set_quantity(new_quantity)
        self.mark_modified()

    def aggregate_materials(self) -> List[MaterialAggregate]:
        """
        Flatten the tree into purchase lines.

        Bought nodes and leaves are recorded and never descended into;
        crafted nodes with children are expanded.
        """
        by_id: Dict[int, MaterialAggregate] = {}

        def record(node: PlanNode) -> None:
            parent_name = node.parent.name if node.parent is not None else "Direct"
            agg = by_id.get(node.item_id)
            if agg is None:
                agg = MaterialAggregate(
                    item_id=node.item_id,
                    name=node.name,
                    total_quantity=0,
                    unit_price=node.unit_cost(),
                    icon_id=node.icon_id,
                )
                by_id[node.item_id] = agg
            agg.total_quantity += node.quantity
            agg.requires_hq = agg.requires_hq or node.must_be_hq
            agg.sources.append(MaterialSource(parent_name, node.quantity, node.source is AcquisitionSource.CRAFT))

        stack = list(reversed(self.root_items))
        while stack:
            node = stack.pop()
            if node.is_buy or node.is_leaf:
                record(node)
                continue
            stack.extend(reversed(node.children))

        return sorted(by_id.values(), key=lambda m: m.name)

    def collect_items_with_quantity(self) -> List[Tuple[int, str, int]]:
        """Unique (item_id, name, quantity) for price lookups, skipping bought subtrees."""
        seen: Dict[int, Tuple[int, str, int]] = {}
        stack = list(reversed(self.root_items))
        while stack:
            node = stack.pop()
            seen.setdefault(node.item_id, (node.item_id, node.name, node.quantity))
            if node.source is AcquisitionSource.CRAFT:
                stack.extend(reversed(node.children))
        return list(seen.values())

    def total_estimated_cost(self) -> float:
        return sum(m.total_cost for m in self.aggregate_materials())

    def clone(self) -> 'CraftingPlan':
        copied = copy.deepcopy(self)
        copied.id = uuid.uuid4().hex
        return copied
