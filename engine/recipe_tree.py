"""
Recipe tree builder for Craft Architect.

Expands requested items into a tree of acquisition decisions. Expansion
runs over an explicit work-list of frames whose nodes live in an arena
addressed by index, so deep recipes never touch the interpreter's
recursion limit.
"""

import logging
import threading
from dataclasses import dataclass
from typing import Any, Callable, Dict, FrozenSet, Iterable, List, Optional, Sequence, Tuple, Union

from engine.errors import BuildCancelled
from engine.models import AcquisitionSource, CraftingPlan, ItemMetadata, PlanNode, Recipe
from engine.providers import ItemMetadataProvider
from engine.vendors import cheapest_gil_price, has_vendor, resolve_vendor_options
from utils.constants import (
    COMPANY_WORKSHOP_JOB,
    CRYSTAL_ID_MAX,
    MAX_RECIPE_DEPTH,
    NON_HQ_NAME_MARKERS,
    job_name,
)
from utils.timefmt import plan_name

CancelSignal = Union[None, threading.Event, Callable[[], bool]]


def as_cancel_check(cancel: CancelSignal) -> Callable[[], bool]:
    """Normalise an Event or callable into a zero-argument predicate."""
    if cancel is None:
        return lambda: False
    if isinstance(cancel, threading.Event):
        return cancel.is_set
    return cancel


@dataclass
class BuildTarget:
    """One item the caller wants to end up with."""
    item_id: int
    name: str
    quantity: int
    hq_required: bool = False


@dataclass
class _Frame:
    item_id: int
    name: str
    quantity: int
    parent_index: Optional[int]
    depth: int
    path: FrozenSet[int]
    amount_per_craft: int = 0


class BuildContext:
    """Metadata cache and counters owned by a single build."""

    def __init__(self, provider: ItemMetadataProvider, cancel: CancelSignal = None):
        self.provider = provider
        self.is_cancelled = as_cancel_check(cancel)
        self.logger = logging.getLogger(__name__)
        self._items: Dict[int, Optional[ItemMetadata]] = {}
        self.fetch_count = 0
        self.fetch_errors = 0

    def get_item(self, item_id: int) -> Optional[ItemMetadata]:
        """Fetch metadata once per build; failures are remembered as ``None``."""
        if item_id in self._items:
            return self._items[item_id]

        self.fetch_count += 1
        try:
            item = self.provider.get_item(item_id)
        except Exception as e:
            self.fetch_errors += 1
            self.logger.warning("Metadata fetch failed for item %s: %s", item_id, e)
            item = None
        self._items[item_id] = item
        return item

    def check_cancelled(self) -> None:
        if self.is_cancelled():
            raise BuildCancelled("Recipe tree build cancelled")


def can_be_hq(item_id: int, name: str, item: Optional[ItemMetadata]) -> bool:
    """Crystals and similar never have an HQ variant; otherwise only craftables do."""
    if 1 <= item_id <= CRYSTAL_ID_MAX:
        return False
    lowered = (name or "").lower()
    if any(marker in lowered for marker in NON_HQ_NAME_MARKERS):
        return False
    return bool(item and item.crafts)


def select_recipe(recipes: Sequence[Recipe]) -> Recipe:
    """Lowest recipe level wins; ties go to the lowest recipe id."""
    return min(recipes, key=lambda r: r.sort_key())


class RecipeTreeBuilder:
    """Builds crafting plans from item metadata."""

    def __init__(self, provider: ItemMetadataProvider, config: Optional[Dict[str, Any]] = None):
        """Initialize the builder."""
        self.provider = provider
        self.config = config or {}
        self.logger = logging.getLogger(__name__)
        self.max_depth = self.config.get('planner', {}).get('max_depth', MAX_RECIPE_DEPTH)

    def build_plan(self, targets: Iterable[Union[BuildTarget, Tuple[int, str, int, bool]]],
                   data_center: str = "", world: str = "",
                   cancel: CancelSignal = None) -> CraftingPlan:
        """
        Build one root per target, in request order.

        A target that fails to build becomes a placeholder root carrying the
        error in its name; sibling targets are unaffected. Only cancellation
        escapes, as ``BuildCancelled``.
        """
        ctx = BuildContext(self.provider, cancel)
        plan = CraftingPlan(name=plan_name(), data_center=data_center, world=world)

        for target in targets:
            if not isinstance(target, BuildTarget):
                target = BuildTarget(*target)
            ctx.check_cancelled()
            try:
                root = self.build_tree(ctx, target.item_id, target.name, target.quantity)
            except BuildCancelled:
                raise
            except Exception as e:
                self.logger.exception("Failed to build tree for %s (%s)", target.name, target.item_id)
                root = PlanNode(
                    item_id=target.item_id,
                    name=f"{target.name or f'Item {target.item_id}'} (Error: {e})",
                    quantity=target.quantity,
                    source=AcquisitionSource.MARKET_BUY_NQ,
                    can_craft=False,
                )
            root.must_be_hq = target.hq_required
            plan.root_items.append(root)

        self.logger.info(
            "Built plan with %d roots (%d metadata fetches, %d failed)",
            len(plan.root_items), ctx.fetch_count, ctx.fetch_errors,
        )

        ctx.check_cancelled()
        self.fetch_vendor_prices(plan)
        return plan

    def build_tree(self, ctx: BuildContext, item_id: int, name: str, quantity: int) -> PlanNode:
        """Expand a single root item into its full tree."""
        arena: List[PlanNode] = []
        recipe_levels: List[int] = []
        vendor_flags: List[bool] = []
        company_flags: List[bool] = []

        stack = [_Frame(item_id, name, quantity, None, 0, frozenset())]
        while stack:
            ctx.check_cancelled()
            frame = stack.pop()
            node, item, children, is_company = self._expand(ctx, frame)

            index = len(arena)
            arena.append(node)
            recipe_levels.append(node.recipe_level)
            vendor_flags.append(bool(item and has_vendor(item)))
            company_flags.append(is_company)

            if frame.parent_index is not None:
                arena[frame.parent_index].add_child(node)

            # reversed so ingredients pop, and attach, in recipe order
            for child in reversed(children):
                child.parent_index = index
                stack.append(child)

        # Smart defaults once every node has its children; the root is exempt
        for index in range(len(arena) - 1, 0, -1):
            if company_flags[index]:
                continue
            node = arena[index]
            if node.is_circular_reference or not node.can_craft:
                continue
            self._apply_smart_default(node, vendor_flags[index], recipe_levels[index])

        return arena[0]

    def _expand(self, ctx: BuildContext, frame: _Frame) -> Tuple[PlanNode, Optional[ItemMetadata], List[_Frame], bool]:
        """Create the node for ``frame`` and the frames of its ingredients."""
        if frame.depth > self.max_depth:
            self.logger.warning("Max recipe depth reached at item %s", frame.item_id)
            return self._leaf(frame, notes="Maximum recipe depth reached"), None, [], False

        if frame.item_id in frame.path:
            self.logger.warning("Circular recipe reference at item %s (%s)", frame.item_id, frame.name)
            node = self._leaf(frame, notes="Circular recipe reference")
            node.is_circular_reference = True
            return node, None, [], False

        item = ctx.get_item(frame.item_id)
        if item is None:
            return self._leaf(frame), None, [], False

        name = item.name or frame.name or f"Item {frame.item_id}"
        node = PlanNode(
            item_id=frame.item_id,
            name=name,
            quantity=frame.quantity,
            icon_id=item.icon_id,
            amount_per_craft=frame.amount_per_craft,
            can_be_hq=can_be_hq(frame.item_id, name, item),
            can_craft=item.can_craft,
            tradeable=item.tradeable,
        )
        path = frame.path | {frame.item_id}

        if not item.can_craft:
            node.source = AcquisitionSource.VENDOR_BUY if has_vendor(item) else AcquisitionSource.MARKET_BUY_NQ
            return node, item, [], False

        if item.company_crafts:
            project = item.company_crafts[0]
            node.job = COMPANY_WORKSHOP_JOB
            node.recipe_level = 1
            node.yield_ = 1
            children = [
                _Frame(ing.id, ing.name, ing.amount * frame.quantity, None, 0, path, ing.amount)
                for phase in project.phases
                for ing in phase.items
            ]
            return node, item, children, True

        recipe = select_recipe(item.crafts)
        node.job = job_name(recipe.job_id)
        node.recipe_level = recipe.recipe_level
        node.yield_ = max(1, recipe.yield_)
        craft_count = node.craft_count
        children = [
            _Frame(ing.id, ing.name, ing.amount * craft_count, None, frame.depth + 1, path, ing.amount)
            for ing in recipe.ingredients
        ]
        return node, item, children, False

    def _leaf(self, frame: _Frame, notes: str = "") -> PlanNode:
        return PlanNode(
            item_id=frame.item_id,
            name=frame.name or f"Item {frame.item_id}",
            quantity=frame.quantity,
            amount_per_craft=frame.amount_per_craft,
            source=AcquisitionSource.MARKET_BUY_NQ,
            can_craft=False,
            notes=notes,
        )

    @staticmethod
    def _apply_smart_default(node: PlanNode, vendor_available: bool, recipe_level: int) -> None:
        if vendor_available:
            node.source = AcquisitionSource.VENDOR_BUY
        elif not node.children or (recipe_level < 10 and len(node.children) > 3):
            node.source = AcquisitionSource.MARKET_BUY_NQ
        else:
            node.source = AcquisitionSource.CRAFT

    def fetch_vendor_prices(self, plan: CraftingPlan) -> int:
        """
        Populate vendor options and prices on every node of ``plan``.

        All unique item ids are fetched in one batch; if the batch call fails
        the items are fetched one at a time, skipping individual failures.
        Returns the number of items that received vendor data.
        """
        item_ids = plan.all_item_ids()
        if not item_ids:
            return 0

        try:
            items = self.provider.get_items(item_ids)
        except Exception as e:
            self.logger.warning("Batch metadata fetch failed (%s), falling back to sequential", e)
            items = {}
            for item_id in item_ids:
                try:
                    item = self.provider.get_item(item_id)
                except Exception as item_error:
                    self.logger.warning("Metadata fetch failed for item %s: %s", item_id, item_error)
                    continue
                if item is not None:
                    items[item_id] = item

        nodes_by_id: Dict[int, List[PlanNode]] = {}
        for node in plan.walk():
            nodes_by_id.setdefault(node.item_id, []).append(node)

        updated = 0
        for item_id, item in items.items():
            options = resolve_vendor_options(item)
            price = cheapest_gil_price(options)
            for node in nodes_by_id.get(item_id, []):
                node.vendor_options = list(options)
                node.vendor_price = price
                node.can_buy_from_vendor = any(v.is_gil_vendor for v in options)
                node.tradeable = item.tradeable
            if options:
                updated += 1

        self.logger.debug("Vendor data applied to %d of %d items", updated, len(item_ids))
        return updated
