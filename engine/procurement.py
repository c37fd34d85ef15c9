"""
Procurement optimizer for Craft Architect.

Turns aggregated materials plus cached market listings into per-material
shopping plans: ranked world options, a single-world recommendation and,
when enabled, a multi-world split.
"""

import logging
import math
from typing import Any, Dict, Iterable, List, Optional, Sequence, Set, Tuple, Union

from engine.errors import PlanningCancelled
from engine.market_models import (
    CachedListing,
    DetailedShoppingPlan,
    MarketAnalysisConfig,
    RecommendationMode,
    ShoppingListingEntry,
    SplitWorldPurchase,
    WorldClassification,
    WorldShoppingSummary,
)
from engine.models import AcquisitionSource, CraftingPlan, MaterialAggregate, PlanNode
from engine.pricing import allocation_cost, summarize_listings, value_score
from engine.providers import MarketDataProvider, WorldStatusProvider
from engine.recipe_tree import CancelSignal, as_cancel_check
from utils.constants import NA_DATA_CENTERS, VENDOR_WORLD_NAME

NO_DATA_ERROR = "no data"
NO_LISTINGS_ERROR = "No market listings found"
NO_DATA_ANY_DC_ERROR = "No cached data found on any data center"

# (display name, status lookup name, listings)
WorldListings = Tuple[str, str, List[CachedListing]]


class ProcurementOptimizer:
    """Computes shopping plans from cached market data."""

    def __init__(self, market: MarketDataProvider,
                 world_status: Optional[WorldStatusProvider] = None,
                 config: Union[MarketAnalysisConfig, Dict[str, Any], None] = None):
        """Initialize the optimizer."""
        self.market = market
        self.world_status = world_status
        if isinstance(config, MarketAnalysisConfig):
            self.config = config
        else:
            self.config = MarketAnalysisConfig.from_config(config or {})
        self.logger = logging.getLogger(__name__)

    # ------------------------------------------------------------------
    # Batch entry points
    # ------------------------------------------------------------------

    def plan(self, materials: Sequence[MaterialAggregate], data_center: str,
             mode: RecommendationMode = RecommendationMode.MINIMIZE_TOTAL_COST,
             config: Optional[MarketAnalysisConfig] = None,
             blacklist: Optional[Iterable[str]] = None,
             cancel: CancelSignal = None) -> List[DetailedShoppingPlan]:
        """
        One shopping plan per material, in input order.

        Per-material failures are reported in the plan's ``error`` field and
        never interrupt the batch.
        """
        cfg = config or self.config
        blocked = _normalise_blacklist(blacklist)
        is_cancelled = as_cancel_check(cancel)

        plans = []
        for material in materials:
            if is_cancelled():
                raise PlanningCancelled("Procurement planning cancelled")
            plans.append(self._plan_material(material, data_center, mode, cfg, blocked))

        failed = sum(1 for p in plans if p.error)
        self.logger.info("Planned %d materials on %s (%d without data)", len(plans), data_center, failed)
        return plans

    def plan_with_splits(self, materials: Sequence[MaterialAggregate], data_center: str,
                         mode: RecommendationMode = RecommendationMode.MINIMIZE_TOTAL_COST,
                         config: Optional[MarketAnalysisConfig] = None,
                         blacklist: Optional[Iterable[str]] = None,
                         cancel: CancelSignal = None) -> List[DetailedShoppingPlan]:
        """Like ``plan`` but adds multi-world splits where no single world suffices."""
        cfg = config or self.config
        plans = self.plan(materials, data_center, mode, cfg, blacklist, cancel)
        if not cfg.enable_split_world:
            return plans

        route: Set[str] = set()
        for shopping_plan in plans:
            if shopping_plan.error:
                continue
            rec = shopping_plan.recommended_world
            if rec is None or rec.total_quantity_purchased < shopping_plan.quantity_needed:
                self.split_purchase(shopping_plan, cfg)

            if shopping_plan.recommended_split:
                route.update(p.world_name for p in shopping_plan.recommended_split)
            elif shopping_plan.recommended_world is not None:
                route.add(shopping_plan.recommended_world.world_name)

        self.logger.info("Shopping route covers %d worlds: %s", len(route), ", ".join(sorted(route)))
        return plans

    def plan_across_data_centers(self, materials: Sequence[MaterialAggregate],
                                 data_centers: Sequence[str] = tuple(NA_DATA_CENTERS),
                                 mode: RecommendationMode = RecommendationMode.MINIMIZE_TOTAL_COST,
                                 config: Optional[MarketAnalysisConfig] = None,
                                 blacklist: Optional[Iterable[str]] = None,
                                 cancel: CancelSignal = None) -> List[DetailedShoppingPlan]:
        """Search several data centers at once; world names carry a ``(DC)`` suffix."""
        cfg = config or self.config
        blocked = _normalise_blacklist(blacklist)
        is_cancelled = as_cancel_check(cancel)

        plans = []
        for material in materials:
            if is_cancelled():
                raise PlanningCancelled("Procurement planning cancelled")
            try:
                worlds: List[WorldListings] = []
                averages: List[float] = []
                for dc in data_centers:
                    data = self.market.get_cached(material.item_id, dc)
                    if data is None:
                        continue
                    averages.append(data.dc_average_price)
                    worlds.extend(
                        (f"{w.world_name} ({dc})", w.world_name, w.listings) for w in data.worlds
                    )

                if not averages:
                    plans.append(self._error_plan(material, NO_DATA_ANY_DC_ERROR))
                    continue

                dc_average = sum(averages) / len(averages)
                plans.append(self._plan_from_worlds(material, worlds, dc_average, mode, cfg, blocked))
            except Exception as e:
                self.logger.exception("Multi-DC planning failed for %s", material.name)
                plans.append(self._error_plan(material, str(e)))
        return plans

    # ------------------------------------------------------------------
    # Per material
    # ------------------------------------------------------------------

    def _plan_material(self, material: MaterialAggregate, data_center: str,
                       mode: RecommendationMode, cfg: MarketAnalysisConfig,
                       blocked: Set[str]) -> DetailedShoppingPlan:
        try:
            data = self.market.get_cached(material.item_id, data_center)
            if data is None:
                return self._error_plan(material, NO_DATA_ERROR)
            worlds = [(w.world_name, w.world_name, w.listings) for w in data.worlds]
            return self._plan_from_worlds(material, worlds, data.dc_average_price, mode, cfg, blocked)
        except Exception as e:
            self.logger.exception("Shopping plan failed for %s (%s)", material.name, material.item_id)
            return self._error_plan(material, str(e))

    def _plan_from_worlds(self, material: MaterialAggregate, worlds: Sequence[WorldListings],
                          dc_average: float, mode: RecommendationMode,
                          cfg: MarketAnalysisConfig, blocked: Set[str]) -> DetailedShoppingPlan:
        plan = DetailedShoppingPlan(
            item_id=material.item_id,
            name=material.name,
            quantity_needed=material.total_quantity,
            dc_average_price=dc_average,
        )
        if not any(listings for _, _, listings in worlds):
            plan.error = NO_LISTINGS_ERROR
            return plan

        for display_name, world_name, listings in worlds:
            if not listings:
                continue
            summary = self.summarize_world(display_name, world_name, listings, plan.quantity_needed,
                                           dc_average, cfg, blocked)
            if summary is not None:
                plan.world_options.append(summary)

        plan.world_options.sort(key=lambda w: _mode_sort_key(w, mode))
        plan.recommended_world = next(
            (w for w in plan.world_options if math.isfinite(w.value_score)), None
        )
        if plan.recommended_world is None and plan.world_options:
            self.logger.debug("No single world covers %d x %s", plan.quantity_needed, plan.name)
        return plan

    def summarize_world(self, display_name: str, world_name: str, listings: Sequence[CachedListing],
                        needed: int, dc_average: float, cfg: MarketAnalysisConfig,
                        blocked: Set[str]) -> Optional[WorldShoppingSummary]:
        """
        One world's offer, or ``None`` when the world is excluded.

        Congested and blacklisted worlds are skipped unless they are the home world.
        """
        is_home = bool(cfg.home_world) and world_name.lower() == cfg.home_world.lower()
        classification = self._classify(world_name)
        is_blacklisted = world_name.lower() in blocked

        if not is_home:
            if cfg.exclude_congested_worlds and classification is WorldClassification.CONGESTED:
                self.logger.debug("Skipping congested world %s", world_name)
                return None
            if is_blacklisted:
                self.logger.debug("Skipping blacklisted world %s", world_name)
                return None

        summary = summarize_listings(display_name, listings, needed, dc_average, cfg.max_price_multiplier)
        summary.classification = classification
        summary.is_home_world = is_home
        summary.is_blacklisted = is_blacklisted
        summary.value_score = value_score(summary, needed)
        return summary

    def _classify(self, world_name: str) -> WorldClassification:
        if self.world_status is None:
            return WorldClassification.STANDARD
        status = self.world_status.get_status(world_name)
        return status.classification if status is not None else WorldClassification.STANDARD

    @staticmethod
    def _error_plan(material: MaterialAggregate, error: str) -> DetailedShoppingPlan:
        return DetailedShoppingPlan(
            item_id=material.item_id,
            name=material.name,
            quantity_needed=material.total_quantity,
            error=error,
        )

    # ------------------------------------------------------------------
    # Multi-world split
    # ------------------------------------------------------------------

    def split_purchase(self, plan: DetailedShoppingPlan,
                       config: Optional[MarketAnalysisConfig] = None) -> Optional[List[SplitWorldPurchase]]:
        """
        Allocate the need across worlds ranked by split score.

        The split is dropped in favour of the recommended world when that
        world covers the need for at most ``split_savings_threshold`` more.
        """
        cfg = config or self.config
        needed = plan.quantity_needed

        ranked = []
        for world in plan.world_options:
            if world.is_vendor or world.total_quantity_purchased <= 0:
                continue
            score = value_score(world, needed, split=True)
            if math.isinf(score):
                continue
            ranked.append((score, world.world_name, world))
        ranked.sort(key=lambda r: (r[0], r[1]))

        parts: List[SplitWorldPurchase] = []
        remaining = needed
        for _, _, world in ranked:
            if remaining <= 0:
                break
            quantity = min(remaining, world.total_quantity_purchased)
            cost = allocation_cost(world, quantity)
            parts.append(SplitWorldPurchase(
                world_name=world.world_name,
                quantity_to_buy=quantity,
                price_per_unit=cost / quantity,
                total_cost=cost,
                is_partial=quantity < world.total_quantity_purchased,
            ))
            remaining -= quantity

        if not parts:
            plan.recommended_split = None
            return None

        split_cost = sum(p.total_cost for p in parts)
        single = plan.recommended_world
        if (single is not None and single.has_sufficient_stock
                and single.total_cost <= split_cost * (1 + cfg.split_savings_threshold)):
            self.logger.debug("Keeping %s for %s over a %d-world split", single.world_name, plan.name, len(parts))
            plan.recommended_split = None
            return None

        if remaining > 0:
            self.logger.info("Split for %s still short by %d units", plan.name, remaining)
        plan.recommended_split = parts
        return parts

    # ------------------------------------------------------------------
    # Vendor pinning
    # ------------------------------------------------------------------

    def apply_vendor_overrides(self, crafting_plan: CraftingPlan,
                               plans: Sequence[DetailedShoppingPlan]) -> int:
        """
        Force a vendor pseudo-world for materials pinned to vendor purchase.

        Market world options are kept for comparison. Returns the number of
        plans overridden.
        """
        pinned: Dict[int, PlanNode] = {}
        for node in crafting_plan.walk():
            if node.source is AcquisitionSource.VENDOR_BUY and node.cheapest_gil_vendor is not None:
                pinned.setdefault(node.item_id, node)

        overridden = 0
        for plan in plans:
            node = pinned.get(plan.item_id)
            if node is None:
                continue
            vendor = node.selected_vendor
            if vendor is None or not vendor.is_gil_vendor:
                vendor = node.cheapest_gil_vendor
            if vendor is None or vendor.price <= 0:
                continue

            quantity = plan.quantity_needed
            listing = ShoppingListingEntry(
                quantity=quantity,
                price_per_unit=vendor.price,
                retainer_name="Vendor",
                is_under_average=plan.dc_average_price <= 0 or vendor.price <= plan.dc_average_price,
                needed_from_stack=quantity,
            )
            total = vendor.price * quantity
            vendor_world = WorldShoppingSummary(
                world_name=VENDOR_WORLD_NAME,
                listings=[listing],
                best_single_listing=listing,
                mode_price_per_unit=float(vendor.price),
                dc_average_price=plan.dc_average_price,
                total_cost=total,
                average_price_per_unit=float(vendor.price),
                total_quantity_purchased=quantity,
                listings_used=1,
                is_fully_under_average=listing.is_under_average,
                has_sufficient_stock=True,
                value_score=float(total),
                is_vendor=True,
                vendor_name=vendor.display_name,
            )

            plan.recommended_world = vendor_world
            plan.recommended_split = None
            plan.vendors = [v for v in node.vendor_options if v.is_gil_vendor]
            plan.error = None
            if not any(w.is_vendor for w in plan.world_options):
                plan.world_options.insert(0, vendor_world)
            overridden += 1

        if overridden:
            self.logger.info("Applied vendor pricing to %d materials", overridden)
        return overridden


def _normalise_blacklist(blacklist: Optional[Iterable[str]]) -> Set[str]:
    return {w.strip().lower() for w in blacklist or [] if w and w.strip()}


def _mode_sort_key(world: WorldShoppingSummary, mode: RecommendationMode):
    if mode is RecommendationMode.BEST_UNIT_PRICE:
        best = world.best_single_listing.price_per_unit if world.best_single_listing else math.inf
        return (best, world.world_name)
    if mode is RecommendationMode.MAXIMIZE_VALUE:
        return (world.average_price_per_unit, world.total_cost, world.world_name)
    return (world.value_score, world.world_name)
