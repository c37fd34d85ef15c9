"""
Planning service tying the builder, the market cache and the optimizer together.

Build a tree, make sure the market cache covers its materials, then compute
shopping plans from the cache.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

import pandas as pd

from datasources.garland import GarlandClient
from datasources.universalis import UniversalisClient
from engine.craft_analysis import CraftVsBuyAnalysis, analyze_craft_vs_buy
from engine.market_models import DetailedShoppingPlan, MarketAnalysisConfig, RecommendationMode
from engine.models import CraftingPlan, MaterialAggregate, PriceInfo
from engine.plan_prices import apply_prices, prices_from_market
from engine.procurement import ProcurementOptimizer
from engine.procurement_summary import summarize_by_world
from engine.providers import ItemMetadataProvider
from engine.recipe_tree import BuildTarget, CancelSignal, RecipeTreeBuilder
from services.market_cache import MarketCache
from services.world_status import WorldStatusService
from store.db import DatabaseManager

log = logging.getLogger(__name__)


@dataclass
class PlanningResult:
    plan: CraftingPlan
    materials: List[MaterialAggregate] = field(default_factory=list)
    shopping: List[DetailedShoppingPlan] = field(default_factory=list)
    prices: Dict[int, PriceInfo] = field(default_factory=dict)
    craft_analysis: List[CraftVsBuyAnalysis] = field(default_factory=list)
    route: Optional[pd.DataFrame] = None

    @property
    def total_cost(self) -> float:
        total = 0.0
        for shopping_plan in self.shopping:
            if shopping_plan.recommended_split:
                total += shopping_plan.split_total_cost
            elif shopping_plan.recommended_world is not None:
                total += shopping_plan.recommended_world.total_cost
        return total


class PlanningService:
    """End-to-end planning over the configured data sources."""

    def __init__(self, config: Dict[str, Any],
                 items: Optional[ItemMetadataProvider] = None,
                 market_client: Optional[UniversalisClient] = None,
                 db: Optional[DatabaseManager] = None,
                 world_status: Optional[WorldStatusService] = None):
        """Initialize the service; unset collaborators are built from config."""
        self.config = config
        self.items = items or GarlandClient(config)
        self.market_client = market_client or UniversalisClient(config)
        if db is None:
            db = DatabaseManager(config)
            db.initialize_database()
        self.db = db
        self.cache = MarketCache(db)
        self.world_status = world_status or WorldStatusService.from_config(config)
        self.analysis_config = MarketAnalysisConfig.from_config(config)

        self.builder = RecipeTreeBuilder(self.items, config)
        self.optimizer = ProcurementOptimizer(self.cache, self.world_status, self.analysis_config)

    @property
    def data_center(self) -> str:
        return self.config.get('market', {}).get('data_center', "")

    @property
    def blacklist(self) -> List[str]:
        return list(self.config.get('market', {}).get('blacklisted_worlds', []) or [])

    def build(self, targets: Sequence[BuildTarget], cancel: CancelSignal = None) -> CraftingPlan:
        world = self.config.get('market', {}).get('home_world', "")
        return self.builder.build_plan(targets, self.data_center, world, cancel=cancel)

    def refresh_market(self, plan: CraftingPlan, data_center: Optional[str] = None) -> int:
        """Load listings for every item in ``plan`` not already fresh in the cache."""
        dc = data_center or plan.data_center or self.data_center
        return self.cache.ensure_populated(plan.all_item_ids(), dc, self.market_client.fetch_many)

    def price_plan(self, plan: CraftingPlan) -> Dict[int, PriceInfo]:
        """Resolve unit prices from the cache and write them onto the plan."""
        dc = plan.data_center or self.data_center
        snapshots = {item_id: self.cache.get_cached(item_id, dc) for item_id in plan.all_item_ids()}
        prices = prices_from_market(plan, snapshots)
        apply_prices(plan, prices)
        return prices

    def shop(self, plan: CraftingPlan, mode: Optional[RecommendationMode] = None,
             cancel: CancelSignal = None) -> List[DetailedShoppingPlan]:
        """Shopping plans for the plan's current materials, with vendor pins applied."""
        if mode is None:
            mode = RecommendationMode.parse(self.config.get('analysis', {}).get('recommendation_mode'))
        materials = plan.aggregate_materials()
        shopping = self.optimizer.plan_with_splits(
            materials, plan.data_center or self.data_center, mode,
            blacklist=self.blacklist, cancel=cancel,
        )
        self.optimizer.apply_vendor_overrides(plan, shopping)
        return shopping

    def run(self, targets: Sequence[BuildTarget], refresh: bool = True,
            cancel: CancelSignal = None) -> PlanningResult:
        """Build, refresh the cache, price and shop in one go."""
        plan = self.build(targets, cancel=cancel)
        if refresh:
            self.refresh_market(plan)
        prices = self.price_plan(plan)
        shopping = self.shop(plan, cancel=cancel)

        result = PlanningResult(
            plan=plan,
            materials=plan.aggregate_materials(),
            shopping=shopping,
            prices=prices,
            craft_analysis=analyze_craft_vs_buy(plan, prices),
            route=summarize_by_world(shopping),
        )
        log.info("Planned %d materials, estimated cost %.0f gil", len(result.materials), result.total_cost)
        return result
