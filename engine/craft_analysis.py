"""
Craft-vs-buy analysis.

Compares buying each crafted node outright with buying its ingredients,
separately for normal and high quality.
"""

from dataclasses import dataclass
from enum import Enum
from typing import List, Mapping, Optional

from engine.models import CraftingPlan, PlanNode, PriceInfo
from engine.plan_prices import component_cost

SIGNIFICANT_SAVINGS_GIL = 1000
SIGNIFICANT_SAVINGS_PERCENT = 10
HQ_PREMIUM_WARNING_RATIO = 1.5


class CraftRecommendation(Enum):
    BUY = "buy"
    CRAFT = "craft"


@dataclass
class CraftVsBuyAnalysis:
    item_id: int
    item_name: str
    quantity: int
    buy_cost_nq: float
    buy_cost_hq: float
    craft_cost: float
    potential_savings_nq: float
    potential_savings_hq: float
    savings_percent_nq: float
    savings_percent_hq: float
    has_hq_data: bool
    is_hq_required: bool
    is_currently_set_to_craft: bool
    recommendation_nq: CraftRecommendation
    recommendation_hq: CraftRecommendation

    @property
    def effective_recommendation(self) -> CraftRecommendation:
        return self.recommendation_hq if self.is_hq_required else self.recommendation_nq

    @property
    def effective_savings(self) -> float:
        return self.potential_savings_hq if self.is_hq_required else self.potential_savings_nq

    @property
    def effective_savings_percent(self) -> float:
        return self.savings_percent_hq if self.is_hq_required else self.savings_percent_nq

    @property
    def is_significant_savings(self) -> bool:
        return (abs(self.effective_savings) > SIGNIFICANT_SAVINGS_GIL
                or abs(self.effective_savings_percent) > SIGNIFICANT_SAVINGS_PERCENT)

    @property
    def has_quality_warning(self) -> bool:
        """HQ costs far more than NQ to buy."""
        return self.has_hq_data and self.buy_cost_nq > 0 and self.buy_cost_hq > self.buy_cost_nq * HQ_PREMIUM_WARNING_RATIO


def analyze_node(node: PlanNode, prices: Optional[Mapping[int, PriceInfo]] = None) -> CraftVsBuyAnalysis:
    """Craft-vs-buy comparison for one node with children."""
    info = prices.get(node.item_id) if prices is not None else None
    unit_nq = info.unit_price if info is not None else node.market_price
    unit_hq = info.hq_unit_price if info is not None else node.hq_market_price
    has_hq = unit_hq > 0

    buy_nq = unit_nq * node.quantity
    buy_hq = unit_hq * node.quantity
    craft = component_cost(node, prices)

    savings_nq = buy_nq - craft
    savings_hq = buy_hq - craft if has_hq else 0.0

    return CraftVsBuyAnalysis(
        item_id=node.item_id,
        item_name=node.name,
        quantity=node.quantity,
        buy_cost_nq=buy_nq,
        buy_cost_hq=buy_hq,
        craft_cost=craft,
        potential_savings_nq=savings_nq,
        potential_savings_hq=savings_hq,
        savings_percent_nq=savings_nq / buy_nq * 100 if buy_nq > 0 else 0.0,
        savings_percent_hq=savings_hq / buy_hq * 100 if has_hq and buy_hq > 0 else 0.0,
        has_hq_data=has_hq,
        is_hq_required=node.must_be_hq,
        is_currently_set_to_craft=not node.is_buy,
        recommendation_nq=CraftRecommendation.CRAFT if savings_nq > 0 else CraftRecommendation.BUY,
        recommendation_hq=CraftRecommendation.CRAFT if has_hq and savings_hq > 0 else CraftRecommendation.BUY,
    )


def analyze_craft_vs_buy(plan: CraftingPlan,
                         prices: Optional[Mapping[int, PriceInfo]] = None) -> List[CraftVsBuyAnalysis]:
    """Analyse every node with children, largest NQ savings first."""
    analyses = [analyze_node(node, prices) for node in plan.walk() if node.children]
    analyses.sort(key=lambda a: a.potential_savings_nq, reverse=True)
    return analyses
