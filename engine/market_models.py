"""
Market and procurement models for Craft Architect.

Cached market snapshots, world status, and the shopping plans produced by
the procurement optimizer.
"""

import math
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from engine.models import VendorInfo
from utils.constants import DEFAULT_MAX_PRICE_MULTIPLIER, DEFAULT_SPLIT_SAVINGS_THRESHOLD


class WorldClassification(Enum):
    """Travel classification of a world."""
    STANDARD = "standard"
    PREFERRED = "preferred"
    PREFERRED_PLUS = "preferred+"
    CONGESTED = "congested"

    @classmethod
    def parse(cls, value: Optional[str]) -> 'WorldClassification':
        """Parse a status label; unknown labels are standard."""
        text = (value or "").strip().lower()
        if text in ("preferred+", "preferred plus", "preferred_plus"):
            return cls.PREFERRED_PLUS
        if text == "preferred":
            return cls.PREFERRED
        if text == "congested":
            return cls.CONGESTED
        return cls.STANDARD


class RecommendationMode(Enum):
    """Ordering applied to world options."""
    MINIMIZE_TOTAL_COST = "minimize_total_cost"
    MAXIMIZE_VALUE = "maximize_value"
    BEST_UNIT_PRICE = "best_unit_price"

    @classmethod
    def parse(cls, value: Any) -> 'RecommendationMode':
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            return cls.MINIMIZE_TOTAL_COST


@dataclass
class WorldStatus:
    world_name: str
    classification: WorldClassification = WorldClassification.STANDARD
    data_center: str = ""

    @property
    def is_congested(self) -> bool:
        return self.classification is WorldClassification.CONGESTED


@dataclass
class MarketAnalysisConfig:
    """Tunables for the procurement optimizer."""
    max_price_multiplier: float = DEFAULT_MAX_PRICE_MULTIPLIER
    enable_split_world: bool = False
    split_savings_threshold: float = DEFAULT_SPLIT_SAVINGS_THRESHOLD
    max_worlds_per_item: int = 5
    home_world: str = ""
    exclude_congested_worlds: bool = True

    @classmethod
    def from_config(cls, config: Dict[str, Any]) -> 'MarketAnalysisConfig':
        """Build from the application config dictionary."""
        analysis = config.get('analysis', {})
        market = config.get('market', {})
        return cls(
            max_price_multiplier=float(analysis.get('max_price_multiplier', DEFAULT_MAX_PRICE_MULTIPLIER)),
            enable_split_world=bool(analysis.get('enable_split_world', False)),
            split_savings_threshold=float(analysis.get('split_savings_threshold', DEFAULT_SPLIT_SAVINGS_THRESHOLD)),
            max_worlds_per_item=int(analysis.get('max_worlds_per_item', 5)),
            home_world=market.get('home_world', "") or "",
            exclude_congested_worlds=bool(market.get('exclude_congested_worlds', True)),
        )


# ---------------------------------------------------------------------------
# Cached market data
# ---------------------------------------------------------------------------

@dataclass
class CachedListing:
    quantity: int
    price_per_unit: int
    retainer_name: str = ""
    is_hq: bool = False


@dataclass
class CachedWorldData:
    world_name: str
    listings: List[CachedListing] = field(default_factory=list)


@dataclass
class CachedMarketData:
    """Listings for one item on one data center, grouped by world."""
    item_id: int
    data_center: str
    fetched_at: Optional[datetime] = None
    last_upload_at: Optional[datetime] = None
    dc_average_price: float = 0.0
    hq_average_price: float = 0.0
    worlds: List[CachedWorldData] = field(default_factory=list)

    @property
    def listing_count(self) -> int:
        return sum(len(w.listings) for w in self.worlds)


# ---------------------------------------------------------------------------
# Shopping plans
# ---------------------------------------------------------------------------

@dataclass
class ShoppingListingEntry:
    quantity: int
    price_per_unit: int
    retainer_name: str = ""
    is_under_average: bool = False
    is_hq: bool = False
    needed_from_stack: int = 0
    excess_quantity: int = 0
    is_additional_option: bool = False

    @property
    def subtotal(self) -> int:
        return self.quantity * self.price_per_unit


@dataclass
class WorldShoppingSummary:
    """One world's offer for one material."""
    world_name: str
    listings: List[ShoppingListingEntry] = field(default_factory=list)
    excluded_listings: List[ShoppingListingEntry] = field(default_factory=list)
    best_single_listing: Optional[ShoppingListingEntry] = None
    mode_price_per_unit: float = 0.0
    dc_average_price: float = 0.0
    total_cost: int = 0
    average_price_per_unit: float = 0.0
    total_quantity_purchased: int = 0
    listings_used: int = 0
    excess_quantity: int = 0
    is_fully_under_average: bool = False
    has_sufficient_stock: bool = False
    shortfall_quantity: int = 0
    value_score: float = math.inf
    classification: WorldClassification = WorldClassification.STANDARD
    is_home_world: bool = False
    is_blacklisted: bool = False
    is_vendor: bool = False
    vendor_name: str = ""

    @property
    def is_congested(self) -> bool:
        return self.classification is WorldClassification.CONGESTED

    @property
    def purchased_listings(self) -> List[ShoppingListingEntry]:
        return [l for l in self.listings if not l.is_additional_option]

    @property
    def excluded_price_multipliers(self) -> List[float]:
        """How far above the mode price each excluded listing sits."""
        if self.mode_price_per_unit <= 0:
            return []
        return [round(l.price_per_unit / self.mode_price_per_unit, 1) for l in self.excluded_listings]

    @property
    def is_competitive(self) -> bool:
        best = self.best_single_listing
        return best is not None and self.dc_average_price > 0 and best.price_per_unit <= self.dc_average_price * 0.9


@dataclass
class SplitWorldPurchase:
    world_name: str
    quantity_to_buy: int
    price_per_unit: float
    total_cost: int
    is_partial: bool = False


@dataclass
class DetailedShoppingPlan:
    """Purchase options and recommendation for one material."""
    item_id: int
    name: str
    quantity_needed: int
    dc_average_price: float = 0.0
    world_options: List[WorldShoppingSummary] = field(default_factory=list)
    recommended_world: Optional[WorldShoppingSummary] = None
    recommended_split: Optional[List[SplitWorldPurchase]] = None
    vendors: List[VendorInfo] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def has_options(self) -> bool:
        return bool(self.world_options)

    @property
    def total_available_quantity(self) -> int:
        if self.recommended_world is not None and self.recommended_world.is_vendor:
            return self.quantity_needed
        return sum(w.total_quantity_purchased for w in self.world_options)

    @property
    def has_sufficient_stock(self) -> bool:
        return self.total_available_quantity >= self.quantity_needed

    @property
    def stock_shortfall(self) -> int:
        return max(0, self.quantity_needed - self.total_available_quantity)

    @property
    def requires_split_purchase(self) -> bool:
        return bool(self.recommended_split) and len(self.recommended_split) > 1

    @property
    def split_total_cost(self) -> int:
        return sum(p.total_cost for p in self.recommended_split or [])

    @property
    def split_savings_percent(self) -> float:
        """Saving of the split relative to the recommended single world."""
        if not self.recommended_split or self.recommended_world is None:
            return 0.0
        single = self.recommended_world.total_cost
        if single <= 0:
            return 0.0
        return (single - self.split_total_cost) / single * 100
