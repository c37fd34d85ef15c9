"""Collaborator contracts consumed by the planning engine."""

from typing import Dict, Iterable, Optional, Protocol

from engine.market_models import CachedMarketData, WorldStatus
from engine.models import ItemMetadata


class ItemMetadataProvider(Protocol):
    def get_item(self, item_id: int) -> Optional[ItemMetadata]:
        ...

    def get_items(self, item_ids: Iterable[int]) -> Dict[int, ItemMetadata]:
        ...


class MarketDataProvider(Protocol):
    def get_cached(self, item_id: int, data_center: str) -> Optional[CachedMarketData]:
        ...


class WorldStatusProvider(Protocol):
    def get_status(self, world_name: str) -> Optional[WorldStatus]:
        ...
