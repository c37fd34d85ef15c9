"""
Market data cache backed by the SQLite store.

The procurement optimizer only ever reads from here; populating the cache
from Universalis is the caller's job (``ensure_populated``).
"""

from __future__ import annotations

import logging
from typing import Callable, Dict, Iterable, List, Optional

from engine.market_models import CachedMarketData
from store.db import DatabaseManager
from utils.timefmt import is_stale

log = logging.getLogger(__name__)

Fetcher = Callable[[List[int], str], Dict[int, CachedMarketData]]


class MarketCache:
    """Market data provider reading cached snapshots."""

    def __init__(self, db: DatabaseManager, max_age_hours: Optional[float] = None):
        self.db = db
        if max_age_hours is None:
            max_age_hours = db.config.get('cache', {}).get('max_age_hours', 6)
        self.max_age_hours = max_age_hours

    def get_cached(self, item_id: int, data_center: str) -> Optional[CachedMarketData]:
        """Snapshot for (item, data center) regardless of age, or ``None``."""
        return self.db.load_snapshot(item_id, data_center)

    def put(self, data: CachedMarketData) -> None:
        self.db.save_snapshot(data)

    def has_valid(self, item_id: int, data_center: str) -> bool:
        fetched = self.db.snapshot_times([item_id], data_center).get(item_id)
        return fetched is not None and not is_stale(fetched, self.max_age_hours)

    def missing(self, item_ids: Iterable[int], data_center: str) -> List[int]:
        """Items with no snapshot or one older than ``max_age_hours``."""
        ids = list(dict.fromkeys(item_ids))
        times = self.db.snapshot_times(ids, data_center)
        return [i for i in ids if i not in times or is_stale(times[i], self.max_age_hours)]

    def ensure_populated(self, item_ids: Iterable[int], data_center: str, fetcher: Fetcher) -> int:
        """
        Fetch and store snapshots for items that are missing or stale.

        ``fetcher`` receives the item ids and data center and returns the
        snapshots it managed to load. Returns the number stored.
        """
        todo = self.missing(item_ids, data_center)
        if not todo:
            log.debug("Market cache warm for %s", data_center)
            return 0

        log.info("Fetching market data for %d items on %s", len(todo), data_center)
        fetched = fetcher(todo, data_center)
        for data in fetched.values():
            self.put(data)

        not_loaded = len(todo) - len(fetched)
        if not_loaded:
            log.warning("No market data returned for %d items on %s", not_loaded, data_center)
        return len(fetched)
