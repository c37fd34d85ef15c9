"""
Universalis market board client.

Downloads current listings for a data center and converts them into
``CachedMarketData`` snapshots for the market cache.
"""

import logging
from typing import Any, Dict, Iterable, Optional

import requests

from datasources.http import DataSourceError, get_shared_session
from engine.market_models import CachedListing, CachedMarketData, CachedWorldData
from utils.timefmt import from_unix_ms, now_utc

DEFAULT_BASE_URL = "https://universalis.app/api/v2"
MAX_ITEMS_PER_REQUEST = 100


def parse_market_response(item_id: int, data_center: str, payload: Dict[str, Any]) -> CachedMarketData:
    """Group a Universalis listing payload by world."""
    worlds: Dict[str, CachedWorldData] = {}
    for raw in payload.get('listings') or []:
        world_name = raw.get('worldName') or data_center
        world = worlds.setdefault(world_name, CachedWorldData(world_name=world_name))
        world.listings.append(CachedListing(
            quantity=int(raw.get('quantity') or 0),
            price_per_unit=int(raw.get('pricePerUnit') or 0),
            retainer_name=raw.get('retainerName') or "",
            is_hq=bool(raw.get('hq')),
        ))

    for world in worlds.values():
        world.listings.sort(key=lambda l: l.price_per_unit)

    return CachedMarketData(
        item_id=int(payload.get('itemID') or item_id),
        data_center=data_center,
        fetched_at=now_utc(),
        last_upload_at=from_unix_ms(payload.get('lastUploadTime')),
        dc_average_price=float(payload.get('averagePriceNQ') or payload.get('averagePrice') or 0),
        hq_average_price=float(payload.get('averagePriceHQ') or 0),
        worlds=sorted(worlds.values(), key=lambda w: w.world_name),
    )


class UniversalisClient:
    """Client for the Universalis market board API."""

    def __init__(self, config: Optional[Dict[str, Any]] = None, session: Optional[requests.Session] = None):
        """Initialize Universalis client with configuration."""
        self.config = config or {}
        self.logger = logging.getLogger(__name__)

        uni_config = self.config.get('universalis', {})
        self.base_url = uni_config.get('base_url', DEFAULT_BASE_URL).rstrip('/')
        self.timeout = uni_config.get('timeout_seconds', 30)
        self.listings_per_item = uni_config.get('listings_per_item', 100)
        self._session = session

    @property
    def session(self) -> requests.Session:
        return self._session or get_shared_session()

    def _make_request(self, url: str) -> Dict[str, Any]:
        params = {'listings': self.listings_per_item, 'entries': 0}
        try:
            self.logger.debug("Making request to %s with params %s", url, params)
            response = self.session.get(url, params=params, timeout=self.timeout)
            response.raise_for_status()
            return response.json()
        except requests.exceptions.RequestException as e:
            self.logger.error("Request failed: %s", e)
            raise DataSourceError(f"Universalis request failed: {e}") from e
        except ValueError as e:
            self.logger.error("Failed to parse JSON response: %s", e)
            raise DataSourceError(f"Invalid JSON response: {e}") from e

    def fetch_market_data(self, item_id: int, data_center: str) -> CachedMarketData:
        """Current listings for one item on ``data_center``."""
        payload = self._make_request(f"{self.base_url}/{data_center}/{item_id}")
        return parse_market_response(item_id, data_center, payload)

    def fetch_many(self, item_ids: Iterable[int], data_center: str) -> Dict[int, CachedMarketData]:
        """
        Listings for many items, chunked into multi-item requests.

        A failing chunk is logged and skipped; the remaining chunks still load.
        """
        ids = list(dict.fromkeys(item_ids))
        result: Dict[int, CachedMarketData] = {}
        for i in range(0, len(ids), MAX_ITEMS_PER_REQUEST):
            chunk = ids[i:i + MAX_ITEMS_PER_REQUEST]
            try:
                if len(chunk) == 1:
                    result[chunk[0]] = self.fetch_market_data(chunk[0], data_center)
                    continue
                payload = self._make_request(f"{self.base_url}/{data_center}/{','.join(str(x) for x in chunk)}")
            except DataSourceError as e:
                self.logger.error("Failed to get listings for chunk %s: %s", chunk, e)
                continue

            for key, item_payload in (payload.get('items') or {}).items():
                item_id = int(key)
                result[item_id] = parse_market_response(item_id, data_center, item_payload)

            unresolved = payload.get('unresolvedItems') or []
            if unresolved:
                self.logger.debug("Universalis has no data for %s", unresolved)

        self.logger.info("Retrieved listings for %d of %d items on %s", len(result), len(ids), data_center)
        return result
