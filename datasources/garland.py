"""
Garland Tools item document client.

Fetches item documents and converts them into ``ItemMetadata`` for the
recipe tree builder.
"""

import logging
from typing import Any, Dict, Iterable, List, Optional

import requests

from datasources.http import DataSourceError, get_shared_session
from engine.models import (
    CompanyCraft,
    CompanyCraftPhase,
    Ingredient,
    ItemMetadata,
    NpcRecord,
    Recipe,
    VendorRecord,
)
from services.http_cache import cache_get, cache_set

DEFAULT_BASE_URL = "https://www.garlandtools.org/db/doc/item/en/3"
BATCH_SIZE = 100


def _to_int(value: Any, default: int = 0) -> int:
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, (int, float)):
        return int(value)
    if isinstance(value, str):
        try:
            return int(float(value))
        except ValueError:
            return default
    return default


def _to_bool(value: Any, default: bool = True) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    if isinstance(value, str):
        return _to_int(value) != 0
    return default


def _location_name(raw: Dict[str, Any]) -> str:
    if raw.get('location'):
        return str(raw['location'])
    zone = _to_int(raw.get('locationId', raw.get('l')))
    return f"Zone {zone}" if zone > 0 else ""


def _names_from_document(doc: Dict[str, Any]) -> Dict[int, str]:
    """Ingredient names shipped next to the item (ingredients list and item partials)."""
    names: Dict[int, str] = {}
    for entry in doc.get('ingredients') or []:
        if isinstance(entry, dict) and entry.get('name'):
            names[_to_int(entry.get('id'))] = entry['name']
    for partial in doc.get('partials') or []:
        if isinstance(partial, dict) and partial.get('type') == 'item':
            obj = partial.get('obj') or {}
            if obj.get('n'):
                names[_to_int(partial.get('id', obj.get('i')))] = obj['n']
    return names


def _parse_npcs(doc: Dict[str, Any]) -> List[NpcRecord]:
    npcs = []
    for partial in doc.get('partials') or []:
        if not isinstance(partial, dict) or partial.get('type') != 'npc':
            continue
        obj = partial.get('obj')
        if not isinstance(obj, dict):
            continue
        npcs.append(NpcRecord(
            id=_to_int(obj.get('i', partial.get('id'))),
            name=str(obj.get('n', "")),
            location=_location_name(obj),
        ))
    return npcs


def parse_item_document(doc: Dict[str, Any]) -> ItemMetadata:
    """Convert one Garland item document into ``ItemMetadata``."""
    item = doc.get('item') or {}
    names = _names_from_document(doc)

    def ingredient(raw: Dict[str, Any]) -> Ingredient:
        ing_id = _to_int(raw.get('id'))
        return Ingredient(id=ing_id, amount=_to_int(raw.get('amount'), 1), name=raw.get('name') or names.get(ing_id, ""))

    crafts = []
    for raw in item.get('craft') or []:
        crafts.append(Recipe(
            id=str(raw.get('id', "")),
            job_id=_to_int(raw.get('job')),
            recipe_level=_to_int(raw.get('rlvl')),
            yield_=max(1, _to_int(raw.get('yield'), 1)),
            ingredients=[ingredient(i) for i in raw.get('ingredients') or []],
        ))

    company_crafts = []
    for raw in item.get('companyCraft') or []:
        phases = [
            CompanyCraftPhase(
                phase=_to_int(p.get('phase')),
                items=[ingredient(i) for i in p.get('items') or []],
            )
            for p in raw.get('phases') or []
        ]
        company_crafts.append(CompanyCraft(id=_to_int(raw.get('id')), phases=phases))

    vendors: List[VendorRecord] = []
    vendor_ids: List[int] = []
    for raw in item.get('vendors') or []:
        if isinstance(raw, dict):
            vendors.append(VendorRecord(
                name=str(raw.get('name', "")),
                location=_location_name(raw),
                price=_to_int(raw.get('price')),
                currency=str(raw.get('currency') or "gil"),
            ))
        elif isinstance(raw, (int, str)) and _to_int(raw) > 0:
            vendor_ids.append(_to_int(raw))

    return ItemMetadata(
        id=_to_int(item.get('id')),
        name=str(item.get('name', "")),
        icon_id=_to_int(item.get('icon')),
        tradeable=_to_bool(item.get('tradeable')),
        price=_to_int(item.get('price')),
        vendors=vendors,
        vendor_ids=vendor_ids,
        npcs=_parse_npcs(doc),
        crafts=crafts,
        company_crafts=company_crafts,
    )


class GarlandClient:
    """Item metadata provider backed by Garland Tools."""

    def __init__(self, config: Optional[Dict[str, Any]] = None, session: Optional[requests.Session] = None):
        """Initialize Garland client with configuration."""
        self.config = config or {}
        self.logger = logging.getLogger(__name__)

        garland_config = self.config.get('garland', {})
        self.base_url = garland_config.get('base_url', DEFAULT_BASE_URL).rstrip('/')
        self.timeout = garland_config.get('timeout_seconds', 15)
        self.cache_ttl = garland_config.get('cache_ttl_sec', 900)
        self._session = session

    @property
    def session(self) -> requests.Session:
        return self._session or get_shared_session()

    def _get_json(self, url: str) -> Any:
        cached = cache_get(url)
        if cached is not None:
            return cached

        try:
            self.logger.debug("GET %s", url)
            response = self.session.get(url, timeout=self.timeout)
            if response.status_code == 404:
                return None
            response.raise_for_status()
            data = response.json()
        except requests.exceptions.RequestException as e:
            self.logger.error("Garland request failed: %s", e)
            raise DataSourceError(f"Garland request failed: {e}") from e
        except ValueError as e:
            self.logger.error("Invalid JSON from Garland: %s", e)
            raise DataSourceError(f"Invalid JSON response: {e}") from e

        cache_set(url, data, ttl=self.cache_ttl)
        return data

    def get_item(self, item_id: int) -> Optional[ItemMetadata]:
        """Fetch one item; ``None`` when Garland does not know it."""
        doc = self._get_json(f"{self.base_url}/{item_id}.json")
        if not doc:
            return None
        return parse_item_document(doc)

    def get_items(self, item_ids: Iterable[int]) -> Dict[int, ItemMetadata]:
        """
        Fetch many items using Garland's comma-separated batch documents.

        Raises ``DataSourceError`` if any batch request fails so callers can
        fall back to per-item fetches.
        """
        ids = list(dict.fromkeys(item_ids))
        result: Dict[int, ItemMetadata] = {}
        for i in range(0, len(ids), BATCH_SIZE):
            chunk = ids[i:i + BATCH_SIZE]
            if len(chunk) == 1:
                item = self.get_item(chunk[0])
                if item is not None:
                    result[item.id or chunk[0]] = item
                continue

            data = self._get_json(f"{self.base_url}/{','.join(str(x) for x in chunk)}.json")
            if not isinstance(data, list):
                raise DataSourceError(f"Unexpected batch response for {len(chunk)} items")
            for entry in data:
                doc = entry.get('obj') if isinstance(entry, dict) else None
                if not doc:
                    continue
                item = parse_item_document(doc)
                result[item.id or _to_int(entry.get('id'))] = item

        self.logger.info("Fetched metadata for %d of %d items", len(result), len(ids))
        return result
