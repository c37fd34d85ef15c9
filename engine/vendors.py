"""
Vendor resolution for item metadata.

Item documents describe vendors in one of three shapes: full vendor
records, bare vendor id references plus a root-level price, or nothing.
The shape is classified once and resolved by matching on it.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Union

from engine.models import ItemMetadata, NpcRecord, VendorInfo, VendorRecord
from utils.constants import GENERIC_VENDOR_LOCATION, GENERIC_VENDOR_NAME

log = logging.getLogger(__name__)


@dataclass
class FullVendors:
    vendors: List[VendorRecord]
    npcs: List[NpcRecord] = field(default_factory=list)


@dataclass
class VendorReferences:
    vendor_ids: List[int]
    price: int
    npcs: List[NpcRecord] = field(default_factory=list)


@dataclass
class NoVendorData:
    pass


VendorData = Union[FullVendors, VendorReferences, NoVendorData]


def classify_vendor_data(item: ItemMetadata) -> VendorData:
    """Return the vendor shape carried by ``item``."""
    if item.vendors:
        return FullVendors(list(item.vendors), list(item.npcs))
    if item.vendor_ids:
        return VendorReferences(list(item.vendor_ids), item.price, list(item.npcs))
    return NoVendorData()


def _alternate_locations(npcs: List[NpcRecord], name: str, primary: str) -> List[str]:
    wanted = name.lower()
    out: List[str] = []
    for npc in npcs:
        if npc.name.lower() != wanted or not npc.location:
            continue
        if npc.location == primary or npc.location in out:
            continue
        out.append(npc.location)
    return out


def _from_full(data: FullVendors) -> List[VendorInfo]:
    return [
        VendorInfo(
            name=v.name,
            location=v.location,
            price=v.price,
            currency=(v.currency or "gil").lower(),
            alternate_locations=_alternate_locations(data.npcs, v.name, v.location),
        )
        for v in data.vendors
    ]


def _from_references(data: VendorReferences, item_id: int) -> List[VendorInfo]:
    if data.price <= 0:
        return []

    # Only NPC records the item actually references; documents also carry unrelated NPCs
    wanted = set(data.vendor_ids)
    matching = [npc for npc in data.npcs if npc.id in wanted]

    grouped: Dict[str, List[NpcRecord]] = {}
    for npc in matching:
        grouped.setdefault(npc.name, []).append(npc)

    options = []
    for name, npcs in grouped.items():
        locations = []
        for npc in npcs:
            if npc.location and npc.location not in locations:
                locations.append(npc.location)
        primary = locations[0] if locations else ""
        options.append(VendorInfo(
            name=name,
            location=primary,
            price=data.price,
            currency="gil",
            alternate_locations=locations[1:],
        ))

    if not options:
        log.debug("Item %s references vendors %s with no matching NPC records", item_id, data.vendor_ids)
        options.append(VendorInfo(
            name=GENERIC_VENDOR_NAME,
            location=GENERIC_VENDOR_LOCATION,
            price=data.price,
            currency="gil",
        ))
    return options


def resolve_vendor_options(item: ItemMetadata) -> List[VendorInfo]:
    """Vendor options for ``item`` in document order."""
    data = classify_vendor_data(item)
    if isinstance(data, FullVendors):
        return _from_full(data)
    if isinstance(data, VendorReferences):
        return _from_references(data, item.id)
    if isinstance(data, NoVendorData):
        return []
    raise TypeError(f"Unhandled vendor data shape: {type(data).__name__}")


def cheapest_gil_price(options: List[VendorInfo]) -> int:
    """Lowest gil price among ``options`` or 0 when none sell for gil."""
    prices = [v.price for v in options if v.is_gil_vendor]
    return min(prices) if prices else 0


def has_vendor(item: ItemMetadata) -> bool:
    """True when the item lists any vendor, even by id only."""
    return not isinstance(classify_vendor_data(item), NoVendorData)
