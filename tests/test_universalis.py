from datetime import datetime, timedelta, timezone

import requests

from datasources.universalis import UniversalisClient, parse_market_response

PAYLOAD = {
    "itemID": 5106,
    "lastUploadTime": 1704067200000,
    "averagePriceNQ": 42.5,
    "averagePriceHQ": 0,
    "listings": [
        {"worldName": "Siren", "quantity": 99, "pricePerUnit": 40, "retainerName": "Bob", "hq": False},
        {"worldName": "Adamantoise", "quantity": 10, "pricePerUnit": 38, "retainerName": "Ann", "hq": False},
        {"worldName": "Siren", "quantity": 5, "pricePerUnit": 35, "retainerName": "Cid", "hq": True},
    ],
}


class FakeResponse:
    def __init__(self, payload, status_code=200):
        self.payload = payload
        self.status_code = status_code

    def json(self):
        return self.payload

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.exceptions.HTTPError(str(self.status_code))


class FakeSession:
    def __init__(self, routes):
        self.routes = routes
        self.calls = []

    def get(self, url, params=None, timeout=None):
        self.calls.append((url, params))
        return self.routes.get(url, FakeResponse({}, 503))


def test_parse_groups_listings_by_world():
    data = parse_market_response(5106, "Aether", PAYLOAD)

    assert data.item_id == 5106
    assert data.last_upload_at == datetime(2024, 1, 1, tzinfo=timezone.utc)
    assert datetime.now(timezone.utc) - data.fetched_at < timedelta(minutes=1)
    assert data.dc_average_price == 42.5
    assert [w.world_name for w in data.worlds] == ["Adamantoise", "Siren"]
    siren = data.worlds[1]
    assert [(l.price_per_unit, l.is_hq) for l in siren.listings] == [(35, True), (40, False)]
    assert data.listing_count == 3


def test_parse_falls_back_to_overall_average():
    data = parse_market_response(7, "Aether", {"averagePrice": 12, "listings": []})
    assert data.dc_average_price == 12
    assert data.worlds == []
    assert data.fetched_at is not None
    assert data.last_upload_at is None


def test_fetch_single_item():
    session = FakeSession({"https://u.test/api/Aether/5106": FakeResponse(PAYLOAD)})
    client = UniversalisClient({'universalis': {'base_url': "https://u.test/api", 'listings_per_item': 20}}, session)

    data = client.fetch_market_data(5106, "Aether")
    assert data.listing_count == 3
    assert session.calls[0][1] == {'listings': 20, 'entries': 0}


def test_fetch_many_skips_failed_chunks(monkeypatch):
    monkeypatch.setattr("datasources.universalis.MAX_ITEMS_PER_REQUEST", 2)
    session = FakeSession({
        "https://u.test/api/Aether/1,2": FakeResponse({
            "items": {"1": dict(PAYLOAD, itemID=1), "2": dict(PAYLOAD, itemID=2)},
            "unresolvedItems": [],
        }),
    })
    client = UniversalisClient({'universalis': {'base_url': "https://u.test/api"}}, session)

    result = client.fetch_many([1, 2, 3, 4, 1], "Aether")

    assert sorted(result) == [1, 2]
    assert [url for url, _ in session.calls] == ["https://u.test/api/Aether/1,2", "https://u.test/api/Aether/3,4"]
