from datetime import datetime, timedelta, timezone

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient


def create_app(store):
    from estate_map import properties

    app = FastAPI()
    app.include_router(properties.router)
    return app


def _listing(**overrides):
    data = {
        "title": "Căn hộ Vinhomes",
        "location": "Bình Thạnh, TP.HCM",
        "price": 3_200_000_000,
        "propertyType": "apartment",
        "area": 80,
        "bedrooms": 2,
        "bathrooms": 2,
    }
    data.update(overrides)
    return data


def test_create_and_fetch_property(store):
    client = TestClient(create_app(store))

    resp = client.post("/properties", json=_listing(images=["a.jpg"]))
    assert resp.status_code == 201
    created = resp.json()
    assert created["status"] == "available"
    assert created["images"] == ["a.jpg"]

    resp = client.get(f"/properties/{created['id']}")
    assert resp.status_code == 200
    assert resp.json()["title"] == "Căn hộ Vinhomes"


def test_unknown_property_is_404(store):
    client = TestClient(create_app(store))

    assert client.get("/properties/does-not-exist").status_code == 404


def test_listing_filters_and_sorting(store):
    store.create_property({**_listing(title="cheap", price=900_000_000), "createdAt": datetime(2024, 1, 1)})
    store.create_property({**_listing(title="villa", propertyType="villa", price=9_000_000_000), "createdAt": datetime(2024, 3, 1)})
    store.create_property({**_listing(title="mid", price=2_000_000_000), "createdAt": datetime(2024, 2, 1)})
    store.create_property({**_listing(title="sold", status="sold"), "createdAt": datetime(2024, 4, 1)})
    client = TestClient(create_app(store))

    titles = [p["title"] for p in client.get("/properties").json()]
    assert titles == ["villa", "mid", "cheap"]

    titles = [p["title"] for p in client.get("/properties", params={"sort": "price_low"}).json()]
    assert titles == ["cheap", "mid", "villa"]

    resp = client.get("/properties", params={"property_type": "apartment", "min_price": 1_000_000_000})
    assert [p["title"] for p in resp.json()] == ["mid"]


def test_invalid_payload_is_rejected(store):
    client = TestClient(create_app(store))

    assert client.post("/properties", json=_listing(propertyType="castle")).status_code == 422
    assert client.post("/properties", json=_listing(area=0)).status_code == 422


def test_store_validates_required_fields(store):
    with pytest.raises(ValueError):
        store.create_property({**_listing(), "location": "  "})
    with pytest.raises(ValueError):
        store.create_property({**_listing(), "propertyType": "castle"})


def test_new_listings_are_stamped_with_current_utc_time(store):
    assert store._utcnow().tzinfo is timezone.utc

    record = store.create_property(_listing(title="fresh"))

    now = datetime.now(timezone.utc).replace(tzinfo=None)
    assert record.created_at is not None
    assert abs(record.created_at.replace(tzinfo=None) - now) < timedelta(minutes=1)
